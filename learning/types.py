"""
Pattern Learning - Types.

============================================================
PURPOSE
============================================================
Domain types for synthesized win/loss patterns.

============================================================
SIGN CONVENTION
============================================================
Loss amounts are stored NON-POSITIVE, profits NON-NEGATIVE.
Pattern and BacktestAggregate normalize on construction:

    total_loss = -abs(total_loss)
    net_profit_loss = total_profit + total_loss

so a positive "avg loss" can never flip a net P/L sign.

============================================================
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4


logger = logging.getLogger(__name__)


class PatternType(str, Enum):
    WIN = "win"
    LOSS = "loss"


class PatternClass(str, Enum):
    """Kinds of pattern the synthesizer emits."""
    PREFERRED_DIRECTION = "preferred_direction"
    TAKE_PROFIT_EXIT = "take_profit_exit"
    TRAILING_PROFIT_EXIT = "trailing_profit_exit"
    PROBLEMATIC_DIRECTION = "problematic_direction"
    STOP_LOSS_EXIT = "stop_loss_exit"
    EMERGENCY_EXIT = "emergency_exit"


class TradeResult(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"


class ExitType(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    TRAILING_PROFIT = "TRAILING_PROFIT"
    TRAILING_LOSS = "TRAILING_LOSS"
    EMERGENCY_EXIT = "EMERGENCY_EXIT"
    MANUAL = "MANUAL"


EXIT_TYPE_ALIASES: Dict[str, ExitType] = {
    "TP": ExitType.TAKE_PROFIT,
    "TAKE_PROFIT": ExitType.TAKE_PROFIT,
    "TRAILING_TP": ExitType.TRAILING_PROFIT,
    "TRAILING_PROFIT": ExitType.TRAILING_PROFIT,
    "TRAILING_SL": ExitType.TRAILING_LOSS,
    "TRAILING_LOSS": ExitType.TRAILING_LOSS,
    "SL": ExitType.STOP_LOSS,
    "STOP_LOSS": ExitType.STOP_LOSS,
    "EMERGENCY": ExitType.EMERGENCY_EXIT,
    "EMERGENCY_EXIT": ExitType.EMERGENCY_EXIT,
    "MANUAL": ExitType.MANUAL,
}


def normalize_exit_type(raw: str) -> Optional[ExitType]:
    return EXIT_TYPE_ALIASES.get(raw.strip().upper())


def non_positive(value: float, name: str) -> float:
    """Loss-sign invariant: coerce to <= 0, warning when a positive value arrives."""
    if value > 0:
        logger.warning(f"{name}={value} is positive; stored as {-value}")
    return -abs(value)


def non_negative(value: float, name: str) -> float:
    if value < 0:
        logger.warning(f"{name}={value} is negative; stored as {abs(value)}")
    return abs(value)


# ============================================================
# CONDITIONS
# ============================================================


@dataclass(frozen=True)
class IndicatorRange:
    min: Optional[float] = None
    max: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


@dataclass(frozen=True)
class PatternConditions:
    """
    Market conditions a pattern applies to.

    Unset fields match anything.
    """
    trend: Optional[str] = None
    symbol: Optional[str] = None
    volatility: Optional[str] = None
    time_of_day: Tuple[int, ...] = ()
    day_of_week: Tuple[int, ...] = ()
    rsi: Optional[IndicatorRange] = None
    macd: Optional[IndicatorRange] = None
    adx: Optional[IndicatorRange] = None

    def matches(self, market: Mapping[str, Any]) -> bool:
        """
        True when every set condition holds for market.

        Categorical conditions (trend, symbol, volatility) fail
        when the market value is missing; indicator ranges and
        hour/day lists are skipped when it is missing.
        """
        if self.symbol and str(market.get("symbol", "")).upper() != self.symbol.upper():
            return False
        if self.trend and market.get("trend") != self.trend:
            return False
        if self.volatility and market.get("volatility") != self.volatility:
            return False

        hour = market.get("time_of_day")
        if self.time_of_day and hour is not None and hour not in self.time_of_day:
            return False
        day = market.get("day_of_week")
        if self.day_of_week and day is not None and day not in self.day_of_week:
            return False

        for name in ("rsi", "macd", "adx"):
            bounds: Optional[IndicatorRange] = getattr(self, name)
            value = market.get(name)
            if bounds is not None and value is not None and not bounds.contains(float(value)):
                return False

        return True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name in ("trend", "symbol", "volatility"):
            if getattr(self, name):
                data[name] = getattr(self, name)
        if self.time_of_day:
            data["time_of_day"] = list(self.time_of_day)
        if self.day_of_week:
            data["day_of_week"] = list(self.day_of_week)
        for name in ("rsi", "macd", "adx"):
            bounds = getattr(self, name)
            if bounds is not None:
                data[name] = {"min": bounds.min, "max": bounds.max}
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PatternConditions":
        data = data or {}

        def _range(key: str) -> Optional[IndicatorRange]:
            raw = data.get(key)
            if not raw:
                return None
            return IndicatorRange(min=raw.get("min"), max=raw.get("max"))

        return cls(
            trend=data.get("trend"),
            symbol=data.get("symbol"),
            volatility=data.get("volatility"),
            time_of_day=tuple(data.get("time_of_day") or ()),
            day_of_week=tuple(data.get("day_of_week") or ()),
            rsi=_range("rsi"),
            macd=_range("macd"),
            adx=_range("adx"),
        )


# ============================================================
# PATTERN
# ============================================================


@dataclass
class Pattern:
    """
    A confidence-scored historical win or loss condition.

    Match counters are owned by the store; the in-memory copy is
    a snapshot. Patterns are deactivated, never deleted.
    """
    account_id: str
    pattern_type: PatternType
    pattern_class: PatternClass
    description: str
    conditions: PatternConditions
    occurrences: int
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0
    failure_rate: float = 0.0
    total_profit: float = 0.0
    total_loss: float = 0.0
    avg_profit: float = 0.0
    avg_loss: float = 0.0
    confidence: float = 0.0
    strength: int = 0
    times_matched: int = 0
    times_avoided: int = 0
    is_active: bool = True
    provenance: str = "backtest_sync"
    reasoning: str = ""
    first_seen: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    pattern_id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        self.total_loss = non_positive(self.total_loss, "total_loss")
        self.avg_loss = non_positive(self.avg_loss, "avg_loss")
        self.total_profit = non_negative(self.total_profit, "total_profit")
        self.avg_profit = non_negative(self.avg_profit, "avg_profit")
        self.confidence = max(0.0, min(1.0, self.confidence))
        self.strength = int(max(0, min(100, self.strength)))

    @property
    def net_profit_loss(self) -> float:
        return self.total_profit + self.total_loss

    @property
    def is_loss(self) -> bool:
        return self.pattern_type == PatternType.LOSS

    @property
    def avoidance_rate(self) -> float:
        if self.times_matched == 0:
            return 0.0
        return self.times_avoided / self.times_matched

    def with_updates(self, **changes: Any) -> "Pattern":
        """Copy with changes; the sign invariant is re-applied."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern_id": str(self.pattern_id),
            "account_id": self.account_id,
            "pattern_type": self.pattern_type.value,
            "pattern_class": self.pattern_class.value,
            "description": self.description,
            "conditions": self.conditions.to_dict(),
            "occurrences": self.occurrences,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success_rate": self.success_rate,
            "failure_rate": self.failure_rate,
            "total_profit": self.total_profit,
            "total_loss": self.total_loss,
            "net_profit_loss": self.net_profit_loss,
            "avg_profit": self.avg_profit,
            "avg_loss": self.avg_loss,
            "confidence": self.confidence,
            "strength": self.strength,
            "times_matched": self.times_matched,
            "times_avoided": self.times_avoided,
            "is_active": self.is_active,
            "provenance": self.provenance,
            "reasoning": self.reasoning,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
        }


# ============================================================
# BACKTEST AGGREGATE (SYNTHESIZER INPUT)
# ============================================================


@dataclass(frozen=True)
class BacktestAggregate:
    """Aggregate win/loss statistics exported by the backtester."""
    symbol: str
    win_trades_analyzed: int
    loss_trades_analyzed: int
    win_exit_types: Dict[str, int] = field(default_factory=dict)
    loss_exit_types: Dict[str, int] = field(default_factory=dict)
    win_directions: Dict[str, int] = field(default_factory=dict)
    loss_directions: Dict[str, int] = field(default_factory=dict)
    avg_profit: float = 0.0
    avg_profit_percent: float = 0.0
    avg_loss: float = 0.0
    avg_loss_percent: float = 0.0
    total_backtests: int = 0
    avg_roi: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "avg_loss", non_positive(self.avg_loss, "avg_loss"))
        object.__setattr__(self, "avg_loss_percent", non_positive(self.avg_loss_percent, "avg_loss_percent"))
        object.__setattr__(self, "avg_profit", non_negative(self.avg_profit, "avg_profit"))
        object.__setattr__(self, "win_exit_types", _normalize_exits(self.win_exit_types))
        object.__setattr__(self, "loss_exit_types", _normalize_exits(self.loss_exit_types))
        object.__setattr__(self, "win_directions", _normalize_directions(self.win_directions))
        object.__setattr__(self, "loss_directions", _normalize_directions(self.loss_directions))

    @property
    def total_trades(self) -> int:
        return self.win_trades_analyzed + self.loss_trades_analyzed

    @property
    def win_rate(self) -> float:
        if self.total_trades == 0:
            return 0.0
        return self.win_trades_analyzed / self.total_trades

    @property
    def preferred_direction(self) -> Optional[str]:
        return _most_common(self.win_directions)

    @property
    def problematic_direction(self) -> Optional[str]:
        return _most_common(self.loss_directions)

    @property
    def most_common_win_exit(self) -> Optional[str]:
        return _most_common(self.win_exit_types)

    @property
    def most_common_loss_exit(self) -> Optional[str]:
        return _most_common(self.loss_exit_types)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], symbol: Optional[str] = None) -> "BacktestAggregate":
        """
        Build from a backtest-learning export.

        Accepts the camelCase export shape:
            {"summary": {...}, "winPatterns": {...}, "lossPatterns": {...}}
        """
        summary = data.get("summary") or {}
        wins = data.get("winPatterns") or {}
        losses = data.get("lossPatterns") or {}

        return cls(
            symbol=symbol or data.get("symbol") or "BTCUSDT",
            win_trades_analyzed=int(summary.get("winTradesAnalyzed", 0)),
            loss_trades_analyzed=int(summary.get("lossTradesAnalyzed", 0)),
            win_exit_types=dict(wins.get("exitTypes") or {}),
            loss_exit_types=dict(losses.get("exitTypes") or {}),
            win_directions=dict(wins.get("directions") or {}),
            loss_directions=dict(losses.get("directions") or {}),
            avg_profit=float(wins.get("avgProfit", 0.0)),
            avg_profit_percent=float(wins.get("avgProfitPercent", 0.0)),
            avg_loss=float(losses.get("avgLoss", 0.0)),
            avg_loss_percent=float(losses.get("avgLossPercent", 0.0)),
            total_backtests=int(summary.get("totalBacktests", 0)),
            avg_roi=float(summary.get("avgROI", 0.0)),
        )


def _normalize_exits(counts: Mapping[str, int]) -> Dict[str, int]:
    result: Dict[str, int] = {}
    for raw, count in counts.items():
        exit_type = normalize_exit_type(raw)
        key = exit_type.value if exit_type else raw.upper()
        result[key] = result.get(key, 0) + int(count)
    return result


def _normalize_directions(counts: Mapping[str, int]) -> Dict[str, int]:
    result: Dict[str, int] = {}
    for raw, count in counts.items():
        key = raw.upper()
        result[key] = result.get(key, 0) + int(count)
    return result


def _most_common(counts: Mapping[str, int]) -> Optional[str]:
    populated = [(k, v) for k, v in counts.items() if v > 0]
    if not populated:
        return None
    # Ties resolve alphabetically for deterministic output.
    return sorted(populated, key=lambda kv: (-kv[1], kv[0]))[0][0]


# ============================================================
# MATCH RESULT
# ============================================================


@dataclass(frozen=True)
class PatternMatch:
    pattern_id: UUID
    pattern_type: PatternType
    description: str
    contribution: float

    @property
    def avoided(self) -> bool:
        """A matched loss pattern counts as an avoidance."""
        return self.pattern_type == PatternType.LOSS


@dataclass(frozen=True)
class PatternMatchResult:
    """Learning adjustment for one signal."""
    adjustment: float
    raw_adjustment: float
    matches: Tuple[PatternMatch, ...] = ()

    @classmethod
    def empty(cls) -> "PatternMatchResult":
        return cls(adjustment=0.0, raw_adjustment=0.0)

    @property
    def win_descriptions(self) -> List[str]:
        return [m.description for m in self.matches if m.pattern_type == PatternType.WIN]

    @property
    def loss_descriptions(self) -> List[str]:
        return [m.description for m in self.matches if m.pattern_type == PatternType.LOSS]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "adjustment": self.adjustment,
            "raw_adjustment": self.raw_adjustment,
            "matched_patterns": len(self.matches),
            "win_patterns": self.win_descriptions,
            "loss_patterns": self.loss_descriptions,
        }


@dataclass(frozen=True)
class PatternSyncReport:
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"created": self.created, "updated": self.updated, "skipped": self.skipped}
