"""
Confidence Fusion - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts of the fusion engine: its inputs (signal,
account), its output (the decision record) and the state
machine it walks.

============================================================
DESIGN PRINCIPLES
============================================================
- Inputs and records are immutable
- Enums for discrete state values
- A record is created once per signal; realized outcomes are
  attached later as a separate append-only fact

============================================================
STATE MACHINE
============================================================
RECEIVED -> ELIGIBILITY_CHECKED -> CONTEXT_GATHERED
         -> REASONER_CONSULTED (optional) -> FUSED -> DECIDED
         -> PERSISTED -> COUNTERS_UPDATED

An eligibility denial jumps from ELIGIBILITY_CHECKED to DECIDED.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from uuid import UUID, uuid4

from core.clock import ensure_utc, from_iso8601
from core.exceptions import InvalidConfigError, InvalidSignalError
from learning.types import ExitType, TradeResult


# ============================================================
# ENUMS
# ============================================================


class TradeDirection(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def trend(self) -> str:
        return "up" if self == TradeDirection.LONG else "down"


class DecisionOutcome(str, Enum):
    EXECUTE = "EXECUTE"
    SKIP = "SKIP"


class EvaluationStage(str, Enum):
    RECEIVED = "received"
    ELIGIBILITY_CHECKED = "eligibility_checked"
    CONTEXT_GATHERED = "context_gathered"
    REASONER_CONSULTED = "reasoner_consulted"
    FUSED = "fused"
    DECIDED = "decided"
    PERSISTED = "persisted"
    COUNTERS_UPDATED = "counters_updated"


# ============================================================
# INPUTS
# ============================================================


@dataclass(frozen=True)
class Signal:
    """A candidate trade from the technical signal generator."""
    signal_id: str
    symbol: str
    direction: TradeDirection
    technical_confidence: float
    entry_price: float
    stop_loss: float
    take_profit: float
    indicators: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.signal_id:
            raise InvalidSignalError("Signal id is required", field="signal_id")
        if not isinstance(self.direction, TradeDirection):
            try:
                object.__setattr__(self, "direction", TradeDirection(str(self.direction).upper()))
            except ValueError:
                raise InvalidSignalError(
                    f"Unknown direction {self.direction!r}",
                    field="direction",
                    expected="LONG or SHORT",
                    actual=self.direction,
                )
        if not 0.0 <= self.technical_confidence <= 1.0:
            raise InvalidSignalError(
                "Technical confidence out of range",
                field="technical_confidence",
                expected="[0, 1]",
                actual=self.technical_confidence,
            )
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @property
    def implied_trend(self) -> str:
        return self.direction.trend

    def market_conditions(self) -> Dict[str, Any]:
        """Values pattern conditions are evaluated against."""
        conditions: Dict[str, Any] = {
            "symbol": self.symbol,
            "trend": self.implied_trend,
            "time_of_day": self.timestamp.hour,
            # Sunday = 0, as in the backtest exports
            "day_of_week": self.timestamp.isoweekday() % 7,
        }
        volatility = self.indicators.get("volatility")
        if isinstance(volatility, str):
            conditions["volatility"] = volatility.lower()
        for name in ("rsi", "macd", "adx"):
            value = self.indicators.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                conditions[name] = float(value)
        return conditions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "technical_confidence": self.technical_confidence,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "indicators": dict(self.indicators),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Signal":
        timestamp = data.get("timestamp")
        return cls(
            signal_id=str(data["signal_id"]),
            symbol=str(data["symbol"]),
            direction=data["direction"],
            technical_confidence=float(data["technical_confidence"]),
            entry_price=float(data.get("entry_price", 0.0)),
            stop_loss=float(data.get("stop_loss", 0.0)),
            take_profit=float(data.get("take_profit", 0.0)),
            indicators=dict(data.get("indicators") or {}),
            timestamp=from_iso8601(timestamp) if isinstance(timestamp, str) else (
                timestamp or datetime.now(timezone.utc)
            ),
        )


@dataclass(frozen=True)
class AccountConfig:
    """
    Per-account fusion settings. Owned externally; read-only here.

    Each weight is also the cap of its adjustment.
    """
    confidence_threshold: float = 0.82
    news_weight: float = 0.10
    backtest_weight: float = 0.05
    learning_weight: float = 0.03

    def __post_init__(self) -> None:
        if not 0.5 <= self.confidence_threshold <= 0.99:
            raise InvalidConfigError(
                "confidence_threshold", self.confidence_threshold, "must be within [0.5, 0.99]"
            )
        for name in ("news_weight", "backtest_weight", "learning_weight"):
            value = getattr(self, name)
            if not 0.0 <= value <= 0.5:
                raise InvalidConfigError(name, value, "must be within [0, 0.5]")

    def to_dict(self) -> Dict[str, float]:
        return {
            "confidence_threshold": self.confidence_threshold,
            "news_weight": self.news_weight,
            "backtest_weight": self.backtest_weight,
            "learning_weight": self.learning_weight,
        }


@dataclass(frozen=True)
class BalanceSnapshot:
    """Account balances at decision time, for the audit record."""
    exchange_balance: float = 0.0
    gas_fee_balance: float = 0.0
    available_margin: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "exchange_balance": self.exchange_balance,
            "gas_fee_balance": self.gas_fee_balance,
            "available_margin": self.available_margin,
        }


@dataclass(frozen=True)
class EligibilityResult:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "EligibilityResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "EligibilityResult":
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True)
class AccountContext:
    """
    Everything the engine needs about the account.

    eligibility is any object with can_trade() returning an
    EligibilityResult, directly or as an awaitable.
    """
    account_id: str
    config: AccountConfig
    eligibility: Any
    balance_snapshot: BalanceSnapshot = field(default_factory=BalanceSnapshot)


# ============================================================
# OUTPUTS
# ============================================================


@dataclass(frozen=True)
class ConfidenceBreakdown:
    technical: float
    news: float = 0.0
    backtest: float = 0.0
    learning: float = 0.0
    total: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "technical": self.technical,
            "news": self.news,
            "backtest": self.backtest,
            "learning": self.learning,
            "total": self.total,
        }


@dataclass(frozen=True)
class ReasoningStep:
    """One entry of the human-readable reasoning trail."""
    source: str
    text: str
    value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "text": self.text, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReasoningStep":
        return cls(source=data["source"], text=data["text"], value=data.get("value"))


@dataclass(frozen=True)
class TradeOutcome:
    """Realized result of an executed decision."""
    result: TradeResult
    profit: float
    exit_price: float = 0.0
    exit_type: ExitType = ExitType.MANUAL
    closed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_win(self) -> bool:
        return self.result == TradeResult.WIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.value,
            "profit": self.profit,
            "exit_price": self.exit_price,
            "exit_type": self.exit_type.value,
            "closed_at": self.closed_at.isoformat(),
        }


@dataclass(frozen=True)
class DecisionRecord:
    """Immutable audit entry for one evaluated signal."""
    signal_id: str
    account_id: str
    symbol: str
    direction: TradeDirection
    breakdown: ConfidenceBreakdown
    threshold: float
    decision: DecisionOutcome
    reason: str
    reasoning: Tuple[ReasoningStep, ...] = ()
    eligibility_blocked: bool = False
    signal_snapshot: Dict[str, Any] = field(default_factory=dict)
    news_context: Dict[str, Any] = field(default_factory=dict)
    backtest_context: Dict[str, Any] = field(default_factory=dict)
    learning_context: Dict[str, Any] = field(default_factory=dict)
    reasoner_status: str = "not_consulted"
    reasoner_cost: float = 0.0
    reasoner_provider: Optional[str] = None
    reasoner_model: Optional[str] = None
    balance_snapshot: Dict[str, float] = field(default_factory=dict)
    decided_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    decision_id: UUID = field(default_factory=uuid4)
    outcome: Optional[TradeOutcome] = None

    @property
    def final_confidence(self) -> float:
        return self.breakdown.total

    @property
    def reasoning_text(self) -> str:
        return " | ".join(step.text for step in self.reasoning)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision_id": str(self.decision_id),
            "signal_id": self.signal_id,
            "account_id": self.account_id,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "decision": self.decision.value,
            "reason": self.reason,
            "eligibility_blocked": self.eligibility_blocked,
            "threshold": self.threshold,
            "breakdown": self.breakdown.to_dict(),
            "reasoning": [s.to_dict() for s in self.reasoning],
            "reasoning_text": self.reasoning_text,
            "signal": self.signal_snapshot,
            "news_context": self.news_context,
            "backtest_context": self.backtest_context,
            "learning_context": self.learning_context,
            "reasoner": {
                "status": self.reasoner_status,
                "cost": self.reasoner_cost,
                "provider": self.reasoner_provider,
                "model": self.reasoner_model,
            },
            "balance_snapshot": self.balance_snapshot,
            "decided_at": self.decided_at.isoformat(),
            "outcome": self.outcome.to_dict() if self.outcome else None,
        }


@dataclass(frozen=True)
class EvaluationResult:
    """What evaluate() returns: the record plus how it got there."""
    record: DecisionRecord
    stages: Tuple[EvaluationStage, ...] = ()
    replayed: bool = False
    counters_updated: bool = False
    patterns_recorded: int = 0

    @property
    def decision(self) -> DecisionOutcome:
        return self.record.decision


@dataclass(frozen=True)
class PerformanceContext:
    """Recent realized performance of an account."""
    win_rate: float
    performance_score: float
    avg_profit: float
    avg_loss: float
    recent_trades: int
    wins: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "win_rate": self.win_rate,
            "performance_score": self.performance_score,
            "avg_profit": self.avg_profit,
            "avg_loss": self.avg_loss,
            "recent_trades": self.recent_trades,
            "wins": self.wins,
        }


__all__ = [
    "TradeDirection",
    "DecisionOutcome",
    "EvaluationStage",
    "Signal",
    "AccountConfig",
    "BalanceSnapshot",
    "EligibilityResult",
    "AccountContext",
    "ConfidenceBreakdown",
    "ReasoningStep",
    "TradeOutcome",
    "DecisionRecord",
    "EvaluationResult",
    "PerformanceContext",
    "TradeResult",
    "ExitType",
]
