"""
Reasoner - Types.

============================================================
RESULT VARIANTS
============================================================
Refined     : usable answer; any field may still be absent
Unavailable : not configured, unreachable, timed out, HTTP error
Malformed   : answered, but nothing usable could be parsed

The fusion engine treats Unavailable and Malformed identically:
it keeps its rule-based adjustments. Every variant carries the
cost already incurred, so the audit record stays accurate.

============================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ReasonerStatus(str, Enum):
    REFINED = "refined"
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"
    NOT_CONSULTED = "not_consulted"


class ReasonerVerdict(str, Enum):
    EXECUTE = "EXECUTE"
    SKIP = "SKIP"


@dataclass(frozen=True)
class ReasonerAdjustments:
    """Optional overrides of the rule-based adjustments."""
    news: Optional[float] = None
    backtest: Optional[float] = None
    learning: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.news is None and self.backtest is None and self.learning is None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"news": self.news, "backtest": self.backtest, "learning": self.learning}


@dataclass(frozen=True)
class ReasonerRequest:
    """Everything the reasoner may look at for one signal."""
    signal_id: str
    symbol: str
    direction: str
    technical_confidence: float
    entry_price: float
    stop_loss: float
    take_profit: float
    indicators: Dict[str, Any] = field(default_factory=dict)
    sentiment: Optional[float] = None
    sentiment_label: Optional[str] = None
    headlines: List[str] = field(default_factory=list)
    recent_win_rate: Optional[float] = None
    loss_pattern_descriptions: List[str] = field(default_factory=list)
    rule_based: ReasonerAdjustments = field(default_factory=ReasonerAdjustments)
    news_cap: float = 0.10
    backtest_cap: float = 0.05
    learning_cap: float = 0.03
    threshold: float = 0.82


@dataclass(frozen=True)
class ReasonerResult:
    """Base of the tagged result."""
    provider: str = ""
    model: str = ""
    cost: float = 0.0

    @property
    def status(self) -> ReasonerStatus:
        raise NotImplementedError

    @property
    def is_refined(self) -> bool:
        return self.status == ReasonerStatus.REFINED


@dataclass(frozen=True)
class Refined(ReasonerResult):
    decision: Optional[ReasonerVerdict] = None
    adjustments: ReasonerAdjustments = field(default_factory=ReasonerAdjustments)
    reasoning: str = ""

    @property
    def status(self) -> ReasonerStatus:
        return ReasonerStatus.REFINED


@dataclass(frozen=True)
class Unavailable(ReasonerResult):
    reason: str = ""

    @property
    def status(self) -> ReasonerStatus:
        return ReasonerStatus.UNAVAILABLE


@dataclass(frozen=True)
class Malformed(ReasonerResult):
    reason: str = ""
    raw: str = ""

    @property
    def status(self) -> ReasonerStatus:
        return ReasonerStatus.MALFORMED
