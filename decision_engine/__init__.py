"""
Confidence Fusion Decision Engine.

============================================================
PURPOSE
============================================================
Decides whether a technical signal is executed, by fusing the
signal's technical confidence with bounded adjustments from
news sentiment, recent performance and learned patterns.

The engine is the gateway to execution: every evaluated signal
leaves exactly one immutable DecisionRecord behind.

============================================================
USAGE
============================================================
    from decision_engine import (
        AccountConfig, AccountContext, ConfidenceFusionEngine, Signal,
    )

    result = await engine.evaluate(
        AccountContext("acct-1", AccountConfig(), eligibility=checker),
        Signal.from_dict(payload),
    )
    if result.decision == DecisionOutcome.EXECUTE:
        ...

============================================================
"""

from decision_engine.config import CONFIDENCE_PRECISION, FusionEngineConfig, get_default_config
from decision_engine.counters import SignalCounterRepository, SignalCounterSink
from decision_engine.eligibility import EligibilityChecker, check_eligibility
from decision_engine.engine import ConfidenceFusionEngine, fuse
from decision_engine.performance_tracker import (
    OutcomeSource,
    PerformanceTracker,
    compute_performance,
)
from decision_engine.reasoning import ReasoningTrail
from decision_engine.repository import DecisionRepository
from decision_engine.types import (
    AccountConfig,
    AccountContext,
    BalanceSnapshot,
    ConfidenceBreakdown,
    DecisionOutcome,
    DecisionRecord,
    EligibilityResult,
    EvaluationResult,
    EvaluationStage,
    PerformanceContext,
    ReasoningStep,
    Signal,
    TradeDirection,
    TradeOutcome,
)

__all__ = [
    "CONFIDENCE_PRECISION",
    "FusionEngineConfig",
    "get_default_config",
    "SignalCounterRepository",
    "SignalCounterSink",
    "EligibilityChecker",
    "check_eligibility",
    "ConfidenceFusionEngine",
    "fuse",
    "OutcomeSource",
    "PerformanceTracker",
    "compute_performance",
    "ReasoningTrail",
    "DecisionRepository",
    "AccountConfig",
    "AccountContext",
    "BalanceSnapshot",
    "ConfidenceBreakdown",
    "DecisionOutcome",
    "DecisionRecord",
    "EligibilityResult",
    "EvaluationResult",
    "EvaluationStage",
    "PerformanceContext",
    "ReasoningStep",
    "Signal",
    "TradeDirection",
    "TradeOutcome",
]

__version__ = "1.0.0"
