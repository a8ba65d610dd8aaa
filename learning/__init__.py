"""
Pattern Learning.

============================================================
PURPOSE
============================================================
Turns backtest win/loss aggregates into confidence-scored
patterns and matches new signals against them.

============================================================
USAGE
============================================================
    from learning import BacktestAggregate, PatternMatcher, PatternSynthesizer

    patterns = PatternSynthesizer().synthesize(aggregate, account_id)
    await PatternRepository(session_factory).sync_patterns(account_id, patterns)

    result = PatternMatcher().match(signal.market_conditions(), patterns, cap=0.03)

============================================================
"""

from learning.config import LearningConfig, get_default_config
from learning.matcher import PatternMatcher
from learning.repository import PatternRepository
from learning.synthesizer import PatternSynthesizer
from learning.types import (
    BacktestAggregate,
    ExitType,
    IndicatorRange,
    Pattern,
    PatternClass,
    PatternConditions,
    PatternMatch,
    PatternMatchResult,
    PatternSyncReport,
    PatternType,
    TradeResult,
)

__all__ = [
    "LearningConfig",
    "get_default_config",
    "PatternMatcher",
    "PatternRepository",
    "PatternSynthesizer",
    "BacktestAggregate",
    "ExitType",
    "IndicatorRange",
    "Pattern",
    "PatternClass",
    "PatternConditions",
    "PatternMatch",
    "PatternMatchResult",
    "PatternSyncReport",
    "PatternType",
    "TradeResult",
]

__version__ = "1.0.0"
