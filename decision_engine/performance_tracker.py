"""
Confidence Fusion - Performance Tracker.

Derives a recent win-rate score from decisions that already
carry a realized trade outcome.

    win_rate          = wins / N
    performance_score = (win_rate - 0.5) * 2      in [-1, 1]

No outcomes yet means no context (adjustment 0), not an error.
"""

import logging
from typing import List, Optional, Protocol, Sequence

from decision_engine.types import PerformanceContext, TradeOutcome


logger = logging.getLogger(__name__)


class OutcomeSource(Protocol):
    async def get_recent_outcomes(self, account_id: str, limit: int) -> List[TradeOutcome]:
        ...


def compute_performance(outcomes: Sequence[TradeOutcome]) -> Optional[PerformanceContext]:
    if not outcomes:
        return None

    wins = [o for o in outcomes if o.is_win]
    losses = [o for o in outcomes if not o.is_win]
    count = len(outcomes)
    win_rate = len(wins) / count

    return PerformanceContext(
        win_rate=win_rate,
        performance_score=(win_rate - 0.5) * 2,
        avg_profit=sum(abs(o.profit) for o in wins) / len(wins) if wins else 0.0,
        avg_loss=-sum(abs(o.profit) for o in losses) / len(losses) if losses else 0.0,
        recent_trades=count,
        wins=len(wins),
    )


class PerformanceTracker:
    def __init__(self, outcome_source: OutcomeSource, sample_size: int = 20):
        self._source = outcome_source
        self._sample_size = sample_size

    @property
    def sample_size(self) -> int:
        return self._sample_size

    async def get_context(self, account_id: str) -> Optional[PerformanceContext]:
        outcomes = await self._source.get_recent_outcomes(account_id, self._sample_size)
        context = compute_performance(outcomes[: self._sample_size])
        if context is None:
            logger.debug(f"No realized outcomes yet for {account_id}")
        return context
