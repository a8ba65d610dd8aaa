"""
Tests for the Performance Tracker.
"""

from unittest.mock import AsyncMock

import pytest

from decision_engine import PerformanceTracker, TradeOutcome, compute_performance
from learning import TradeResult


def outcomes(wins, losses, profit=10.0, loss=-5.0):
    return (
        [TradeOutcome(result=TradeResult.WIN, profit=profit) for _ in range(wins)]
        + [TradeOutcome(result=TradeResult.LOSS, profit=loss) for _ in range(losses)]
    )


class TestComputePerformance:
    """Win rate and score."""

    def test_fourteen_of_twenty(self):
        context = compute_performance(outcomes(14, 6))

        assert context.win_rate == pytest.approx(0.7)
        assert context.performance_score == pytest.approx(0.4)
        assert context.recent_trades == 20
        assert context.wins == 14
        # Scaled by the default backtest weight
        assert context.performance_score * 0.05 == pytest.approx(0.02)

    def test_no_history_is_absent(self):
        assert compute_performance([]) is None

    def test_avg_loss_is_non_positive(self):
        """Losses recorded with a positive amount still average below zero."""
        context = compute_performance(outcomes(1, 2, loss=8.0))

        assert context.avg_loss == pytest.approx(-8.0)
        assert context.avg_profit == pytest.approx(10.0)

    def test_score_bounds(self):
        assert compute_performance(outcomes(5, 0)).performance_score == 1.0
        assert compute_performance(outcomes(0, 5)).performance_score == -1.0


class TestPerformanceTracker:
    """Reads the most recent outcomes."""

    @pytest.mark.asyncio
    async def test_requests_sample_size(self):
        source = AsyncMock()
        source.get_recent_outcomes.return_value = outcomes(14, 6)

        context = await PerformanceTracker(source, sample_size=20).get_context("acct-1")

        source.get_recent_outcomes.assert_awaited_once_with("acct-1", 20)
        assert context.performance_score == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_truncates_oversized_answers(self):
        source = AsyncMock()
        source.get_recent_outcomes.return_value = outcomes(10, 0) + outcomes(0, 10)

        context = await PerformanceTracker(source, sample_size=10).get_context("acct-1")

        assert context.recent_trades == 10
        assert context.win_rate == 1.0

    @pytest.mark.asyncio
    async def test_empty_history(self):
        source = AsyncMock()
        source.get_recent_outcomes.return_value = []

        assert await PerformanceTracker(source).get_context("acct-1") is None
