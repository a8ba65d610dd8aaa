"""
Pattern Learning - Synthesizer.

============================================================
PURPOSE
============================================================
Turns aggregate backtest win/loss statistics into discrete,
confidence-scored Pattern records.

============================================================
PATTERNS EMITTED
============================================================
Win side (bucket share of winning trades):
- preferred_direction : most common winning direction
- take_profit_exit    : wins closed at take profit
- trailing_profit_exit: wins closed by the trailing stop

Loss side (bucket share of losing trades):
- problematic_direction: most common losing direction
- stop_loss_exit       : losses closed at stop loss
- emergency_exit       : losses closed by emergency exit

Empty buckets emit nothing.

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from learning.config import LearningConfig, get_default_config
from learning.types import (
    BacktestAggregate,
    ExitType,
    Pattern,
    PatternClass,
    PatternConditions,
    PatternType,
    TradeResult,
)


logger = logging.getLogger(__name__)


def trend_for_direction(direction: str) -> str:
    return "up" if direction.upper() == "LONG" else "down"


def _side_total(count: int, rate: float) -> float:
    """Trades on the pattern's side that a bucket count and share imply."""
    return count / rate if rate > 0 else float(count)


def _pooled_rate(count_a: int, rate_a: float, count_b: int, rate_b: float) -> float:
    base = _side_total(count_a, rate_a) + _side_total(count_b, rate_b)
    return (count_a + count_b) / base if base else 0.0


class PatternSynthesizer:
    """
    Builds patterns from backtest aggregates.

    Usage:
        synthesizer = PatternSynthesizer()
        patterns = synthesizer.synthesize(aggregate, account_id="acct-1")
    """

    def __init__(self, config: Optional[LearningConfig] = None):
        self._config = config or get_default_config()

    @property
    def config(self) -> LearningConfig:
        return self._config

    def synthesize(
        self,
        aggregate: BacktestAggregate,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> List[Pattern]:
        now = now or datetime.now(timezone.utc)
        patterns: List[Pattern] = []

        if aggregate.win_trades_analyzed > 0:
            patterns.extend(self._win_patterns(aggregate, account_id, now))
        if aggregate.loss_trades_analyzed > 0:
            patterns.extend(self._loss_patterns(aggregate, account_id, now))

        logger.info(
            f"Synthesized {len(patterns)} patterns for {aggregate.symbol} "
            f"from {aggregate.total_trades} trades"
        )
        return patterns

    # =========================================================
    # WIN SIDE
    # =========================================================

    def _win_patterns(self, agg: BacktestAggregate, account_id: str, now: datetime) -> List[Pattern]:
        patterns = []
        wins = agg.win_trades_analyzed
        symbol = agg.symbol

        direction = agg.preferred_direction
        if direction:
            count = agg.win_directions[direction]
            exit_label = agg.most_common_win_exit or "mixed"
            patterns.append(self._win(
                account_id, PatternClass.PREFERRED_DIRECTION, count, wins, agg, now,
                description=f"{symbol}: {direction} trades with {exit_label} exit - proven winner",
                conditions=PatternConditions(trend=trend_for_direction(direction), symbol=symbol),
                reasoning=(
                    f"Backtest shows {count} winning {direction} trades "
                    f"({count / wins * 100:.1f}% of wins) via {exit_label} exit"
                ),
            ))

        tp_count = agg.win_exit_types.get(ExitType.TAKE_PROFIT.value, 0)
        if tp_count > 0:
            patterns.append(self._win(
                account_id, PatternClass.TAKE_PROFIT_EXIT, tp_count, wins, agg, now,
                description=f"{symbol}: Take profit exit captures avg {agg.avg_profit_percent:.2f}% profit",
                conditions=PatternConditions(symbol=symbol),
                reasoning=f"{tp_count} take-profit exits with {agg.avg_profit_percent:.2f}% avg profit",
            ))

        trail_count = agg.win_exit_types.get(ExitType.TRAILING_PROFIT.value, 0)
        if trail_count > 0:
            patterns.append(self._win(
                account_id, PatternClass.TRAILING_PROFIT_EXIT, trail_count, wins, agg, now,
                description=f"{symbol}: Trailing profit maximizes gains - use this exit strategy",
                conditions=PatternConditions(symbol=symbol),
                reasoning=f"{trail_count} trailing-profit exits captured extended gains",
            ))

        return patterns

    def _win(
        self,
        account_id: str,
        pattern_class: PatternClass,
        count: int,
        total: int,
        agg: BacktestAggregate,
        now: datetime,
        description: str,
        conditions: PatternConditions,
        reasoning: str,
    ) -> Pattern:
        rate = count / total
        return Pattern(
            account_id=account_id,
            pattern_type=PatternType.WIN,
            pattern_class=pattern_class,
            description=description,
            conditions=conditions,
            occurrences=count,
            success_count=count,
            failure_count=0,
            success_rate=rate,
            failure_rate=0.0,
            total_profit=agg.avg_profit * count,
            total_loss=0.0,
            avg_profit=agg.avg_profit,
            avg_loss=0.0,
            confidence=min(count / self._config.calibration_for(pattern_class), 1.0),
            strength=round(rate * 100),
            provenance=self._config.provenance,
            reasoning=reasoning,
            first_seen=now,
            last_seen=now,
        )

    # =========================================================
    # LOSS SIDE
    # =========================================================

    def _loss_patterns(self, agg: BacktestAggregate, account_id: str, now: datetime) -> List[Pattern]:
        patterns = []
        losses = agg.loss_trades_analyzed
        symbol = agg.symbol

        direction = agg.problematic_direction
        if direction:
            count = agg.loss_directions[direction]
            exit_label = agg.most_common_loss_exit or "mixed"
            patterns.append(self._loss(
                account_id, PatternClass.PROBLEMATIC_DIRECTION, count, losses, agg, now,
                description=f"{symbol}: {direction} trades frequently hit {exit_label} - avoid or reduce confidence",
                conditions=PatternConditions(trend=trend_for_direction(direction), symbol=symbol),
                reasoning=(
                    f"Backtest: {count} {direction} trades ended in {exit_label} "
                    f"with avg loss {abs(agg.avg_loss):.2f}"
                ),
            ))

        sl_count = agg.loss_exit_types.get(ExitType.STOP_LOSS.value, 0)
        if sl_count > 0:
            patterns.append(self._loss(
                account_id, PatternClass.STOP_LOSS_EXIT, sl_count, losses, agg, now,
                description=(
                    f"{symbol}: Frequent SL hits with avg {abs(agg.avg_loss_percent):.2f}% loss "
                    f"- review entry timing"
                ),
                conditions=PatternConditions(symbol=symbol),
                reasoning=f"{sl_count} stop-loss hits indicate entry timing issues or a tight stop",
            ))

        emergency_count = agg.loss_exit_types.get(ExitType.EMERGENCY_EXIT.value, 0)
        if emergency_count > 0:
            patterns.append(self._loss(
                account_id, PatternClass.EMERGENCY_EXIT, emergency_count, losses, agg, now,
                description=f"{symbol}: Emergency exits detected - critical risk management issue",
                conditions=PatternConditions(volatility="high", symbol=symbol),
                reasoning=f"{emergency_count} emergency exits indicate high-risk conditions",
            ))

        return patterns

    def _loss(
        self,
        account_id: str,
        pattern_class: PatternClass,
        count: int,
        total: int,
        agg: BacktestAggregate,
        now: datetime,
        description: str,
        conditions: PatternConditions,
        reasoning: str,
    ) -> Pattern:
        rate = count / total
        return Pattern(
            account_id=account_id,
            pattern_type=PatternType.LOSS,
            pattern_class=pattern_class,
            description=description,
            conditions=conditions,
            occurrences=count,
            success_count=0,
            failure_count=count,
            success_rate=0.0,
            failure_rate=rate,
            total_profit=0.0,
            total_loss=agg.avg_loss * count,
            avg_profit=0.0,
            avg_loss=agg.avg_loss,
            confidence=min(count / self._config.calibration_for(pattern_class), 1.0),
            strength=round(rate * 100),
            provenance=self._config.provenance,
            reasoning=reasoning,
            first_seen=now,
            last_seen=now,
        )

    # =========================================================
    # OCCURRENCES AND INSIGHTS
    # =========================================================

    def merge(self, existing: Pattern, incoming: Pattern) -> Pattern:
        """
        Fold a re-synthesized pattern into its stored copy.

        Counts and totals are summed and every derived statistic is
        recomputed from the sums. Rates pool the side totals of both
        batches, so a bucket holding 4 of 8 wins twice stays at 50%.
        Identity, match counters, activation and first_seen come
        from the stored copy.
        """
        occurrences = existing.occurrences + incoming.occurrences
        success = existing.success_count + incoming.success_count
        failure = existing.failure_count + incoming.failure_count
        total_profit = existing.total_profit + incoming.total_profit
        total_loss = existing.total_loss + incoming.total_loss

        success_rate = _pooled_rate(
            existing.success_count, existing.success_rate,
            incoming.success_count, incoming.success_rate,
        )
        failure_rate = _pooled_rate(
            existing.failure_count, existing.failure_rate,
            incoming.failure_count, incoming.failure_rate,
        )
        own_rate = failure_rate if existing.is_loss else success_rate

        return incoming.with_updates(
            pattern_id=existing.pattern_id,
            occurrences=occurrences,
            success_count=success,
            failure_count=failure,
            success_rate=success_rate,
            failure_rate=failure_rate,
            total_profit=total_profit,
            total_loss=total_loss,
            avg_profit=total_profit / success if success else 0.0,
            avg_loss=total_loss / failure if failure else 0.0,
            confidence=min(occurrences / self._config.calibration_for(existing.pattern_class), 1.0),
            strength=round(own_rate * 100),
            times_matched=existing.times_matched,
            times_avoided=existing.times_avoided,
            is_active=existing.is_active,
            first_seen=existing.first_seen,
        )

    def apply_occurrence(
        self,
        pattern: Pattern,
        result: TradeResult,
        profit: float,
        seen_at: Optional[datetime] = None,
    ) -> Pattern:
        """
        Record one realized trade against a pattern.

        Rates become true outcome rates over all occurrences; the
        pattern's own side (success for win, failure for loss)
        drives strength.
        """
        occurrences = pattern.occurrences + 1
        success = pattern.success_count
        failure = pattern.failure_count
        total_profit = pattern.total_profit
        total_loss = pattern.total_loss

        if result == TradeResult.WIN:
            success += 1
            total_profit += abs(profit)
        else:
            failure += 1
            total_loss -= abs(profit)

        success_rate = success / occurrences
        failure_rate = failure / occurrences
        own_rate = failure_rate if pattern.is_loss else success_rate

        return pattern.with_updates(
            occurrences=occurrences,
            success_count=success,
            failure_count=failure,
            success_rate=success_rate,
            failure_rate=failure_rate,
            total_profit=total_profit,
            total_loss=total_loss,
            avg_profit=total_profit / success if success else 0.0,
            avg_loss=total_loss / failure if failure else 0.0,
            confidence=min(occurrences / self._config.calibration_for(pattern.pattern_class), 1.0),
            strength=round(own_rate * 100),
            last_seen=seen_at or datetime.now(timezone.utc),
        )

    def sync_insights(self, patterns: List[Pattern], aggregate: BacktestAggregate) -> List[str]:
        """Operator-facing summary of a synthesis run."""
        insights = []

        if aggregate.total_backtests:
            insights.append(
                f"Imported {aggregate.total_backtests} backtests with "
                f"{aggregate.avg_roi:.2f}% average ROI"
            )
        if aggregate.total_trades:
            insights.append(f"Win rate: {aggregate.win_rate * 100:.2f}%")

        wins = [p for p in patterns if p.pattern_type == PatternType.WIN]
        losses = [p for p in patterns if p.pattern_type == PatternType.LOSS]

        if wins:
            top = max(wins, key=lambda p: p.strength)
            insights.append(f"Top win pattern: {top.description} ({top.strength}% strength)")
        if losses:
            top = max(losses, key=lambda p: p.strength)
            insights.append(f"Critical loss pattern: {top.description} - signals matching it are penalized")

        if aggregate.preferred_direction:
            insights.append(f"{aggregate.preferred_direction} signals receive a learning boost")
        if aggregate.problematic_direction:
            insights.append(f"{aggregate.problematic_direction} signals receive a learning penalty")

        return insights
