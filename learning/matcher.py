"""
Pattern Learning - Matcher.

Scores a signal's market conditions against active patterns and
returns a learning adjustment bounded by the caller's cap.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional

from learning.config import LearningConfig, get_default_config
from learning.types import Pattern, PatternMatch, PatternMatchResult, PatternType


logger = logging.getLogger(__name__)


def clamp(value: float, bound: float) -> float:
    bound = abs(bound)
    return max(-bound, min(bound, value))


class PatternMatcher:
    """
    Usage:
        matcher = PatternMatcher()
        result = matcher.match(signal.market_conditions(), patterns, cap=0.03)
    """

    def __init__(self, config: Optional[LearningConfig] = None):
        self._config = config or get_default_config()

    @property
    def config(self) -> LearningConfig:
        return self._config

    def select(self, market: Mapping[str, Any], patterns: Iterable[Pattern]) -> List[Pattern]:
        """Active, confident patterns whose conditions hold."""
        return [
            p for p in patterns
            if p.is_active
            and p.confidence >= self._config.min_pattern_confidence
            and p.conditions.matches(market)
        ]

    def contribution(self, pattern: Pattern) -> float:
        weight = pattern.confidence * pattern.strength / 100
        if pattern.pattern_type == PatternType.WIN:
            return weight * self._config.win_coefficient
        return -weight * self._config.loss_coefficient

    def match(
        self,
        market: Mapping[str, Any],
        patterns: Iterable[Pattern],
        cap: float,
    ) -> PatternMatchResult:
        """
        Signed learning adjustment for one signal.

        The raw sum is bounded by the advisory cap and then by
        cap, so the result never exceeds the engine's learning
        weight no matter how many patterns match.
        """
        selected = self.select(market, patterns)
        if not selected:
            return PatternMatchResult.empty()

        matches = tuple(
            PatternMatch(
                pattern_id=p.pattern_id,
                pattern_type=p.pattern_type,
                description=p.description,
                contribution=self.contribution(p),
            )
            for p in selected
        )
        raw = sum(m.contribution for m in matches)
        adjustment = clamp(clamp(raw, self._config.advisory_cap), cap)

        if adjustment != raw:
            logger.debug(f"Learning adjustment {raw:+.4f} clamped to {adjustment:+.4f}")

        return PatternMatchResult(adjustment=adjustment, raw_adjustment=raw, matches=matches)
