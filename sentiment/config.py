"""
Tiered Sentiment - Configuration.

============================================================
TIER TABLE
============================================================
| Tier         | Window     | Weight | Recency | Filter      |
|--------------|------------|--------|---------|-------------|
| ultra_recent | [0h, 6h)   | 0.80   | 1.0     | -           |
| recent       | [6h, 24h)  | 0.15   | 0.5     | -           |
| background   | [24h, 72h) | 0.05   | 0.2     | high impact |

Windows are half-open and adjacent, so an item's age places it
in at most one tier.

Empty tiers give their weight to the populated ones
(renormalization), so a quiet ultra-recent window does not drag
the aggregate toward zero.

============================================================
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Tuple

from sentiment.types import SentimentTier


@dataclass(frozen=True)
class TierSpec:
    """One time window of the aggregate."""
    tier: SentimentTier
    start_hours: float
    end_hours: float
    base_weight: float
    recency_factor: float
    high_impact_only: bool = False

    @property
    def start(self) -> timedelta:
        return timedelta(hours=self.start_hours)

    @property
    def end(self) -> timedelta:
        return timedelta(hours=self.end_hours)

    def contains(self, age: timedelta) -> bool:
        """Half-open membership: start <= age < end."""
        return self.start <= age < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "start_hours": self.start_hours,
            "end_hours": self.end_hours,
            "base_weight": self.base_weight,
            "recency_factor": self.recency_factor,
            "high_impact_only": self.high_impact_only,
        }


def _default_tiers() -> Tuple[TierSpec, ...]:
    return (
        TierSpec(SentimentTier.ULTRA_RECENT, 0.0, 6.0, 0.80, 1.0),
        TierSpec(SentimentTier.RECENT, 6.0, 24.0, 0.15, 0.5),
        TierSpec(SentimentTier.BACKGROUND, 24.0, 72.0, 0.05, 0.2, high_impact_only=True),
    )


@dataclass(frozen=True)
class SentimentConfig:
    """Aggregation parameters."""

    tiers: Tuple[TierSpec, ...] = field(default_factory=_default_tiers)

    # Per-item polarity bucket threshold (bullish > +t, bearish < -t)
    polarity_threshold: float = 0.2

    # Item count at which the volume score saturates
    volume_saturation: int = 20

    recency_share: float = 0.7
    volume_share: float = 0.3

    # Headlines kept in the summary for audit and reasoner prompts
    max_headlines: int = 3

    def __post_init__(self) -> None:
        ordered = sorted(self.tiers, key=lambda t: t.start_hours)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start_hours < previous.end_hours:
                raise ValueError(
                    f"Tier {current.tier.value} overlaps {previous.tier.value}"
                )

    @property
    def max_age(self) -> timedelta:
        return max(t.end for t in self.tiers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tiers": [t.to_dict() for t in self.tiers],
            "polarity_threshold": self.polarity_threshold,
            "volume_saturation": self.volume_saturation,
            "recency_share": self.recency_share,
            "volume_share": self.volume_share,
            "max_headlines": self.max_headlines,
        }


def get_default_config() -> SentimentConfig:
    return SentimentConfig()
