"""
Tiered Sentiment - Types.

============================================================
PURPOSE
============================================================
Domain types for the tiered news sentiment aggregate.

- NewsItem: one pre-scored article (immutable once ingested)
- TierBreakdown: per-tier statistics
- SentimentSummary: derived aggregate, never persisted

SAFETY: Sentiment is a bounded confidence modifier. It never
triggers a trade by itself.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ImpactLevel(str, Enum):
    """Editorial impact of a news item."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SentimentLabel(str, Enum):
    """Broad sentiment categories."""
    VERY_BEARISH = "very_bearish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"
    BULLISH = "bullish"
    VERY_BULLISH = "very_bullish"


class SentimentTier(str, Enum):
    """Non-overlapping recency windows."""
    ULTRA_RECENT = "ultra_recent"
    RECENT = "recent"
    BACKGROUND = "background"


@dataclass(frozen=True)
class NewsItem:
    """
    A single news article with its classifier output.

    sentiment: -1.0 (very bearish) to +1.0 (very bullish)
    """
    news_id: str
    published_at: datetime
    sentiment: float
    impact: ImpactLevel = ImpactLevel.MEDIUM
    confidence: float = 0.5
    symbols: Tuple[str, ...] = ()
    title: str = ""
    source: str = ""

    def __post_init__(self) -> None:
        if not -1.0 <= self.sentiment <= 1.0:
            object.__setattr__(self, "sentiment", max(-1.0, min(1.0, self.sentiment)))
        if not 0.0 <= self.confidence <= 1.0:
            object.__setattr__(self, "confidence", max(0.0, min(1.0, self.confidence)))
        if not isinstance(self.symbols, tuple):
            object.__setattr__(self, "symbols", tuple(self.symbols))

    @property
    def is_high_impact(self) -> bool:
        return self.impact == ImpactLevel.HIGH

    def mentions(self, symbol: str) -> bool:
        """Case-insensitive symbol association check."""
        target = symbol.upper()
        return any(s.upper() == target for s in self.symbols)


@dataclass(frozen=True)
class TierBreakdown:
    """Statistics of one populated or empty tier."""
    tier: SentimentTier
    count: int
    avg_sentiment: float
    bullish: int
    bearish: int
    neutral: int
    base_weight: float
    normalized_weight: float
    recency_factor: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "count": self.count,
            "avg_sentiment": self.avg_sentiment,
            "bullish": self.bullish,
            "bearish": self.bearish,
            "neutral": self.neutral,
            "base_weight": self.base_weight,
            "normalized_weight": self.normalized_weight,
            "recency_factor": self.recency_factor,
        }


@dataclass(frozen=True)
class SentimentSummary:
    """
    Weighted sentiment over the three tiers.

    Recomputed on demand; a stored copy would go stale as the
    windows slide.
    """
    overall_sentiment: float
    label: SentimentLabel
    confidence: float
    total_count: int
    tiers: Dict[SentimentTier, TierBreakdown] = field(default_factory=dict)
    high_impact_count: int = 0
    headlines: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    symbol: Optional[str] = None

    @classmethod
    def neutral(cls, symbol: Optional[str] = None) -> "SentimentSummary":
        """Summary for an empty or unavailable corpus."""
        return cls(
            overall_sentiment=0.0,
            label=SentimentLabel.NEUTRAL,
            confidence=0.0,
            total_count=0,
            symbol=symbol,
        )

    @property
    def impact_score(self) -> float:
        """Share of high-impact items in the aggregate."""
        if self.total_count == 0:
            return 0.0
        return self.high_impact_count / self.total_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "overall_sentiment": self.overall_sentiment,
            "label": self.label.value,
            "confidence": self.confidence,
            "total_count": self.total_count,
            "high_impact_count": self.high_impact_count,
            "impact_score": self.impact_score,
            "headlines": list(self.headlines),
            "sources": list(self.sources),
            "tiers": {tier.value: b.to_dict() for tier, b in self.tiers.items()},
        }
