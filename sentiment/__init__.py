"""
Tiered Sentiment Aggregator.

============================================================
PURPOSE
============================================================
Collapses timestamped, pre-scored news into one weighted
sentiment value plus confidence for a symbol.

SAFETY: Sentiment is NEVER a standalone trade trigger. It only
nudges confidence, bounded by the account's news weight.

============================================================
USAGE
============================================================
    from sentiment import NewsRepository, SentimentContextProvider

    provider = SentimentContextProvider(NewsRepository(session_factory))
    summary = await provider.get_summary("BTCUSDT")
    news_adjustment = summary.overall_sentiment * news_weight

============================================================
"""

from sentiment.aggregator import TieredSentimentAggregator
from sentiment.config import SentimentConfig, TierSpec, get_default_config
from sentiment.provider import NewsSource, SentimentContextProvider
from sentiment.repository import NewsRepository
from sentiment.types import (
    ImpactLevel,
    NewsItem,
    SentimentLabel,
    SentimentSummary,
    SentimentTier,
    TierBreakdown,
)

__all__ = [
    "TieredSentimentAggregator",
    "SentimentConfig",
    "TierSpec",
    "get_default_config",
    "NewsSource",
    "SentimentContextProvider",
    "NewsRepository",
    "ImpactLevel",
    "NewsItem",
    "SentimentLabel",
    "SentimentSummary",
    "SentimentTier",
    "TierBreakdown",
]

__version__ = "1.0.0"
