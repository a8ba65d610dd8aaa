"""
Tiered Sentiment - Aggregator.

============================================================
PURPOSE
============================================================
Collapses a corpus of timestamped, pre-scored news items into
one weighted sentiment value and a confidence for a symbol.

============================================================
ALGORITHM
============================================================
1. Place each item in at most one tier by its age
   (half-open windows, background tier high-impact only).
2. Per tier: count, mean sentiment, polarity buckets.
3. Renormalize base weights over populated tiers.
4. overall = sum(tier mean * normalized weight)
5. recency = item-count-weighted mean of recency factors
   volume  = min(total / saturation, 1)
   confidence = 0.7 * recency + 0.3 * volume
6. Empty corpus -> sentiment 0, confidence 0, count 0.

Pure compute; no I/O, never raises on empty input.

============================================================
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from core.clock import ensure_utc
from sentiment.config import SentimentConfig, TierSpec, get_default_config
from sentiment.types import (
    NewsItem,
    SentimentLabel,
    SentimentSummary,
    SentimentTier,
    TierBreakdown,
)


logger = logging.getLogger(__name__)


class TieredSentimentAggregator:
    """
    Weighted, time-tiered news sentiment.

    Usage:
        aggregator = TieredSentimentAggregator()
        summary = aggregator.aggregate(items, now=clock.now(), symbol="BTCUSDT")
    """

    def __init__(self, config: Optional[SentimentConfig] = None):
        self._config = config or get_default_config()
        self._specs: Dict[SentimentTier, TierSpec] = {t.tier: t for t in self._config.tiers}

    @property
    def config(self) -> SentimentConfig:
        return self._config

    # =========================================================
    # CLASSIFICATION
    # =========================================================

    def classify(self, item: NewsItem, now: datetime) -> Optional[SentimentTier]:
        """Return the single tier the item belongs to, or None."""
        age = ensure_utc(now) - ensure_utc(item.published_at)

        for window in self._config.tiers:
            if not window.contains(age):
                continue
            if window.high_impact_only and not item.is_high_impact:
                return None
            return window.tier

        return None

    @staticmethod
    def label_for(sentiment: float) -> SentimentLabel:
        if sentiment <= -0.6:
            return SentimentLabel.VERY_BEARISH
        elif sentiment <= -0.2:
            return SentimentLabel.BEARISH
        elif sentiment <= 0.2:
            return SentimentLabel.NEUTRAL
        elif sentiment <= 0.6:
            return SentimentLabel.BULLISH
        return SentimentLabel.VERY_BULLISH

    # =========================================================
    # AGGREGATION
    # =========================================================

    def aggregate(
        self,
        items: Iterable[NewsItem],
        now: datetime,
        symbol: Optional[str] = None,
    ) -> SentimentSummary:
        """
        Aggregate an in-memory corpus.

        With a symbol, only items mentioning it (or high-impact
        market-wide items) are considered.
        """
        buckets: Dict[SentimentTier, List[NewsItem]] = {window.tier: [] for window in self._config.tiers}

        for item in items:
            if symbol and not (item.mentions(symbol) or item.is_high_impact):
                continue
            tier = self.classify(item, now)
            if tier is not None:
                buckets[tier].append(item)

        return self.summarize(buckets, symbol=symbol)

    def summarize(
        self,
        buckets: Mapping[SentimentTier, Sequence[NewsItem]],
        symbol: Optional[str] = None,
    ) -> SentimentSummary:
        """
        Combine already-bucketed items.

        Items are deduplicated by news_id across buckets, so a
        source that returns the same item for two windows is
        counted once, in the first tier listed in the config.
        """
        seen: set = set()
        deduped: Dict[SentimentTier, List[NewsItem]] = {}
        for window in self._config.tiers:
            kept = []
            for item in buckets.get(window.tier, ()):
                if item.news_id in seen:
                    continue
                seen.add(item.news_id)
                kept.append(item)
            deduped[window.tier] = kept

        total = sum(len(v) for v in deduped.values())
        if total == 0:
            return SentimentSummary.neutral(symbol)

        populated_weight = sum(
            window.base_weight for window in self._config.tiers if deduped[window.tier]
        )

        breakdown: Dict[SentimentTier, TierBreakdown] = {}
        overall = 0.0
        recency_total = 0.0
        threshold = self._config.polarity_threshold

        for window in self._config.tiers:
            tier_items = deduped[window.tier]
            count = len(tier_items)
            avg = sum(i.sentiment for i in tier_items) / count if count else 0.0
            weight = window.base_weight / populated_weight if count and populated_weight > 0 else 0.0

            breakdown[window.tier] = TierBreakdown(
                tier=window.tier,
                count=count,
                avg_sentiment=avg,
                bullish=sum(1 for i in tier_items if i.sentiment > threshold),
                bearish=sum(1 for i in tier_items if i.sentiment < -threshold),
                neutral=sum(1 for i in tier_items if -threshold <= i.sentiment <= threshold),
                base_weight=window.base_weight,
                normalized_weight=weight,
                recency_factor=window.recency_factor,
            )

            overall += avg * weight
            recency_total += count * window.recency_factor

        overall = max(-1.0, min(1.0, overall))
        recency_score = recency_total / total
        volume_score = min(total / self._config.volume_saturation, 1.0)
        confidence = (
            self._config.recency_share * recency_score
            + self._config.volume_share * volume_score
        )

        newest = sorted(
            (i for items in deduped.values() for i in items),
            key=lambda i: ensure_utc(i.published_at),
            reverse=True,
        )[: self._config.max_headlines]

        summary = SentimentSummary(
            overall_sentiment=overall,
            label=self.label_for(overall),
            confidence=min(1.0, confidence),
            total_count=total,
            tiers=breakdown,
            high_impact_count=sum(
                1 for items in deduped.values() for i in items if i.is_high_impact
            ),
            headlines=[i.title for i in newest if i.title],
            sources=[i.source for i in newest if i.source],
            symbol=symbol,
        )

        logger.debug(
            f"Sentiment {symbol or '*'}: {summary.overall_sentiment:+.3f} "
            f"({summary.label.value}) from {total} items, confidence {summary.confidence:.2f}"
        )
        return summary
