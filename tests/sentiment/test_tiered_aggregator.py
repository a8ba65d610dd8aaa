"""
Tests for the Tiered Sentiment Aggregator.

============================================================
PURPOSE
============================================================
Covers:
1. Exclusive, half-open tier windows
2. Weight renormalization over populated tiers
3. Confidence from recency and volume
4. Symbol filtering and deduplication
5. The context provider's bounded window scans

============================================================
"""

from datetime import timedelta
from typing import List

import pytest

from core.clock import MockClock
from sentiment import (
    ImpactLevel,
    NewsItem,
    SentimentConfig,
    SentimentContextProvider,
    SentimentLabel,
    SentimentTier,
    TieredSentimentAggregator,
    TierSpec,
)


def make_item(now, news_id, hours_ago, sentiment, impact=ImpactLevel.MEDIUM, symbols=("BTCUSDT",), title=""):
    return NewsItem(
        news_id=news_id,
        published_at=now - timedelta(hours=hours_ago),
        sentiment=sentiment,
        impact=impact,
        symbols=tuple(symbols),
        title=title,
        source="cryptopanic" if title else "",
    )


@pytest.fixture
def aggregator():
    return TieredSentimentAggregator()


# ============================================================
# CLASSIFICATION TESTS
# ============================================================

class TestTierClassification:
    """Each item lands in at most one tier."""

    def test_boundaries_are_half_open(self, aggregator, now):
        """An item exactly 6h old is recent, not ultra-recent."""
        assert aggregator.classify(make_item(now, "a", 0, 0.1), now) == SentimentTier.ULTRA_RECENT
        assert aggregator.classify(make_item(now, "b", 5.99, 0.1), now) == SentimentTier.ULTRA_RECENT
        assert aggregator.classify(make_item(now, "c", 6, 0.1), now) == SentimentTier.RECENT
        assert aggregator.classify(make_item(now, "d", 23.99, 0.1), now) == SentimentTier.RECENT

    def test_background_requires_high_impact(self, aggregator, now):
        medium = make_item(now, "m", 30, 0.5)
        high = make_item(now, "h", 30, 0.5, impact=ImpactLevel.HIGH)

        assert aggregator.classify(medium, now) is None
        assert aggregator.classify(high, now) == SentimentTier.BACKGROUND

    def test_older_than_window_is_ignored(self, aggregator, now):
        item = make_item(now, "old", 72, 0.9, impact=ImpactLevel.HIGH)
        assert aggregator.classify(item, now) is None

    def test_future_item_is_ignored(self, aggregator, now):
        item = make_item(now, "future", -1, 0.9)
        assert aggregator.classify(item, now) is None

    def test_no_item_counted_twice(self, aggregator, now):
        items = [make_item(now, f"n{h}", h, 0.3, impact=ImpactLevel.HIGH) for h in range(0, 80, 2)]

        summary = aggregator.aggregate(items, now)

        in_window = [i for i in items if aggregator.classify(i, now) is not None]
        assert summary.total_count == len(in_window)
        assert sum(t.count for t in summary.tiers.values()) == len(in_window)

    def test_overlapping_tiers_rejected(self):
        with pytest.raises(ValueError, match="overlaps"):
            SentimentConfig(tiers=(
                TierSpec(SentimentTier.ULTRA_RECENT, 0, 8, 0.8, 1.0),
                TierSpec(SentimentTier.RECENT, 6, 24, 0.2, 0.5),
            ))


# ============================================================
# AGGREGATION TESTS
# ============================================================

class TestAggregation:
    """Weighted combine of the tiers."""

    def test_empty_corpus_is_neutral(self, aggregator, now):
        summary = aggregator.aggregate([], now, symbol="BTCUSDT")

        assert summary.overall_sentiment == 0.0
        assert summary.confidence == 0.0
        assert summary.total_count == 0
        assert summary.label == SentimentLabel.NEUTRAL

    def test_single_tier_gets_full_weight(self, aggregator, now):
        """Empty tiers do not drag the aggregate toward zero."""
        summary = aggregator.aggregate([make_item(now, "r", 10, 0.5)], now)

        assert summary.overall_sentiment == pytest.approx(0.5)
        assert summary.tiers[SentimentTier.RECENT].normalized_weight == pytest.approx(1.0)
        assert summary.tiers[SentimentTier.ULTRA_RECENT].normalized_weight == 0.0
        # 0.7 * recency 0.5 + 0.3 * volume 1/20
        assert summary.confidence == pytest.approx(0.365)

    def test_weights_renormalized_over_populated_tiers(self, aggregator, now):
        items = [
            make_item(now, "u", 1, 0.6),
            make_item(now, "r", 12, -0.4),
        ]

        summary = aggregator.aggregate(items, now)

        expected = (0.6 * 0.80 + -0.4 * 0.15) / 0.95
        assert summary.overall_sentiment == pytest.approx(expected)
        assert summary.label == SentimentLabel.BULLISH

    def test_volume_saturates(self, aggregator, now):
        items = [make_item(now, f"u{i}", 1, 0.0) for i in range(40)]

        summary = aggregator.aggregate(items, now)

        assert summary.confidence == pytest.approx(1.0)

    def test_polarity_buckets(self, aggregator, now):
        items = [
            make_item(now, "bull", 1, 0.5),
            make_item(now, "bear", 1, -0.5),
            make_item(now, "flat", 1, 0.2),
        ]

        tier = aggregator.aggregate(items, now).tiers[SentimentTier.ULTRA_RECENT]

        assert (tier.bullish, tier.bearish, tier.neutral) == (1, 1, 1)

    def test_symbol_filter_keeps_high_impact_market_news(self, aggregator, now):
        items = [
            make_item(now, "btc", 1, 0.4, symbols=("BTCUSDT",)),
            make_item(now, "eth", 1, -0.9, symbols=("ETHUSDT",)),
            make_item(now, "macro", 1, -0.2, impact=ImpactLevel.HIGH, symbols=()),
        ]

        summary = aggregator.aggregate(items, now, symbol="btcusdt")

        assert summary.total_count == 2
        assert summary.high_impact_count == 1
        assert summary.overall_sentiment == pytest.approx(0.1)

    def test_headlines_are_newest_first(self, aggregator, now):
        items = [
            make_item(now, f"h{i}", hours, 0.1, title=f"headline {hours}h")
            for i, hours in enumerate([5, 1, 3, 2])
        ]

        summary = aggregator.aggregate(items, now)

        assert summary.headlines == ["headline 1h", "headline 2h", "headline 3h"]

    def test_summarize_deduplicates_across_buckets(self, aggregator, now):
        item = make_item(now, "dup", 1, 0.8)

        summary = aggregator.summarize({
            SentimentTier.ULTRA_RECENT: [item],
            SentimentTier.RECENT: [item],
        })

        assert summary.total_count == 1
        assert summary.tiers[SentimentTier.RECENT].count == 0

    @pytest.mark.parametrize("value,label", [
        (-0.8, SentimentLabel.VERY_BEARISH),
        (-0.3, SentimentLabel.BEARISH),
        (0.0, SentimentLabel.NEUTRAL),
        (0.3, SentimentLabel.BULLISH),
        (0.8, SentimentLabel.VERY_BULLISH),
    ])
    def test_labels(self, value, label):
        assert TieredSentimentAggregator.label_for(value) == label


# ============================================================
# PROVIDER TESTS
# ============================================================

class RecordingSource:
    """News source that remembers the windows it was asked for."""

    def __init__(self, items: List[NewsItem]):
        self.items = items
        self.calls = []

    async def fetch_window(self, symbol, since, until, high_impact_only=False):
        self.calls.append((since, until, high_impact_only))
        return [
            i for i in self.items
            if since < i.published_at <= until
            and (not high_impact_only or i.is_high_impact)
        ]


class TestSentimentContextProvider:
    """Three bounded scans, one in-memory combine."""

    @pytest.mark.asyncio
    async def test_scans_one_window_per_tier(self, now):
        source = RecordingSource([])
        provider = SentimentContextProvider(source, clock=MockClock(now))

        await provider.get_summary("BTCUSDT")

        assert sorted(source.calls) == sorted([
            (now - timedelta(hours=6), now, False),
            (now - timedelta(hours=24), now - timedelta(hours=6), False),
            (now - timedelta(hours=72), now - timedelta(hours=24), True),
        ])

    @pytest.mark.asyncio
    async def test_matches_in_memory_aggregate(self, now):
        items = [
            make_item(now, "u", 2, 0.6),
            make_item(now, "r", 12, -0.2),
            make_item(now, "b", 40, 0.9, impact=ImpactLevel.HIGH),
            make_item(now, "skip", 40, 0.9),
        ]
        provider = SentimentContextProvider(RecordingSource(items), clock=MockClock(now))

        summary = await provider.get_summary("BTCUSDT")
        expected = TieredSentimentAggregator().aggregate(items, now, symbol="BTCUSDT")

        assert summary.total_count == expected.total_count == 3
        assert summary.overall_sentiment == pytest.approx(expected.overall_sentiment)
        assert summary.confidence == pytest.approx(expected.confidence)
