"""
Tests for NewsRepository against sqlite.
"""

from datetime import timedelta

import pytest

from core.clock import MockClock
from sentiment import ImpactLevel, NewsItem, NewsRepository, SentimentContextProvider


def item(now, news_id, hours_ago, sentiment=0.3, impact=ImpactLevel.MEDIUM, symbols=("BTCUSDT",)):
    return NewsItem(
        news_id=news_id,
        published_at=now - timedelta(hours=hours_ago),
        sentiment=sentiment,
        impact=impact,
        symbols=symbols,
        title=f"news {news_id}",
        source="coindesk",
    )


class TestNewsRepository:
    """Window scans over news_events."""

    @pytest.mark.asyncio
    async def test_save_skips_existing_ids(self, session_factory, now):
        repo = NewsRepository(session_factory)

        assert await repo.save_items([item(now, "a", 1), item(now, "b", 2)]) == 2
        assert await repo.save_items([item(now, "a", 1), item(now, "c", 3)]) == 1
        assert await repo.count() == 3

    @pytest.mark.asyncio
    async def test_window_is_exclusive_at_since(self, session_factory, now):
        repo = NewsRepository(session_factory)
        await repo.save_items([
            item(now, "edge_until", 0),
            item(now, "inside", 3),
            item(now, "edge_since", 6),
        ])

        found = await repo.fetch_window("BTCUSDT", since=now - timedelta(hours=6), until=now)

        assert {i.news_id for i in found} == {"edge_until", "inside"}

    @pytest.mark.asyncio
    async def test_symbol_filter_includes_high_impact(self, session_factory, now):
        repo = NewsRepository(session_factory)
        await repo.save_items([
            item(now, "btc", 1, symbols=("btcusdt",)),
            item(now, "eth", 1, symbols=("ETHUSDT",)),
            item(now, "fed", 1, impact=ImpactLevel.HIGH, symbols=()),
        ])

        found = await repo.fetch_window("BTCUSDT", since=now - timedelta(hours=6), until=now)

        assert {i.news_id for i in found} == {"btc", "fed"}
        btc = next(i for i in found if i.news_id == "btc")
        assert btc.symbols == ("BTCUSDT",)
        assert btc.published_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_high_impact_only(self, session_factory, now):
        repo = NewsRepository(session_factory)
        await repo.save_items([
            item(now, "minor", 30),
            item(now, "major", 30, impact=ImpactLevel.HIGH),
        ])

        found = await repo.fetch_window(
            None, since=now - timedelta(hours=72), until=now - timedelta(hours=24), high_impact_only=True
        )

        assert [i.news_id for i in found] == ["major"]

    @pytest.mark.asyncio
    async def test_provider_over_repository(self, session_factory, now):
        repo = NewsRepository(session_factory)
        await repo.save_items([
            item(now, "u", 1, sentiment=0.5),
            item(now, "r", 10, sentiment=0.1),
            item(now, "b", 48, sentiment=-0.9),
        ])
        provider = SentimentContextProvider(repo, clock=MockClock(now))

        summary = await provider.get_summary("BTCUSDT")

        # The 48h item is not high impact, so the background tier stays empty
        assert summary.total_count == 2
        assert summary.overall_sentiment == pytest.approx((0.5 * 0.80 + 0.1 * 0.15) / 0.95)

    @pytest.mark.asyncio
    async def test_items_age_out_of_tiers(self, session_factory, now):
        repo = NewsRepository(session_factory)
        await repo.save_items([item(now, "u", 1, sentiment=0.5)])
        clock = MockClock(now)
        provider = SentimentContextProvider(repo, clock=clock)

        clock.advance(hours=8)
        aged = await provider.get_summary("BTCUSDT")
        clock.advance(hours=20)
        expired = await provider.get_summary("BTCUSDT")

        # 9h old: recent tier only, so it carries the full weight
        assert aged.total_count == 1
        assert aged.overall_sentiment == pytest.approx(0.5)
        # 29h old and not high impact: ignored
        assert expired.total_count == 0
        assert expired.overall_sentiment == 0.0
