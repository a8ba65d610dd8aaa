"""
Tiered Sentiment - Context Provider.

Runs the three bounded window scans against a news source and
hands the buckets to the aggregator. Failures propagate; the
fusion engine decides how to degrade.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Protocol

from core.clock import ClockProtocol, SystemClock
from sentiment.aggregator import TieredSentimentAggregator
from sentiment.types import NewsItem, SentimentSummary


logger = logging.getLogger(__name__)


class NewsSource(Protocol):
    """Anything that can return news items for a publication window."""

    async def fetch_window(
        self,
        symbol: Optional[str],
        since: datetime,
        until: datetime,
        high_impact_only: bool = False,
    ) -> List[NewsItem]:
        ...


class SentimentContextProvider:
    """Sentiment context for the fusion engine."""

    def __init__(
        self,
        news_source: NewsSource,
        aggregator: Optional[TieredSentimentAggregator] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._source = news_source
        self._aggregator = aggregator or TieredSentimentAggregator()
        self._clock = clock or SystemClock()

    async def get_summary(self, symbol: Optional[str] = None) -> SentimentSummary:
        now = self._clock.now()
        windows = self._aggregator.config.tiers

        scans = [
            self._source.fetch_window(
                symbol,
                since=now - window.end,
                until=now - window.start,
                high_impact_only=window.high_impact_only,
            )
            for window in windows
        ]
        results = await asyncio.gather(*scans)

        buckets = {window.tier: items for window, items in zip(windows, results)}
        return self._aggregator.summarize(buckets, symbol=symbol)
