"""
Tiered Sentiment - Repository.

============================================================
PURPOSE
============================================================
Read access to the classified news corpus, one bounded
time-range scan per tier.

Window semantics match the in-memory classifier:
    since < published_at <= until
which, with since = now - end and until = now - start, is the
half-open age window [start, end).

save_items exists for ingestion adapters and fixtures; the
classifier itself is an external collaborator.

============================================================
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import ensure_utc
from sentiment.models import NewsEventRecord, NewsEventSymbolRecord
from sentiment.types import ImpactLevel, NewsItem
from storage.repositories.base import BaseRepository


class NewsRepository(BaseRepository):
    """Repository for news_events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(session_factory, "NewsRepository")

    async def save_items(self, items: Iterable[NewsItem]) -> int:
        """
        Insert news items, skipping ids that already exist.

        Returns:
            Number of newly inserted items
        """
        inserted = 0
        async with self._session_scope("save_items") as session:
            for item in items:
                if await session.get(NewsEventRecord, item.news_id) is not None:
                    continue
                record = NewsEventRecord(
                    news_id=item.news_id,
                    published_at=ensure_utc(item.published_at),
                    sentiment=item.sentiment,
                    impact=item.impact.value,
                    confidence=item.confidence,
                    title=item.title or None,
                    source=item.source or None,
                )
                record.symbols = [
                    NewsEventSymbolRecord(symbol=s.upper())
                    for s in dict.fromkeys(item.symbols)
                ]
                session.add(record)
                inserted += 1

        self._logger.info(f"Stored {inserted} news items")
        return inserted

    async def fetch_window(
        self,
        symbol: Optional[str],
        since: datetime,
        until: datetime,
        high_impact_only: bool = False,
    ) -> List[NewsItem]:
        """
        Items published in (since, until].

        With a symbol, items mentioning it plus high-impact
        market-wide items are returned.
        """
        stmt = select(NewsEventRecord).where(
            NewsEventRecord.published_at > ensure_utc(since),
            NewsEventRecord.published_at <= ensure_utc(until),
        )

        if high_impact_only:
            stmt = stmt.where(NewsEventRecord.impact == ImpactLevel.HIGH.value)

        if symbol:
            mentioned = select(NewsEventSymbolRecord.news_id).where(
                NewsEventSymbolRecord.symbol == symbol.upper()
            )
            stmt = stmt.where(
                or_(
                    NewsEventRecord.impact == ImpactLevel.HIGH.value,
                    NewsEventRecord.news_id.in_(mentioned),
                )
            )

        stmt = stmt.order_by(NewsEventRecord.published_at.desc())

        async with self._session_scope(
            "fetch_window", {"symbol": symbol, "since": str(since), "until": str(until)}
        ) as session:
            result = await session.execute(stmt)
            return [self._to_domain(r) for r in result.scalars().all()]

    async def count(self) -> int:
        async with self._session_scope("count") as session:
            result = await session.execute(select(func.count()).select_from(NewsEventRecord))
            return result.scalar() or 0

    @staticmethod
    def _to_domain(record: NewsEventRecord) -> NewsItem:
        return NewsItem(
            news_id=record.news_id,
            published_at=ensure_utc(record.published_at),
            sentiment=record.sentiment,
            impact=ImpactLevel(record.impact),
            confidence=record.confidence,
            symbols=tuple(s.symbol for s in record.symbols),
            title=record.title or "",
            source=record.source or "",
        )
