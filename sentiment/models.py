"""
Tiered Sentiment - ORM Models.

============================================================
TABLES
============================================================
- news_events: one classified article (written by ingestion)
- news_event_symbols: symbol associations, one row per symbol

Symbols live in a join table so the window scan filters them
with plain SQL on any backend.

============================================================
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storage.models.base import Base, TimestampMixin


class NewsEventRecord(Base, TimestampMixin):
    """Classified news article."""

    __tablename__ = "news_events"

    news_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="Upstream article identifier"
    )

    published_at: Mapped[datetime] = mapped_column(
        nullable=False,
        comment="Publication time (UTC)"
    )

    sentiment: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Classifier sentiment in [-1, 1]"
    )

    impact: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="low | medium | high"
    )

    confidence: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.5,
        comment="Classifier confidence in [0, 1]"
    )

    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    symbols: Mapped[List["NewsEventSymbolRecord"]] = relationship(
        back_populates="news_event",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_news_events_published", "published_at"),
        Index("idx_news_events_impact_published", "impact", "published_at"),
    )


class NewsEventSymbolRecord(Base):
    """Symbol association of a news article."""

    __tablename__ = "news_event_symbols"

    news_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("news_events.news_id", ondelete="CASCADE"),
        primary_key=True,
    )

    symbol: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Upper-cased symbol"
    )

    news_event: Mapped[NewsEventRecord] = relationship(back_populates="symbols")

    __table_args__ = (
        Index("idx_news_event_symbols_symbol", "symbol"),
    )
