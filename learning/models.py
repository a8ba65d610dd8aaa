"""
Pattern Learning - ORM Models.

============================================================
TABLES
============================================================
- learning_patterns: synthesized patterns, one row per
  (account, description); deactivated, never deleted
- pattern_matches: one row per (signal, pattern) influence,
  the idempotency key for match counters

Check constraints hold the loss-sign invariant at the database
level as well.

============================================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


class LearningPatternRecord(Base, TimestampMixin):
    """Persisted win/loss pattern."""

    __tablename__ = "learning_patterns"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Owning account / bot identifier"
    )

    pattern_type: Mapped[str] = mapped_column(String(8), nullable=False, comment="win | loss")

    pattern_class: Mapped[str] = mapped_column(String(32), nullable=False)

    description: Mapped[str] = mapped_column(String(512), nullable=False)

    symbol: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="Copy of conditions.symbol for filtering"
    )

    conditions: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Outcome statistics
    occurrences: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    failure_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    total_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_loss: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        comment="Accumulated loss, always <= 0"
    )
    avg_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_loss: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Scoring
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    strength: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Match counters, incremented atomically
    times_matched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_avoided: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    provenance: Mapped[str] = mapped_column(String(32), nullable=False, default="backtest_sync")

    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    first_seen: Mapped[datetime] = mapped_column(nullable=False)
    last_seen: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "description", name="uq_learning_patterns_account_description"),
        Index("idx_learning_patterns_account_active", "account_id", "is_active"),
        Index("idx_learning_patterns_account_symbol", "account_id", "symbol"),
        CheckConstraint("total_loss <= 0", name="total_loss_non_positive"),
        CheckConstraint("avg_loss <= 0", name="avg_loss_non_positive"),
        CheckConstraint("total_profit >= 0", name="total_profit_non_negative"),
        CheckConstraint("avg_profit >= 0", name="avg_profit_non_negative"),
    )


class PatternMatchRecord(Base):
    """One pattern influencing one decision."""

    __tablename__ = "pattern_matches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    pattern_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("learning_patterns.id"),
        nullable=False,
    )

    signal_id: Mapped[str] = mapped_column(String(128), nullable=False)

    avoided: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        comment="True when a loss pattern penalized the signal"
    )

    contribution: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    matched_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("signal_id", "pattern_id", name="uq_pattern_matches_signal_pattern"),
        Index("idx_pattern_matches_pattern", "pattern_id"),
    )
