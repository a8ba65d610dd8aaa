"""
Confidence Fusion - ORM Models.

============================================================
TABLES
============================================================
- decision_records: one row per evaluated signal, unique on
  signal_id; append-only
- decision_outcomes: realized trade results, unique on
  signal_id; enrich a decision without mutating it
- account_signal_counters: received / executed / rejected
  counts per account, a derived projection of the records

============================================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


class DecisionRecordModel(Base, TimestampMixin):
    """Immutable audit entry of one decision."""

    __tablename__ = "decision_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    signal_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="Idempotency key: one decision per signal"
    )

    account_id: Mapped[str] = mapped_column(String(64), nullable=False)

    symbol: Mapped[str] = mapped_column(String(32), nullable=False)

    direction: Mapped[str] = mapped_column(String(8), nullable=False, comment="LONG | SHORT")

    # Confidence breakdown
    technical_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    news_adjustment: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    backtest_adjustment: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    learning_adjustment: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    final_confidence: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Clamped to [0, 1]"
    )
    threshold: Mapped[float] = mapped_column(Float, nullable=False)

    decision: Mapped[str] = mapped_column(String(8), nullable=False, comment="EXECUTE | SKIP")

    reason: Mapped[str] = mapped_column(Text, nullable=False)

    eligibility_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reasoning: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Ordered reasoning steps"
    )

    # Context snapshots
    signal_snapshot: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    news_context: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    backtest_context: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    learning_context: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    balance_snapshot: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Reasoner accounting
    reasoner_status: Mapped[str] = mapped_column(String(16), nullable=False)
    reasoner_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    reasoner_provider: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reasoner_model: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    decided_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_decision_records_account_decided", "account_id", "decided_at"),
        Index("idx_decision_records_symbol", "symbol"),
    )


class DecisionOutcomeModel(Base):
    """Realized trade outcome of an executed decision."""

    __tablename__ = "decision_outcomes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    signal_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("decision_records.signal_id"),
        nullable=False,
        unique=True,
    )

    account_id: Mapped[str] = mapped_column(String(64), nullable=False)

    result: Mapped[str] = mapped_column(String(8), nullable=False, comment="WIN | LOSS")

    profit: Mapped[float] = mapped_column(Float, nullable=False, comment="Signed realized P/L")

    exit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    exit_type: Mapped[str] = mapped_column(String(32), nullable=False)

    closed_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_decision_outcomes_account", "account_id"),
    )


class AccountSignalCounterModel(Base, TimestampMixin):
    """Per-account signal counters."""

    __tablename__ = "account_signal_counters"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    signals_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    signals_executed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    signals_rejected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_signal_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
