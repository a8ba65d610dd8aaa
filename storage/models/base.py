"""
Declarative Base for the Decision Store.

============================================================
PURPOSE
============================================================
Shared metadata for the news, learning and decision tables.

- Constraint names follow one convention so migrations and
  error messages name the same thing on PostgreSQL and sqlite
- datetime columns are timezone-aware; dict columns are JSON
- TimestampMixin stamps rows on the Python side as well, since
  sqlite's CURRENT_TIMESTAMP carries no zone

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import JSON, DateTime, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


NAMING_CONVENTION = {
    "ix": "idx_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        Dict[str, Any]: JSON,
        List[Dict[str, Any]]: JSON,
    }


class TimestampMixin:
    """created_at / updated_at audit columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        comment="Row creation time (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        comment="Last modification time (UTC)",
    )
