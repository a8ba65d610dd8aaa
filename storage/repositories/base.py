"""
Base Repository.

============================================================
PURPOSE
============================================================
Session handling shared by the news, pattern, decision and
counter repositories.

Each public operation runs in its own session and transaction
(_session_scope), so concurrent evaluations never share one.
Driver errors leave this layer as RepositoryException
subclasses:

    unique violation      -> DuplicateRecordError
    other integrity error -> IntegrityError (constraint named)
    OperationalError      -> ConnectionError
    anything else         -> QueryError

============================================================
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
)


# sqlite: "CHECK constraint failed: total_loss_non_positive"
#         "UNIQUE constraint failed: decision_records.signal_id"
_SQLITE_CONSTRAINT = re.compile(r"constraint failed: ([\w.]+)", re.IGNORECASE)
# postgres: 'violates check constraint "ck_learning_patterns_total_loss_non_positive"'
_POSTGRES_CONSTRAINT = re.compile(r'constraint "([^"]+)"')


def constraint_name(error: SQLAlchemyIntegrityError) -> str:
    """Best-effort name of the violated constraint."""
    for candidate in (error.orig, getattr(error.orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
    message = str(error.orig)
    match = _SQLITE_CONSTRAINT.search(message) or _POSTGRES_CONSTRAINT.search(message)
    return match.group(1) if match else "unknown"


def is_unique_violation(error: SQLAlchemyIntegrityError) -> bool:
    message = str(error.orig).lower()
    return "unique" in message or "duplicate" in message


class BaseRepository:
    """
    Base class for the async repositories.

    Subclasses pass a name used for logging and error context:

        class NewsRepository(BaseRepository):
            def __init__(self, session_factory):
                super().__init__(session_factory, "NewsRepository")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository_name: str,
    ) -> None:
        self._session_factory = session_factory
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def repository_name(self) -> str:
        return self._repository_name

    @asynccontextmanager
    async def _session_scope(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[AsyncSession]:
        """
        Session inside one transaction; commit on exit, rollback on error.

        For inserts, pass context={"field": ..., "value": ...} so a
        unique violation names the colliding key.
        """
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except RepositoryException:
                raise
            except SQLAlchemyError as e:
                raise self._translate(e, operation, context or {}) from e

    def _translate(
        self,
        error: SQLAlchemyError,
        operation: str,
        context: Dict[str, Any],
    ) -> RepositoryException:
        if isinstance(error, SQLAlchemyIntegrityError):
            constraint = constraint_name(error)
            if is_unique_violation(error):
                self._logger.debug(f"{operation}: unique violation on {constraint} {context}")
                return DuplicateRecordError(
                    repository_name=self._repository_name,
                    constraint_field=context.get("field", constraint),
                    value=context.get("value", "unknown"),
                    operation=operation,
                )
            self._logger.error(f"{operation}: constraint {constraint} violated: {error.orig}")
            return IntegrityError(
                repository_name=self._repository_name,
                operation=operation,
                constraint_name=constraint,
                message=str(error.orig),
            )

        self._logger.error(f"{operation} failed: {error} {context}", exc_info=True)
        if isinstance(error, OperationalError):
            return ConnectionError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error),
            )
        return QueryError(
            repository_name=self._repository_name,
            operation=operation,
            original_error=str(error),
        )
