"""
Repository Exceptions.

Repositories never leak SQLAlchemy or driver errors; they raise
these instead, tagged with the repository and operation.

The fusion engine reads them as:
- DuplicateRecordError on save  -> the signal was already decided
- any other RepositoryException -> PersistenceFailure, transient
  when the error is retryable
"""

from typing import Any, Dict, Optional


class RepositoryException(Exception):
    """Base exception for all repository operations."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(f"[{repository_name}] {operation}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "repository": self.repository_name,
            "operation": self.operation,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class RecordNotFoundError(RepositoryException):
    """A pattern or decision expected to exist is missing."""

    def __init__(
        self,
        repository_name: str,
        record_id: Any,
        id_field: str = "id",
        operation: str = "get",
    ) -> None:
        super().__init__(
            message=f"No record with {id_field}={record_id}",
            repository_name=repository_name,
            operation=operation,
            details={id_field: str(record_id)},
        )
        self.record_id = record_id
        self.id_field = id_field


class DuplicateRecordError(RepositoryException):
    """Unique key already taken (signal id, pattern key, match pair)."""

    def __init__(
        self,
        repository_name: str,
        constraint_field: str,
        value: Any,
        operation: str = "create",
    ) -> None:
        super().__init__(
            message=f"{constraint_field}={value} already exists",
            repository_name=repository_name,
            operation=operation,
            details={"field": constraint_field, "value": str(value)},
        )
        self.constraint_field = constraint_field
        self.value = value


class IntegrityError(RepositoryException):
    """A check or foreign key constraint rejected the write."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        constraint_name: str,
        message: str,
    ) -> None:
        super().__init__(
            message=f"Constraint {constraint_name} violated: {message}",
            repository_name=repository_name,
            operation=operation,
            details={"constraint": constraint_name},
        )
        self.constraint_name = constraint_name


class ConnectionError(RepositoryException):
    """Database unreachable, pool exhausted or timed out."""

    retryable = True

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        super().__init__(
            message=f"Database unavailable: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error},
        )


class QueryError(RepositoryException):
    """Statement failed for any other reason."""

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        super().__init__(
            message=f"Query failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error},
        )


__all__ = [
    "RepositoryException",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
]
