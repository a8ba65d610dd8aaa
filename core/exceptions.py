"""
Core Module - Exceptions.

============================================================
EXCEPTION HIERARCHY
============================================================
TradingException (base)
├── ConfigurationError
│   └── InvalidConfigError
├── InvalidSignalError
├── ContextUnavailableError   one context source, degraded to 0
└── PersistenceFailure        one signal, surfaced to the caller

Eligibility denial and reasoner failures are not exceptions:
the first is a SKIP, the second a Unavailable/Malformed result.

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Severity(Enum):
    """Alerting severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorClassification(Enum):
    """Whether retrying the failed operation can help."""

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    NON_RECOVERABLE = "non_recoverable"


class TradingException(Exception):
    """
    Base exception for the decision core.

    Carries severity, classification, free-form context and the
    underlying cause, and serializes for structured logs.
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# CONFIGURATION
# ============================================================

class ConfigurationError(TradingException):
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class InvalidConfigError(ConfigurationError):
    """A weight, threshold or timeout is out of range."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration for {key}: {reason}",
            context={"config_key": key, "actual_value": str(value)[:100], "reason": reason},
        )
        self.key = key


# ============================================================
# INPUT
# ============================================================

class InvalidSignalError(TradingException):
    """Incoming signal is malformed; it cannot be evaluated at all."""

    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[Any] = None,
        actual: Optional[Any] = None,
    ):
        context: Dict[str, Any] = {}
        if field:
            context["field"] = field
        if expected is not None:
            context["expected"] = str(expected)
        if actual is not None:
            context["actual"] = str(actual)[:100]
        super().__init__(message, context=context)
        self.field = field


# ============================================================
# EVALUATION
# ============================================================

class ContextUnavailableError(TradingException):
    """
    A context source (sentiment, performance, patterns) failed or
    timed out. The engine records it and uses a zero adjustment.
    """

    default_severity = Severity.LOW
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, source: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"{source} context unavailable: {reason}",
            context={"source": source},
            cause=cause,
        )
        self.source = source
        self.reason = reason


class PersistenceFailure(TradingException):
    """
    Decision record could not be written.

    Fatal for the one signal only; callers may retry the evaluation.
    """

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, signal_id: str, message: str, **kwargs: Any):
        context = kwargs.pop("context", {})
        context["signal_id"] = signal_id
        super().__init__(message, context=context, **kwargs)
        self.signal_id = signal_id


__all__ = [
    "Severity",
    "ErrorClassification",
    "TradingException",
    "ConfigurationError",
    "InvalidConfigError",
    "InvalidSignalError",
    "ContextUnavailableError",
    "PersistenceFailure",
]
