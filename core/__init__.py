"""
Core Module Package.

Infrastructure shared by every package of the decision core.

Components:
- clock: UTC time abstraction (system and mock clocks)
- exceptions: Custom exception hierarchy
- log_setup: Structured logging for entry points
"""

from core.clock import ClockProtocol, MockClock, SystemClock
from core.exceptions import (
    ConfigurationError,
    ContextUnavailableError,
    InvalidSignalError,
    PersistenceFailure,
    TradingException,
)

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "TradingException",
    "ConfigurationError",
    "ContextUnavailableError",
    "InvalidSignalError",
    "PersistenceFailure",
]
