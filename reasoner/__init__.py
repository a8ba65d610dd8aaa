"""
Reasoner Adapter.

============================================================
PURPOSE
============================================================
Swappable capability that reviews a signal with its context and
returns refined adjustments, or an explicit Unavailable /
Malformed result. Never raises into the fusion engine.

============================================================
USAGE
============================================================
    from reasoner import ChatCompletionReasoner, NullReasoner, ReasonerConfig

    config = ReasonerConfig.from_env()
    reasoner = ChatCompletionReasoner(config) if config.is_configured else NullReasoner()

============================================================
"""

from reasoner.base import NullReasoner, Reasoner
from reasoner.chat_client import ChatCompletionReasoner
from reasoner.config import ReasonerConfig
from reasoner.parsing import ReasonerPayload, parse_reasoner_response
from reasoner.types import (
    Malformed,
    ReasonerAdjustments,
    ReasonerRequest,
    ReasonerResult,
    ReasonerStatus,
    ReasonerVerdict,
    Refined,
    Unavailable,
)

__all__ = [
    "Reasoner",
    "NullReasoner",
    "ChatCompletionReasoner",
    "ReasonerConfig",
    "ReasonerPayload",
    "parse_reasoner_response",
    "Malformed",
    "ReasonerAdjustments",
    "ReasonerRequest",
    "ReasonerResult",
    "ReasonerStatus",
    "ReasonerVerdict",
    "Refined",
    "Unavailable",
]

__version__ = "1.0.0"
