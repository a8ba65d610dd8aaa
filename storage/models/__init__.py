"""
Storage Models.

Shared declarative base. Domain tables live in their own
packages (sentiment.models, learning.models, decision_engine.models).
"""

from storage.models.base import Base, TimestampMixin

__all__ = ["Base", "TimestampMixin"]
