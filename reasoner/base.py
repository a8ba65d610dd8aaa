"""
Reasoner - Base.

A reasoner is an explicit, injected capability. Implementations
own their transport, timeout and cost accounting, and must never
raise: every failure becomes Unavailable or Malformed.
"""

from abc import ABC, abstractmethod

from reasoner.types import ReasonerRequest, ReasonerResult, Unavailable


class Reasoner(ABC):
    """Pluggable refinement of the rule-based adjustments."""

    name: str = "reasoner"

    @abstractmethod
    async def evaluate(self, request: ReasonerRequest) -> ReasonerResult:
        """Return Refined, Unavailable or Malformed."""
        pass

    async def aclose(self) -> None:
        """Release transport resources, if any."""
        return None


class NullReasoner(Reasoner):
    """Rule-based only: always Unavailable, never costs anything."""

    name = "none"

    async def evaluate(self, request: ReasonerRequest) -> ReasonerResult:
        return Unavailable(provider=self.name, reason="No reasoner configured")
