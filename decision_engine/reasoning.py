"""
Confidence Fusion - Reasoning Trail.

Builds the ordered, human-readable list of contributing terms:

    Technical analysis: 78.0% | News sentiment: +2.0% | ...
    | Final confidence: 82.0% | EXECUTE - confidence at or above threshold (82%)

Zero adjustments are omitted; degraded sources leave a note.
"""

from typing import List, Optional

from decision_engine.types import ConfidenceBreakdown, DecisionOutcome, ReasoningStep


class ReasoningTrail:
    def __init__(self) -> None:
        self._steps: List[ReasoningStep] = []

    def technical(self, value: float) -> "ReasoningTrail":
        self._steps.append(ReasoningStep("technical", f"Technical analysis: {value * 100:.1f}%", value))
        return self

    def adjustment(self, source: str, label: str, value: float, override: bool = False) -> "ReasoningTrail":
        if value != 0:
            suffix = " (reasoner)" if override else ""
            self._steps.append(ReasoningStep(source, f"{label}: {value * 100:+.1f}%{suffix}", value))
        return self

    def note(self, source: str, text: str) -> "ReasoningTrail":
        self._steps.append(ReasoningStep(source, text))
        return self

    def final(self, breakdown: ConfidenceBreakdown) -> "ReasoningTrail":
        self._steps.append(
            ReasoningStep("final", f"Final confidence: {breakdown.total * 100:.1f}%", breakdown.total)
        )
        return self

    def verdict(self, decision: DecisionOutcome, threshold: float) -> "ReasoningTrail":
        if decision == DecisionOutcome.EXECUTE:
            text = f"EXECUTE - confidence at or above threshold ({threshold * 100:.0f}%)"
        else:
            text = f"SKIP - confidence below threshold ({threshold * 100:.0f}%)"
        self._steps.append(ReasoningStep("verdict", text))
        return self

    def blocked(self, reason: str) -> "ReasoningTrail":
        self._steps.append(ReasoningStep("eligibility", f"Trading blocked: {reason}"))
        return self

    def reasoner(self, text: Optional[str]) -> "ReasoningTrail":
        if text:
            self._steps.append(ReasoningStep("reasoner", f"Reasoner: {text}"))
        return self

    @property
    def steps(self) -> tuple:
        return tuple(self._steps)

    def render(self) -> str:
        return " | ".join(step.text for step in self._steps)
