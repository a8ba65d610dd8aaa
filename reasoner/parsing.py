"""
Reasoner - Response Parsing.

============================================================
PURPOSE
============================================================
Turns free-form model output into a tagged result.

- Finds the JSON object (fenced ```json blocks or bare braces)
- Validates field by field: a bad field becomes None instead
  of rejecting the whole answer
- Any decoding failure, or an answer with no usable field at
  all, becomes Malformed
- Never raises

Expected shape (camelCase, all optional):
    {
      "decision": "EXECUTE" | "SKIP",
      "confidenceAdjustment": number,
      "finalConfidence": number,
      "reasoning": "...",
      "newsImpact": number,
      "backtestImpact": number,
      "learningImpact": number
    }

============================================================
"""

import json
import logging
import math
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reasoner.types import (
    Malformed,
    ReasonerAdjustments,
    ReasonerResult,
    ReasonerVerdict,
    Refined,
)


logger = logging.getLogger(__name__)

_FENCED = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


def _finite_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class ReasonerPayload(BaseModel):
    """Lenient schema of a reasoner answer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    decision: Optional[ReasonerVerdict] = None
    reasoning: Optional[str] = None
    confidence_adjustment: Optional[float] = Field(default=None, alias="confidenceAdjustment")
    final_confidence: Optional[float] = Field(default=None, alias="finalConfidence")
    news_impact: Optional[float] = Field(default=None, alias="newsImpact")
    backtest_impact: Optional[float] = Field(default=None, alias="backtestImpact")
    learning_impact: Optional[float] = Field(default=None, alias="learningImpact")

    @field_validator(
        "confidence_adjustment",
        "final_confidence",
        "news_impact",
        "backtest_impact",
        "learning_impact",
        mode="before",
    )
    @classmethod
    def _numeric(cls, value: Any) -> Optional[float]:
        return _finite_or_none(value)

    @field_validator("decision", mode="before")
    @classmethod
    def _verdict(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip().upper() in ReasonerVerdict.__members__:
            return value.strip().upper()
        return None

    @field_validator("reasoning", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def adjustments(self) -> ReasonerAdjustments:
        return ReasonerAdjustments(
            news=self.news_impact,
            backtest=self.backtest_impact,
            learning=self.learning_impact,
        )


def extract_json_object(text: str) -> Optional[str]:
    """Best-effort location of the JSON object in model output."""
    fenced = _FENCED.search(text)
    if fenced:
        return fenced.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_reasoner_response(
    text: Optional[str],
    provider: str = "",
    model: str = "",
    cost: float = 0.0,
) -> ReasonerResult:
    """Parse model output into Refined or Malformed."""
    raw = text or ""

    def malformed(reason: str) -> Malformed:
        logger.warning(f"Malformed reasoner output from {provider or 'reasoner'}: {reason}")
        return Malformed(provider=provider, model=model, cost=cost, reason=reason, raw=raw[:500])

    candidate = extract_json_object(raw)
    if candidate is None:
        return malformed("no JSON object in response")

    try:
        data = json.loads(candidate)
    except ValueError as e:
        return malformed(f"invalid JSON: {e}")

    if not isinstance(data, dict):
        return malformed("JSON root is not an object")

    try:
        payload = ReasonerPayload.model_validate(data)
    except ValidationError as e:
        return malformed(f"validation failed: {e.error_count()} errors")

    adjustments = payload.adjustments()
    if adjustments.is_empty and payload.decision is None and payload.reasoning is None:
        return malformed("no usable fields")

    return Refined(
        provider=provider,
        model=model,
        cost=cost,
        decision=payload.decision,
        adjustments=adjustments,
        reasoning=payload.reasoning or "",
    )
