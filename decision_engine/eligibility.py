"""
Confidence Fusion - Eligibility.

Whether an account may trade at all (collateral, gas-fee
balance, cooldowns, daily limits) is decided outside the
decision core. The engine only consumes the answer.

A denial is not an error: it becomes a SKIP with the given
reason and zero reasoner cost.
"""

import inspect
import logging
from typing import Awaitable, Protocol, Union

from decision_engine.types import EligibilityResult


logger = logging.getLogger(__name__)


class EligibilityChecker(Protocol):
    def can_trade(self) -> Union[EligibilityResult, Awaitable[EligibilityResult]]:
        ...


async def check_eligibility(checker: EligibilityChecker) -> EligibilityResult:
    """
    Run the external check.

    The checker may be sync or async. A checker that raises, or
    answers with something other than an EligibilityResult,
    counts as a denial.
    """
    try:
        result = checker.can_trade()
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        logger.error(f"Eligibility check failed: {e}", exc_info=True)
        return EligibilityResult.deny(f"Eligibility check failed: {e}")

    if not isinstance(result, EligibilityResult):
        logger.error(f"Eligibility check returned {type(result).__name__}")
        return EligibilityResult.deny("Eligibility check returned an invalid result")

    if not result.allowed and not result.reason:
        return EligibilityResult.deny("Trading not allowed")
    return result
