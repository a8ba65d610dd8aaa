"""
Pattern Learning - Configuration.

============================================================
CALIBRATION
============================================================
confidence = min(occurrences / calibration, 1)

Rarer, more severe classes saturate sooner: five emergency
exits are as convincing as twenty directional losses.

| Class                 | Type | Calibration |
|-----------------------|------|-------------|
| preferred_direction   | win  | 20          |
| take_profit_exit      | win  | 15          |
| trailing_profit_exit  | win  | 10          |
| problematic_direction | loss | 20          |
| stop_loss_exit        | loss | 15          |
| emergency_exit        | loss | 5           |

============================================================
MATCHING
============================================================
win:  + confidence * strength / 100 * win_coefficient
loss: - confidence * strength / 100 * loss_coefficient

The sum is clamped to +/- advisory_cap, then to the engine's
learning cap, which always wins.

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from learning.types import PatternClass


def _default_calibration() -> Dict[PatternClass, int]:
    return {
        PatternClass.PREFERRED_DIRECTION: 20,
        PatternClass.TAKE_PROFIT_EXIT: 15,
        PatternClass.TRAILING_PROFIT_EXIT: 10,
        PatternClass.PROBLEMATIC_DIRECTION: 20,
        PatternClass.STOP_LOSS_EXIT: 15,
        PatternClass.EMERGENCY_EXIT: 5,
    }


@dataclass(frozen=True)
class LearningConfig:
    """Synthesizer and matcher parameters."""

    calibration: Dict[PatternClass, int] = field(default_factory=_default_calibration)

    win_coefficient: float = 0.03
    loss_coefficient: float = 0.03

    # Synthesizer-level bound; advisory only
    advisory_cap: float = 0.30

    # Patterns below this confidence never influence a decision
    min_pattern_confidence: float = 0.3

    provenance: str = "backtest_sync"

    def calibration_for(self, pattern_class: PatternClass) -> int:
        return self.calibration.get(pattern_class, 20)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calibration": {k.value: v for k, v in self.calibration.items()},
            "win_coefficient": self.win_coefficient,
            "loss_coefficient": self.loss_coefficient,
            "advisory_cap": self.advisory_cap,
            "min_pattern_confidence": self.min_pattern_confidence,
            "provenance": self.provenance,
        }


def get_default_config() -> LearningConfig:
    return LearningConfig()
