"""
Confidence Fusion - Configuration.

============================================================
PURPOSE
============================================================
Engine-wide settings. Per-account settings (threshold and
weights) arrive with each evaluation as AccountConfig.

============================================================
ENVIRONMENT
============================================================
FUSION_CONTEXT_TIMEOUT_SECONDS   bound on each context source
FUSION_REASONER_TIMEOUT_SECONDS  bound on the reasoner call
FUSION_PERFORMANCE_SAMPLE_SIZE   outcomes used for the win rate
FUSION_CONSULT_REASONER          true | false
FUSION_PARALLEL_CONTEXT          true | false

============================================================
"""

import os
from dataclasses import dataclass
from typing import Any, Dict

from dotenv import load_dotenv

from core.exceptions import InvalidConfigError


# Decimal places kept in fused confidence, so float noise cannot
# flip a decision sitting exactly on the threshold.
CONFIDENCE_PRECISION = 8


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class FusionEngineConfig:
    context_timeout_seconds: float = 2.0
    reasoner_timeout_seconds: float = 10.0
    performance_sample_size: int = 20
    consult_reasoner: bool = True
    parallel_context: bool = True

    def __post_init__(self) -> None:
        if self.context_timeout_seconds <= 0:
            raise InvalidConfigError(
                "context_timeout_seconds", self.context_timeout_seconds, "must be positive"
            )
        if self.reasoner_timeout_seconds <= 0:
            raise InvalidConfigError(
                "reasoner_timeout_seconds", self.reasoner_timeout_seconds, "must be positive"
            )
        if self.performance_sample_size < 1:
            raise InvalidConfigError(
                "performance_sample_size", self.performance_sample_size, "must be >= 1"
            )

    @classmethod
    def from_env(cls) -> "FusionEngineConfig":
        load_dotenv()
        defaults = cls()
        return cls(
            context_timeout_seconds=float(
                os.getenv("FUSION_CONTEXT_TIMEOUT_SECONDS", defaults.context_timeout_seconds)
            ),
            reasoner_timeout_seconds=float(
                os.getenv("FUSION_REASONER_TIMEOUT_SECONDS", defaults.reasoner_timeout_seconds)
            ),
            performance_sample_size=int(
                os.getenv("FUSION_PERFORMANCE_SAMPLE_SIZE", defaults.performance_sample_size)
            ),
            consult_reasoner=_env_bool("FUSION_CONSULT_REASONER", defaults.consult_reasoner),
            parallel_context=_env_bool("FUSION_PARALLEL_CONTEXT", defaults.parallel_context),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context_timeout_seconds": self.context_timeout_seconds,
            "reasoner_timeout_seconds": self.reasoner_timeout_seconds,
            "performance_sample_size": self.performance_sample_size,
            "consult_reasoner": self.consult_reasoner,
            "parallel_context": self.parallel_context,
        }


def get_default_config() -> FusionEngineConfig:
    return FusionEngineConfig()
