"""
Reasoner - Configuration.

Environment variables (loaded from .env when present):
    REASONER_API_KEY          - bearer token; unset disables the reasoner
    REASONER_BASE_URL         - OpenAI-compatible API root
    REASONER_MODEL            - model name
    REASONER_TIMEOUT_SECONDS  - per-request timeout
    REASONER_COST_PER_TOKEN   - cost accounting rate
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from core.exceptions import InvalidConfigError


@dataclass(frozen=True)
class ReasonerConfig:
    api_key: Optional[str] = None
    base_url: str = "https://api.deepseek.com/v1"
    model: str = "deepseek-chat"
    provider: str = "deepseek"
    timeout_seconds: float = 8.0
    temperature: float = 0.3
    max_tokens: int = 500
    cost_per_token: float = 0.000001

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise InvalidConfigError("timeout_seconds", self.timeout_seconds, "must be positive")
        if self.cost_per_token < 0:
            raise InvalidConfigError("cost_per_token", self.cost_per_token, "must be >= 0")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "ReasonerConfig":
        load_dotenv()
        defaults = cls()
        return cls(
            api_key=os.getenv("REASONER_API_KEY") or None,
            base_url=os.getenv("REASONER_BASE_URL", defaults.base_url),
            model=os.getenv("REASONER_MODEL", defaults.model),
            provider=os.getenv("REASONER_PROVIDER", defaults.provider),
            timeout_seconds=float(os.getenv("REASONER_TIMEOUT_SECONDS", defaults.timeout_seconds)),
            cost_per_token=float(os.getenv("REASONER_COST_PER_TOKEN", defaults.cost_per_token)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configured": self.is_configured,
            "base_url": self.base_url,
            "model": self.model,
            "provider": self.provider,
            "timeout_seconds": self.timeout_seconds,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "cost_per_token": self.cost_per_token,
        }
