"""
Reasoner - OpenAI-Compatible Chat Adapter.

============================================================
PURPOSE
============================================================
Asks a chat-completion model to review a signal and its
rule-based adjustments.

- POST {base_url}/chat/completions with system + user prompts
- Own timeout; cost = total_tokens * cost_per_token
- Transport errors, timeouts and HTTP errors -> Unavailable
- Unexpected body or unparsable content -> Malformed

One instance per process or per engine; created and closed
explicitly (async with, or aclose()).

============================================================
"""

import logging
from typing import Any, Dict, Optional

import httpx

from reasoner.base import Reasoner
from reasoner.config import ReasonerConfig
from reasoner.parsing import parse_reasoner_response
from reasoner.types import Malformed, ReasonerRequest, ReasonerResult, Unavailable


logger = logging.getLogger(__name__)


def _pct(value: Optional[float], signed: bool = False) -> str:
    if value is None:
        return "N/A"
    return f"{value * 100:+.1f}%" if signed else f"{value * 100:.1f}%"


def build_system_prompt(request: ReasonerRequest) -> str:
    total_cap = request.news_cap + request.backtest_cap + request.learning_cap
    return (
        "You are a crypto trading analyst reviewing technically generated signals.\n"
        "Decide whether the signal should be executed.\n\n"
        "Rules:\n"
        f"- You may adjust confidence by at most {_pct(total_cap)} in total:\n"
        f"  * news sentiment: within +/-{_pct(request.news_cap)}\n"
        f"  * recent performance: within +/-{_pct(request.backtest_cap)}\n"
        f"  * learned loss/win patterns: within +/-{_pct(request.learning_cap)}\n"
        f"- EXECUTE only if final confidence >= {_pct(request.threshold)}\n"
        "- Explain your reasoning briefly\n\n"
        "Respond with a single JSON object:\n"
        "{\n"
        '  "decision": "EXECUTE" or "SKIP",\n'
        '  "confidenceAdjustment": number,\n'
        '  "finalConfidence": number (0 to 1),\n'
        '  "reasoning": "short explanation",\n'
        '  "newsImpact": number,\n'
        '  "backtestImpact": number,\n'
        '  "learningImpact": number\n'
        "}"
    )


def build_user_prompt(request: ReasonerRequest) -> str:
    indicators = request.indicators or {}
    loss_patterns = ", ".join(request.loss_pattern_descriptions) or "None"
    headlines = "\n".join(f"- {h}" for h in request.headlines) or "- none"

    return (
        "Analyze this trading signal:\n\n"
        "SIGNAL:\n"
        f"Symbol: {request.symbol}\n"
        f"Direction: {request.direction}\n"
        f"Technical Confidence: {_pct(request.technical_confidence)}\n"
        f"Entry: {request.entry_price}\n"
        f"Stop Loss: {request.stop_loss}\n"
        f"Take Profit: {request.take_profit}\n"
        "Indicators:\n"
        f"- RSI: {indicators.get('rsi', 'N/A')}\n"
        f"- MACD: {indicators.get('macd', 'N/A')}\n"
        f"- ADX: {indicators.get('adx', 'N/A')}\n\n"
        "CONTEXT:\n"
        f"News Sentiment: {_pct(request.sentiment, signed=True)} ({request.sentiment_label or 'neutral'})\n"
        f"Recent Headlines:\n{headlines}\n"
        f"Recent Win Rate: {_pct(request.recent_win_rate) if request.recent_win_rate is not None else 'No history'}\n"
        f"Loss Patterns Detected: {loss_patterns}\n\n"
        "RULE-BASED ADJUSTMENTS:\n"
        f"News: {_pct(request.rule_based.news, signed=True)}\n"
        f"Performance: {_pct(request.rule_based.backtest, signed=True)}\n"
        f"Patterns: {_pct(request.rule_based.learning, signed=True)}\n\n"
        "Should this signal be executed?"
    )


class ChatCompletionReasoner(Reasoner):
    """
    Reasoner backed by an OpenAI-compatible chat endpoint.

    Usage:
        async with ChatCompletionReasoner(ReasonerConfig.from_env()) as reasoner:
            engine = ConfidenceFusionEngine(..., reasoner=reasoner)
    """

    def __init__(
        self,
        config: ReasonerConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self.name = config.provider

    @property
    def config(self) -> ReasonerConfig:
        return self._config

    async def __aenter__(self) -> "ChatCompletionReasoner":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _unavailable(self, reason: str) -> Unavailable:
        return Unavailable(provider=self._config.provider, model=self._config.model, reason=reason)

    async def evaluate(self, request: ReasonerRequest) -> ReasonerResult:
        if not self._config.is_configured:
            return self._unavailable("API key not configured")

        body: Dict[str, Any] = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(request)},
                {"role": "user", "content": build_user_prompt(request)},
            ],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }
        url = f"{self._config.base_url.rstrip('/')}/chat/completions"

        try:
            response = await self._client.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self._config.api_key}"},
                timeout=self._config.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Reasoner HTTP {e.response.status_code} for {request.signal_id}: "
                f"{e.response.text[:200]}"
            )
            return self._unavailable(f"HTTP {e.response.status_code}")
        except httpx.TimeoutException as e:
            logger.warning(f"Reasoner timeout for {request.signal_id}: {e}")
            return self._unavailable("timeout")
        except httpx.RequestError as e:
            logger.warning(f"Reasoner request error for {request.signal_id}: {e}")
            return self._unavailable(f"request error: {type(e).__name__}")

        try:
            data = response.json()
            tokens = int((data.get("usage") or {}).get("total_tokens") or 0)
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.warning(f"Reasoner returned an unexpected body for {request.signal_id}: {e}")
            return Malformed(
                provider=self._config.provider,
                model=self._config.model,
                reason=f"unexpected response body: {type(e).__name__}",
                raw=response.text[:500],
            )

        cost = tokens * self._config.cost_per_token
        logger.debug(f"Reasoner used {tokens} tokens (cost {cost:.6f}) for {request.signal_id}")

        return parse_reasoner_response(
            content if isinstance(content, str) else None,
            provider=self._config.provider,
            model=self._config.model,
            cost=cost,
        )
