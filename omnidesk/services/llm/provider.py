"""LLM Provider using LiteLLM for multi-provider abstraction."""

import time
from dataclasses import dataclass, field
from typing import Any

import litellm
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from omnidesk.core.config import settings
from omnidesk.core.exceptions import LLMError

logger = structlog.get_logger()

litellm.set_verbose = settings.app_debug

# Set API keys from settings
if settings.openai_api_key:
    litellm.openai_key = settings.openai_api_key
if settings.anthropic_api_key:
    litellm.anthropic_key = settings.anthropic_api_key
if settings.google_api_key:
    litellm.google_key = settings.google_api_key


@dataclass
class LLMResponse:
    """Response from LLM completion."""

    content: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    finish_reason: str = "stop"
    latency_ms: float = 0.0
    cost_usd: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class LLMProvider:
    """LLM provider with multi-model support and fallbacks.

    Uses LiteLLM for unified API across OpenAI, Anthropic, Google, and more.
    """

    def __init__(
        self,
        primary_model: str | None = None,
        fallback_models: list[str] | None = None,
        default_temperature: float | None = None,
        default_max_tokens: int | None = None,
    ) -> None:
        self.primary_model = primary_model or settings.litellm_primary_model
        self.fallback_models = (
            fallback_models
            if fallback_models is not None
            else [m for m in [settings.litellm_fallback_model] if m]
        )
        self.default_temperature = (
            default_temperature if default_temperature is not None else settings.chatbot_temperature
        )
        self.default_max_tokens = default_max_tokens or settings.chatbot_max_tokens

        logger.info(
            "LLM Provider initialized",
            primary=self.primary_model,
            fallbacks=self.fallback_models,
        )

    async def complete(
        self,
        context_prompt: str,
        user_message: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Answer ``user_message`` with ``context_prompt`` as the system prompt.

        Args:
            context_prompt: Everything the model should know (history, company, config)
            user_message: The customer message to answer
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens to generate

        Raises:
            LLMError: If the primary model and every fallback failed
        """
        messages = [
            {"role": "system", "content": context_prompt},
            {"role": "user", "content": user_message},
        ]
        try:
            return await self._complete(
                messages, self.primary_model, temperature, max_tokens, **kwargs
            )
        except Exception as e:
            logger.warning(
                "LLM completion failed, trying fallback",
                model=self.primary_model,
                error=str(e),
            )
            error = e

        for fallback_model in self.fallback_models:
            if fallback_model == self.primary_model:
                continue
            try:
                return await self._complete(
                    messages, fallback_model, temperature, max_tokens, **kwargs
                )
            except Exception as fallback_error:
                logger.warning(
                    "Fallback model also failed",
                    model=fallback_model,
                    error=str(fallback_error),
                )

        raise LLMError(f"All LLM providers failed: {error}", provider=self.primary_model)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _complete(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float | None,
        max_tokens: int | None,
        **kwargs: Any,
    ) -> LLMResponse:
        start_time = time.perf_counter()
        response = await litellm.acompletion(
            model=model,
            messages=messages,
            temperature=temperature if temperature is not None else self.default_temperature,
            max_tokens=max_tokens or self.default_max_tokens,
            **kwargs,
        )
        latency_ms = (time.perf_counter() - start_time) * 1000

        usage = getattr(response, "usage", None)
        tokens_input = getattr(usage, "prompt_tokens", 0) or 0
        tokens_output = getattr(usage, "completion_tokens", 0) or 0

        # Cost tracking is best effort; unknown models have no price table
        try:
            cost = litellm.completion_cost(completion_response=response)
        except Exception:
            cost = 0.0

        choice = response.choices[0]
        content = choice.message.content or ""

        logger.info(
            "LLM completion successful",
            model=model,
            tokens_in=tokens_input,
            tokens_out=tokens_output,
            latency_ms=round(latency_ms, 2),
            cost_usd=round(cost, 6),
        )

        return LLMResponse(
            content=content,
            model=model,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            finish_reason=choice.finish_reason or "stop",
            latency_ms=latency_ms,
            cost_usd=cost,
            metadata={"raw_response_id": getattr(response, "id", None)},
        )
