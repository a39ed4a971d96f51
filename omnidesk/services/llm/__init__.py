"""LLM service - multi-provider abstraction using LiteLLM."""

from omnidesk.services.llm.provider import LLMProvider, LLMResponse

__all__ = ["LLMProvider", "LLMResponse"]
