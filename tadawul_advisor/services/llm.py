# =============================================================================
# LLM Providers — Answer Prose for the Advisor
# =============================================================================
#
# The advisor needs exactly one call: conversation + system prompt in,
# text out. Each vendor SDK is wrapped to that single `complete()` shape.
#
#   LLMProvider (Protocol)       complete(messages, system, ...)
#   ├── AnthropicProvider        system prompt travels as `system=`
#   ├── OpenAICompatibleProvider system prompt is prepended as a message;
#   │                            any base URL (OpenAI, DeepSeek, Qwen, ...)
#   └── get_llm_provider()       built once from LLM_PROVIDER
#
# No API key means ValueError at construction. The advisor catches it with
# every other LLM failure and answers from market data alone.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from tadawul_advisor.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(Protocol):
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate one completion.

        `messages` holds only "user"/"assistant" turns. Temperature and
        max_tokens fall back to LLM_TEMPERATURE / LLM_MAX_TOKENS.
        """
        ...


def _require_key(vendor: str, *candidates: str | None) -> str:
    for key in candidates:
        if key:
            return key
    raise ValueError(f"No {vendor} API key configured. Set LLM_API_KEY in .env")


def _sampling(temperature: float | None, max_tokens: int | None) -> dict[str, Any]:
    return {
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "max_tokens": max_tokens or settings.llm_max_tokens,
    }


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """Claude through `AsyncAnthropic`."""

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        from anthropic import AsyncAnthropic

        key = _require_key("Anthropic", api_key, settings.llm_api_key, settings.anthropic_api_key)
        self._client = AsyncAnthropic(api_key=key)
        self._model = model or settings.llm_model
        logger.info("Advisor LLM: Anthropic %s", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        request: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            **_sampling(temperature, max_tokens),
        }
        if system:
            request["system"] = system

        response = await self._client.messages.create(**request)
        text = next((b.text for b in response.content if b.type == "text"), "")
        return LLMResponse(
            content=text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


class OpenAICompatibleProvider:
    """Any chat-completions API reachable through `AsyncOpenAI`."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        key = _require_key(
            "OpenAI-compatible", api_key, settings.llm_api_key, settings.openai_api_key,
        )
        base_url = base_url or settings.llm_base_url
        self._client = AsyncOpenAI(api_key=key, base_url=base_url)
        self._model = model or settings.llm_model
        logger.info("Advisor LLM: %s at %s", self._model, base_url or "api.openai.com")

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        turns = [{"role": "system", "content": system}, *messages] if system else list(messages)
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=turns,
            **_sampling(temperature, max_tokens),
        )

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai_compatible": OpenAICompatibleProvider,
}

_provider: LLMProvider | None = None


def get_llm_provider() -> LLMProvider:
    """Return the configured provider; raises ValueError without an API key."""
    global _provider
    if _provider is None:
        provider_cls = _PROVIDERS.get(settings.llm_provider, AnthropicProvider)
        _provider = provider_cls()
    return _provider
