# =============================================================================
# Unit Tests — LLM Providers
# =============================================================================
#
# The SDK clients are replaced with mocks after construction, so no request
# ever leaves the process.
# =============================================================================

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tadawul_advisor.services import llm
from tadawul_advisor.services.llm import AnthropicProvider, OpenAICompatibleProvider


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Test: Provider Factory
# ---------------------------------------------------------------------------


class TestLLMProviderFactory:
    """Tests for the LLM provider factory function."""

    def _factory_error(self, provider_name: str) -> str:
        original = llm._provider
        llm._provider = None
        try:
            with patch.object(llm.settings, "llm_provider", provider_name), \
                    patch.object(llm.settings, "llm_api_key", None), \
                    patch.object(llm.settings, "anthropic_api_key", ""), \
                    patch.object(llm.settings, "openai_api_key", ""):
                with pytest.raises(ValueError) as exc_info:
                    llm.get_llm_provider()
            return str(exc_info.value)
        finally:
            llm._provider = original

    def test_anthropic_without_key(self):
        assert "API key" in self._factory_error("anthropic")

    def test_openai_compatible_without_key(self):
        assert "API key" in self._factory_error("openai_compatible")

    def test_singleton_reused(self):
        original = llm._provider
        llm._provider = None
        try:
            with patch.object(llm.settings, "llm_provider", "anthropic"), \
                    patch.object(llm.settings, "llm_api_key", "test-key"):
                first = llm.get_llm_provider()
                assert llm.get_llm_provider() is first
                assert isinstance(first, AnthropicProvider)
        finally:
            llm._provider = original


# ---------------------------------------------------------------------------
# Test: Provider Calls
# ---------------------------------------------------------------------------


class TestAnthropicProvider:
    def test_system_prompt_is_top_level(self):
        provider = AnthropicProvider(api_key="test-key", model="claude-test")
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Aramco is flat.")],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=12, output_tokens=4),
        ))
        provider._client = client

        response = _run(provider.complete(
            messages=[{"role": "user", "content": "Aramco?"}], system="be brief",
        ))

        assert response.content == "Aramco is flat."
        assert response.input_tokens == 12
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be brief"
        assert kwargs["messages"] == [{"role": "user", "content": "Aramco?"}]

    def test_zero_temperature_is_respected(self):
        provider = AnthropicProvider(api_key="test-key")
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[], model="m", usage=SimpleNamespace(input_tokens=0, output_tokens=0),
        ))
        provider._client = client

        response = _run(provider.complete(messages=[], temperature=0.0))
        assert response.content == ""
        assert client.messages.create.call_args.kwargs["temperature"] == 0.0


class TestOpenAICompatibleProvider:
    def test_system_prompt_is_first_message(self):
        provider = OpenAICompatibleProvider(api_key="test-key", model="deepseek-chat")
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))],
            model=None,
            usage=None,
        ))
        provider._client = client

        response = _run(provider.complete(
            messages=[{"role": "user", "content": "hi"}], system="sys",
        ))

        assert response.content == "ok"
        assert response.model == "deepseek-chat"
        assert response.output_tokens == 0
        sent = client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0] == {"role": "system", "content": "sys"}
