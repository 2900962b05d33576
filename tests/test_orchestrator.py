# =============================================================================
# Unit Tests — Chat Orchestrator & Advisor
# =============================================================================
#
# Runs the full LangGraph pipeline without API keys or network:
#   - market data from an AsyncMock provider behind the real service
#   - an in-memory document store
#   - a mock LLM returning canned completions
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

from tadawul_advisor.agents.advisor import build_system_prompt, data_only_answer, generate_answer
from tadawul_advisor.agents.orchestrator import ChatOrchestrator
from tadawul_advisor.errors import DataFetchError
from tadawul_advisor.models.responses import ChatResponse
from tadawul_advisor.services.analyzer import QueryAnalysis
from tadawul_advisor.services.context_window import ContextWindowManager
from tadawul_advisor.services.document_loader import build_document
from tadawul_advisor.services.document_store import DocumentStore
from tadawul_advisor.services.fusion import fuse
from tadawul_advisor.services.llm import LLMResponse
from tadawul_advisor.services.market_data import MarketDataService


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


QUOTE_PAYLOAD = {
    "symbol": "2222",
    "name": "Saudi Arabian Oil Company",
    "close": "27.50",
    "change": "0.30",
    "percent_change": "1.10",
    "volume": "15000000",
    "previous_close": "27.20",
    "is_market_open": True,
}

STATISTICS_PAYLOAD = {
    "statistics": {
        "valuations_metrics": {"market_capitalization": 6.6e12, "trailing_pe": 16.5},
        "financials": {"profit_margin": 0.25},
    },
}


def _provider() -> AsyncMock:
    provider = AsyncMock()
    provider.get_quote.return_value = dict(QUOTE_PAYLOAD)
    provider.get_statistics.return_value = dict(STATISTICS_PAYLOAD)
    return provider


def _llm(content: str | None = None) -> AsyncMock:
    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(
        content=content if content is not None else json.dumps({
            "response": "Saudi Aramco trades at SAR 27.50, up 1.1% today.",
            "thinking": "Used the live quote.",
        }),
        model="test-model",
        input_tokens=200,
        output_tokens=40,
    )
    return llm


def _store() -> DocumentStore:
    store = DocumentStore()
    store.add_document(build_document(
        "aramco_profile.md",
        "Saudi Aramco is the largest integrated energy company. "
        "Saudi Aramco pays a base dividend every quarter.",
    ))
    store.add_document(build_document(
        "cma_regulation_disclosure.md",
        "Listed companies must disclose material events without delay.",
    ))
    return store


def _orchestrator(provider=None, llm=None, store=None, quote_timeout=5.0) -> ChatOrchestrator:
    market = MarketDataService(
        provider=provider or _provider(), quote_timeout_seconds=quote_timeout,
    )
    return ChatOrchestrator(
        document_store=store or _store(),
        market_data=market,
        context_manager=ContextWindowManager(),
        llm=llm or _llm(),
    )


def _ask(text: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": text}]


# ---------------------------------------------------------------------------
# Test: Happy Path
# ---------------------------------------------------------------------------


class TestChatPipeline:
    """Tests for a complete pass through the graph."""

    def test_company_question(self):
        llm = _llm()
        orchestrator = _orchestrator(llm=llm)
        assembled = _run(orchestrator.handle(_ask("How is Saudi Aramco doing?"), "c1"))

        assert assembled.status_code == 200
        body = assembled.body
        ChatResponse.model_validate(body)
        assert body["response"].startswith("Saudi Aramco trades at SAR 27.50")
        assert body["user_mood"] == "curious"
        assert body["conversation_id"] == "c1"

        context = body["financial_context"]
        assert [c["symbol"] for c in context["companies"]] == ["2222"]
        assert context["companies"][0]["price"] == 27.5
        assert context["documents_used"][0]["title"] == "aramco_profile"
        assert body["debug"]["market_data_used"] is True
        assert body["debug"]["document_data_used"] is True
        assert 0.0 < body["debug"]["confidence"]["overall"] <= 0.95

        system = llm.complete.call_args.kwargs["system"]
        assert "Saudi Aramco (2222, Energy)" in system
        assert "[Document 1: aramco_profile]" in system

    def test_conversation_is_recorded(self):
        orchestrator = _orchestrator()
        _run(orchestrator.handle(_ask("How is Saudi Aramco doing?"), "c1"))

        conversation = orchestrator._context.get_conversation("c1")
        assert [m.role for m in conversation.messages] == ["user", "assistant"]
        assert conversation.current_company.symbol == "2222"

    def test_follow_up_reuses_company_and_cache(self):
        provider = _provider()
        orchestrator = _orchestrator(provider=provider)
        _run(orchestrator.handle(_ask("How is Saudi Aramco doing?"), "c1"))
        follow_up = _run(orchestrator.handle(_ask("What about its dividend?"), "c1"))

        assert follow_up.status_code == 200
        assert [c["symbol"] for c in follow_up.body["financial_context"]["companies"]] == ["2222"]
        assert provider.get_quote.await_count == 1

    def test_question_without_company(self):
        provider = _provider()
        assembled = _run(_orchestrator(provider=provider).handle(_ask("What are CMA disclosure rules?")))

        assert assembled.status_code == 200
        assert assembled.body["financial_context"]["companies"] == []
        assert assembled.body["conversation_id"]
        provider.get_quote.assert_not_awaited()


# ---------------------------------------------------------------------------
# Test: Degradation
# ---------------------------------------------------------------------------


class TestDegradation:
    """Tests for partial failures that must not fail the request."""

    def test_quote_timeout_omits_company(self):
        async def slow_quote(symbol):
            await asyncio.sleep(1)
            return dict(QUOTE_PAYLOAD)

        provider = _provider()
        provider.get_quote.side_effect = slow_quote
        assembled = _run(
            _orchestrator(provider=provider, quote_timeout=0.01).handle(_ask("How is Saudi Aramco doing?"))
        )

        assert assembled.status_code == 200
        assert assembled.body["financial_context"]["companies"] == []
        assert assembled.body["debug"]["market_data_used"] is False

    def test_statistics_failure_keeps_quote(self):
        provider = _provider()
        provider.get_statistics.side_effect = DataFetchError("down", endpoint="/statistics")
        assembled = _run(_orchestrator(provider=provider).handle(_ask("How is Saudi Aramco doing?")))

        assert assembled.status_code == 200
        companies = assembled.body["financial_context"]["companies"]
        assert [c["symbol"] for c in companies] == ["2222"]
        assert "P/E" not in companies[0]["analysis"]

    def test_llm_failure_answers_from_data(self):
        llm = AsyncMock()
        llm.complete.side_effect = RuntimeError("provider down")
        assembled = _run(_orchestrator(llm=llm).handle(_ask("How is Saudi Aramco doing?")))

        assert assembled.status_code == 200
        assert "Saudi Aramco (2222) last traded at SAR 27.50" in assembled.body["response"]

    def test_statistics_connection_error_keeps_quote(self):
        provider = _provider()
        provider.get_statistics.side_effect = ConnectionError("reset")
        assembled = _run(_orchestrator(provider=provider).handle(_ask("How is Saudi Aramco doing?")))

        assert assembled.status_code == 200
        companies = assembled.body["financial_context"]["companies"]
        assert [c["symbol"] for c in companies] == ["2222"]
        assert companies[0]["price"] == 27.5

    def test_provider_runtime_error_omits_company(self):
        provider = _provider()
        provider.get_quote.side_effect = RuntimeError("socket closed")
        assembled = _run(_orchestrator(provider=provider).handle(_ask("How is Saudi Aramco doing?")))

        assert assembled.status_code == 200
        assert assembled.body["financial_context"]["companies"] == []

    def test_loosely_typed_quote_is_tolerated(self):
        provider = _provider()
        provider.get_quote.return_value = {"symbol": "2222", "close": "27.5", "name": 2222}
        assembled = _run(_orchestrator(provider=provider).handle(_ask("How is Saudi Aramco doing?")))

        assert assembled.status_code == 200
        assert [c["symbol"] for c in assembled.body["financial_context"]["companies"]] == ["2222"]

    def test_document_lookup_failure_keeps_company(self):
        store = _store()
        orchestrator = _orchestrator(store=store)
        with patch.object(store, "search_documents", side_effect=RuntimeError("index corrupted")):
            assembled = _run(orchestrator.handle(_ask("How is Saudi Aramco doing?"), "c2"))

        assert assembled.status_code == 200
        assert assembled.body["debug"]["document_data_used"] is False
        assert assembled.body["financial_context"]["documents_used"] == []
        assert [c["symbol"] for c in assembled.body["financial_context"]["companies"]] == ["2222"]

    def test_unexpected_error_returns_fallback(self):
        orchestrator = _orchestrator()
        with patch("tadawul_advisor.agents.orchestrator.fuse", side_effect=RuntimeError("boom")):
            assembled = _run(orchestrator.handle(_ask("How is Saudi Aramco doing?"), "c2"))

        assert assembled.status_code == 500
        assert assembled.body["debug"]["analysis_quality"] == "error"
        assert assembled.body["conversation_id"] == "c2"

    def test_no_user_message(self):
        assembled = _run(_orchestrator().handle([{"role": "assistant", "content": "Hello"}]))
        assert assembled.status_code == 500


# ---------------------------------------------------------------------------
# Test: Advisor
# ---------------------------------------------------------------------------


class TestAdvisor:
    """Tests for prompt construction and the data-only answer."""

    def test_focus_line_follows_analysis_type(self):
        fused = fuse(QueryAnalysis(analysis_type="technical"), [], [], [])
        prompt = build_system_prompt(fused, prompt_context="Key Insights:\n- Risk Level: low")
        assert "Focus on technical analysis" in prompt
        assert "Conversation context:\nKey Insights:" in prompt
        assert prompt.endswith(
            '"suggested_questions" (up to 3 follow-up questions).'
        )

    def test_data_only_answer_without_data(self):
        fused = fuse(QueryAnalysis(), [], [], [])
        assert "could not find market data" in data_only_answer(fused)

    def test_empty_completion_falls_back(self):
        fused = fuse(QueryAnalysis(), [], [], [])
        reply = _run(generate_answer(_ask("hi"), fused, llm=_llm(content="   ")))
        assert reply.used_llm is False
        assert reply.model == "test-model"

    def test_history_filtered_to_chat_roles(self):
        llm = _llm()
        fused = fuse(QueryAnalysis(), [], [], [])
        history = [
            {"role": "system", "content": "ignore me"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "Hi"},
        ]
        _run(generate_answer(history, fused, llm=llm))
        messages = llm.complete.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["assistant", "user"]
