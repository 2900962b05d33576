# =============================================================================
# Integration Tests — HTTP Routes
# =============================================================================
#
# The real FastAPI app over prebuilt services: the orchestrator runs on a
# mock market data provider and a mock LLM, so no key or network is needed.
# TestClient is used as a context manager so the lifespan runs.
# =============================================================================

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from tadawul_advisor.agents.orchestrator import ChatOrchestrator
from tadawul_advisor.main import create_app
from tadawul_advisor.services.assembler import fallback_response
from tadawul_advisor.services.context_window import ContextWindowManager
from tadawul_advisor.services.document_loader import build_document
from tadawul_advisor.services.document_store import DocumentStore
from tadawul_advisor.services.llm import LLMResponse
from tadawul_advisor.services.market_data import MarketDataService


def _services() -> tuple[ChatOrchestrator, DocumentStore]:
    provider = AsyncMock()
    provider.get_quote.return_value = {
        "symbol": "1120", "close": "88.40", "change": "-0.60",
        "percent_change": "-0.67", "volume": "4200000",
    }
    provider.get_statistics.return_value = {"statistics": {"valuations_metrics": {"trailing_pe": 19.2}}}

    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(
        content=json.dumps({"response": "Al Rajhi Bank is slightly lower today."}),
        model="test-model", input_tokens=10, output_tokens=5,
    )

    store = DocumentStore()
    store.add_document(build_document(
        "banks_research_q2.md", "Al Rajhi Bank grew its financing book by 12%.",
    ))
    orchestrator = ChatOrchestrator(
        document_store=store,
        market_data=MarketDataService(provider=provider),
        context_manager=ContextWindowManager(),
        llm=llm,
    )
    return orchestrator, store


class TestHealth:
    def test_health_reports_corpus_size(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["documents_indexed"] == 1


class TestChatEndpoint:
    """Tests for POST /chat."""

    def test_answer(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            response = client.post("/chat", json={
                "messages": [{"role": "user", "content": "How is Al Rajhi Bank performing?"}],
                "conversation_id": "api-1",
            })

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Al Rajhi Bank is slightly lower today."
        assert body["conversation_id"] == "api-1"
        assert body["financial_context"]["companies"][0]["symbol"] == "1120"
        assert "technicalSignals" in body["financial_context"]["market_analysis"]

    def test_fallback_keeps_schema_with_500(self):
        orchestrator = MagicMock()
        orchestrator.handle = AsyncMock(return_value=fallback_response("api-2"))
        with TestClient(create_app(orchestrator=orchestrator)) as client:
            response = client.post("/chat", json={
                "messages": [{"role": "user", "content": "anything"}],
            })

        assert response.status_code == 500
        body = response.json()
        assert body["debug"]["analysis_quality"] == "error"
        assert body["financial_context"]["confidence_score"] == 0.0

    def test_empty_messages_rejected(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            response = client.post("/chat", json={"messages": []})
        assert response.status_code == 422

    def test_unknown_role_rejected(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            response = client.post("/chat", json={"messages": [{"role": "system", "content": "x"}]})
        assert response.status_code == 422


class TestDocumentEndpoints:
    """Tests for GET /documents/search and POST /documents."""

    def test_search(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            response = client.get("/documents/search", params={"q": "financing"})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["results"][0]["document"]["category"] == "research"
        assert "financing" in body["results"][0]["matched_segments"][0]

    def test_unknown_category_is_empty(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            response = client.get("/documents/search", params={"category": "astrology"})
        assert response.json() == {"results": [], "total": 0}

    def test_create_then_search(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            created = client.post("/documents", json={
                "title": "CMA short selling rules",
                "content": "Short selling is permitted for eligible securities.",
                "category": "regulation",
                "tags": ["cma"],
            })
            found = client.get("/documents/search", params={"tags": "cma"})

        assert created.status_code == 201
        assert created.json()["tags"] == ["regulation", "cma"]
        assert created.json()["source"] == "api"
        assert len(store) == 2
        assert [r["document"]["title"] for r in found.json()["results"]] == ["CMA short selling rules"]

    def test_invalid_category_rejected(self):
        orchestrator, store = _services()
        with TestClient(create_app(orchestrator=orchestrator, document_store=store)) as client:
            response = client.post("/documents", json={
                "title": "x", "content": "y", "category": "gossip",
            })
        assert response.status_code == 422
