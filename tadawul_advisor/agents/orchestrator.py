# =============================================================================
# Chat Orchestrator — LangGraph Pipeline for One Chat Message
# =============================================================================
#
# GRAPH TOPOLOGY:
#   START ─▶ analyze ─▶ gather ─▶ fuse ─▶ generate ─▶ assemble ─▶ END
#
#   analyze   lexical analysis, context-window update, current-company
#             tracking for the conversation
#   gather    concurrent fan-out: quote + statistics per requested company,
#             document lookups per company / sector / term / tag
#   fuse      confidence, risk and quality aggregation; refresh the shared
#             market context
#   generate  LLM answer (data-only answer when the LLM is unavailable)
#   assemble  schema-validated response; assistant reply recorded
#
# DESIGN DECISION: Services are constructor-injected, the graph is built
# per orchestrator. Tests build an orchestrator over fakes; the app builds
# one in its lifespan. No module-level singletons hold conversation state.
#
# FAILURE MODEL:
#   - a quote failure drops that company from the answer
#   - a statistics failure leaves the company without fundamentals
#   - a failed document lookup contributes no documents
#   - anything else that escapes the graph becomes the fallback response;
#     handle() never raises
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from tadawul_advisor.agents.advisor import AdvisorReply, generate_answer
from tadawul_advisor.services.analyzer import (
    CompanyMatch,
    QueryAnalysis,
    analyze_query,
    build_message_metadata,
    determine_user_mood,
    extract_message_metadata,
    tokenize,
)
from tadawul_advisor.services.assembler import AssembledResponse, assemble, fallback_response
from tadawul_advisor.services.context_window import ContextWindowManager, Message
from tadawul_advisor.services.document_store import (
    DocumentQuery,
    DocumentSearchResult,
    DocumentStore,
)
from tadawul_advisor.services.fusion import CompanyData, FusedContext, fuse
from tadawul_advisor.services.gazetteer import find_instrument
from tadawul_advisor.services.llm import LLMProvider
from tadawul_advisor.services.market_data import MarketDataService
from tadawul_advisor.services.market_quality import assess_reliability
from tadawul_advisor.services.technical import derive_signals

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Graph State Schema
# ---------------------------------------------------------------------------


class ChatState(TypedDict, total=False):
    """
    State flowing through the chat graph.

    total=False so each node returns only the keys it sets.
    """

    # --- Input ---
    conversation_id: str
    question: str
    history: list[dict[str, str]]

    # --- Intermediate ---
    analysis: QueryAnalysis
    requested: list[CompanyMatch]
    companies: list[CompanyData]
    documents: list[DocumentSearchResult]
    fused: FusedContext
    prompt_context: str
    reply: AdvisorReply

    # --- Output ---
    response: AssembledResponse


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ChatOrchestrator:
    """Runs one chat message through analysis, retrieval, fusion and generation."""

    def __init__(
        self,
        document_store: DocumentStore,
        market_data: MarketDataService,
        context_manager: ContextWindowManager,
        llm: LLMProvider | None = None,
        max_companies: int = 3,
        document_limit: int = 5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._documents = document_store
        self._market = market_data
        self._context = context_manager
        self._llm = llm
        self._max_companies = max_companies
        self._document_limit = document_limit
        self._clock = clock
        self._graph = self._build_graph()

    def _build_graph(self):
        builder = StateGraph(ChatState)
        builder.add_node("analyze", self._analyze_node)
        builder.add_node("gather", self._gather_node)
        builder.add_node("fuse", self._fuse_node)
        builder.add_node("generate", self._generate_node)
        builder.add_node("assemble", self._assemble_node)

        builder.add_edge(START, "analyze")
        builder.add_edge("analyze", "gather")
        builder.add_edge("gather", "fuse")
        builder.add_edge("fuse", "generate")
        builder.add_edge("generate", "assemble")
        builder.add_edge("assemble", END)
        return builder.compile()

    # -- Public API ----------------------------------------------------------

    async def handle(
        self,
        messages: list[dict[str, str]],
        conversation_id: str | None = None,
    ) -> AssembledResponse:
        """
        Answer the latest user message. Never raises.

        Args:
            messages: Visible conversation; the last user entry is the question.
            conversation_id: Server-side conversation key (generated if None).
        """
        conversation_id = conversation_id or str(uuid.uuid4())
        question = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"),
            None,
        )
        if not question:
            logger.warning("Chat request %s has no user message", conversation_id)
            return fallback_response(conversation_id)

        logger.info("Chat request %s: '%s'", conversation_id, question[:80])
        try:
            result = await self._graph.ainvoke({
                "conversation_id": conversation_id,
                "question": question,
                "history": list(messages),
            })
            return result["response"]
        except Exception:
            logger.exception("Chat pipeline failed for %s", conversation_id)
            return fallback_response(conversation_id)

    # -- Nodes ---------------------------------------------------------------

    async def _analyze_node(self, state: ChatState) -> dict:
        conversation_id = state["conversation_id"]
        question = state["question"]

        conversation = self._context.get_conversation(conversation_id)
        current = conversation.current_company if conversation else None
        analysis = analyze_query(question, current_company=current)

        self._context.add_message(conversation_id, Message(
            id=str(uuid.uuid4()),
            role="user",
            content=question,
            timestamp=self._clock(),
            metadata=build_message_metadata(question, analysis),
        ))

        explicit = analysis.explicit_companies
        if explicit:
            self._context.set_current_company(
                conversation_id, find_instrument(explicit[0].symbol),
            )

        requested = analysis.companies[: self._max_companies]
        logger.info(
            "Analyzed %s: type=%s companies=%s confidence=%.2f",
            conversation_id, analysis.analysis_type,
            [c.symbol for c in requested], analysis.confidence,
        )
        return {"analysis": analysis, "requested": requested}

    async def _gather_node(self, state: ChatState) -> dict:
        requested = state.get("requested", [])
        company_tasks = [self._fetch_company(match) for match in requested]
        results = await asyncio.gather(
            self._lookup_documents(state["analysis"], state["question"]),
            *company_tasks,
        )
        documents, fetched = results[0], results[1:]
        companies = [c for c in fetched if c is not None]

        logger.info(
            "Gathered %d/%d companies and %d documents",
            len(companies), len(requested), len(documents),
        )
        return {"companies": companies, "documents": documents}

    async def _fuse_node(self, state: ChatState) -> dict:
        companies = state.get("companies", [])
        fused = fuse(
            analysis=state["analysis"],
            requested=state.get("requested", []),
            companies=companies,
            documents=state.get("documents", []),
            now=datetime.fromtimestamp(self._clock(), tz=UTC),
        )
        if companies:
            self._refresh_market_context(fused)
        prompt_context = self._context.get_context_for_prompt(state["conversation_id"])
        return {"fused": fused, "prompt_context": prompt_context}

    async def _generate_node(self, state: ChatState) -> dict:
        reply = await generate_answer(
            history=state.get("history", []),
            fused=state["fused"],
            prompt_context=state.get("prompt_context", ""),
            llm=self._llm,
        )
        return {"reply": reply}

    async def _assemble_node(self, state: ChatState) -> dict:
        conversation_id = state["conversation_id"]
        analysis = state["analysis"]
        assembled = assemble(
            state["reply"].content,
            fused=state["fused"],
            user_mood=determine_user_mood(state["question"], analysis),
            context_used=bool(state.get("prompt_context")),
            conversation_id=conversation_id,
        )

        if assembled.ok:
            answer = assembled.body["response"]
            self._context.add_message(conversation_id, Message(
                id=str(uuid.uuid4()),
                role="assistant",
                content=answer,
                timestamp=self._clock(),
                metadata=extract_message_metadata(answer),
            ))
        return {"response": assembled}

    # -- Gathering -----------------------------------------------------------

    async def _fetch_company(self, match: CompanyMatch) -> CompanyData | None:
        """Quote + statistics for one company; None when the quote fails."""
        quote_result, stats_result = await asyncio.gather(
            self._market.get_quote(match.symbol),
            self._market.get_fundamentals(match.symbol),
            return_exceptions=True,
        )

        if isinstance(quote_result, Exception):
            logger.warning("Quote unavailable for %s: %r", match.symbol, quote_result)
            return None
        if isinstance(quote_result, BaseException):
            raise quote_result

        fundamentals = None
        if isinstance(stats_result, Exception):
            logger.warning("Statistics unavailable for %s: %r", match.symbol, stats_result)
        elif isinstance(stats_result, BaseException):
            raise stats_result
        else:
            fundamentals = stats_result

        return CompanyData(
            match=match,
            quote=quote_result,
            fundamentals=fundamentals,
            signals=derive_signals(quote_result, fundamentals),
            reliability=assess_reliability(quote_result, fundamentals, now=self._clock()),
        )

    async def _lookup_documents(
        self, analysis: QueryAnalysis, question: str,
    ) -> list[DocumentSearchResult]:
        queries = self._document_queries(analysis, question)
        if not queries:
            return []
        result_lists = await asyncio.gather(*(self._search(q) for q in queries))

        best: dict[str, DocumentSearchResult] = {}
        for results in result_lists:
            for result in results:
                doc_id = result.document.metadata.id
                if doc_id not in best or result.relevance_score > best[doc_id].relevance_score:
                    best[doc_id] = result

        ranked = sorted(best.values(), key=lambda r: r.relevance_score, reverse=True)
        return ranked[: self._document_limit]

    async def _search(self, query: DocumentQuery) -> list[DocumentSearchResult]:
        try:
            return self._documents.search_documents(query)
        except Exception as e:
            logger.warning("Document lookup failed for %r: %r", query.search_term, e)
            return []

    def _document_queries(self, analysis: QueryAnalysis, question: str) -> list[DocumentQuery]:
        terms: dict[str, None] = {}
        for company in analysis.companies:
            terms[company.name] = None
        for term in (
            *analysis.sectors,
            *analysis.technical_indicators,
            *analysis.fundamental_factors,
            *analysis.economic_indicators,
        ):
            terms[term] = None

        queries = [
            DocumentQuery(search_term=term, limit=self._document_limit) for term in terms
        ]

        tag_hits = sorted({
            token for token in tokenize(question)
            if len(token) > 3 and token in self._documents.by_tag
        })
        if tag_hits:
            queries.append(DocumentQuery(tags=tag_hits, limit=self._document_limit))
        return queries

    def _refresh_market_context(self, fused: FusedContext) -> None:
        largest_move = max(abs(c.quote.percent_change) for c in fused.companies)
        if largest_move > 5:
            volatility = "high"
        elif largest_move > 2:
            volatility = "medium"
        else:
            volatility = "low"
        conditions = {"bullish": "bull", "bearish": "bear"}.get(fused.market_sentiment, "neutral")

        self._context.update_market_context(
            market_hours=any(c.quote.is_market_open for c in fused.companies),
            conditions=conditions,
            volatility_level=volatility,
            timestamp=self._clock(),
        )
