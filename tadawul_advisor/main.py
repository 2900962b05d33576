# =============================================================================
# FastAPI Application — Tadawul Market Advisor
# =============================================================================
#
# Entry point: `uvicorn tadawul_advisor.main:app --reload`
#
# LIFESPAN:
#   startup   document store loaded from DOCUMENTS_DIR, market data service
#             (Twelve Data), context window manager and chat orchestrator
#             are built and parked on `app.state`
#   shutdown  the market data HTTP client is closed
#
# create_app() accepts prebuilt services so tests can run the real routes
# over fakes without touching the network or the filesystem.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from tadawul_advisor.agents.orchestrator import ChatOrchestrator
from tadawul_advisor.api import chat, documents
from tadawul_advisor.config import settings
from tadawul_advisor.models.responses import HealthResponse
from tadawul_advisor.services.context_window import ContextWindowManager
from tadawul_advisor.services.document_loader import load_directory
from tadawul_advisor.services.document_store import DocumentStore
from tadawul_advisor.services.market_data import TwelveDataProvider, create_market_data_service

logger = logging.getLogger(__name__)


def create_app(
    orchestrator: ChatOrchestrator | None = None,
    document_store: DocumentStore | None = None,
) -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        provider: TwelveDataProvider | None = None
        if orchestrator is None:
            store = document_store or DocumentStore()
            if document_store is None:
                load_directory(store, settings.documents_dir)
            provider = TwelveDataProvider()
            market_data = create_market_data_service(provider)
            app.state.document_store = store
            app.state.orchestrator = ChatOrchestrator(
                document_store=store,
                market_data=market_data,
                context_manager=ContextWindowManager(
                    max_window_size=settings.context_max_window_size,
                    priority_threshold=settings.context_priority_threshold,
                ),
                max_companies=settings.max_companies_per_query,
                document_limit=settings.document_search_limit,
            )
        else:
            app.state.orchestrator = orchestrator
            app.state.document_store = document_store or DocumentStore()

        logger.info(
            "%s v%s started (%d documents indexed)",
            settings.app_name, settings.app_version, len(app.state.document_store),
        )
        yield

        if provider is not None:
            await provider.close()
        logger.info("%s shut down", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Question answering over Tadawul-listed equities: live quotes, "
            "fundamentals and a local research corpus fused into one scored "
            "context for a language model."
        ),
        lifespan=lifespan,
    )
    app.include_router(chat.router)
    app.include_router(documents.router)

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health(request: Request) -> HealthResponse:
        store = getattr(request.app.state, "document_store", None)
        return HealthResponse(
            version=settings.app_version,
            service=settings.app_name,
            documents_indexed=len(store) if store is not None else 0,
        )

    return app


app = create_app()
