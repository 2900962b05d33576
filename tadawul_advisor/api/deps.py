# =============================================================================
# API Dependencies — Service Lookup for Route Handlers
# =============================================================================
#
# Services are built once in the app lifespan and parked on `app.state`.
# Route handlers receive them through these dependencies, so tests can
# swap any of them with `app.dependency_overrides`.
# =============================================================================

from __future__ import annotations

from fastapi import HTTPException, Request

from tadawul_advisor.agents.orchestrator import ChatOrchestrator
from tadawul_advisor.services.document_store import DocumentStore


def get_orchestrator(request: Request) -> ChatOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Chat service is not initialised.")
    return orchestrator


def get_document_store(request: Request) -> DocumentStore:
    store = getattr(request.app.state, "document_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Document store is not initialised.")
    return store
