# =============================================================================
# Documents API — Search & Index the Research Corpus
# =============================================================================
#
# GET  /documents/search   filtered text search over the in-memory store
# POST /documents          index a new document from raw text
#
# The corpus is append-only; there is no update or delete endpoint.
# Unknown filters yield an empty result list, never an error.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query

from tadawul_advisor.api.deps import get_document_store
from tadawul_advisor.models.requests import DocumentCreateRequest
from tadawul_advisor.models.responses import (
    DocumentHit,
    DocumentSearchResponse,
    DocumentSummary,
)
from tadawul_advisor.services.document_store import (
    DocumentMetadata,
    DocumentQuery,
    DocumentStore,
    FinancialDocument,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])


def _summary(document: FinancialDocument) -> DocumentSummary:
    metadata = document.metadata
    return DocumentSummary(
        id=metadata.id,
        title=metadata.title,
        category=metadata.category,
        tags=list(metadata.tags),
        language=metadata.language,
        last_updated=metadata.last_updated.isoformat(),
        source=metadata.source,
        version=metadata.version,
    )


@router.get(
    "/search",
    response_model=DocumentSearchResponse,
    summary="Search indexed documents",
)
async def search_documents(
    q: str | None = Query(default=None, description="Case-insensitive search term"),
    category: str | None = Query(default=None),
    tags: list[str] | None = Query(default=None),
    language: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=0, le=100, description="0 or omitted: all"),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentSearchResponse:
    results = store.search_documents(DocumentQuery(
        search_term=q,
        category=category,
        tags=tags,
        language=language,
        limit=limit,
    ))
    return DocumentSearchResponse(
        results=[
            DocumentHit(
                document=_summary(r.document),
                relevance_score=r.relevance_score,
                matched_segments=r.matched_segments,
            )
            for r in results
        ],
        total=len(results),
    )


@router.post(
    "",
    response_model=DocumentSummary,
    status_code=201,
    summary="Index a document",
)
async def create_document(
    request: DocumentCreateRequest,
    store: DocumentStore = Depends(get_document_store),
) -> DocumentSummary:
    tags = list(dict.fromkeys([request.category, *request.tags]))
    document = FinancialDocument(
        metadata=DocumentMetadata(
            id=f"doc_{uuid.uuid4().hex[:12]}",
            title=request.title,
            category=request.category,
            tags=tags,
            language=request.language,
            last_updated=datetime.now(UTC),
            source=request.source,
            version=request.version,
        ),
        content=request.content,
        path="",
    )
    store.add_document(document)
    logger.info("Indexed document %s via API (%s)", document.metadata.id, request.title[:60])
    return _summary(document)
