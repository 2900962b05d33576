# =============================================================================
# Chat API — Saudi Market Q&A Endpoint
# =============================================================================
#
# POST /chat runs one user message through the ChatOrchestrator.
#
# The body is always a complete ChatResponse document. A pipeline failure
# still returns that shape (the fallback answer) but with HTTP 500, so
# clients can render it and still tell that something went wrong.
#
# The handler only validates the request, delegates and maps the status code.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tadawul_advisor.agents.orchestrator import ChatOrchestrator
from tadawul_advisor.api.deps import get_orchestrator
from tadawul_advisor.models.requests import ChatRequest
from tadawul_advisor.models.responses import ChatResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask a question about Saudi-listed equities",
    description=(
        "Analyzes the latest user message, fetches live quotes and "
        "fundamentals for the companies it mentions, retrieves relevant "
        "documents, and returns a grounded answer with the financial "
        "context, confidence breakdown and follow-up questions."
    ),
    responses={500: {"model": ChatResponse, "description": "Fallback response"}},
)
async def chat_endpoint(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    messages = [m.model_dump() for m in request.messages]
    assembled = await orchestrator.handle(messages, conversation_id=request.conversation_id)

    if not assembled.ok:
        logger.error(
            "Chat request %s answered with fallback", assembled.body.get("conversation_id"),
        )
    return JSONResponse(content=assembled.body, status_code=assembled.status_code)
