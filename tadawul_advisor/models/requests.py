# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the API. FastAPI validates request bodies
# against these and answers 422 on mismatch, before any handler runs.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """One visible chat turn."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=8000)


class ChatRequest(BaseModel):
    """
    Request body for POST /chat.

    The last message is the user's new question; earlier messages are the
    visible history. Server-side conversation state (context window,
    current company) is keyed by `conversation_id`.

    Example:
        {
            "messages": [{"role": "user", "content": "How is Aramco doing?"}],
            "conversation_id": "demo-1"
        }
    """

    messages: list[ChatMessage] = Field(
        ...,
        min_length=1,
        description="Conversation so far; the last entry must be from the user",
    )

    # If omitted, a new conversation id is generated and echoed back.
    conversation_id: str | None = Field(
        default=None,
        max_length=128,
        description="Conversation to continue. Generated when omitted.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "messages": [
                        {"role": "user", "content": "How is Saudi Aramco trading today?"},
                    ],
                    "conversation_id": "demo-1",
                },
            ]
        }
    )


class DocumentCreateRequest(BaseModel):
    """Request body for POST /documents — index a document from raw text."""

    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    category: Literal["regulation", "profile", "research", "educational", "market-update"]
    tags: list[str] = Field(default_factory=list)
    language: Literal["en", "ar"] = "en"
    source: str = Field(default="api", description="Where the document came from")
    version: str = "1.0"
