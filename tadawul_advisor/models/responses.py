# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# The chat response contract. Every field has a default so that a partial
# object (for example, a model reply that only carried `response`) still
# validates into a complete, well-formed document:
#   lists        → []
#   sentiment    → "neutral"
#   risk level   → "medium"
#   confidence   → 0.5
#
# Enumerated fields are Literals: an out-of-range value fails validation
# and the assembler turns that failure into the fallback response.
#
# `market_analysis` keys are camelCase on the wire (technicalSignals, ...);
# Python code uses snake_case through aliases.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

UserMood = Literal["positive", "neutral", "negative", "curious", "frustrated", "confused"]
Sentiment = Literal["bullish", "bearish", "neutral"]
RiskLevel = Literal["low", "medium", "high"]


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str
    documents_indexed: int = 0


class CompanySummary(BaseModel):
    """A company the answer covers, with the market data it was based on."""

    symbol: str
    name: str
    sector: str | None = None
    price: float | None = None
    change: float | None = None
    analysis: str | None = None


class MarketAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    technical_signals: list[str] = Field(default_factory=list, alias="technicalSignals")
    fundamental_factors: list[str] = Field(default_factory=list, alias="fundamentalFactors")
    sector_analysis: list[str] = Field(default_factory=list, alias="sectorAnalysis")
    market_trends: list[str] = Field(default_factory=list, alias="marketTrends")


class DocumentUsed(BaseModel):
    """A corpus document that contributed to the answer."""

    id: str
    title: str
    category: str
    relevance: float = Field(ge=0.0, le=1.0, description="Normalised relevance (0-1)")
    key_excerpts: list[str] = Field(default_factory=list)
    last_updated: str


class FinancialContext(BaseModel):
    companies: list[CompanySummary] = Field(default_factory=list)
    market_sentiment: Sentiment = "neutral"
    risk_level: RiskLevel = "medium"
    confidence_score: float = Field(default=0.5, ge=0.0, le=1.0)
    key_insights: list[str] = Field(default_factory=list)
    market_analysis: MarketAnalysis = Field(default_factory=MarketAnalysis)
    documents_used: list[DocumentUsed] = Field(default_factory=list)


class ConfidenceDetail(BaseModel):
    market: float = Field(default=0.0, ge=0.0, le=1.0)
    documents: float = Field(default=0.0, ge=0.0, le=1.0)
    overall: float = Field(default=0.0, ge=0.0, le=1.0)


class DebugInfo(BaseModel):
    context_used: bool = False
    market_data_used: bool = False
    document_data_used: bool = False
    analysis_quality: str = "basic"
    confidence: ConfidenceDetail = Field(default_factory=ConfidenceDetail)


class ChatResponse(BaseModel):
    """
    Response for POST /chat.

    `financial_context` and `debug` are computed by the service; the
    language model contributes `response` (and optionally `thinking`,
    `user_mood`, `suggested_questions` when it answers in JSON).
    """

    response: str = ""
    thinking: str = ""
    user_mood: UserMood = "neutral"
    suggested_questions: list[str] = Field(default_factory=list)
    financial_context: FinancialContext = Field(default_factory=FinancialContext)
    debug: DebugInfo = Field(default_factory=DebugInfo)
    conversation_id: str | None = None


# ---------------------------------------------------------------------------
# Document Endpoints
# ---------------------------------------------------------------------------


class DocumentSummary(BaseModel):
    id: str
    title: str
    category: str
    tags: list[str]
    language: str
    last_updated: str
    source: str
    version: str


class DocumentHit(BaseModel):
    document: DocumentSummary
    relevance_score: float = Field(description="Raw per-query relevance (not normalised)")
    matched_segments: list[str] = Field(default_factory=list)


class DocumentSearchResponse(BaseModel):
    results: list[DocumentHit]
    total: int
