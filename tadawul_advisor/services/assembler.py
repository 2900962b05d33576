# =============================================================================
# Response Assembler — Output Contract Enforcement
# =============================================================================
#
# Last step of every chat request. Takes the model's raw text and the
# fused context and produces one ChatResponse-shaped dict.
#
# MODEL OUTPUT:
#   - JSON object (optionally inside ``` fences) → its known fields are
#     merged over the schema defaults
#   - anything else                              → used verbatim as
#     `response`
#
# The fused context is authoritative for `financial_context` and `debug`;
# the model only supplies prose (response, thinking) and, when valid,
# mood and follow-up questions.
#
# FAILURE: any exception or schema violation becomes the fixed fallback
# (apology text, neutral fields, "error" quality) with status 500.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, get_args

from pydantic import ValidationError

from tadawul_advisor.errors import SchemaError
from tadawul_advisor.models.responses import ChatResponse, UserMood
from tadawul_advisor.services.fusion import FusedContext

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "An error occurred while processing your Saudi market query. Please try again."
)
FALLBACK_QUESTIONS = [
    "Would you like to view the current market overview?",
    "Should we look at a specific sector instead?",
    "Would you like to know about top performing stocks?",
]

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_MODEL_FIELDS = ("response", "thinking", "user_mood", "suggested_questions")
_MOODS = set(get_args(UserMood))


@dataclass
class AssembledResponse:
    body: dict[str, Any]
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.status_code < 400


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def assemble(
    model_output: str | None,
    fused: FusedContext | None = None,
    user_mood: str | None = None,
    context_used: bool = False,
    conversation_id: str | None = None,
) -> AssembledResponse:
    """Merge model text with the fused context and validate the result."""
    try:
        payload = _merge(model_output, fused, user_mood, context_used)
        payload["conversation_id"] = conversation_id
        body = validate_response(payload)
    except Exception:
        logger.exception("Response assembly failed; returning fallback")
        return fallback_response(conversation_id)
    return AssembledResponse(body=body, status_code=200)


def validate_response(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Validate a candidate response and return its wire form.

    Raises:
        SchemaError: the payload violates the response contract.
    """
    try:
        model = ChatResponse.model_validate(payload)
    except ValidationError as e:
        raise SchemaError(f"Response failed schema validation: {e}") from e
    return model.model_dump(by_alias=True)


def fallback_response(conversation_id: str | None = None) -> AssembledResponse:
    body = ChatResponse(
        response=FALLBACK_MESSAGE,
        thinking="Error in analysis",
        user_mood="neutral",
        suggested_questions=list(FALLBACK_QUESTIONS),
        financial_context={
            "market_sentiment": "neutral",
            "risk_level": "medium",
            "confidence_score": 0.0,
        },
        debug={"analysis_quality": "error"},
        conversation_id=conversation_id,
    ).model_dump(by_alias=True)
    return AssembledResponse(body=body, status_code=500)


def parse_model_output(text: str | None) -> dict[str, Any]:
    """Read the model's reply as a JSON object, else as plain prose."""
    if not text:
        return {}
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    candidate = fenced.group(1) if fenced else stripped

    if candidate.startswith("{"):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            logger.debug("Model output looked like JSON but did not parse")
        else:
            if isinstance(parsed, dict):
                return parsed
    return {"response": stripped}


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _merge(
    model_output: str | None,
    fused: FusedContext | None,
    user_mood: str | None,
    context_used: bool,
) -> dict[str, Any]:
    parsed = parse_model_output(model_output)
    payload: dict[str, Any] = {k: parsed[k] for k in _MODEL_FIELDS if k in parsed}

    if fused is None:
        # No computed context: the model's own context fields are all we have.
        for key in ("financial_context", "debug"):
            if key in parsed:
                payload[key] = parsed[key]
        if user_mood:
            payload.setdefault("user_mood", user_mood)
        return payload

    if payload.get("user_mood") not in _MOODS:
        payload["user_mood"] = user_mood or "neutral"

    questions = payload.get("suggested_questions")
    if not (isinstance(questions, list) and questions and all(isinstance(q, str) for q in questions)):
        payload["suggested_questions"] = list(fused.suggested_questions)

    payload.setdefault("thinking", _thinking(fused))
    payload["financial_context"] = financial_context_payload(fused)
    payload["debug"] = {
        "context_used": context_used,
        "market_data_used": fused.has_market_data,
        "document_data_used": fused.has_documents,
        "analysis_quality": fused.quality,
        "confidence": {
            "market": fused.confidence.market,
            "documents": fused.confidence.documents,
            "overall": fused.confidence.overall,
        },
    }
    return payload


def financial_context_payload(fused: FusedContext) -> dict[str, Any]:
    companies = []
    for company in fused.companies:
        parts = [f"{company.quote.percent_change:+.2f}% today"]
        parts.extend(f"{s.direction} {s.indicator.replace('_', ' ')}" for s in company.signals)
        if company.fundamentals and company.fundamentals.pe_ratio is not None:
            parts.append(f"P/E {company.fundamentals.pe_ratio:.1f}")
        if company.match.sentiment != "neutral":
            parts.append(f"{company.match.sentiment} tone in question")
        companies.append({
            "symbol": company.symbol,
            "name": company.name,
            "sector": company.match.sector,
            "price": company.quote.price,
            "change": company.quote.change,
            "analysis": "; ".join(parts),
        })

    documents = [
        {
            "id": evidence.document_id,
            "title": evidence.result.document.metadata.title,
            "category": evidence.result.document.metadata.category,
            "relevance": round(evidence.relevance, 4),
            "key_excerpts": evidence.excerpts[:3],
            "last_updated": evidence.result.document.metadata.last_updated.isoformat(),
        }
        for evidence in fused.documents
    ]

    return {
        "companies": companies,
        "market_sentiment": fused.market_sentiment,
        "risk_level": fused.risk_level,
        "confidence_score": fused.confidence.overall,
        "key_insights": list(fused.key_insights),
        "market_analysis": {
            "technicalSignals": [
                f"{s.symbol} {s.indicator}: {s.direction} ({s.strength:.2f}) {s.description}"
                for s in fused.technical_signals
            ],
            "fundamentalFactors": list(fused.fundamental_factors),
            "sectorAnalysis": list(fused.sector_analysis),
            "marketTrends": list(fused.market_trends),
        },
        "documents_used": documents,
    }


def _thinking(fused: FusedContext) -> str:
    return (
        f"Analyzed {len(fused.companies)} companies and {len(fused.documents)} documents "
        f"({fused.analysis.analysis_type} analysis, {fused.quality} data quality)"
    )
