# =============================================================================
# Advisor Agent — Grounded Answer Generation
# =============================================================================
#
# Turns a FusedContext into a system prompt and asks the language model for
# the user-facing answer.
#
# PROMPT LAYOUT:
#   role + rules
#   focus lines        (technical / fundamental / high-risk emphasis)
#   conversation       (the context window's rendered prompt block)
#   market data        (one block per company with a live quote)
#   documents          ([Document n: title] + excerpts)
#   sentiment, risk and confidence summary
#   output format      (JSON object: response, thinking, suggested_questions)
#
# DESIGN DECISION: The LLM is optional.
# If no provider can be built (no API key) or the call fails, the advisor
# answers from the fused data alone. Market data and documents are still
# returned; only the prose is simpler.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from tadawul_advisor.services.fusion import CompanyData, DocumentEvidence, FusedContext
from tadawul_advisor.services.llm import LLMProvider, get_llm_provider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class AdvisorReply:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    used_llm: bool = True


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

BASE_PROMPT = (
    "You are a knowledgeable Saudi market (Tadawul) financial analyst. "
    "Answer the user's question using the market data, documents and "
    "conversation context provided below.\n\n"
    "Rules:\n"
    "- Quote prices in SAR and cite the figures you rely on\n"
    "- Prefer the provided data over general knowledge; say when data is missing\n"
    "- Mention relevant risks; never promise returns\n"
    "- Keep the answer focused and concise"
)

FOCUS_LINES = {
    "technical": "Focus on technical analysis: price action, momentum and trend.",
    "fundamental": "Focus on fundamental analysis: valuation, profitability and balance sheet.",
    "mixed": "Cover both the technical picture and the fundamentals.",
}

OUTPUT_FORMAT = (
    "Reply with a single JSON object with the keys "
    '"response" (your answer, markdown allowed), '
    '"thinking" (one sentence on how you reached it) and '
    '"suggested_questions" (up to 3 follow-up questions).'
)


def build_system_prompt(fused: FusedContext, prompt_context: str = "") -> str:
    analysis = fused.analysis
    sections = [BASE_PROMPT]

    focus = FOCUS_LINES.get(analysis.analysis_type)
    if focus:
        sections.append(focus)
    if fused.risk_level == "high":
        sections.append("Emphasize risk factors and potential downsides.")

    if prompt_context:
        sections.append(f"Conversation context:\n{prompt_context}")

    if fused.companies:
        sections.append(
            "Market data:\n" + "\n\n".join(_format_company(c) for c in fused.companies)
        )
    if fused.documents:
        sections.append(
            "Reference documents:\n" + _format_documents(fused.documents)
        )

    sections.append(
        f"Market sentiment: {fused.market_sentiment}\n"
        f"Risk level: {fused.risk_level}\n"
        f"Analysis confidence: {fused.confidence.overall * 100:.1f}%"
    )
    sections.append(OUTPUT_FORMAT)
    return "\n\n".join(sections)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def generate_answer(
    history: list[dict[str, str]],
    fused: FusedContext,
    prompt_context: str = "",
    llm: LLMProvider | None = None,
) -> AdvisorReply:
    """
    Ask the LLM for an answer; fall back to a data-only answer on failure.

    Args:
        history: Visible conversation, last entry the user's question.
        fused: The fused context for the question.
        prompt_context: Rendered context window for the conversation.
        llm: Provider override; the configured singleton when None.
    """
    system = build_system_prompt(fused, prompt_context)
    messages = [
        {"role": m["role"], "content": m["content"]}
        for m in history
        if m.get("role") in ("user", "assistant") and m.get("content")
    ]

    try:
        provider = llm or get_llm_provider()
        response = await provider.complete(messages=messages, system=system)
    except Exception as e:
        logger.warning("LLM unavailable, answering from data only: %s", e)
        return AdvisorReply(content=data_only_answer(fused), model="n/a", used_llm=False)

    if not response.content.strip():
        logger.warning("LLM returned an empty completion (model=%s)", response.model)
        return AdvisorReply(content=data_only_answer(fused), model=response.model, used_llm=False)

    logger.info(
        "Advisor answer generated (model=%s, tokens=%d/%d)",
        response.model, response.input_tokens, response.output_tokens,
    )
    return AdvisorReply(
        content=response.content,
        model=response.model,
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
    )


def data_only_answer(fused: FusedContext) -> str:
    """Plain summary of the fused data, used when no model answer is available."""
    lines: list[str] = []
    for company in fused.companies:
        quote = company.quote
        lines.append(
            f"{company.name} ({company.symbol}) last traded at SAR {quote.price:.2f}, "
            f"{quote.percent_change:+.2f}% on the day."
        )
    lines.extend(fused.key_insights)

    if not lines:
        return (
            "I could not find market data or documents for this question. "
            "Try naming a Tadawul-listed company or sector."
        )
    lines.append(
        f"Overall sentiment is {fused.market_sentiment} with {fused.risk_level} risk."
    )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _format_company(company: CompanyData) -> str:
    quote = company.quote
    lines = [
        f"{company.name} ({company.symbol}, {company.match.sector or 'unclassified'})",
        f"  Price: SAR {quote.price:.2f}  Change: {quote.change:+.2f} ({quote.percent_change:+.2f}%)",
        f"  Volume: {quote.volume:,.0f}",
    ]
    f = company.fundamentals
    if f is not None:
        if f.market_cap is not None:
            lines.append(f"  Market cap: SAR {f.market_cap / 1e9:.2f} billion")
        if f.pe_ratio is not None:
            lines.append(f"  P/E: {f.pe_ratio:.2f}")
        if f.profit_margin is not None:
            lines.append(f"  Net margin: {f.profit_margin:.2%}")
        if f.debt_to_equity is not None:
            lines.append(f"  Debt/Equity: {f.debt_to_equity:.2f}")
        if f.dividend_yield is not None:
            lines.append(f"  Dividend yield: {f.dividend_yield:.2%}")
    for signal in company.signals:
        lines.append(f"  Signal: {signal.indicator} {signal.direction} ({signal.strength:.2f})")
    return "\n".join(lines)


def _format_documents(documents: list[DocumentEvidence]) -> str:
    blocks = []
    for index, evidence in enumerate(documents, start=1):
        title = evidence.result.document.metadata.title
        block = [f"[Document {index}: {title}]"]
        block.extend(f"- {excerpt}" for excerpt in evidence.excerpts)
        blocks.append("\n".join(block))
    return "\n\n".join(blocks)
