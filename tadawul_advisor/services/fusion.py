# =============================================================================
# Context Fusion — Confidence, Risk & Quality Aggregation
# =============================================================================
#
# Merges the three signal sources for one message into a FusedContext:
#   - lexical analysis of the text (QueryAnalysis)
#   - per-company market data (quote, fundamentals, technical signals,
#     data reliability)
#   - retrieved documents (DocumentSearchResult)
#
# CONFIDENCE:
#   document   = 0.4·avg(relevance) + 0.3·avg(freshness) + 0.3·coverage
#                relevance = min(raw_score / 2, 1)
#                freshness = 1 - min(age_days / 30, 1)
#                coverage  = min(doc_count / 3, 1)
#   market     = 0.5·analysis.confidence
#              + 0.5·mean(match.confidence · reliability) over the companies
#                the query asked about (a failed fetch counts as 0);
#                just analysis.confidence when no company was asked about
#   overall    = min(0.6·market + 0.4·document, 0.95)
#
# RISK: one flag per finding; "high" if ≥3 flags or high_leverage,
# "medium" if ≥1, else "low".
#
# QUALITY:
#   score = 0.2·has_companies + 0.3·fundamental_q + 0.2·technical_q
#         + 0.3·document_q → comprehensive (>0.8) / good (>0.6) /
#           limited (>0.3) / basic
#
# Insights and follow-up questions are generated by fixed, ordered rules,
# deduplicated, then cut to 5 and 3 entries.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from tadawul_advisor.models.market import FUNDAMENTAL_GROUPS, Fundamentals, Quote
from tadawul_advisor.services.analyzer import CompanyMatch, QueryAnalysis, clamp
from tadawul_advisor.services.document_store import DocumentSearchResult, summarize_document
from tadawul_advisor.services.market_quality import Reliability
from tadawul_advisor.services.technical import TechnicalSignal

logger = logging.getLogger(__name__)

MAX_OVERALL_CONFIDENCE = 0.95
MAX_INSIGHTS = 5
MAX_QUESTIONS = 3
FRESHNESS_HORIZON_DAYS = 30.0
COVERAGE_TARGET_DOCS = 3
RELEVANCE_SCALE = 2.0

LARGE_MOVE_PCT = 5.0
HIGH_PE = 30.0
HIGH_LEVERAGE = 2.0
STRONG_SIGNAL = 0.7
TOP_DOCUMENT_RELEVANCE = 0.8
MOVER_PCT = 3.0
HIGH_MARGIN = 0.15
SECTOR_MOVE_PCT = 2.0
SENTIMENT_BIAS = 0.5

DEFAULT_QUESTIONS = (
    "What are the key factors driving the Saudi market today?",
    "Which sectors are showing the strongest momentum?",
    "How might current economic conditions affect the market?",
)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class CompanyData:
    """Everything gathered for one company whose quote fetch succeeded."""

    match: CompanyMatch
    quote: Quote
    fundamentals: Fundamentals | None = None
    signals: list[TechnicalSignal] = field(default_factory=list)
    reliability: Reliability | None = None

    @property
    def symbol(self) -> str:
        return self.match.symbol

    @property
    def name(self) -> str:
        return self.match.name


@dataclass
class DocumentEvidence:
    result: DocumentSearchResult
    relevance: float   # [0, 1]
    freshness: float   # [0, 1]
    excerpts: list[str] = field(default_factory=list)

    @property
    def document_id(self) -> str:
        return self.result.document.metadata.id


@dataclass
class ConfidenceBreakdown:
    market: float
    documents: float
    overall: float


@dataclass
class FusedContext:
    analysis: QueryAnalysis
    companies: list[CompanyData]
    documents: list[DocumentEvidence]
    technical_signals: list[TechnicalSignal]
    market_sentiment: str
    risk_level: str
    risk_flags: list[str]
    confidence: ConfidenceBreakdown
    quality: str
    key_insights: list[str]
    suggested_questions: list[str]
    sector_analysis: list[str]
    market_trends: list[str]
    fundamental_factors: list[str]

    @property
    def has_market_data(self) -> bool:
        return bool(self.companies)

    @property
    def has_documents(self) -> bool:
        return bool(self.documents)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def fuse(
    analysis: QueryAnalysis,
    requested: Sequence[CompanyMatch],
    companies: Sequence[CompanyData],
    documents: Sequence[DocumentSearchResult],
    now: datetime | None = None,
) -> FusedContext:
    """Combine analysis, market data and documents into one scored context."""
    current = now or datetime.now(UTC)
    evidence = [_document_evidence(result, current) for result in documents]
    evidence.sort(key=lambda e: e.relevance, reverse=True)
    signals = [s for company in companies for s in company.signals]

    doc_conf = document_confidence(evidence)
    market_conf = market_confidence(analysis, requested, companies)
    breakdown = ConfidenceBreakdown(
        market=market_conf,
        documents=doc_conf,
        overall=overall_confidence(market_conf, doc_conf),
    )

    risk_flags = collect_risk_flags(companies, signals, evidence)
    risk_level = risk_level_from_flags(risk_flags)
    sentiment = market_sentiment(signals, analysis.sentiment)
    quality = grade_quality(companies, signals, doc_conf, bool(evidence))

    fused = FusedContext(
        analysis=analysis,
        companies=list(companies),
        documents=evidence,
        technical_signals=signals,
        market_sentiment=sentiment,
        risk_level=risk_level,
        risk_flags=risk_flags,
        confidence=breakdown,
        quality=quality,
        key_insights=[],
        suggested_questions=[],
        sector_analysis=_sector_analysis(analysis, companies),
        market_trends=_market_trends(sentiment, companies),
        fundamental_factors=_fundamental_factors(analysis, companies),
    )
    fused.key_insights = generate_insights(fused)
    fused.suggested_questions = generate_questions(fused)

    logger.info(
        "Fused context: companies=%d documents=%d confidence=%.2f risk=%s quality=%s",
        len(companies), len(evidence), breakdown.overall, risk_level, quality,
    )
    return fused


def document_confidence(evidence: Sequence[DocumentEvidence]) -> float:
    if not evidence:
        return 0.0
    avg_relevance = sum(e.relevance for e in evidence) / len(evidence)
    avg_freshness = sum(e.freshness for e in evidence) / len(evidence)
    coverage = min(len(evidence) / COVERAGE_TARGET_DOCS, 1.0)
    return clamp(avg_relevance * 0.4 + avg_freshness * 0.3 + coverage * 0.3, 0.0, 1.0)


def market_confidence(
    analysis: QueryAnalysis,
    requested: Sequence[CompanyMatch],
    companies: Sequence[CompanyData],
) -> float:
    if not requested:
        return clamp(analysis.confidence, 0.0, 1.0)

    by_symbol = {c.symbol: c for c in companies}
    per_company = []
    for match in requested:
        data = by_symbol.get(match.symbol)
        if data is None:
            per_company.append(0.0)
            continue
        reliability = data.reliability.normalized if data.reliability else 0.0
        per_company.append(match.confidence * reliability)

    evidence = sum(per_company) / len(per_company)
    return clamp(0.5 * analysis.confidence + 0.5 * evidence, 0.0, 1.0)


def overall_confidence(market: float, documents: float) -> float:
    return clamp(market * 0.6 + documents * 0.4, 0.0, MAX_OVERALL_CONFIDENCE)


def collect_risk_flags(
    companies: Sequence[CompanyData],
    signals: Sequence[TechnicalSignal],
    evidence: Sequence[DocumentEvidence],
) -> list[str]:
    flags: list[str] = []
    if any(abs(c.quote.percent_change) > LARGE_MOVE_PCT for c in companies):
        flags.append("large_price_move")

    fundamentals = [c.fundamentals for c in companies if c.fundamentals is not None]
    if any(f.pe_ratio is not None and f.pe_ratio > HIGH_PE for f in fundamentals):
        flags.append("high_valuation")
    if any(f.profit_margin is not None and f.profit_margin < 0 for f in fundamentals):
        flags.append("negative_margin")
    if any(f.debt_to_equity is not None and f.debt_to_equity > HIGH_LEVERAGE for f in fundamentals):
        flags.append("high_leverage")

    if any(s.direction == "bearish" and s.strength > STRONG_SIGNAL for s in signals):
        flags.append("bearish_technical")
    if any(
        e.result.document.metadata.category == "regulation"
        and e.relevance > TOP_DOCUMENT_RELEVANCE
        for e in evidence
    ):
        flags.append("regulatory_exposure")
    return flags


def risk_level_from_flags(flags: Sequence[str]) -> str:
    if len(set(flags)) >= 3 or "high_leverage" in flags:
        return "high"
    if flags:
        return "medium"
    return "low"


def market_sentiment(signals: Sequence[TechnicalSignal], fallback: str) -> str:
    """Net signed signal strength; the text's own sentiment when there are no signals."""
    if not signals:
        return fallback
    net = sum(s.signed_strength for s in signals)
    if net > SENTIMENT_BIAS:
        return "bullish"
    if net < -SENTIMENT_BIAS:
        return "bearish"
    return "neutral"


def grade_quality(
    companies: Sequence[CompanyData],
    signals: Sequence[TechnicalSignal],
    document_quality: float,
    has_documents: bool,
) -> str:
    with_fundamentals = [c.fundamentals for c in companies if c.fundamentals and not c.fundamentals.is_empty]
    fundamental_quality = 0.0
    if with_fundamentals:
        fundamental_quality = sum(
            len(f.groups_present) / len(FUNDAMENTAL_GROUPS) for f in with_fundamentals
        ) / len(with_fundamentals)
    technical_quality = sum(s.strength for s in signals) / len(signals) if signals else 0.0

    score = (
        0.2 * bool(companies)
        + 0.3 * fundamental_quality * bool(with_fundamentals)
        + 0.2 * technical_quality * bool(signals)
        + 0.3 * document_quality * has_documents
    )
    if score > 0.8:
        return "comprehensive"
    if score > 0.6:
        return "good"
    if score > 0.3:
        return "limited"
    return "basic"


def generate_insights(fused: FusedContext) -> list[str]:
    insights: list[str] = []

    if fused.companies:
        insights.append(
            f"Overall market signal is {fused.market_sentiment} across "
            f"{len(fused.companies)} tracked compan{'y' if len(fused.companies) == 1 else 'ies'}"
        )

    for company in fused.companies:
        change = company.quote.percent_change
        if abs(change) > MOVER_PCT:
            verb = "gained" if change > 0 else "lost"
            insights.append(f"{company.name} {verb} {abs(change):.2f}% in the latest session")

    for signal in fused.technical_signals:
        if signal.strength > STRONG_SIGNAL:
            insights.append(f"Strong {signal.direction} signal for {signal.symbol}: {signal.description}")

    for company in fused.companies:
        margin = company.fundamentals.profit_margin if company.fundamentals else None
        if margin is not None and margin > HIGH_MARGIN:
            insights.append(f"{company.name} maintains a high net margin of {margin:.1%}")

    for evidence in fused.documents:
        if evidence.relevance > TOP_DOCUMENT_RELEVANCE and evidence.excerpts:
            title = evidence.result.document.metadata.title
            insights.append(f"{title}: {evidence.excerpts[0]}")

    best, worst = _sector_extremes(fused.companies)
    if best is not None and best[1] > SECTOR_MOVE_PCT:
        insights.append(f"{best[0]} is the strongest sector today ({best[1]:+.2f}%)")
    if worst is not None and worst[1] < -SECTOR_MOVE_PCT:
        insights.append(f"{worst[0]} is the weakest sector today ({worst[1]:+.2f}%)")

    if fused.risk_level == "high":
        readable = ", ".join(flag.replace("_", " ") for flag in fused.risk_flags)
        insights.append(f"High risk profile: {readable}")

    return _dedupe(insights)[:MAX_INSIGHTS]


def generate_questions(fused: FusedContext) -> list[str]:
    questions: list[str] = []
    analysis = fused.analysis

    lead = fused.companies[0].match if fused.companies else (
        analysis.companies[0] if analysis.companies else None
    )
    if lead is not None:
        questions.append(f"What's your analysis of {lead.name}'s recent performance?")
        questions.append(f"How does {lead.name} compare to its sector peers?")

    if analysis.sectors:
        sector = analysis.sectors[0]
        questions.append(f"What's your outlook for the {sector} sector?")
        questions.append(f"Which companies in the {sector} sector show the most promise?")

    if analysis.technical_indicators:
        questions.append(
            f"How do the {analysis.technical_indicators[0]} levels compare to historical trends?"
        )
    if analysis.fundamental_factors:
        questions.append(
            f"How do these {analysis.fundamental_factors[0]} metrics compare to sector averages?"
        )

    if len(questions) < MAX_QUESTIONS:
        questions.extend(DEFAULT_QUESTIONS)
    return _dedupe(questions)[:MAX_QUESTIONS]


def sentence_excerpt(content: str, segment: str, max_chars: int = 280) -> str:
    """Widen a matched segment to whole sentences of the source text."""
    segment = segment.strip()
    start = content.find(segment) if segment else -1
    if start < 0:
        return segment[:max_chars]
    end = start + len(segment)

    boundary = max(content.rfind(ch, 0, start) for ch in ".!?\n")
    sentence_start = boundary + 1 if boundary >= 0 else 0
    ends = [i for i in (content.find(ch, end) for ch in ".!?\n") if i >= 0]
    sentence_end = min(ends) + 1 if ends else len(content)

    excerpt = content[sentence_start:sentence_end].strip()
    if len(excerpt) > max_chars:
        excerpt = excerpt[:max_chars].rsplit(" ", 1)[0] + "..."
    return excerpt


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _document_evidence(result: DocumentSearchResult, now: datetime) -> DocumentEvidence:
    document = result.document
    age_days = max(0.0, (now - document.metadata.last_updated).total_seconds() / 86400)
    freshness = 1 - min(age_days / FRESHNESS_HORIZON_DAYS, 1.0)
    relevance = min(result.relevance_score / RELEVANCE_SCALE, 1.0)

    excerpts = _dedupe(
        sentence_excerpt(document.content, segment)
        for segment in result.matched_segments[:3]
    )
    if not excerpts:
        summary = summarize_document(document.content)
        excerpts = [summary] if summary else []
    return DocumentEvidence(result=result, relevance=relevance, freshness=freshness, excerpts=excerpts)


def _sector_moves(companies: Sequence[CompanyData]) -> dict[str, list[float]]:
    moves: dict[str, list[float]] = {}
    for company in companies:
        if company.match.sector:
            moves.setdefault(company.match.sector, []).append(company.quote.percent_change)
    return moves


def _sector_extremes(
    companies: Sequence[CompanyData],
) -> tuple[tuple[str, float] | None, tuple[str, float] | None]:
    averages = [
        (sector, sum(changes) / len(changes))
        for sector, changes in _sector_moves(companies).items()
    ]
    if not averages:
        return None, None
    return max(averages, key=lambda a: a[1]), min(averages, key=lambda a: a[1])


def _sector_analysis(analysis: QueryAnalysis, companies: Sequence[CompanyData]) -> list[str]:
    moves = _sector_moves(companies)
    lines = []
    for sector, changes in moves.items():
        average = sum(changes) / len(changes)
        lines.append(f"{sector}: average move {average:+.2f}% across {len(changes)} tracked")
    for sector in analysis.sectors:
        if sector not in moves:
            lines.append(f"{sector}: discussed, no live data")
    return lines


def _market_trends(sentiment: str, companies: Sequence[CompanyData]) -> list[str]:
    if not companies:
        return []
    trends = [f"Net technical bias: {sentiment}"]
    advancing = sum(1 for c in companies if c.quote.percent_change > 0)
    declining = sum(1 for c in companies if c.quote.percent_change < 0)
    trends.append(f"{advancing} advancing, {declining} declining")
    return trends


def _fundamental_factors(analysis: QueryAnalysis, companies: Sequence[CompanyData]) -> list[str]:
    factors = list(analysis.fundamental_factors)
    for company in companies:
        f = company.fundamentals
        if f is None:
            continue
        if f.pe_ratio is not None:
            factors.append(f"{company.symbol} P/E {f.pe_ratio:.1f}")
        if f.profit_margin is not None:
            factors.append(f"{company.symbol} net margin {f.profit_margin:.1%}")
        if f.debt_to_equity is not None:
            factors.append(f"{company.symbol} debt/equity {f.debt_to_equity:.2f}")
        if f.dividend_yield is not None:
            factors.append(f"{company.symbol} dividend yield {f.dividend_yield:.1%}")
    return _dedupe(factors)


def _dedupe(items) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        key = re.sub(r"\s+", " ", item).strip()
        if key and key not in seen:
            seen[key] = None
    return list(seen)
