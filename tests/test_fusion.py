# =============================================================================
# Unit Tests — Context Fusion
# =============================================================================
#
# Fusion is pure: every input is built by hand here.
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from tadawul_advisor.models.market import Fundamentals, Quote
from tadawul_advisor.services.analyzer import CompanyMatch, QueryAnalysis
from tadawul_advisor.services.document_store import (
    DocumentMetadata,
    DocumentSearchResult,
    FinancialDocument,
)
from tadawul_advisor.services.fusion import (
    DEFAULT_QUESTIONS,
    MAX_INSIGHTS,
    CompanyData,
    DocumentEvidence,
    document_confidence,
    fuse,
    generate_questions,
    grade_quality,
    market_confidence,
    market_sentiment,
    overall_confidence,
    risk_level_from_flags,
    sentence_excerpt,
)
from tadawul_advisor.services.market_quality import Reliability
from tadawul_advisor.services.technical import TechnicalSignal, derive_signals

NOW = datetime(2024, 6, 1, tzinfo=UTC)

ARAMCO = CompanyMatch(
    symbol="2222", name="Saudi Aramco", sector="Energy",
    is_continued_discussion=False, confidence=0.7,
)
SABIC = CompanyMatch(
    symbol="2010", name="SABIC", sector="Materials",
    is_continued_discussion=False, confidence=0.3,
)
PERFECT = Reliability(data_completeness=100, source_quality=100, overall_score=100, is_stale=False)


def _company(match: CompanyMatch, percent_change: float = 1.0, fundamentals=None) -> CompanyData:
    quote = Quote(symbol=match.symbol, price=30.0, change=0.3, percent_change=percent_change, volume=1e6)
    return CompanyData(
        match=match,
        quote=quote,
        fundamentals=fundamentals,
        signals=derive_signals(quote, fundamentals),
        reliability=PERFECT,
    )


def _result(doc_id: str, score: float = 2.0, category: str = "research",
            age_days: float = 0.0, content: str = "Aramco raised its dividend. Output is stable.",
            segments: list[str] | None = None) -> DocumentSearchResult:
    document = FinancialDocument(
        metadata=DocumentMetadata(
            id=doc_id, title=f"Doc {doc_id}", category=category,
            last_updated=NOW - timedelta(days=age_days),
        ),
        content=content,
    )
    return DocumentSearchResult(
        document=document,
        relevance_score=score,
        matched_segments=segments if segments is not None else ["Aramco raised its dividend"],
    )


def _evidence(relevance: float, freshness: float) -> DocumentEvidence:
    return DocumentEvidence(result=_result("x"), relevance=relevance, freshness=freshness)


# ---------------------------------------------------------------------------
# Test: Confidence
# ---------------------------------------------------------------------------


class TestConfidence:
    """Tests for the document / market / overall confidence formulas."""

    def test_document_confidence(self):
        evidence = [_evidence(1.0, 1.0), _evidence(1.0, 1.0)]
        assert document_confidence(evidence) == pytest.approx(0.4 + 0.3 + 0.3 * 2 / 3)
        assert document_confidence([]) == 0.0

    def test_market_confidence_blends_match_and_reliability(self):
        analysis = QueryAnalysis(confidence=0.8)
        value = market_confidence(analysis, [ARAMCO], [_company(ARAMCO)])
        assert value == pytest.approx(0.5 * 0.8 + 0.5 * 0.7)

    def test_failed_company_counts_as_zero(self):
        analysis = QueryAnalysis(confidence=0.8)
        value = market_confidence(analysis, [ARAMCO, SABIC], [_company(ARAMCO)])
        assert value == pytest.approx(0.5 * 0.8 + 0.5 * (0.7 + 0.0) / 2)

    def test_no_company_requested(self):
        assert market_confidence(QueryAnalysis(confidence=0.6), [], []) == pytest.approx(0.6)

    def test_overall_capped(self):
        assert overall_confidence(1.0, 1.0) == pytest.approx(0.95)
        assert overall_confidence(0.5, 0.5) == pytest.approx(0.5)


# ---------------------------------------------------------------------------
# Test: Risk, Sentiment, Quality
# ---------------------------------------------------------------------------


class TestRiskAndSentiment:
    def test_risk_from_flags(self):
        assert risk_level_from_flags([]) == "low"
        assert risk_level_from_flags(["large_price_move"]) == "medium"
        assert risk_level_from_flags(["high_leverage"]) == "high"
        assert risk_level_from_flags(["a", "b", "c"]) == "high"

    def test_sentiment_from_signals(self):
        bullish = TechnicalSignal("2222", "momentum", "bullish", 0.8, "")
        bearish = TechnicalSignal("2222", "moving_average", "bearish", 0.8, "")
        assert market_sentiment([bullish], "neutral") == "bullish"
        assert market_sentiment([bearish], "neutral") == "bearish"
        assert market_sentiment([bullish, bearish], "bullish") == "neutral"

    def test_sentiment_falls_back_to_text(self):
        assert market_sentiment([], "bearish") == "bearish"

    def test_quality_grades(self):
        assert grade_quality([], [], 0.0, False) == "basic"
        full = Fundamentals(symbol="2222", pe_ratio=16, profit_margin=0.2, debt_to_equity=0.4, eps=1.8)
        company = _company(ARAMCO, percent_change=5.0, fundamentals=full)
        assert grade_quality([company], company.signals, 1.0, True) == "comprehensive"


# ---------------------------------------------------------------------------
# Test: fuse()
# ---------------------------------------------------------------------------


class TestFuse:
    """End-to-end fusion over hand-built inputs."""

    def test_large_mover(self):
        analysis = QueryAnalysis(companies=[ARAMCO], sectors=["Energy"], confidence=0.9)
        fused = fuse(analysis, [ARAMCO], [_company(ARAMCO, percent_change=6.0)], [], now=NOW)

        assert fused.market_sentiment == "bullish"
        assert "large_price_move" in fused.risk_flags
        assert fused.risk_level == "medium"
        assert any("gained 6.00%" in insight for insight in fused.key_insights)
        assert fused.has_market_data and not fused.has_documents
        assert fused.confidence.documents == 0.0

    def test_documents_normalised_and_ranked(self):
        analysis = QueryAnalysis(confidence=0.5)
        documents = [_result("low", score=1.0), _result("high", score=3.0)]
        fused = fuse(analysis, [], [], documents, now=NOW)

        assert [e.document_id for e in fused.documents] == ["high", "low"]
        assert fused.documents[0].relevance == 1.0
        assert fused.documents[1].relevance == pytest.approx(0.5)
        assert fused.documents[0].excerpts == ["Aramco raised its dividend."]

    def test_freshness_decays_over_30_days(self):
        fused = fuse(QueryAnalysis(), [], [], [_result("a", age_days=15), _result("b", age_days=45)], now=NOW)
        by_id = {e.document_id: e.freshness for e in fused.documents}
        assert by_id["a"] == pytest.approx(0.5)
        assert by_id["b"] == 0.0

    def test_regulatory_flag(self):
        fused = fuse(QueryAnalysis(), [], [], [_result("r", score=2.0, category="regulation")], now=NOW)
        assert fused.risk_flags == ["regulatory_exposure"]

    def test_high_leverage_is_high_risk(self):
        levered = Fundamentals(symbol="2010", debt_to_equity=2.5)
        fused = fuse(QueryAnalysis(), [SABIC], [_company(SABIC, fundamentals=levered)], [], now=NOW)
        assert fused.risk_level == "high"
        assert any(i.startswith("High risk profile") for i in fused.key_insights)

    def test_insight_and_question_limits(self):
        companies = [_company(ARAMCO, percent_change=8.0), _company(SABIC, percent_change=-7.0)]
        analysis = QueryAnalysis(
            companies=[ARAMCO, SABIC], sectors=["Energy", "Materials"],
            technical_indicators=["RSI"], fundamental_factors=["EPS"],
        )
        documents = [_result(str(i), score=2.0) for i in range(4)]
        fused = fuse(analysis, [ARAMCO, SABIC], companies, documents, now=NOW)

        assert len(fused.key_insights) <= MAX_INSIGHTS
        assert len(fused.suggested_questions) == 3
        assert fused.suggested_questions[0] == "What's your analysis of Saudi Aramco's recent performance?"
        assert len(set(fused.key_insights)) == len(fused.key_insights)

    def test_default_questions_without_context(self):
        fused = fuse(QueryAnalysis(), [], [], [], now=NOW)
        assert fused.suggested_questions == list(DEFAULT_QUESTIONS)
        assert generate_questions(fused) == list(DEFAULT_QUESTIONS)


class TestSentenceExcerpt:
    def test_widens_to_sentence(self):
        content = "Intro line. Aramco raised its dividend by 4%. Closing words."
        assert sentence_excerpt(content, "raised its") == "Aramco raised its dividend by 4%."

    def test_unknown_segment_returned_trimmed(self):
        assert sentence_excerpt("abc", "  zzz  ") == "zzz"
