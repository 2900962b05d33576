# =============================================================================
# Lexical Analyzer — Entities, Sentiment and Risk from Free Text
# =============================================================================
#
# Pure functions over the gazetteer. No I/O, no state.
#
# COMPANY MATCHING (per known instrument):
#   signal               weight   fires when
#   ------------------   ------   -------------------------------------------
#   symbol                 0.4    ticker appears in the text
#   name                   0.3    English name appears (case-insensitive)
#   localized name         0.3    Arabic name appears
#   partial                0.2    only if none of the above: a text token
#                                 (len > 3) shares a prefix with / contains /
#                                 is contained in a name word (len > 3)
#   contextual             0.1    a term of the instrument's sector appears
#   confidence = clamp(sum, 0, 1); matches below 0.3 are discarded.
#
# When nothing matches but the previous turn was about a company and the
# text still talks about "the company" (price, shares, it, ...), that
# company is carried forward at a fixed 0.4 confidence.
#
# SENTIMENT / RISK: bag-of-words scores with asymmetric thresholds.
#   analyzer sentiment: bullish > 1, bearish < -1
#   message metadata sentiment: bullish > 0, bearish < 0
# The two families are intentionally different and must not be unified.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from tadawul_advisor.services.context_window import FinancialMetadata
from tadawul_advisor.services.gazetteer import (
    BEARISH_TERMS,
    BULLISH_TERMS,
    COMPANY_REFERENCE_TERMS,
    ECONOMIC_INDICATORS,
    FUNDAMENTAL_FACTORS,
    HEDGING_TERMS,
    HIGH_RISK_TERMS,
    INSTRUMENT_TYPES,
    LEVERAGE_TERMS,
    LOW_RISK_TERMS,
    MARKET_NAMES,
    METRIC_TERMS,
    SAUDI_MARKET_TERMS,
    SECTOR_TERMS,
    TADAWUL_INSTRUMENTS,
    TECHNICAL_INDICATORS,
    TIMEFRAME_TERMS,
    Instrument,
)

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+(?:[/'&-]\w+)*")
_NUMBER_RE = re.compile(r"\d")

# Name words too common to identify one company on a partial match.
_GENERIC_NAME_WORDS = frozenset({
    "saudi", "bank", "group", "holding", "company", "national", "arabian",
    "power", "cement", "first", "services",
})

SIGNAL_WEIGHTS = {
    "symbol": 0.4,
    "name": 0.3,
    "localized_name": 0.3,
    "partial": 0.2,
    "contextual": 0.1,
}
MIN_MATCH_CONFIDENCE = 0.3
CONTINUED_DISCUSSION_CONFIDENCE = 0.4
SENTIMENT_WINDOW = 5


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class CompanyMatch:
    """A company the text is judged to be about."""

    symbol: str
    name: str
    sector: str | None
    is_continued_discussion: bool
    confidence: float  # [0, 1]
    sentiment: str = "neutral"  # tone of the words around this company


@dataclass
class QueryAnalysis:
    """Everything the lexical pass extracts from one user message."""

    companies: list[CompanyMatch] = field(default_factory=list)
    sectors: list[str] = field(default_factory=list)
    technical_indicators: list[str] = field(default_factory=list)
    fundamental_factors: list[str] = field(default_factory=list)
    economic_indicators: list[str] = field(default_factory=list)
    sentiment: str = "neutral"
    risk_level: str = "medium"
    analysis_type: str = "general"
    confidence: float = 0.5  # [0.1, 0.95]
    mentions_saudi_market: bool = False

    @property
    def explicit_companies(self) -> list[CompanyMatch]:
        return [c for c in self.companies if not c.is_continued_discussion]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze_query(
    text: str,
    current_company: Instrument | None = None,
    instruments: Iterable[Instrument] = TADAWUL_INSTRUMENTS,
) -> QueryAnalysis:
    """Run the full lexical pass over one message."""
    text_lower = text.lower()
    tokens = tokenize(text)

    companies = match_companies(text, current_company, instruments)
    for company in companies:
        if not company.is_continued_discussion:
            company.sentiment = company_sentiment(text, company)
    technical = _find_terms(text_lower, TECHNICAL_INDICATORS)
    fundamental = _find_terms(text_lower, FUNDAMENTAL_FACTORS)
    economic = _find_terms(text_lower, ECONOMIC_INDICATORS)
    vocabulary_sectors = _find_sectors(text_lower)
    saudi = bool(_find_terms(text_lower, SAUDI_MARKET_TERMS))

    sectors: dict[str, None] = {}
    for company in companies:
        if company.sector:
            sectors[company.sector] = None
    for sector in vocabulary_sectors:
        sectors[sector] = None

    confidence = _overall_confidence(
        companies=companies,
        has_technical=bool(technical),
        has_fundamental=bool(fundamental),
        has_sector_terms=bool(vocabulary_sectors),
        has_numbers=bool(_NUMBER_RE.search(text)),
        is_question="?" in text,
        mentions_saudi_market=saudi,
        word_count=len(text.split()),
    )

    analysis = QueryAnalysis(
        companies=companies,
        sectors=list(sectors),
        technical_indicators=technical,
        fundamental_factors=fundamental,
        economic_indicators=economic,
        sentiment=score_to_sentiment(sentiment_score(tokens)),
        risk_level=assess_risk_level(text_lower),
        analysis_type=determine_analysis_type(technical, fundamental),
        confidence=confidence,
        mentions_saudi_market=saudi,
    )
    logger.debug(
        "Analyzed query: companies=%s sectors=%s confidence=%.2f",
        [c.symbol for c in companies], analysis.sectors, confidence,
    )
    return analysis


def match_companies(
    text: str,
    current_company: Instrument | None = None,
    instruments: Iterable[Instrument] = TADAWUL_INSTRUMENTS,
) -> list[CompanyMatch]:
    """Score every known instrument against the text, best first."""
    text_lower = text.lower()
    tokens = tokenize(text)
    token_set = set(tokens)
    long_tokens = [t for t in tokens if len(t) > 3]

    matches: list[CompanyMatch] = []
    for instrument in instruments:
        symbol_hit = bool(instrument.symbol) and instrument.symbol in text
        name_hit = bool(instrument.name) and instrument.name.lower() in text_lower
        localized_hit = bool(instrument.name_ar) and instrument.name_ar in text
        partial_hit = False
        if not (symbol_hit or name_hit or localized_hit):
            partial_hit = _partial_match(long_tokens, instrument)
        contextual_hit = _sector_context(text_lower, token_set, instrument.sector)

        confidence = clamp(
            SIGNAL_WEIGHTS["symbol"] * symbol_hit
            + SIGNAL_WEIGHTS["name"] * name_hit
            + SIGNAL_WEIGHTS["localized_name"] * localized_hit
            + SIGNAL_WEIGHTS["partial"] * partial_hit
            + SIGNAL_WEIGHTS["contextual"] * contextual_hit,
            0.0,
            1.0,
        )
        # Rounded so 0.2 + 0.1 is not lost to float error at the floor.
        if round(confidence, 6) < MIN_MATCH_CONFIDENCE:
            continue
        matches.append(CompanyMatch(
            symbol=instrument.symbol,
            name=instrument.display_name,
            sector=instrument.sector,
            is_continued_discussion=False,
            confidence=confidence,
        ))

    matches.sort(key=lambda m: m.confidence, reverse=True)

    if not matches and current_company is not None:
        if token_set & COMPANY_REFERENCE_TERMS:
            matches.append(CompanyMatch(
                symbol=current_company.symbol,
                name=current_company.display_name,
                sector=current_company.sector,
                is_continued_discussion=True,
                confidence=CONTINUED_DISCUSSION_CONFIDENCE,
            ))
    return matches


def sentiment_score(tokens: list[str]) -> int:
    """+1 per bullish token, -1 per bearish token."""
    score = 0
    for token in tokens:
        if token in BULLISH_TERMS:
            score += 1
        elif token in BEARISH_TERMS:
            score -= 1
    return score


def score_to_sentiment(score: int) -> str:
    if score > 1:
        return "bullish"
    if score < -1:
        return "bearish"
    return "neutral"


def company_sentiment(text: str, company: Instrument | CompanyMatch) -> str:
    """Sentiment of the ±5-token window around the company's first mention."""
    tokens = tokenize(text)
    keys = {company.symbol.lower()}
    if company.name:
        words = tokenize(company.name)
        distinctive = [w for w in words if w not in _GENERIC_NAME_WORDS]
        keys.update(distinctive or words)
    for index, token in enumerate(tokens):
        if token in keys:
            start = max(0, index - SENTIMENT_WINDOW)
            window = tokens[start:index + SENTIMENT_WINDOW + 1]
            return score_to_sentiment(sentiment_score(window))
    return "neutral"


def assess_risk_level(text_lower: str) -> str:
    score = 0
    for term in HIGH_RISK_TERMS:
        if term in text_lower:
            score += 2
    for term in LOW_RISK_TERMS:
        if term in text_lower:
            score -= 2
    if any(term in text_lower for term in HEDGING_TERMS):
        score -= 1
    if any(term in text_lower for term in LEVERAGE_TERMS):
        score += 1

    if score > 2:
        return "high"
    if score < -1:
        return "low"
    return "medium"


def determine_analysis_type(technical: list[str], fundamental: list[str]) -> str:
    if technical and fundamental:
        return "mixed"
    if technical:
        return "technical"
    if fundamental:
        return "fundamental"
    return "general"


def determine_user_mood(text: str, analysis: QueryAnalysis) -> str:
    """Guess the user's mood from the wording and the analysis outcome."""
    text_lower = text.lower()
    if "help" in text_lower or "?" in text_lower:
        return "curious"
    if "wrong" in text_lower or "error" in text_lower:
        return "frustrated"
    if "not sure" in text_lower or "confused" in text_lower:
        return "confused"
    if analysis.confidence > 0.8:
        return {
            "bullish": "positive",
            "bearish": "negative",
        }.get(analysis.sentiment, "neutral")
    return "curious" if analysis.confidence < 0.5 else "neutral"


# ---------------------------------------------------------------------------
# Message Metadata
# ---------------------------------------------------------------------------


def extract_message_metadata(text: str) -> FinancialMetadata:
    """
    Tag a message with generic financial vocabulary.

    Uses the looser `> 0` / `< 0` thresholds for sentiment and risk.
    """
    text_lower = text.lower()
    tokens = tokenize(text)

    metrics = _find_terms(text_lower, METRIC_TERMS)
    technical = _find_terms(text_lower, TECHNICAL_INDICATORS)
    fundamental = _find_terms(text_lower, FUNDAMENTAL_FACTORS)

    confidence = 0.5
    if metrics:
        confidence += 0.1
    if technical:
        confidence += 0.1
    if fundamental:
        confidence += 0.1

    score = sentiment_score(tokens)
    if score > 0:
        sentiment = "bullish"
    elif score < 0:
        sentiment = "bearish"
    else:
        sentiment = "neutral"

    risk = sum(term in text_lower for term in HIGH_RISK_TERMS) - sum(
        term in text_lower for term in LOW_RISK_TERMS
    )
    risk_level = "high" if risk > 0 else "low" if risk < 0 else "medium"

    return FinancialMetadata(
        instruments=_find_terms(text_lower, INSTRUMENT_TYPES),
        companies=_capitalised_names(text),
        markets=_find_terms(text_lower, MARKET_NAMES),
        metrics=metrics,
        timeframes=_find_terms(text_lower, TIMEFRAME_TERMS),
        sentiment=sentiment,
        confidence_score=min(confidence, 1.0),
        risk_level=risk_level,
        technical_indicators=technical,
        fundamental_factors=fundamental,
    )


def build_message_metadata(text: str, analysis: QueryAnalysis) -> FinancialMetadata:
    """Metadata for the context window: lexical tags plus resolved companies."""
    metadata = extract_message_metadata(text)
    metadata.instruments = [c.symbol for c in analysis.companies]
    metadata.companies = [c.name for c in analysis.companies] or metadata.companies
    metadata.confidence_score = analysis.confidence
    metadata.risk_level = analysis.risk_level
    metadata.technical_indicators = list(analysis.technical_indicators)
    metadata.fundamental_factors = list(analysis.fundamental_factors)
    return metadata


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _find_terms(text_lower: str, terms: Iterable[str]) -> list[str]:
    """Terms present in the text as whole words (original casing kept)."""
    found = []
    for term in terms:
        pattern = r"(?<!\w)" + re.escape(term.lower()) + r"(?!\w)"
        if re.search(pattern, text_lower):
            found.append(term)
    return found


def _find_sectors(text_lower: str) -> list[str]:
    return [
        sector for sector, terms in SECTOR_TERMS.items()
        if _find_terms(text_lower, terms)
    ]


def _sector_context(text_lower: str, token_set: set[str], sector: str | None) -> bool:
    if not sector:
        return False
    for term in SECTOR_TERMS.get(sector, ()):
        if " " in term:
            if term in text_lower:
                return True
        elif term in token_set:
            return True
    return False


def _partial_match(long_tokens: list[str], instrument: Instrument) -> bool:
    if not instrument.name:
        return False
    name_words = [
        w for w in tokenize(instrument.name)
        if len(w) > 3 and w not in _GENERIC_NAME_WORDS
    ]
    for token in long_tokens:
        for word in name_words:
            if token in word or word in token or token[:4] == word[:4]:
                return True
    return False


def _overall_confidence(
    companies: list[CompanyMatch],
    has_technical: bool,
    has_fundamental: bool,
    has_sector_terms: bool,
    has_numbers: bool,
    is_question: bool,
    mentions_saudi_market: bool,
    word_count: int,
) -> float:
    confidence = 0.5
    if any(not c.is_continued_discussion for c in companies):
        confidence += 0.2
    if any(c.is_continued_discussion for c in companies):
        confidence += 0.1
    if companies:
        confidence += max(c.confidence for c in companies) * 0.2
    if has_technical:
        confidence += 0.1
    if has_fundamental:
        confidence += 0.1
    if has_sector_terms:
        confidence += 0.05
    if has_numbers:
        confidence += 0.05
    if is_question:
        confidence += 0.05
    if mentions_saudi_market:
        confidence += 0.1
    if word_count < 3:
        confidence -= 0.2
    return clamp(confidence, 0.1, 0.95)


def _capitalised_names(text: str) -> list[str]:
    names: dict[str, None] = {}
    for word in text.split():
        word = word.strip(",.;:!?()\"'")
        if len(word) > 1 and word[0].isupper() and word[1].islower():
            names[word] = None
        elif re.fullmatch(r"\$?[A-Z]{1,5}", word):
            names[word] = None
    return list(names)
