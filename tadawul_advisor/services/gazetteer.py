# =============================================================================
# Gazetteer — Tadawul Instruments and Financial Vocabulary
# =============================================================================
#
# Static reference data used by the lexical analyzer:
#   - TADAWUL_INSTRUMENTS: listed companies (ticker, English name, Arabic
#     name, sector). Arabic name and sector are optional.
#   - SECTOR_TERMS: vocabulary that places a query near a sector
#   - indicator / factor / sentiment / risk vocabularies
#
# Terms are stored lower-case unless they are matched case-sensitively
# (tickers, Arabic names).
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Instrument:
    """A listed company known to the analyzer."""

    symbol: str                 # Tadawul ticker, e.g. "2222"
    name: str | None            # English name, e.g. "Saudi Aramco"
    name_ar: str | None = None  # Arabic name
    sector: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.name_ar or self.symbol


TADAWUL_INSTRUMENTS: tuple[Instrument, ...] = (
    # Energy
    Instrument("2222", "Saudi Aramco", "أرامكو السعودية", "Energy"),
    Instrument("2381", "Arabian Drilling", "شركة الحفر العربية", "Energy"),
    Instrument("2380", "Petro Rabigh", "بترورابغ", "Energy"),
    Instrument("2223", "Luberef", "لوبريف", "Energy"),
    Instrument("4200", "Aldrees", "الدريس", "Energy"),
    # Materials
    Instrument("2010", "SABIC", "سابك", "Materials"),
    Instrument("2020", "SABIC Agri-Nutrients", "سابك للمغذيات الزراعية", "Materials"),
    Instrument("1211", "Maaden", "معادن", "Materials"),
    Instrument("2310", "Sipchem", "سبكيم", "Materials"),
    Instrument("2290", "Yansab", "ينساب", "Materials"),
    Instrument("2350", "Saudi Kayan", "كيان السعودية", "Materials"),
    Instrument("3030", "Saudi Cement", "أسمنت السعودية", "Materials"),
    Instrument("3092", "Riyadh Cement", "أسمنت الرياض", "Materials"),
    # Banks
    Instrument("1120", "Al Rajhi Bank", "مصرف الراجحي", "Banks"),
    Instrument("1180", "Saudi National Bank", "البنك الأهلي السعودي", "Banks"),
    Instrument("1010", "Riyad Bank", "بنك الرياض", "Banks"),
    Instrument("1150", "Alinma Bank", "مصرف الإنماء", "Banks"),
    Instrument("1060", "Saudi Awwal Bank", "البنك السعودي الأول", "Banks"),
    # Telecommunication
    Instrument("7010", "STC", "اس تي سي", "Telecommunication Services"),
    Instrument("7020", "Mobily", "موبايلي", "Telecommunication Services"),
    Instrument("7030", "Zain KSA", "زين السعودية", "Telecommunication Services"),
    # Utilities
    Instrument("2082", "ACWA Power", "أكوا باور", "Utilities"),
    Instrument("5110", "Saudi Electricity", "الكهرباء السعودية", "Utilities"),
    # Food, retail, health care, transportation
    Instrument("2280", "Almarai", "المراعي", "Food & Beverages"),
    Instrument("2050", "Savola Group", "مجموعة صافولا", "Food & Beverages"),
    Instrument("4190", "Jarir", "جرير", "Consumer Discretionary Distribution & Retail"),
    Instrument("4164", "Nahdi", "النهدي", "Consumer Staples Distribution & Retail"),
    Instrument("4013", "Sulaiman Alhabib", "سليمان الحبيب", "Health Care Equipment & Services"),
    Instrument("4030", "Bahri", "البحري", "Transportation"),
    Instrument("4263", "SAL", "سال", "Transportation"),
    # Partially described listings are tolerated by the analyzer.
    Instrument("4142", "Riyadh Cables", None, "Capital Goods"),
    Instrument("1810", "Seera", "سيرا", None),
)


def find_instrument(symbol: str) -> Instrument | None:
    """Look up an instrument by ticker (accepts "2222" or "2222:TADAWUL")."""
    ticker = symbol.split(":", 1)[0].split(".", 1)[0]
    for instrument in TADAWUL_INSTRUMENTS:
        if instrument.symbol == ticker:
            return instrument
    return None


# ---------------------------------------------------------------------------
# Sector vocabulary
# ---------------------------------------------------------------------------

SECTOR_TERMS: dict[str, tuple[str, ...]] = {
    "Energy": ("energy", "oil", "gas", "crude", "petroleum", "refining", "drilling", "opec"),
    "Materials": ("materials", "petrochemical", "petrochemicals", "chemicals", "mining", "cement", "fertilizer", "steel"),
    "Banks": ("bank", "banks", "banking", "lending", "loans", "deposits", "islamic finance", "financial"),
    "Telecommunication Services": ("telecom", "telecommunication", "mobile", "5g", "broadband", "telco"),
    "Utilities": ("utilities", "utility", "electricity", "power", "renewable", "water"),
    "Food & Beverages": ("food", "dairy", "beverages", "poultry", "agriculture"),
    "Consumer Discretionary Distribution & Retail": ("retail", "consumer", "stores", "bookstore"),
    "Consumer Staples Distribution & Retail": ("pharmacy", "grocery", "supermarket", "staples"),
    "Health Care Equipment & Services": ("healthcare", "health care", "hospital", "hospitals", "medical"),
    "Transportation": ("transportation", "shipping", "logistics", "aviation", "freight"),
    "Capital Goods": ("industrial", "manufacturing", "cables", "construction"),
}


# ---------------------------------------------------------------------------
# Analysis vocabulary
# ---------------------------------------------------------------------------

TECHNICAL_INDICATORS: tuple[str, ...] = (
    "RSI", "MACD", "moving average", "bollinger bands", "support", "resistance",
    "volume", "momentum", "trend", "breakout", "consolidation", "divergence",
    "fibonacci", "chart pattern", "candlestick", "oscillator", "volatility",
)

FUNDAMENTAL_FACTORS: tuple[str, ...] = (
    "PE ratio", "P/E", "EPS", "revenue", "earnings", "profit margin", "cash flow",
    "debt", "assets", "liabilities", "market cap", "dividend", "book value",
    "ROE", "ROI", "EBITDA", "gross margin", "operating margin", "net margin",
)

ECONOMIC_INDICATORS: tuple[str, ...] = (
    "GDP", "inflation", "interest rates", "unemployment", "CPI", "PPI",
    "retail sales", "PMI", "trade balance", "SAMA", "oil price", "vision 2030",
)

BULLISH_TERMS: frozenset[str] = frozenset({
    "up", "rise", "rising", "grow", "growing", "positive", "bullish",
    "outperform", "buy", "strong", "gain", "gains", "rally", "upside",
})

BEARISH_TERMS: frozenset[str] = frozenset({
    "down", "fall", "falling", "decline", "declining", "negative", "bearish",
    "underperform", "sell", "weak", "loss", "losses", "drop", "downside",
})

HIGH_RISK_TERMS: tuple[str, ...] = (
    "volatile", "risky", "speculative", "aggressive", "unstable", "uncertain",
)

LOW_RISK_TERMS: tuple[str, ...] = (
    "safe", "stable", "conservative", "defensive", "reliable",
)

HEDGING_TERMS: tuple[str, ...] = ("hedge", "diversif")
LEVERAGE_TERMS: tuple[str, ...] = ("leverage", "margin")

# Words that keep a conversation on the company discussed in the prior turn.
COMPANY_REFERENCE_TERMS: frozenset[str] = frozenset({
    "company", "stock", "share", "shares", "price", "earnings", "dividend",
    "dividends", "revenue", "profit", "performance", "valuation", "it", "its",
    "they", "their", "this", "that",
})

SAUDI_MARKET_TERMS: tuple[str, ...] = (
    "tadawul", "tasi", "saudi", "riyal", "sar", "nomu", "cma", "riyadh",
    "تداول", "السوق السعودية", "تاسي",
)

# General market vocabulary used to tag message metadata.
MARKET_NAMES: tuple[str, ...] = (
    "tadawul", "tasi", "nomu", "market", "exchange", "trading",
)

METRIC_TERMS: tuple[str, ...] = (
    "price", "volume", "volatility", "return", "yield",
    "ratio", "growth", "loss", "gain", "percentage",
)

TIMEFRAME_TERMS: tuple[str, ...] = (
    "day", "week", "month", "year", "quarter",
    "short-term", "long-term", "intraday",
)

INSTRUMENT_TYPES: tuple[str, ...] = (
    "stock", "bond", "sukuk", "etf", "reit", "option", "future",
    "dividend", "mutual fund", "index", "commodity",
)
