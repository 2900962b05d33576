# =============================================================================
# Market Data Quality — Validation & Reliability Scoring
# =============================================================================
#
# Sanity checks on upstream numbers before they feed confidence scoring.
# Each check starts at 100 and loses points per finding:
#
#   price          < 0.01 or > 10000          issue   -30
#                  |move| vs prev close > 20% warning -20
#   volume         < 100                      issue   -30
#   fundamentals   P/E > 200                  warning -15
#                  market cap < 1e6           issue   -25
#                  debt/equity > 5            warning -15
#
# RELIABILITY (0-100):
#   completeness = 100 - 40·(price invalid) - 30·(volume invalid)
#                      - 20·(no fundamentals)
#   source       = 0.4·price + 0.3·volume + 0.3·fundamentals (0 if absent)
#   overall      = 0.3·completeness + 0.4·source + 0.3·(50 if stale else 100)
# =============================================================================

from __future__ import annotations

import time
from dataclasses import dataclass, field

from tadawul_advisor.models.market import Fundamentals, Quote

MIN_PRICE = 0.01
MAX_PRICE = 10000.0
MAX_DAILY_CHANGE = 0.20
MIN_DAILY_VOLUME = 100.0
MAX_PE_RATIO = 200.0
MIN_MARKET_CAP = 1_000_000.0
MAX_DEBT_EQUITY = 5.0
MAX_DATA_AGE_SECONDS = 300.0


@dataclass
class ValidationResult:
    is_valid: bool
    score: float
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class Reliability:
    data_completeness: float
    source_quality: float
    overall_score: float
    is_stale: bool

    @property
    def normalized(self) -> float:
        """Overall score on a 0-1 scale."""
        return self.overall_score / 100


def validate_price(price: float, previous_close: float | None) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    score = 100.0

    if price < MIN_PRICE:
        issues.append(f"Price too low: {price}")
        score -= 30
    if price > MAX_PRICE:
        issues.append(f"Price too high: {price}")
        score -= 30

    if previous_close and previous_close > 0:
        move = abs(price - previous_close) / previous_close
        if move > MAX_DAILY_CHANGE:
            warnings.append(f"Large price change: {move * 100:.2f}%")
            score -= 20

    return ValidationResult(not issues, max(0.0, score), issues, warnings)


def validate_volume(volume: float) -> ValidationResult:
    issues: list[str] = []
    score = 100.0
    if volume < MIN_DAILY_VOLUME:
        issues.append(f"Volume too low: {volume}")
        score -= 30
    return ValidationResult(not issues, max(0.0, score), issues)


def validate_fundamentals(fundamentals: Fundamentals) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    score = 100.0

    if fundamentals.pe_ratio and fundamentals.pe_ratio > MAX_PE_RATIO:
        warnings.append(f"High P/E ratio: {fundamentals.pe_ratio}")
        score -= 15
    if fundamentals.market_cap and fundamentals.market_cap < MIN_MARKET_CAP:
        issues.append(f"Low market cap: {fundamentals.market_cap}")
        score -= 25
    if fundamentals.debt_to_equity and fundamentals.debt_to_equity > MAX_DEBT_EQUITY:
        warnings.append(f"High debt/equity ratio: {fundamentals.debt_to_equity}")
        score -= 15

    return ValidationResult(not issues, max(0.0, score), issues, warnings)


def assess_reliability(
    quote: Quote,
    fundamentals: Fundamentals | None,
    now: float | None = None,
) -> Reliability:
    """Combine the three validations and data age into one reliability score."""
    price_check = validate_price(quote.price, quote.previous_close)
    volume_check = validate_volume(quote.volume)
    fundamentals_check = validate_fundamentals(fundamentals) if fundamentals else None

    completeness = 100.0
    if not price_check.is_valid:
        completeness -= 40
    if not volume_check.is_valid:
        completeness -= 30
    if fundamentals_check is None:
        completeness -= 20

    source_quality = (
        price_check.score * 0.4
        + volume_check.score * 0.3
        + (fundamentals_check.score if fundamentals_check else 0.0) * 0.3
    )

    current = time.time() if now is None else now
    # A quote without an upstream timestamp was fetched just now.
    is_stale = (
        quote.timestamp is not None
        and current - quote.timestamp > MAX_DATA_AGE_SECONDS
    )

    overall = completeness * 0.3 + source_quality * 0.4 + (50 if is_stale else 100) * 0.3
    return Reliability(
        data_completeness=_bound(completeness),
        source_quality=_bound(source_quality),
        overall_score=_bound(overall),
        is_stale=is_stale,
    )


def _bound(value: float) -> float:
    return max(0.0, min(100.0, value))
