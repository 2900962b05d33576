# =============================================================================
# Market Data Records — Typed Upstream Payloads
# =============================================================================
#
# The quote/statistics provider returns loosely-typed JSON: numbers arrive
# as strings, fields go missing, nested objects may be absent. These
# records are the boundary: raw dicts go in through `from_payload()`,
# typed optional fields come out, and scoring code never sees a raw dict.
#
# DEFAULTING RULES:
#   Quote        price / change / percent_change / volume → 0.0 when missing
#                or unparseable; everything else → None
#   Fundamentals every ratio → None when missing or unparseable
#                (absence matters: it drives fundamentals quality)
#
# A payload without identity (quote with no symbol or no price/close,
# statistics with no `statistics` object) raises PayloadValidationError.
# =============================================================================

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from tadawul_advisor.errors import PayloadValidationError


def safe_number(value: Any, default: float | None = None) -> float | None:
    """Parse a number from an int, float or numeric string; else `default`."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip().rstrip("%").replace(",", ""))
        except ValueError:
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def parse_flag(value: Any) -> bool:
    """Parse a boolean that may arrive as a bool, number or "true"/"false" string."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _dig(payload: dict[str, Any], *path: str) -> Any:
    node: Any = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


# ---------------------------------------------------------------------------
# Quote
# ---------------------------------------------------------------------------


class Quote(BaseModel):
    """Latest trading snapshot for one instrument."""

    symbol: str
    name: str | None = None
    price: float = 0.0
    change: float = 0.0
    percent_change: float = 0.0
    volume: float = 0.0
    open: float | None = None
    high: float | None = None
    low: float | None = None
    previous_close: float | None = None
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None
    is_market_open: bool = False
    timestamp: float | None = Field(default=None, description="Epoch seconds")

    @field_validator("price", "change", "percent_change", "volume", mode="before")
    @classmethod
    def _zero_default(cls, value: Any) -> float:
        return safe_number(value, 0.0)

    @field_validator(
        "open", "high", "low", "previous_close",
        "fifty_two_week_high", "fifty_two_week_low", "timestamp",
        mode="before",
    )
    @classmethod
    def _none_default(cls, value: Any) -> float | None:
        return safe_number(value)

    @classmethod
    def from_payload(cls, payload: Any) -> Quote:
        """Build a Quote from a raw `/quote` response."""
        if not isinstance(payload, dict):
            raise PayloadValidationError("Quote payload is not an object", payload)
        symbol = payload.get("symbol")
        price = payload.get("close", payload.get("price"))
        if not isinstance(symbol, str) or not symbol or price is None:
            raise PayloadValidationError(
                "Quote payload lacks symbol or price", payload,
            )
        name = payload.get("name")
        try:
            return cls(
                symbol=symbol,
                name=str(name) if name not in (None, "") else None,
                price=price,
                change=payload.get("change"),
                percent_change=payload.get("percent_change"),
                volume=payload.get("volume"),
                open=payload.get("open"),
                high=payload.get("high"),
                low=payload.get("low"),
                previous_close=payload.get("previous_close"),
                fifty_two_week_high=_dig(payload, "fifty_two_week", "high"),
                fifty_two_week_low=_dig(payload, "fifty_two_week", "low"),
                is_market_open=parse_flag(payload.get("is_market_open")),
                timestamp=payload.get("timestamp"),
            )
        except ValidationError as e:
            raise PayloadValidationError(f"Quote payload is malformed: {e}", payload) from e


# ---------------------------------------------------------------------------
# Fundamentals
# ---------------------------------------------------------------------------

FUNDAMENTAL_GROUPS: dict[str, tuple[str, ...]] = {
    "valuation": ("market_cap", "pe_ratio", "price_to_book"),
    "profitability": ("profit_margin", "operating_margin", "return_on_equity"),
    "financial_health": ("debt_to_equity", "current_ratio"),
    "income": ("eps", "dividend_yield", "revenue_growth"),
}


class Fundamentals(BaseModel):
    """Per-company ratios from the statistics endpoint. Margins are fractions."""

    symbol: str
    market_cap: float | None = None
    pe_ratio: float | None = None
    price_to_book: float | None = None
    eps: float | None = None
    dividend_yield: float | None = None
    profit_margin: float | None = None
    operating_margin: float | None = None
    return_on_equity: float | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    revenue_growth: float | None = None
    beta: float | None = None
    day_50_ma: float | None = None
    day_200_ma: float | None = None
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _lenient(cls, value: Any, info) -> Any:
        if info.field_name == "symbol":
            return value
        return safe_number(value)

    @property
    def groups_present(self) -> list[str]:
        return [
            group for group, fields in FUNDAMENTAL_GROUPS.items()
            if any(getattr(self, name) is not None for name in fields)
        ]

    @property
    def is_empty(self) -> bool:
        return not self.groups_present

    @classmethod
    def from_statistics(cls, symbol: str, payload: Any) -> Fundamentals:
        """Build Fundamentals from a raw `/statistics` response."""
        stats = payload.get("statistics") if isinstance(payload, dict) else None
        if not isinstance(stats, dict):
            raise PayloadValidationError(
                "Statistics payload lacks a 'statistics' object", payload,
            )

        debt_to_equity = safe_number(
            _dig(stats, "financials", "balance_sheet", "total_debt_to_equity_mrq")
        )
        # Reported as a percentage (e.g. 45.2 for 0.452).
        if debt_to_equity is not None:
            debt_to_equity /= 100
        else:
            debt_to_equity = safe_number(_dig(stats, "financials", "debt_to_equity"))

        return cls(
            symbol=symbol,
            market_cap=_dig(stats, "valuations_metrics", "market_capitalization"),
            pe_ratio=_dig(stats, "valuations_metrics", "trailing_pe"),
            price_to_book=_dig(stats, "valuations_metrics", "price_to_book_mrq"),
            eps=_dig(stats, "financials", "income_statement", "diluted_eps_ttm"),
            dividend_yield=_dig(stats, "dividends_and_splits", "trailing_annual_dividend_yield"),
            profit_margin=_dig(stats, "financials", "profit_margin"),
            operating_margin=_dig(stats, "financials", "operating_margin"),
            return_on_equity=_dig(stats, "financials", "return_on_equity_ttm"),
            debt_to_equity=debt_to_equity,
            current_ratio=_dig(stats, "financials", "balance_sheet", "current_ratio_mrq"),
            revenue_growth=_dig(
                stats, "financials", "income_statement", "quarterly_revenue_growth",
            ),
            beta=_dig(stats, "stock_price_summary", "beta"),
            day_50_ma=_dig(stats, "stock_price_summary", "day_50_ma"),
            day_200_ma=_dig(stats, "stock_price_summary", "day_200_ma"),
            fifty_two_week_high=_dig(stats, "stock_price_summary", "fifty_two_week_high"),
            fifty_two_week_low=_dig(stats, "stock_price_summary", "fifty_two_week_low"),
        )
