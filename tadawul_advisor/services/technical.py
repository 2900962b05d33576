# =============================================================================
# Technical Signals — Rule-Based Reads of Quote & Statistics
# =============================================================================
#
# Three signals per company, each with a direction and a strength in [0, 1]:
#
#   momentum         daily % change; strength = min(|change| / 5, 1)
#   moving_average   price > MA50 > MA200 → bullish, price < MA50 < MA200
#                    → bearish; strength 0.8
#   52_week_range    ≥ 90% of the 52-week range → bullish 0.6,
#                    ≤ 10% → bearish 0.6
#
# Signals that cannot be computed (missing inputs, flat day, neutral
# position) are simply not emitted.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass

from tadawul_advisor.models.market import Fundamentals, Quote

MOMENTUM_FULL_SCALE_PCT = 5.0
MA_TREND_STRENGTH = 0.8
RANGE_EXTREME_STRENGTH = 0.6


@dataclass
class TechnicalSignal:
    symbol: str
    indicator: str
    direction: str  # bullish | bearish
    strength: float
    description: str

    @property
    def signed_strength(self) -> float:
        return self.strength if self.direction == "bullish" else -self.strength


def derive_signals(quote: Quote, fundamentals: Fundamentals | None = None) -> list[TechnicalSignal]:
    signals: list[TechnicalSignal] = []

    momentum = _momentum(quote)
    if momentum:
        signals.append(momentum)

    if fundamentals is not None:
        trend = _moving_average_trend(quote, fundamentals)
        if trend:
            signals.append(trend)

    position = _range_position(quote, fundamentals)
    if position:
        signals.append(position)
    return signals


def _momentum(quote: Quote) -> TechnicalSignal | None:
    change = quote.percent_change
    if not change:
        return None
    direction = "bullish" if change > 0 else "bearish"
    return TechnicalSignal(
        symbol=quote.symbol,
        indicator="momentum",
        direction=direction,
        strength=min(abs(change) / MOMENTUM_FULL_SCALE_PCT, 1.0),
        description=f"Daily move of {change:+.2f}%",
    )


def _moving_average_trend(quote: Quote, fundamentals: Fundamentals) -> TechnicalSignal | None:
    ma50, ma200 = fundamentals.day_50_ma, fundamentals.day_200_ma
    if not ma50 or not ma200 or not quote.price:
        return None
    if quote.price > ma50 > ma200:
        direction, label = "bullish", "upward"
    elif quote.price < ma50 < ma200:
        direction, label = "bearish", "downward"
    else:
        return None
    return TechnicalSignal(
        symbol=quote.symbol,
        indicator="moving_average",
        direction=direction,
        strength=MA_TREND_STRENGTH,
        description=f"Price {quote.price:.2f} vs MA50 {ma50:.2f} / MA200 {ma200:.2f}: {label} trend",
    )


def _range_position(quote: Quote, fundamentals: Fundamentals | None) -> TechnicalSignal | None:
    high = quote.fifty_two_week_high
    low = quote.fifty_two_week_low
    if (high is None or low is None) and fundamentals is not None:
        high = fundamentals.fifty_two_week_high
        low = fundamentals.fifty_two_week_low
    if high is None or low is None or high <= low or not quote.price:
        return None

    position = (quote.price - low) / (high - low)
    if position >= 0.9:
        direction = "bullish"
    elif position <= 0.1:
        direction = "bearish"
    else:
        return None
    return TechnicalSignal(
        symbol=quote.symbol,
        indicator="52_week_range",
        direction=direction,
        strength=RANGE_EXTREME_STRENGTH,
        description=f"Trading at {position:.0%} of the 52-week range",
    )
