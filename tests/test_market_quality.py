# =============================================================================
# Unit Tests — Market Data Quality & Technical Signals
# =============================================================================

from __future__ import annotations

import pytest

from tadawul_advisor.models.market import Fundamentals, Quote
from tadawul_advisor.services.market_quality import (
    assess_reliability,
    validate_fundamentals,
    validate_price,
    validate_volume,
)
from tadawul_advisor.services.technical import derive_signals


def _quote(**overrides) -> Quote:
    fields = dict(symbol="2222", price=30.0, volume=1_000_000, previous_close=29.5)
    fields.update(overrides)
    return Quote(**fields)


# ---------------------------------------------------------------------------
# Test: Validation
# ---------------------------------------------------------------------------


class TestValidation:
    """Tests for the per-field sanity checks."""

    def test_normal_price(self):
        result = validate_price(30.0, 29.5)
        assert result.is_valid
        assert result.score == 100

    def test_price_out_of_range(self):
        result = validate_price(0.001, None)
        assert not result.is_valid
        assert result.score == 70

    def test_large_move_is_warning_only(self):
        result = validate_price(36.0, 29.0)
        assert result.is_valid
        assert result.warnings
        assert result.score == 80

    def test_low_volume(self):
        assert not validate_volume(50).is_valid
        assert validate_volume(5000).is_valid

    def test_fundamentals_findings(self):
        result = validate_fundamentals(
            Fundamentals(symbol="x", pe_ratio=250, market_cap=500_000, debt_to_equity=6)
        )
        assert not result.is_valid
        assert len(result.warnings) == 2
        assert result.score == 45


class TestReliability:
    """Tests for the combined reliability score."""

    def test_clean_data(self):
        reliability = assess_reliability(_quote(), Fundamentals(symbol="2222", pe_ratio=16))
        assert reliability.overall_score == pytest.approx(100)
        assert reliability.normalized == pytest.approx(1.0)
        assert reliability.is_stale is False

    def test_missing_fundamentals(self):
        reliability = assess_reliability(_quote(), None)
        assert reliability.data_completeness == pytest.approx(80)
        assert reliability.source_quality == pytest.approx(70)
        assert reliability.overall_score == pytest.approx(82)

    def test_stale_quote(self):
        reliability = assess_reliability(_quote(timestamp=600), None, now=1000)
        assert reliability.is_stale is True
        assert reliability.overall_score == pytest.approx(67)

    def test_quote_without_timestamp_is_fresh(self):
        assert assess_reliability(_quote(), None, now=10**10).is_stale is False


# ---------------------------------------------------------------------------
# Test: Technical Signals
# ---------------------------------------------------------------------------


class TestTechnicalSignals:
    """Tests for momentum, moving-average and 52-week range signals."""

    def test_momentum_strength_scales(self):
        signals = derive_signals(_quote(percent_change=2.5))
        assert len(signals) == 1
        assert signals[0].indicator == "momentum"
        assert signals[0].direction == "bullish"
        assert signals[0].strength == pytest.approx(0.5)

    def test_momentum_strength_capped(self):
        signal = derive_signals(_quote(percent_change=-12))[0]
        assert signal.direction == "bearish"
        assert signal.strength == 1.0
        assert signal.signed_strength == -1.0

    def test_moving_average_trend(self):
        fundamentals = Fundamentals(symbol="2222", day_50_ma=28, day_200_ma=25)
        signals = derive_signals(_quote(), fundamentals)
        assert [(s.indicator, s.direction, s.strength) for s in signals] == [
            ("moving_average", "bullish", 0.8),
        ]

    def test_mixed_averages_emit_nothing(self):
        fundamentals = Fundamentals(symbol="2222", day_50_ma=31, day_200_ma=25)
        assert derive_signals(_quote(), fundamentals) == []

    def test_range_extremes(self):
        near_high = derive_signals(_quote(fifty_two_week_high=31, fifty_two_week_low=20))
        assert [(s.indicator, s.direction) for s in near_high] == [("52_week_range", "bullish")]

        near_low = derive_signals(_quote(price=20.5, fifty_two_week_high=31, fifty_two_week_low=20))
        assert [(s.indicator, s.direction) for s in near_low] == [("52_week_range", "bearish")]

    def test_range_falls_back_to_fundamentals(self):
        fundamentals = Fundamentals(symbol="2222", fifty_two_week_high=31, fifty_two_week_low=20)
        signals = derive_signals(_quote(), fundamentals)
        assert [s.indicator for s in signals] == ["52_week_range"]

    def test_flat_quote_without_data(self):
        assert derive_signals(_quote()) == []
