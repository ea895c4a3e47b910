"""Tests for market_normalizer — odds parsing, implied probability, overround, vig removal."""
from __future__ import annotations

import math
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from market_normalizer import (
    DEFAULT_DECIMAL_ODDS,
    MarketConfig,
    american_to_decimal,
    decimal_to_american,
    decimal_to_fractional,
    format_odds_display,
    fractional_to_decimal,
    implied_probability,
    normalize,
    normalize_field_odds,
    overround,
    parse_odds,
    parse_odds_with_details,
    takeout_percent,
    validate_market_odds,
)


class TestConversions:
    def test_fractional(self):
        assert fractional_to_decimal(5, 2) == 3.5

    def test_fractional_zero_denominator(self):
        assert fractional_to_decimal(5, 0) == DEFAULT_DECIMAL_ODDS

    def test_fractional_nan(self):
        assert fractional_to_decimal(float("nan"), 1) == 2.0

    def test_american_positive(self):
        assert american_to_decimal(300) == 4.0

    def test_american_negative(self):
        assert abs(american_to_decimal(-150) - (100 / 150 + 1)) < 1e-9

    def test_american_zero_and_nan(self):
        assert american_to_decimal(0) == 2.0
        assert american_to_decimal(float("nan")) == 2.0

    def test_implied_probability_in_unit_interval(self):
        for d in (1.01, 1.5, 2.0, 3.5, 11.0, 100.0, 999.0):
            p = implied_probability(d)
            assert 0 < p < 1

    def test_implied_probability_non_positive(self):
        assert implied_probability(0) == 0.0
        assert implied_probability(-3.0) == 0.0
        assert implied_probability(float("inf")) == 0.0


class TestParseOdds:
    def test_dash_format(self):
        assert parse_odds("5-1") == 6.0

    def test_slash_format(self):
        assert abs(parse_odds("9/5") - 2.8) < 1e-9

    def test_colon_format(self):
        assert parse_odds("5:2") == 3.5

    def test_even_tokens(self):
        for token in ("EVEN", "even", "EVN", "evs"):
            assert parse_odds(token) == 2.0

    def test_american(self):
        assert parse_odds("+300") == 4.0
        assert abs(parse_odds("-150") - 1.6667) < 1e-3

    def test_bare_integer_is_n_to_1(self):
        assert parse_odds("6") == 7.0

    def test_asterisk_favorite_marker(self):
        assert parse_odds("*3-1") == 4.0

    def test_whitespace(self):
        assert parse_odds("  7 - 2 ") == 4.5

    def test_garbage_defaults(self):
        assert parse_odds("SCR") == 2.0
        assert parse_odds("") == 2.0
        assert parse_odds(None) == 2.0

    def test_details_invalid(self):
        parsed = parse_odds_with_details("SCR")
        assert parsed.is_valid is False
        assert parsed.detected_format == "unknown"
        assert parsed.error

    def test_details_zero_denominator(self):
        parsed = parse_odds_with_details("5/0")
        assert parsed.is_valid is False
        assert parsed.decimal_odds == 2.0

    def test_details_out_of_range(self):
        parsed = parse_odds_with_details("0-1")
        assert parsed.is_valid is False
        assert parsed.decimal_odds == 2.0

    def test_details_formats(self):
        assert parse_odds_with_details("5-2").detected_format == "fractional"
        assert parse_odds_with_details("+250").detected_format == "american"
        assert parse_odds_with_details("EVEN").detected_format == "even"

    def test_small_moneyline_rejected(self):
        assert parse_odds_with_details("+50").is_valid is False


class TestOverroundAndNormalize:
    def test_overround_empty(self):
        assert overround([]) == 1.0

    def test_overround_skips_non_finite(self):
        assert abs(overround([0.5, float("nan"), 0.6]) - 1.1) < 1e-9

    def test_takeout(self):
        assert abs(takeout_percent(1.25) - 20.0) < 1e-9

    def test_takeout_non_positive(self):
        assert takeout_percent(0) == 0.0
        assert takeout_percent(-1.0) == 0.0

    def test_normalize_empty(self):
        assert normalize([]) == []

    def test_normalize_sums_to_one(self):
        fields = [
            [0.5, 0.4, 0.3],
            [0.9],
            [0.01, 0.02, 0.03, 0.04, 0.05, 0.06, 0.07, 0.08, 0.09, 0.1, 0.11, 0.12],
            [0.333333, 0.333333, 0.333333, 0.2],
        ]
        for probs in fields:
            assert abs(sum(normalize(probs)) - 1.0) < 1e-6

    def test_normalize_preserves_order(self):
        out = normalize([0.2, 0.6, 0.4])
        assert out[1] > out[2] > out[0]

    def test_normalize_all_zero_spreads_evenly(self):
        assert normalize([0.0, 0.0]) == [0.5, 0.5]

    def test_normalize_non_finite_gets_zero(self):
        out = normalize([0.5, float("nan"), 0.5])
        assert out[1] == 0.0
        assert abs(sum(out) - 1.0) < 1e-9


class TestFieldOdds:
    def test_field_level_values_identical(self):
        entries = normalize_field_odds([3.5, 4.0, 5.5, 8.0])
        assert len({e.overround for e in entries}) == 1
        assert len({e.takeout_percent for e in entries}) == 1
        assert abs(sum(e.normalized_probability for e in entries) - 1.0) < 1e-9

    def test_field_takeout_positive_for_real_market(self):
        entries = normalize_field_odds([2.2, 3.0, 4.5, 7.0])
        assert entries[0].overround > 1.0
        assert entries[0].takeout_percent > 0


class TestDisplay:
    def test_fractional_even(self):
        assert decimal_to_fractional(2.0) == "EVEN"

    def test_fractional_common(self):
        assert decimal_to_fractional(3.5) == "5-2"
        assert decimal_to_fractional(2.8) == "9-5"

    def test_fractional_long_shot(self):
        assert decimal_to_fractional(31.0) == "30-1"

    def test_american_sign_flip(self):
        assert decimal_to_american(2.0) == "+100"
        assert decimal_to_american(4.0) == "+300"
        assert decimal_to_american(1.5) == "-200"

    def test_american_round_trip(self):
        for d in (1.2, 1.5, 1.91, 2.0, 2.5, 3.75, 6.0, 21.0):
            back = parse_odds(decimal_to_american(d))
            assert abs(back - d) < 0.01

    def test_format_odds_display(self):
        disp = format_odds_display(4.0)
        assert disp.fractional == "3-1"
        assert disp.american == "+300"
        assert disp.implied_percent == "25.0%"


class TestValidateMarketOdds:
    def test_plausible_field(self):
        # implied sum ~1.15
        result = validate_market_odds([2.2, 3.5, 5.0, 8.0, 12.0])
        assert result.is_valid
        assert result.warnings == []

    def test_field_too_small(self):
        result = validate_market_odds([2.0])
        assert result.is_valid is False

    def test_out_of_band_flagged(self):
        result = validate_market_odds([2.0, 2.0, 2.0])   # overround 1.5
        assert any("outside plausible band" in w for w in result.warnings)

    def test_invalid_entries_flagged_individually(self):
        result = validate_market_odds([3.0, float("nan"), 0, 4.0])
        assert result.invalid_indices == [1, 2]
        assert result.is_valid is False

    def test_custom_band(self):
        result = validate_market_odds([2.0, 2.0, 2.0], MarketConfig(min_overround=1.0, max_overround=1.6))
        assert result.warnings == []
        assert math.isclose(result.overround, 1.5)
