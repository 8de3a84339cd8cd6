# tests/test_normalize.py

import math

import pytest

from lead_qualifier.scoring.normalize import (
    NumericRange,
    canonical_industry,
    clamp_unit,
    log_scale,
    parse_amount_range,
    parse_company_size,
    parse_timeline,
)


class TestAmounts:

    @pytest.mark.parametrize("text,expected", [
        ("$10,000 - $25,000", NumericRange(10_000, 25_000)),
        ("$50k+", NumericRange(50_000, math.inf)),
        ("over 1.5M", NumericRange(1_500_000, math.inf)),
        ("under 5k", NumericRange(0, 5_000)),
        ("200", NumericRange(200, 200)),
        ("50-100k", NumericRange(50_000, 100_000)),
        ("$1-2M", NumericRange(1_000_000, 2_000_000)),
        ("$500 - $10k", NumericRange(500, 10_000)),
    ])
    def test_parse_amount_range(self, text, expected):
        assert parse_amount_range(text) == expected

    @pytest.mark.parametrize("text", [None, "", "n/a", "tbd"])
    def test_unparseable_amount_is_none(self, text):
        assert parse_amount_range(text) is None

    def test_company_size_keywords(self):
        assert parse_company_size("Enterprise") == NumericRange(1000, math.inf)
        assert parse_company_size("51-200") == NumericRange(51, 200)
        assert parse_company_size("a few of us") is None

    def test_open_ended_midpoint(self):
        assert NumericRange(100, math.inf).midpoint == 150


class TestTimelines:

    @pytest.mark.parametrize("text,expected", [
        ("ASAP", NumericRange(0, 7)),
        ("within 3 months", NumericRange(0, 90)),
        ("6-12 months", NumericRange(180, 360)),
        ("next quarter", NumericRange(90, 180)),
        ("just researching", NumericRange(365, math.inf)),
        ("2 weeks", NumericRange(14, 14)),
    ])
    def test_parse_timeline(self, text, expected):
        assert parse_timeline(text) == expected

    def test_unknown_timeline_is_none(self):
        assert parse_timeline("whenever the board agrees") is None


class TestIndustry:

    @pytest.mark.parametrize("text,canonical", [
        ("SaaS", "saas"),
        ("Health Care", "healthcare"),
        ("B2B software company", "saas"),
        ("Payments", "fintech"),
        ("Underwater  Basket Weaving", "underwater basket weaving"),
    ])
    def test_canonical_industry(self, text, canonical):
        assert canonical_industry(text) == canonical

    def test_blank_industry(self):
        assert canonical_industry("  ") is None


class TestScaling:

    @pytest.mark.parametrize("value,kwargs,expected", [
        (80, {}, 0.8),
        (0.4, {}, 0.4),
        (7, {"scale": 10}, 0.7),
        (-3, {}, 0.0),
        ("high", {}, None),
        (float("nan"), {}, None),
        (None, {}, None),
    ])
    def test_clamp_unit(self, value, kwargs, expected):
        assert clamp_unit(value, **kwargs) == expected

    def test_log_scale_saturates(self):
        assert log_scale(0, 100) == 0.0
        assert log_scale(1_000_000, 1_000_000) == 1.0
        assert log_scale(10_000_000, 1_000_000) == 1.0
        assert 0 < log_scale(100, 1_000_000) < 0.5
