"""
Tests for numeric token parsing and annualization.
"""

import pytest

from certforge.extraction.numbers import (
    coerce_number,
    find_numeric_tokens,
    is_followed_by_percent,
    mask_dates,
    parse_number,
)
from certforge.extraction.units import annualize_if_monthly, is_monthly_hint


class TestParseNumber:
    """Test suite for parse_number."""

    @pytest.mark.parametrize("token,expected", [
        ("12'345.60", 12345.60),
        ("12 345,60", 12345.60),
        ("12’345.60", 12345.60),
        ("12 345", 12345.0),
        ("1.234.567", 1234567.0),
        ("1.234,50", 1234.5),
        ("1,234.50", 1234.5),
        ("1,234", 1234.0),
        ("24,5", 24.5),
        ("CHF 85'000", 85000.0),
        ("85'000.-", 85000.0),
        ("0", 0.0),
        ("-1'500", -1500.0),
    ])
    def test_valid_tokens(self, token, expected):
        assert parse_number(token) == pytest.approx(expected)

    @pytest.mark.parametrize("token", ["abc", "", None, "12a", "1,2,3", "1.2.3"])
    def test_invalid_tokens(self, token):
        assert parse_number(token) is None

    def test_coerce_number(self):
        assert coerce_number(12) == 12.0
        assert coerce_number("3'000") == 3000.0
        assert coerce_number(True) is None
        assert coerce_number(float("nan")) is None
        assert coerce_number(float("inf")) is None
        assert coerce_number({"value": 1}) is None


class TestFindNumericTokens:
    """Test suite for token scanning within a line."""

    def test_offsets_and_values(self):
        text = "Rente CHF 1'200 CHF 24'000"

        tokens = find_numeric_tokens(text)

        assert [t.value for t in tokens] == [1200, 24000]
        assert text[tokens[1].start:tokens[1].end] == "24'000"

    def test_percent_excluded(self):
        text = "Taux 6,8 % sur CHF 100'000"

        assert [t.value for t in find_numeric_tokens(text)] == [100000]
        assert [t.value for t in find_numeric_tokens(text, exclude_percent=False)] == [6.8, 100000]

    def test_adjacent_amounts_not_merged(self):
        text = "Rente d'invalidité 12'000 240'000"

        assert [t.value for t in find_numeric_tokens(text)] == [12000, 240000]

    def test_mixed_separators_split(self):
        assert [t.value for t in find_numeric_tokens("1 200 24'000")] == [1200, 24000]

    def test_is_followed_by_percent(self):
        assert is_followed_by_percent("1,5 %", 3)
        assert is_followed_by_percent("1,5%", 3)
        assert not is_followed_by_percent("1,5 CHF", 3)

    def test_dates_masked_with_offsets_kept(self):
        text = "au 01.01.2025 CHF 85'000"

        masked = mask_dates(text)

        assert len(masked) == len(text)
        assert "2025" not in masked
        assert [t.value for t in find_numeric_tokens(text)] == [85000]


class TestUnitNormalizer:
    """Test suite for monthly detection and annualization."""

    def test_annualize_monthly(self):
        assert annualize_if_monthly(100, "CHF 100 per month") == 1200

    def test_yearly_unchanged(self):
        assert annualize_if_monthly(100, "CHF 100 per year") == 100

    def test_none_propagates(self):
        assert annualize_if_monthly(None, "CHF 100 per month") is None
        assert annualize_if_monthly(None, None) is None

    @pytest.mark.parametrize("text", [
        "Rente d'invalidité par mois CHF 1'000",
        "rente mensuelle",
        "Invalidenrente monatlich",
        "Rendita al mese",
        "CHF 2'000 / mois",
        "monthly pension",
    ])
    def test_monthly_hints_per_language(self, text):
        assert is_monthly_hint(text)

    @pytest.mark.parametrize("text", [
        "Rente annuelle CHF 12'000",
        "jährliche Rente",
        "Mois de référence",
        "",
        None,
    ])
    def test_no_monthly_hint(self, text):
        assert not is_monthly_hint(text)
