"""
Tests for positional label -> value resolution.
"""

import pytest

from certforge.config import LayoutConfig
from certforge.extraction.registry import find_label_line
from certforge.layout.reconstruction import LineReconstructor
from certforge.layout.resolver import (
    ABOVE,
    BELOW,
    NOT_FOUND,
    SAME_LINE,
    PositionalValueResolver,
)


def _resolve_for(lines, field_name, config=None):
    match = find_label_line([line.text for line in lines], field_name)
    assert match is not None
    label_line = lines[match.line_index]
    resolver = PositionalValueResolver(config)
    return resolver.resolve(lines, match.line_index, label_line.x_at_offset(match.end))


class TestSameLine:
    """Test suite for same-line resolution."""

    def test_rightmost_amount_wins(self, make_lines):
        lines = make_lines([("Invalidity annuity ... CHF 1'200 CHF 24'000", 100)])

        resolved = _resolve_for(lines, "renteInvaliditeAnnuelle")

        assert resolved.value == 24000
        assert resolved.position == SAME_LINE
        assert resolved.proof_text == "Invalidity annuity ... CHF 1'200 CHF 24'000"

    def test_adjacent_column_amounts_kept_apart(self, make_lines):
        lines = make_lines([("Rente d'invalidité annuelle 12'000 240'000", 100)])

        assert _resolve_for(lines, "renteInvaliditeAnnuelle").value == 240000

    def test_amounts_left_of_reference_ignored(self, make_lines):
        lines = make_lines([("2024 Rente d'orphelin", 100)])
        match = find_label_line([lines[0].text], "renteOrphelinAnnuelle")

        resolved = PositionalValueResolver().resolve(lines, 0, lines[0].x_at_offset(match.end))

        assert resolved is NOT_FOUND
        assert not resolved.found

    def test_percentage_never_returned(self, make_lines):
        lines = make_lines([("Rente d'invalidité 40 % du salaire", 100)])

        resolved = _resolve_for(lines, "renteInvaliditeAnnuelle")

        assert resolved.value is None

    def test_percentage_skipped_for_amount(self, make_lines):
        lines = make_lines([("Rente d'invalidité CHF 24'000 60%", 100)])

        assert _resolve_for(lines, "renteInvaliditeAnnuelle").value == 24000

    def test_dates_are_not_amounts(self, make_lines):
        lines = make_lines([("Avoir de vieillesse au 31.12.2024", 100)])

        assert _resolve_for(lines, "avoirVieillesse").value is None

    def test_invalid_index(self, make_lines):
        lines = make_lines([("Capital décès 1'000", 100)])

        assert PositionalValueResolver().resolve(lines, 5, 0) is NOT_FOUND
        assert PositionalValueResolver().resolve([], 0, 0) is NOT_FOUND


class TestColumnSearch:
    """Test suite for the below/above fallback."""

    @pytest.fixture
    def column_words(self, make_words):
        def _make(label_y, value_y, page=1):
            label = make_words("Capital décès", label_y, page=page)
            # value right-aligned after the label span
            value = make_words("150'000", value_y, x_start=130.0, page=page)
            return label, value
        return _make

    def test_value_below_label(self, column_words):
        label, value = column_words(100, 115)
        lines = LineReconstructor().reconstruct(label + value)

        resolved = _resolve_for(lines, "capitalDeces")

        assert resolved.value == 150000
        assert resolved.position == BELOW
        assert resolved.line_index == 1

    def test_value_above_label(self, column_words):
        label, value = column_words(120, 100)
        lines = LineReconstructor().reconstruct(label + value)

        resolved = _resolve_for(lines, "capitalDeces")

        assert resolved.value == 150000
        assert resolved.position == ABOVE

    def test_below_is_preferred_over_above(self, make_words):
        words = (
            make_words("9'999", 85, x_start=130.0)
            + make_words("Capital décès", 100)
            + make_words("150'000", 115, x_start=130.0)
        )
        lines = LineReconstructor().reconstruct(words)

        assert _resolve_for(lines, "capitalDeces").value == 150000

    def test_value_outside_window_not_found(self, make_words):
        words = make_words("Capital décès", 100) + make_words("150'000", 200, x_start=130.0)
        for i, note in enumerate(["first note", "second note", "third note"], start=1):
            words += make_words(note, 100 + i * 20)
        lines = LineReconstructor().reconstruct(words)

        resolved = _resolve_for(lines, "capitalDeces", LayoutConfig(search_window=3))

        assert resolved.value is None

    def test_value_left_of_column_ignored(self, make_words):
        words = make_words("Capital décès", 100) + make_words("150'000", 115, x_start=10.0)
        lines = LineReconstructor().reconstruct(words)

        assert _resolve_for(lines, "capitalDeces").value is None

    def test_search_stops_at_page_change(self, make_words):
        words = make_words("Capital décès", 700, page=1) + make_words("150'000", 20, x_start=130.0, page=2)
        lines = LineReconstructor().reconstruct(words)

        assert _resolve_for(lines, "capitalDeces").value is None
