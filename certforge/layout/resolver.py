"""
Positional label -> value resolution over reconstructed lines.

A value printed next to a label is searched in priority order:

1. on the label's own line, strictly right of a reference x-position
   (rightmost token wins, larger magnitude breaks ties);
2. in the value column on the next lines below (up to ``search_window``);
3. in the same column on the lines above, as a last resort.

Percentages and dates are never candidates. The resolver is read-only: it
neither mutates lines nor keeps state between calls.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .geometry import Line
from ..config import LayoutConfig
from ..extraction.numbers import NumericToken, find_numeric_tokens

logger = logging.getLogger(__name__)

SAME_LINE = "same_line"
BELOW = "below"
ABOVE = "above"


@dataclass(frozen=True)
class ResolvedValue:
    """Outcome of a positional search; ``value`` is None when nothing qualified."""
    value: Optional[float] = None
    proof_text: Optional[str] = None
    line_index: Optional[int] = None
    position: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.value is not None


NOT_FOUND = ResolvedValue()


class PositionalValueResolver:
    """Finds the amount printed next to a label line."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()

    def resolve(self, lines: Sequence[Line], label_line_index: int,
                reference_x: float) -> ResolvedValue:
        """
        Resolve the value belonging to the label on ``lines[label_line_index]``.

        Args:
            lines: Lines in reading order
            label_line_index: Index of the line carrying the label
            reference_x: Candidates on the label line must end right of this x

        Returns:
            ResolvedValue with the chosen amount and the text of its line
        """
        if not 0 <= label_line_index < len(lines):
            return NOT_FOUND

        label_line = lines[label_line_index]

        same_line = self._pick_same_line(label_line, reference_x)
        if same_line is not None:
            return ResolvedValue(same_line.value, label_line.text, label_line_index, SAME_LINE)

        column_left = label_line.x2 - self.config.column_tolerance
        window = self.config.search_window

        below = range(label_line_index + 1, min(len(lines), label_line_index + 1 + window))
        found = self._scan_column(lines, below, label_line, column_left, BELOW)
        if found is not None:
            return found

        above = range(label_line_index - 1, max(-1, label_line_index - 1 - window), -1)
        found = self._scan_column(lines, above, label_line, column_left, ABOVE)
        if found is not None:
            return found

        return NOT_FOUND

    def _pick_same_line(self, line: Line, reference_x: float) -> Optional[NumericToken]:
        best: Optional[NumericToken] = None
        best_x = 0.0
        for token in find_numeric_tokens(line.text):
            x_end = line.x_at_offset(token.end)
            if x_end <= reference_x:
                continue
            if best is None or x_end > best_x or (x_end == best_x and token.value > best.value):
                best, best_x = token, x_end
        return best

    def _scan_column(self, lines: Sequence[Line], indexes: range, label_line: Line,
                     column_left: float, position: str) -> Optional[ResolvedValue]:
        for index in indexes:
            line = lines[index]
            if line.page != label_line.page:
                break
            candidates: List[NumericToken] = [
                token for token in find_numeric_tokens(line.text)
                if line.x_at_offset(token.start) >= column_left
            ]
            if candidates:
                token = candidates[-1]
                logger.debug(f"Value {token.value} found {position} label line at index {index}")
                return ResolvedValue(token.value, line.text, index, position)
        return None
