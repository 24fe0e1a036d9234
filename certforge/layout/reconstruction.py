"""
Line reconstruction from unordered word boxes.

Words are sorted by ``(y_mid, x1)`` and swept once; a word joins the current
line while its vertical center stays within ``line_tolerance`` of the line's
first word. This handles single-column certificates and label/value tables;
true multi-column layouts are not separated.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .geometry import Line, Word
from ..config import LayoutConfig

logger = logging.getLogger(__name__)


def _close_line(members: List[Word]) -> Line:
    first = members[0]
    ordered = sorted(members, key=lambda w: (w.x1, w.y_mid))
    return Line(
        text=" ".join(w.text for w in ordered),
        words=tuple(ordered),
        x1=min(w.x1 for w in ordered),
        x2=max(w.x2 for w in ordered),
        y_mid=first.y_mid,
        y1=min(w.y1 for w in ordered),
        y2=max(w.y2 for w in ordered),
        page=first.page
    )


def _cluster_page(words: List[Word], tolerance: float) -> List[Line]:
    lines: List[Line] = []
    current: List[Word] = []

    for word in sorted(words, key=lambda w: (w.y_mid, w.x1)):
        if not current or abs(word.y_mid - current[0].y_mid) <= tolerance:
            current.append(word)
            continue
        lines.append(_close_line(current))
        current = [word]

    if current:
        lines.append(_close_line(current))
    return lines


class LineReconstructor:
    """Clusters OCR words into reading-order lines."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()

    def reconstruct(self, words: Iterable[Word]) -> List[Line]:
        """
        Group words into lines.

        Words are clustered page by page so tokens from different pages never
        share a line. Lines are ordered by ``(page, y_mid, x1)`` and not by a
        bare ``(y_mid, x1)``: y coordinates restart on every page, so the page
        number leads the key. On a single page the two orders are identical.

        Args:
            words: Words from one or more pages, in any order

        Returns:
            Lines in reading order; empty when there are no words
        """
        by_page: Dict[int, List[Word]] = defaultdict(list)
        for word in words:
            by_page[word.page].append(word)

        lines: List[Line] = []
        for page in sorted(by_page):
            lines.extend(_cluster_page(by_page[page], self.config.line_tolerance))

        lines.sort(key=lambda l: (l.page, l.y_mid, l.x1))
        logger.debug(f"Reconstructed {len(lines)} lines from {len(by_page)} pages")
        return lines


def reconstruct_lines(words: Iterable[Word], config: Optional[LayoutConfig] = None) -> List[Line]:
    """Convenience wrapper around :class:`LineReconstructor`."""
    return LineReconstructor(config).reconstruct(words)
