"""
Word and line geometry for reconstructed OCR layouts.

Words are immutable OCR tokens with an axis-aligned bounding rectangle.
Lines own an ordered tuple of words and expose the span used by the
positional resolver.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Word:
    """Single OCR-recognized token with its bounding rectangle."""
    text: str
    x1: float
    y1: float
    x2: float
    y2: float
    page: int = 1

    @property
    def x_mid(self) -> float:
        return (self.x1 + self.x2) / 2.0

    @property
    def y_mid(self) -> float:
        return (self.y1 + self.y2) / 2.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "xMid": self.x_mid,
            "yMid": self.y_mid,
            "page": self.page,
        }


@dataclass(frozen=True)
class Line:
    """
    Visually aligned, reading-order row of words.

    ``y_mid`` is the vertical center of the first word that opened the line;
    ``x1``/``x2`` and ``y1``/``y2`` span all member words.
    """
    text: str
    words: Tuple[Word, ...]
    x1: float
    x2: float
    y_mid: float
    y1: float = 0.0
    y2: float = 0.0
    page: int = 1

    def x_at_offset(self, offset: int) -> float:
        """Approximate the x-position of a character offset within the line span."""
        length = len(self.text) or 1
        ratio = max(0, min(offset, length)) / length
        return self.x1 + ratio * (self.x2 - self.x1)

    def to_hint(self, index: int) -> Dict[str, Any]:
        """Compact positional hint handed to the structured extraction client."""
        return {
            "idx": index,
            "page": self.page,
            "text": self.text,
            "x1": round(self.x1),
            "x2": round(self.x2),
            "yMid": round(self.y_mid),
        }
