"""
Layout reconstruction components.

Rebuilds reading-order lines from unordered OCR word boxes and resolves
label/value associations from their positions.
"""

from .geometry import Word, Line
from .reconstruction import LineReconstructor, reconstruct_lines
from .resolver import PositionalValueResolver, ResolvedValue

__all__ = [
    "Word",
    "Line",
    "LineReconstructor",
    "reconstruct_lines",
    "PositionalValueResolver",
    "ResolvedValue",
]
