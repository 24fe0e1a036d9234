"""
OCR input adapters.

Convert upstream OCR provider output into the word geometry consumed by the
layout reconstruction stage.
"""

from .vision_adapter import (
    OcrDocument,
    words_from_page,
    document_from_vision_output,
    document_from_pages,
    load_vision_file,
)

__all__ = [
    "OcrDocument",
    "words_from_page",
    "document_from_vision_output",
    "document_from_pages",
    "load_vision_file",
]
