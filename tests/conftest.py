"""
Shared fixtures for certforge tests.

Geometry helpers lay out each row of text with a fixed character width, so a
character offset inside a reconstructed line maps exactly onto its x-position.
"""

from typing import Dict, List, Sequence, Tuple

import pytest

from certforge.adapters.vision_adapter import document_from_vision_output
from certforge.layout.geometry import Word
from certforge.layout.reconstruction import LineReconstructor

CHAR_WIDTH = 6.0
X_START = 50.0
ROW_HEIGHT = 10.0


def _layout_row(text: str, y: float, x_start: float = X_START, page: int = 1) -> List[Word]:
    words: List[Word] = []
    offset = 0
    for token in text.split(" "):
        if token:
            x1 = x_start + offset * CHAR_WIDTH
            words.append(Word(
                text=token,
                x1=x1,
                y1=y - ROW_HEIGHT / 2,
                x2=x1 + len(token) * CHAR_WIDTH,
                y2=y + ROW_HEIGHT / 2,
                page=page
            ))
        offset += len(token) + 1
    return words


def _vision_word(word: Word) -> Dict:
    return {
        "symbols": [{"text": ch} for ch in word.text],
        "boundingBox": {"vertices": [
            {"x": word.x1, "y": word.y1},
            {"x": word.x2, "y": word.y1},
            {"x": word.x2, "y": word.y2},
            {"x": word.x1, "y": word.y2},
        ]},
    }


@pytest.fixture
def make_words():
    """Factory: words of one row of text at height ``y``."""
    return _layout_row


@pytest.fixture
def make_lines():
    """Factory: reconstructed lines from ``[(text, y), ...]`` rows of one page."""
    def _make(rows: Sequence[Tuple[str, float]], page: int = 1):
        words: List[Word] = []
        for text, y in rows:
            words.extend(_layout_row(text, y, page=page))
        return LineReconstructor().reconstruct(words)
    return _make


@pytest.fixture
def make_vision_payload():
    """Factory: Vision-style payload, one response per page of ``[(text, y), ...]`` rows."""
    def _make(pages: Sequence[Sequence[Tuple[str, float]]]) -> Dict:
        responses = []
        for number, rows in enumerate(pages, start=1):
            words = [_vision_word(w) for text, y in rows for w in _layout_row(text, y, page=number)]
            responses.append({
                "context": {"pageNumber": number},
                "fullTextAnnotation": {
                    "text": "\n".join(text for text, _ in rows),
                    "pages": [{"blocks": [{"paragraphs": [{"words": words}]}]}],
                },
            })
        return {"responses": responses}
    return _make


COVER_PAGE = [
    ("Madame, Monsieur,", 100.0),
    ("Veuillez trouver ci-joint votre attestation annuelle.", 130.0),
]

CERTIFICATE_PAGE = [
    ("Caisse de pensions: Exemple SA", 100.0),
    ("Avoir de vieillesse au 01.01.2025 CHF 85'000", 140.0),
    ("Prestations de vieillesse à 65 ans CHF 310'000", 300.0),
]


@pytest.fixture
def certificate_payload(make_vision_payload):
    """Two-page certificate: cover letter, then balance and projection table."""
    return make_vision_payload([COVER_PAGE, CERTIFICATE_PAGE])


@pytest.fixture
def certificate_document(certificate_payload):
    return document_from_vision_output(certificate_payload, filename="scan_001.json", document_id="doc-1")


@pytest.fixture
def make_certificate_document(certificate_payload):
    """Factory: independent copies of the two-page certificate."""
    def _make(document_id: str):
        return document_from_vision_output(
            certificate_payload, filename=f"{document_id}.json", document_id=document_id
        )
    return _make
