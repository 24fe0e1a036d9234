"""
OCR word-geometry ingestion.

Normalizes raw OCR page structures (blocks -> paragraphs -> words, each word
made of symbols plus a 4-vertex polygon) into flat per-page word records.
Missing sub-structures are treated as empty collections: this stage never
raises on malformed input.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..layout.geometry import Word

logger = logging.getLogger(__name__)


@dataclass
class OcrDocument:
    """One document's OCR output, ready for the extraction pipeline."""
    document_id: str
    filename: str
    pages: List[List[Word]]
    page_texts: List[str]
    full_text: str

    @property
    def word_count(self) -> int:
        return sum(len(page) for page in self.pages)

    @property
    def all_words(self) -> List[Word]:
        return [word for page in self.pages for word in page]


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _vertex_coord(vertex: Dict[str, Any], key: str) -> float:
    raw = vertex.get(key)
    try:
        return float(raw) if raw is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _word_text(word: Dict[str, Any]) -> str:
    symbols = _as_list(word.get("symbols"))
    if symbols:
        return "".join(str(_as_dict(s).get("text") or "") for s in symbols).strip()
    return str(word.get("text") or "").strip()


def _word_vertices(word: Dict[str, Any]) -> List[Dict[str, Any]]:
    box = _as_dict(word.get("boundingBox") or word.get("boundingPoly"))
    vertices = _as_list(box.get("vertices"))
    return [_as_dict(v) for v in vertices]


def words_from_page(page: Dict[str, Any], page_number: int = 1) -> List[Word]:
    """
    Flatten one OCR page into word records.

    Args:
        page: Page structure with ``blocks -> paragraphs -> words``
        page_number: 1-based page number stamped on every word

    Returns:
        Words in source order; words whose text trims to empty are skipped
    """
    words: List[Word] = []
    for block in _as_list(_as_dict(page).get("blocks")):
        for paragraph in _as_list(_as_dict(block).get("paragraphs")):
            for raw_word in _as_list(_as_dict(paragraph).get("words")):
                raw_word = _as_dict(raw_word)
                text = _word_text(raw_word)
                if not text:
                    continue

                vertices = _word_vertices(raw_word)
                xs = [_vertex_coord(v, "x") for v in vertices] or [0.0]
                ys = [_vertex_coord(v, "y") for v in vertices] or [0.0]

                words.append(Word(
                    text=text,
                    x1=min(xs),
                    y1=min(ys),
                    x2=max(xs),
                    y2=max(ys),
                    page=page_number
                ))
    return words


def _responses_of(payload: Any) -> List[Dict[str, Any]]:
    """Accept ``{"responses": [...]}``, ``[{"responses": [...]}]`` or a bare response list."""
    if isinstance(payload, dict):
        if "responses" in payload:
            return [_as_dict(r) for r in _as_list(payload.get("responses"))]
        if "fullTextAnnotation" in payload:
            return [payload]
        return []

    responses: List[Dict[str, Any]] = []
    for item in _as_list(payload):
        item = _as_dict(item)
        if "responses" in item:
            responses.extend(_as_dict(r) for r in _as_list(item.get("responses")))
        elif "fullTextAnnotation" in item:
            responses.append(item)
    return responses


def document_from_vision_output(
    payload: Any,
    filename: str = "",
    document_id: Optional[str] = None
) -> OcrDocument:
    """
    Build an OcrDocument from a Google-Vision-style annotation payload.

    Each response contributes its ``fullTextAnnotation.pages`` (words) and its
    ``fullTextAnnotation.text``. ``page_texts`` stays aligned with ``pages``:
    the response text goes with its first page and further pages of the same
    response get an empty text. Page numbers start at ``context.pageNumber``
    when present and count up across the response's pages, otherwise they are
    assigned in order.
    """
    pages: List[List[Word]] = []
    page_texts: List[str] = []
    next_page = 1

    for response in _responses_of(payload):
        annotation = _as_dict(response.get("fullTextAnnotation"))
        context_page = _as_dict(response.get("context")).get("pageNumber")
        text = str(annotation.get("text") or "")

        # a response with text but no page structure still occupies one page
        response_pages = _as_list(annotation.get("pages")) or [{}]
        for offset, page in enumerate(response_pages):
            if isinstance(context_page, int):
                page_number = context_page + offset
            else:
                page_number = next_page
            pages.append(words_from_page(page, page_number))
            page_texts.append(text if offset == 0 else "")
            next_page = page_number + 1

    full_text = "\n\n".join(t for t in page_texts if t.strip()).strip()
    document = OcrDocument(
        document_id=document_id or str(uuid.uuid4()),
        filename=filename,
        pages=pages,
        page_texts=page_texts,
        full_text=full_text
    )
    logger.debug(
        f"Ingested {document.filename or document.document_id}: "
        f"{len(pages)} pages, {document.word_count} words"
    )
    return document


def load_vision_file(path: Union[str, Path]) -> OcrDocument:
    """Read an OCR JSON file from disk and ingest it."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    return document_from_vision_output(payload, filename=path.name, document_id=path.stem)


def document_from_pages(
    pages: Iterable[Dict[str, Any]],
    page_texts: Iterable[str],
    filename: str = "",
    document_id: Optional[str] = None
) -> OcrDocument:
    """Build an OcrDocument from already separated page structures and texts."""
    word_pages = [words_from_page(page, i + 1) for i, page in enumerate(pages)]
    texts = [t if t and t.strip() else "" for t in page_texts]
    return OcrDocument(
        document_id=document_id or str(uuid.uuid4()),
        filename=filename,
        pages=word_pages,
        page_texts=texts,
        full_text="\n\n".join(t for t in texts if t).strip()
    )
