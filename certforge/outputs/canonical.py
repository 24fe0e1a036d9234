"""
Canonical export of extraction records.

Produces the dictionary handed to downstream collaborators: the record's
fields, proofs, confidence and issues, plus a hash of the normalised OCR text
(to recognise re-submitted documents), a slug of the pension fund name and an
integrity hash over the exported content.
"""

import copy
import hashlib
import json
import logging
import re
import unicodedata
from datetime import datetime
from typing import Any, Dict, Optional

from ..extraction.models import ExtractionRecord

logger = logging.getLogger(__name__)

_COMBINING_MARKS_RE = re.compile(r"[\u0300-\u036f]")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def normalize_text(text: str) -> str:
    """Lower-case, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", (text or "").lower())
    return _WHITESPACE_RE.sub(" ", _COMBINING_MARKS_RE.sub("", decomposed)).strip()


def text_hash(text: str) -> str:
    """SHA-256 of the normalised text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def slugify_caisse(name: Optional[str]) -> Optional[str]:
    """Slug of a pension fund name, e.g. "Caisse de Pensions Exemple" -> "caisse-de-pensions-exemple"."""
    if not name:
        return None
    decomposed = _COMBINING_MARKS_RE.sub("", unicodedata.normalize("NFKD", name.lower()))
    slug = _NON_SLUG_RE.sub("-", decomposed).strip("-")
    return slug or None


class CanonicalFormatter:
    """
    Formatter for the canonical record layer.

    Preserves the record without business transformations and seals it with
    an integrity hash for audit.
    """

    def __init__(self, schema_version: str = "1.0"):
        self.schema_version = schema_version

    def format_record(self, record: ExtractionRecord, raw_text: str = "",
                      filename: Optional[str] = None) -> Dict[str, Any]:
        """
        Format a record as canonical data.

        Args:
            record: Validated extraction record
            raw_text: Full OCR text the record was extracted from
            filename: Source filename, if known

        Returns:
            Canonical dictionary including ``integrity_hash``
        """
        data = copy.deepcopy(record.to_dict())
        canonical = {
            "schema_version": self.schema_version,
            "doc_type": "pension_certificate" if record.is_certificate else "other",
            "filename": filename,
            "text_hash": text_hash(raw_text) if raw_text else None,
            "caisse_slug": slugify_caisse(record.get("caisse")),
            "exported_at": datetime.now().isoformat(),
            **data,
        }
        canonical["integrity_hash"] = self._calculate_integrity_hash(canonical)

        logger.debug(
            f"Canonical record formatted: {filename or '<unnamed>'}, "
            f"integrity_hash: {canonical['integrity_hash'][:8]}..."
        )
        return canonical

    def validate_data_integrity(self, canonical: Dict[str, Any]) -> bool:
        """
        Check that a canonical dictionary still matches its integrity hash.

        Returns:
            True if the stored hash matches the recalculated one
        """
        stored = canonical.get("integrity_hash")
        if not stored:
            logger.error("Missing integrity_hash")
            return False
        calculated = self._calculate_integrity_hash(canonical)
        if stored != calculated:
            logger.error(
                f"Integrity hash mismatch! Stored: {stored[:8]}..., Calculated: {calculated[:8]}..."
            )
            return False
        return True

    def _calculate_integrity_hash(self, canonical: Dict[str, Any]) -> str:
        """SHA-256 over the deterministic JSON of the preserved content."""
        hashable = {
            "schema_version": canonical.get("schema_version"),
            "text_hash": canonical.get("text_hash"),
            "fields": canonical.get("fields"),
            "proofs": canonical.get("proofs"),
            "confidence": canonical.get("confidence"),
            "issues": canonical.get("issues"),
        }
        json_str = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode("utf-8")).hexdigest()
