"""
Tests for CanonicalFormatter - canonical export of extraction records.
"""

import pytest

from certforge.extraction.models import ExtractionRecord, Proof
from certforge.outputs.canonical import CanonicalFormatter, normalize_text, slugify_caisse, text_hash


class TestCanonicalFormatter:
    """Test suite for CanonicalFormatter."""

    @pytest.fixture
    def formatter(self):
        """Create formatter instance."""
        return CanonicalFormatter(schema_version="1.0")

    @pytest.fixture
    def record(self):
        record = ExtractionRecord(confidence=0.82)
        record.set("caisse", "Caisse de Pensions Exemple")
        record.set("avoirVieillesse", 85000.0)
        record.proofs["avoirVieillesse"] = Proof("Avoir de vieillesse au 01.01.2025 CHF 85'000", page=2)
        return record

    def test_format_record(self, formatter, record):
        canonical = formatter.format_record(record, raw_text="Avoir de vieillesse", filename="lpp.json")

        assert canonical["schema_version"] == "1.0"
        assert canonical["doc_type"] == "pension_certificate"
        assert canonical["filename"] == "lpp.json"
        assert canonical["caisse_slug"] == "caisse-de-pensions-exemple"
        assert canonical["text_hash"] == text_hash("Avoir de vieillesse")
        assert canonical["fields"]["avoirVieillesse"] == 85000.0
        assert canonical["proofs"]["avoirVieillesse"]["page"] == 2
        assert len(canonical["integrity_hash"]) == 64

    def test_integrity_validation(self, formatter, record):
        canonical = formatter.format_record(record, raw_text="text")

        assert formatter.validate_data_integrity(canonical)

        canonical["fields"]["avoirVieillesse"] = 310000.0
        assert not formatter.validate_data_integrity(canonical)

    def test_missing_integrity_hash(self, formatter):
        assert not formatter.validate_data_integrity({"fields": {}})

    def test_non_certificate_doc_type(self, formatter):
        canonical = formatter.format_record(ExtractionRecord(is_certificate=False))

        assert canonical["doc_type"] == "other"
        assert canonical["text_hash"] is None
        assert canonical["caisse_slug"] is None

    def test_format_does_not_alias_record(self, formatter, record):
        canonical = formatter.format_record(record)
        canonical["fields"]["caisse"] = "changed"

        assert record.get("caisse") == "Caisse de Pensions Exemple"


class TestTextNormalisation:
    """Test suite for text hashing and slugs."""

    def test_normalize_text(self):
        assert normalize_text("  Prévoyance   PROFESSIONNELLE\n") == "prevoyance professionnelle"

    def test_hash_ignores_case_accents_and_spacing(self):
        assert text_hash("Caisse de PRÉVOYANCE") == text_hash("caisse  de prevoyance")
        assert text_hash("a") != text_hash("b")

    @pytest.mark.parametrize("name,slug", [
        ("Caisse de Pensions Exemple", "caisse-de-pensions-exemple"),
        ("Fondation Collective LPP (Zürich)", "fondation-collective-lpp-zurich"),
        ("", None),
        (None, None),
        ("---", None),
    ])
    def test_slugify_caisse(self, name, slug):
        assert slugify_caisse(name) == slug
