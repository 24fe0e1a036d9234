"""
Tests for ExtractionPipeline, single documents and batches.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from certforge.adapters.vision_adapter import document_from_vision_output
from certforge.config import ClientConfig, PipelineConfig
from certforge.core.pipeline import NOT_CERTIFICATE_ISSUE, ExtractionPipeline
from certforge.extraction.error_handling import MissingCredentialsError, ProviderRequestError
from certforge.extraction.llm_client import StructuredExtractionClient
from certforge.extraction.models import ExtractionMode, ExtractionRecord


def _client_returning(payload):
    provider = MagicMock()
    provider.complete = AsyncMock(return_value=json.dumps(payload))
    return StructuredExtractionClient(ClientConfig(), provider=provider), provider


def _failing_client(error):
    client = MagicMock()
    client.extract = AsyncMock(side_effect=error)
    return client


class TestEndToEnd:
    """Two-page certificate with a dated balance and a projection table."""

    @pytest.mark.asyncio
    async def test_layout_only_uses_dated_balance(self, certificate_document):
        pipeline = ExtractionPipeline(PipelineConfig(use_llm=False))

        record = await pipeline.process_document(certificate_document)

        assert record.is_certificate
        assert record.extraction_mode == ExtractionMode.LAYOUT_ONLY
        assert record.get("avoirVieillesse") == 85000
        assert record.get("caisse") == "Exemple SA"
        assert record.proofs["avoirVieillesse"].page == 2

    @pytest.mark.asyncio
    async def test_projection_from_client_replaced(self, certificate_document):
        client, provider = _client_returning({
            "caisse": "Exemple SA",
            "avoirVieillesse": 310000,
            "confidence": 0.9,
            "proofs": [{"field": "avoirVieillesse",
                        "snippet": "Prestations de vieillesse à 65 ans CHF 310'000"}],
            "issues": [],
        })
        pipeline = ExtractionPipeline(PipelineConfig(), client=client)

        record = await pipeline.process_document(certificate_document)

        assert provider.complete.await_count == 1
        assert record.extraction_mode == ExtractionMode.STRUCTURED
        assert record.get("avoirVieillesse") == 85000
        assert record.proofs["avoirVieillesse"].snippet.startswith("Avoir de vieillesse au 01.01.2025")
        assert any("310000" in issue for issue in record.issues)
        assert record.needs_review

    @pytest.mark.asyncio
    async def test_lineage_recorded(self, certificate_document):
        record = await ExtractionPipeline(PipelineConfig(use_llm=False)).process_document(certificate_document)

        stages = [step["stage"] for step in record.metadata.lineage_steps]
        assert stages == [
            "ingestion", "line_reconstruction", "classification",
            "extraction", "corrections", "validation",
        ]
        assert record.metadata.document_id == "doc-1"


class TestDocumentOutcomes:
    """Test suite for non-target, empty and failing documents."""

    @pytest.mark.asyncio
    async def test_non_certificate_skips_client(self, make_vision_payload):
        document = document_from_vision_output(
            make_vision_payload([[("Facture no 4711", 100), ("Montant dû CHF 120.00", 120)]]),
            filename="facture.json"
        )
        client, provider = _client_returning({})

        record = await ExtractionPipeline(PipelineConfig(), client=client).process_document(document)

        assert record.is_certificate is False
        assert record.extraction_mode == ExtractionMode.NOT_CERTIFICATE
        assert record.issues == [NOT_CERTIFICATE_ISSUE]
        assert all(value is None for value in record.fields.values())
        provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_amounts_stay_absent(self, make_vision_payload):
        document = document_from_vision_output(make_vision_payload([[
            ("Certificat de prévoyance LPP", 100),
            ("Rachat possible CHF 0", 130),
            ("Rente d'invalidité annuelle CHF 0", 160),
        ]]))

        record = await ExtractionPipeline(PipelineConfig(use_llm=False)).process_document(document)

        assert record.is_certificate
        assert record.get("rachatPossible") is None
        assert record.get("renteInvaliditeAnnuelle") is None
        assert not any("corrected from layout" in issue for issue in record.issues)
        assert not any("improbable" in issue for issue in record.issues)

    @pytest.mark.asyncio
    async def test_empty_document_returns_none(self):
        document = document_from_vision_output({"responses": []})

        assert await ExtractionPipeline(PipelineConfig(use_llm=False)).process_document(document) is None

    @pytest.mark.asyncio
    async def test_client_error_degrades(self, certificate_document):
        pipeline = ExtractionPipeline(
            PipelineConfig(on_client_error="degrade"),
            client=_failing_client(ProviderRequestError("HTTP 500"))
        )

        record = await pipeline.process_document(certificate_document)

        assert record.extraction_mode == ExtractionMode.LAYOUT_ONLY
        assert record.get("avoirVieillesse") == 85000
        assert any("request_error" in issue for issue in record.issues)
        assert record.needs_review

    @pytest.mark.asyncio
    async def test_client_error_fails(self, certificate_document):
        pipeline = ExtractionPipeline(
            PipelineConfig(on_client_error="fail"),
            client=_failing_client(MissingCredentialsError("OPENAI_API_KEY is missing"))
        )

        with pytest.raises(MissingCredentialsError):
            await pipeline.process_document(certificate_document)


class TestBatch:
    """Test suite for batch processing."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self, make_certificate_document):
        documents = [make_certificate_document(f"doc-{i}") for i in range(5)]

        results = await ExtractionPipeline(PipelineConfig(use_llm=False)).process_batch(documents)

        assert [r.document_id for r in results] == [f"doc-{i}" for i in range(5)]
        assert all(r.succeeded for r in results)

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, make_certificate_document):
        state = {"running": 0, "peak": 0}

        async def extract(raw_text, lines):
            state["running"] += 1
            state["peak"] = max(state["peak"], state["running"])
            await asyncio.sleep(0.01)
            state["running"] -= 1
            return ExtractionRecord(confidence=0.8)

        client = MagicMock()
        client.extract = AsyncMock(side_effect=extract)
        pipeline = ExtractionPipeline(PipelineConfig(max_concurrency=2), client=client)

        results = await pipeline.process_batch([make_certificate_document(f"d{i}") for i in range(6)])

        assert len(results) == 6
        assert state["peak"] <= 2
        assert client.extract.await_count == 6

    @pytest.mark.asyncio
    async def test_failure_isolated(self, make_certificate_document):
        calls = {"n": 0}

        async def extract(raw_text, lines):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ProviderRequestError("HTTP 503")
            return ExtractionRecord(confidence=0.8)

        client = MagicMock()
        client.extract = AsyncMock(side_effect=extract)
        pipeline = ExtractionPipeline(PipelineConfig(on_client_error="fail", max_concurrency=1), client=client)

        results = await pipeline.process_batch([make_certificate_document("a"), make_certificate_document("b")])

        assert results[0].error_category == "request_error"
        assert results[0].record is None
        assert results[1].succeeded

    @pytest.mark.asyncio
    async def test_empty_document_reported(self, make_certificate_document):
        documents = [document_from_vision_output({}, document_id="empty"), make_certificate_document("ok")]

        results = await ExtractionPipeline(PipelineConfig(use_llm=False)).process_batch(documents)

        assert results[0].error == "No recognized words"
        assert results[1].succeeded

    @pytest.mark.asyncio
    async def test_cancelled_batch_skips_documents(self, make_certificate_document):
        cancel = asyncio.Event()
        cancel.set()

        results = await ExtractionPipeline(PipelineConfig(use_llm=False)).process_batch(
            [make_certificate_document("a"), make_certificate_document("b")], cancel_event=cancel
        )

        assert all(r.skipped for r in results)
        assert not any(r.succeeded for r in results)
