"""
Main orchestration pipeline for pension certificate extraction.

Each document runs sequentially through ingestion, line reconstruction,
classification, structured extraction, layout corrections and plausibility
validation, with per-stage lineage. Documents of a batch are independent and
run under a bounded worker pool; a failing document never aborts the batch.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .classifier import DocumentTypeClassifier
from ..adapters.vision_adapter import OcrDocument
from ..config import PipelineConfig
from ..extraction.corrections import CorrectionLayer, LayoutFieldExtractor
from ..extraction.error_handling import ErrorClassifier, ExtractionClientError
from ..extraction.llm_client import StructuredExtractionClient
from ..extraction.models import (
    BatchItemResult,
    ExtractionMode,
    ExtractionRecord,
    ProcessingMetadata,
)
from ..extraction.validation import PlausibilityValidator
from ..layout.geometry import Line
from ..layout.reconstruction import LineReconstructor

logger = logging.getLogger(__name__)

NOT_CERTIFICATE_ISSUE = "Document not classified as a pension certificate"


@dataclass
class _DocumentRun:
    """Per-document processing state; never shared between documents."""
    processing_id: str
    document: OcrDocument
    start_time: datetime
    lineage_steps: List[Dict[str, Any]] = field(default_factory=list)

    def add_step(self, stage: str, step_start: datetime, **details: Any) -> None:
        self.lineage_steps.append({
            "stage": stage,
            "start_time": step_start.isoformat(),
            "end_time": datetime.now().isoformat(),
            **details
        })


class ExtractionPipeline:
    """
    Sequences the extraction stages for one document or a batch.

    The pipeline object itself is stateless between documents, so a single
    instance can process a batch concurrently.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        client: Optional[StructuredExtractionClient] = None
    ):
        self.config = config or PipelineConfig()
        self.reconstructor = LineReconstructor(self.config.layout)
        self.classifier = DocumentTypeClassifier(self.config.classifier)
        self.corrections = CorrectionLayer(self.config.layout)
        self.layout_extractor = LayoutFieldExtractor(self.config.layout)
        self.validator = PlausibilityValidator(self.config.validation)
        self.error_classifier = ErrorClassifier()

        if client is not None:
            self.client = client
        elif self.config.use_llm:
            self.client = StructuredExtractionClient(self.config.client)
        else:
            self.client = None

        logger.info(
            f"ExtractionPipeline initialized (structured client: "
            f"{'enabled' if self.client else 'disabled'}, on_client_error={self.config.on_client_error})"
        )

    async def process_document(self, document: OcrDocument) -> Optional[ExtractionRecord]:
        """
        Process one OCR document.

        Args:
            document: Ingested OCR document

        Returns:
            The validated ExtractionRecord, or None when the document holds no
            recognized word at all

        Raises:
            ExtractionClientError: Only when ``on_client_error`` is "fail"
        """
        run = _DocumentRun(
            processing_id=str(uuid.uuid4()),
            document=document,
            start_time=datetime.now()
        )
        name = document.filename or document.document_id
        logger.info(f"Starting document processing: {name} ({run.processing_id})")

        if not self._stage_ingestion(run):
            logger.warning(f"No recognized words in {name}; no record produced")
            return None

        lines = self._stage_line_reconstruction(run)

        if not self._stage_classification(run):
            record = ExtractionRecord(
                confidence=0.0,
                issues=[NOT_CERTIFICATE_ISSUE],
                is_certificate=False,
                extraction_mode=ExtractionMode.NOT_CERTIFICATE,
                review_threshold=self.config.validation.review_threshold
            )
            return self._finish(run, record)

        record = await self._stage_extraction(run, lines)
        record = self._stage_corrections(run, lines, record)
        record = self._stage_validation(run, record)

        logger.info(
            f"Document processing completed: {name}, confidence={record.confidence:.2f}, "
            f"issues={len(record.issues)}, needs_review={record.needs_review}"
        )
        return self._finish(run, record)

    def _finish(self, run: _DocumentRun, record: ExtractionRecord) -> ExtractionRecord:
        end_time = datetime.now()
        record.metadata = ProcessingMetadata(
            processing_id=run.processing_id,
            document_id=run.document.document_id,
            filename=run.document.filename,
            start_time=run.start_time,
            end_time=end_time,
            processing_time_seconds=(end_time - run.start_time).total_seconds(),
            lineage_steps=run.lineage_steps,
            config=self.config.to_dict()
        )
        return record

    def _stage_ingestion(self, run: _DocumentRun) -> bool:
        """Stage 1: Check that OCR produced words."""
        step_start = datetime.now()
        document = run.document
        run.add_step(
            "ingestion", step_start,
            pages=len(document.pages),
            words=document.word_count,
            text_chars=len(document.full_text)
        )
        return document.word_count > 0

    def _stage_line_reconstruction(self, run: _DocumentRun) -> List[Line]:
        """Stage 2: Cluster words into reading-order lines."""
        step_start = datetime.now()
        lines = self.reconstructor.reconstruct(run.document.all_words)
        logger.info(f"Stage 2: Reconstructed {len(lines)} lines")
        run.add_step("line_reconstruction", step_start, lines=len(lines))
        return lines

    def _stage_classification(self, run: _DocumentRun) -> bool:
        """Stage 3: Decide whether the document is a pension certificate."""
        step_start = datetime.now()
        document = run.document
        result = self.classifier.explain(
            document.full_text,
            document.filename,
            self.classifier.later_pages(document.page_texts)
        )
        logger.info(
            f"Stage 3: Classified as {'certificate' if result.is_certificate else 'other document'}"
            + (f" ({result.source}: {result.matched!r})" if result.is_certificate else "")
        )
        run.add_step(
            "classification", step_start,
            is_certificate=result.is_certificate,
            source=result.source
        )
        return result.is_certificate

    async def _stage_extraction(self, run: _DocumentRun, lines: Sequence[Line]) -> ExtractionRecord:
        """Stage 4: Structured extraction, degrading to layout-only when unavailable."""
        step_start = datetime.now()
        document = run.document

        if self.client is None:
            record = self.layout_extractor.extract(lines, self.config.degraded_confidence)
            run.add_step("extraction", step_start, mode=record.extraction_mode.value)
            return record

        try:
            record = await self.client.extract(document.full_text, lines)
        except (ExtractionClientError, asyncio.TimeoutError) as e:
            classification = self.error_classifier.classify_error(e)
            run.add_step(
                "extraction", step_start,
                mode="failed",
                error_category=classification.category.value
            )
            if self.config.on_client_error == "fail":
                logger.error(f"Structured extraction failed for {document.filename}: {e}")
                raise

            logger.warning(
                f"Structured extraction failed ({classification.category.value}), "
                f"degrading to layout-only record: {e}"
            )
            record = self.layout_extractor.extract(lines, self.config.degraded_confidence)
            record.add_issue(
                f"Structured extraction unavailable ({classification.category.value}); "
                f"values resolved from layout only"
            )
            return record

        run.add_step(
            "extraction", step_start,
            mode=record.extraction_mode.value,
            fields=sum(1 for v in record.fields.values() if v is not None)
        )
        return record

    def _stage_corrections(self, run: _DocumentRun, lines: Sequence[Line],
                           record: ExtractionRecord) -> ExtractionRecord:
        """Stage 5: Override undersized client values with positional evidence."""
        step_start = datetime.now()
        issues_before = len(record.issues)
        corrected = self.corrections.apply(run.document.full_text, lines, record)
        run.add_step("corrections", step_start, overrides=len(corrected.issues) - issues_before)
        return corrected

    def _stage_validation(self, run: _DocumentRun, record: ExtractionRecord) -> ExtractionRecord:
        """Stage 6: Plausibility checks and confidence aggregation."""
        step_start = datetime.now()
        validated = self.validator.validate(record, run.document.full_text)
        run.add_step(
            "validation", step_start,
            issues=len(validated.issues),
            confidence=validated.confidence
        )
        return validated

    async def process_batch(
        self,
        documents: Sequence[OcrDocument],
        cancel_event: Optional[asyncio.Event] = None
    ) -> List[BatchItemResult]:
        """
        Process independent documents under a bounded worker pool.

        Setting ``cancel_event`` stops new documents from starting; documents
        already running finish (or time out) normally and the rest are
        reported as skipped.

        Args:
            documents: Documents to process
            cancel_event: Optional event used to cancel the batch

        Returns:
            One BatchItemResult per document, in input order
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        logger.info(f"Processing batch of {len(documents)} documents "
                    f"(max_concurrency={self.config.max_concurrency})")

        async def run_one(document: OcrDocument) -> BatchItemResult:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"Batch cancelled; skipping {document.filename or document.document_id}")
                    return BatchItemResult(document.document_id, document.filename, skipped=True)
                try:
                    record = await self.process_document(document)
                except Exception as e:
                    classification = self.error_classifier.classify_error(e)
                    logger.error(
                        f"Document {document.filename or document.document_id} failed "
                        f"({classification.category.value}): {e}"
                    )
                    return BatchItemResult(
                        document.document_id,
                        document.filename,
                        error=str(e),
                        error_category=classification.category.value
                    )

            if record is None:
                return BatchItemResult(
                    document.document_id,
                    document.filename,
                    error="No recognized words",
                    error_category="ingestion_empty"
                )
            return BatchItemResult(document.document_id, document.filename, record=record)

        results = await asyncio.gather(*(run_one(d) for d in documents))

        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(f"Batch completed: {succeeded}/{len(results)} documents produced a record")
        return list(results)
