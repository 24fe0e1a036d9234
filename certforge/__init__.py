"""
certforge - Layout reconstruction and field extraction for pension certificates.

Turns per-word OCR output of Swiss occupational pension (2nd pillar, LPP/BVG)
certificates into a structured, provenance-tracked financial record.

Quick Start:
    >>> from certforge import ExtractionPipeline, document_from_vision_output
    >>> document = document_from_vision_output(vision_json, filename="lpp.pdf")
    >>> record = await ExtractionPipeline().process_document(document)
    >>> record.fields["avoirVieillesse"], record.needs_review

Architecture:
- Ingestion: OCR pages -> flat word geometry
- Layout: words -> reading-order lines; label -> value positional resolution
- Extraction: structured completion request with one documented fallback
- Corrections and validation: positional overrides, projection guard,
  plausibility floors and confidence aggregation

Components:
- certforge.adapters: OCR input adapters
- certforge.layout: line reconstruction and positional value resolution
- certforge.extraction: numbers, units, field registry, client, corrections, validation
- certforge.core: document classification and pipeline orchestration
- certforge.outputs: canonical export
"""

__version__ = "0.1.0"
__author__ = "certforge Team"
__package_name__ = "certforge"

from .config import (
    PipelineConfig,
    LayoutConfig,
    ClientConfig,
    ValidationConfig,
    ClassifierConfig,
)

# Layout
from .layout import Word, Line, LineReconstructor, PositionalValueResolver

# Extraction
from .extraction.models import ExtractionRecord, BatchItemResult
from .extraction.llm_client import StructuredExtractionClient, OpenAICompletionProvider
from .extraction.corrections import apply_corrections
from .extraction.validation import PlausibilityValidator

# Adapters
from .adapters import OcrDocument, document_from_vision_output, load_vision_file

# Core Pipeline
from .core.classifier import DocumentTypeClassifier
from .core.pipeline import ExtractionPipeline

# Output Formatters
from .outputs.canonical import CanonicalFormatter

__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__package_name__",
    # Configuration
    "PipelineConfig",
    "LayoutConfig",
    "ClientConfig",
    "ValidationConfig",
    "ClassifierConfig",
    # Layout
    "Word",
    "Line",
    "LineReconstructor",
    "PositionalValueResolver",
    # Extraction
    "ExtractionRecord",
    "BatchItemResult",
    "StructuredExtractionClient",
    "OpenAICompletionProvider",
    "apply_corrections",
    "PlausibilityValidator",
    # Adapters
    "OcrDocument",
    "document_from_vision_output",
    "load_vision_file",
    # Core
    "DocumentTypeClassifier",
    "ExtractionPipeline",
    # Formatters
    "CanonicalFormatter",
]
