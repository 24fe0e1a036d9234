"""
Core orchestration: document classification and the extraction pipeline.
"""

from .classifier import DocumentTypeClassifier, ClassificationResult
from .pipeline import ExtractionPipeline

__all__ = [
    "DocumentTypeClassifier",
    "ClassificationResult",
    "ExtractionPipeline",
]
