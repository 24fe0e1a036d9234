"""
Extraction components.

Numeric parsing, periodicity normalization, the field registry, record models
and the error taxonomy. The client, correction and validation modules are
imported from their own modules.
"""

from .numbers import parse_number, find_numeric_tokens, NumericToken
from .units import is_monthly_hint, annualize_if_monthly
from .registry import FieldSpec, FieldKind, LabelPattern, FIELD_REGISTRY, label_patterns, find_label_line
from .models import ExtractionRecord, ExtractionCandidate, ExtractionMode, Proof, ProcessingMetadata
from .error_handling import ExtractionClientError, ErrorClassifier, ErrorCategory

__all__ = [
    "parse_number",
    "find_numeric_tokens",
    "NumericToken",
    "is_monthly_hint",
    "annualize_if_monthly",
    "FieldSpec",
    "FieldKind",
    "LabelPattern",
    "FIELD_REGISTRY",
    "label_patterns",
    "find_label_line",
    "ExtractionRecord",
    "ExtractionCandidate",
    "ExtractionMode",
    "Proof",
    "ProcessingMetadata",
    "ExtractionClientError",
    "ErrorClassifier",
    "ErrorCategory",
]
