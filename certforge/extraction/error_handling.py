"""
Error taxonomy for structured extraction.

Only the call boundary to the external completion service raises hard
errors; everything upstream degrades to empty or null values. The classifier
turns any exception reaching the pipeline root into an
:class:`ErrorClassification` that decides whether the document is degraded
or failed and whether the single fallback request applies.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during extraction."""
    UNSUPPORTED_REQUEST_SHAPE = "unsupported_request_shape"
    REQUEST_ERROR = "request_error"
    TIMEOUT = "timeout"
    EMPTY_RESPONSE = "empty_response"
    UNPARSEABLE_RESPONSE = "unparseable_response"
    CONFIGURATION_ERROR = "configuration_error"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ExtractionClientError(Exception):
    """Base error raised at the completion service boundary."""

    category = ErrorCategory.UNKNOWN

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class UnsupportedRequestShapeError(ExtractionClientError):
    """The provider rejected the schema-constrained request mode."""
    category = ErrorCategory.UNSUPPORTED_REQUEST_SHAPE


class ProviderRequestError(ExtractionClientError):
    """Generic request failure (HTTP status, connection, provider error)."""
    category = ErrorCategory.REQUEST_ERROR


class ProviderTimeoutError(ProviderRequestError):
    """The provider did not answer within the configured timeout."""
    category = ErrorCategory.TIMEOUT


class EmptyResponseError(ExtractionClientError):
    """The provider answered without any message content."""
    category = ErrorCategory.EMPTY_RESPONSE


class UnparseableResponseError(ExtractionClientError):
    """The message content is not a JSON object."""
    category = ErrorCategory.UNPARSEABLE_RESPONSE


class MissingCredentialsError(ExtractionClientError):
    """No API key is available for the completion provider."""
    category = ErrorCategory.CONFIGURATION_ERROR


@dataclass
class ErrorClassification:
    """Classification of an error with handling metadata."""
    category: ErrorCategory
    severity: ErrorSeverity
    is_fallback_trigger: bool
    suggested_action: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "is_fallback_trigger": self.is_fallback_trigger,
            "suggested_action": self.suggested_action,
        }


class ErrorClassifier:
    """Classifies errors reaching the pipeline root."""

    _ACTIONS = {
        ErrorCategory.UNSUPPORTED_REQUEST_SHAPE: (
            ErrorSeverity.LOW, "Retry once with the loosely typed response mode"),
        ErrorCategory.REQUEST_ERROR: (
            ErrorSeverity.HIGH, "Check provider status and request parameters"),
        ErrorCategory.TIMEOUT: (
            ErrorSeverity.MEDIUM, "Increase the client timeout or reduce the input size"),
        ErrorCategory.EMPTY_RESPONSE: (
            ErrorSeverity.MEDIUM, "Inspect the provider response; the model returned no content"),
        ErrorCategory.UNPARSEABLE_RESPONSE: (
            ErrorSeverity.MEDIUM, "Inspect the raw model output; it is not a JSON object"),
        ErrorCategory.CONFIGURATION_ERROR: (
            ErrorSeverity.CRITICAL, "Set the API key environment variable"),
        ErrorCategory.UNKNOWN: (
            ErrorSeverity.HIGH, "Investigate the error details"),
    }

    def classify_error(self, error: Exception) -> ErrorClassification:
        """
        Classify an error and determine handling strategy.

        Args:
            error: Exception that occurred

        Returns:
            Error classification with handling recommendations
        """
        if isinstance(error, ExtractionClientError):
            category = error.category
        elif isinstance(error, (TimeoutError, asyncio.TimeoutError)):
            category = ErrorCategory.TIMEOUT
        else:
            category = ErrorCategory.UNKNOWN

        severity, action = self._ACTIONS[category]
        return ErrorClassification(
            category=category,
            severity=severity,
            is_fallback_trigger=category == ErrorCategory.UNSUPPORTED_REQUEST_SHAPE,
            suggested_action=action
        )
