"""
Data models for certificate extraction.

Dataclasses carry the pipeline's own state (records, proofs, candidates,
processing metadata). The completion service payload is validated with
pydantic so both response modes normalise into the same
:class:`CertificatePayload` and every absent field defaults to None.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from .numbers import coerce_number
from .registry import FIELD_NAMES, FIELD_REGISTRY

logger = logging.getLogger(__name__)

PROOF_SNIPPET_MAX_CHARS = 240


class ExtractionMode(Enum):
    """How the field values of a record were obtained."""
    STRUCTURED = "structured"
    STRUCTURED_FALLBACK = "structured_fallback"
    LAYOUT_ONLY = "layout_only"
    NOT_CERTIFICATE = "not_certificate"


@dataclass
class Proof:
    """Source excerpt justifying a field value, with optional line geometry."""
    snippet: str
    page: Optional[int] = None
    x1: Optional[float] = None
    y1: Optional[float] = None
    x2: Optional[float] = None
    y2: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"snippet": self.snippet}
        for key in ("page", "x1", "y1", "x2", "y2"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_line(cls, line, prefix: str = "Layout: ") -> "Proof":
        """Build a proof from a reconstructed line, keeping its bounding box."""
        return cls(
            snippet=f"{prefix}{line.text}"[:PROOF_SNIPPET_MAX_CHARS],
            page=line.page,
            x1=line.x1,
            y1=line.y1,
            x2=line.x2,
            y2=line.y2
        )


@dataclass
class ExtractionCandidate:
    """A value proposed by a positional resolver, before it is merged into a record."""
    value: Optional[float]
    source_line_index: Optional[int] = None
    proof_snippet: Optional[str] = None


@dataclass
class ProcessingMetadata:
    """Processing metadata and lineage of one document run."""
    processing_id: str
    document_id: str
    filename: str
    start_time: datetime
    end_time: Optional[datetime] = None
    processing_time_seconds: float = 0.0
    lineage_steps: List[Dict[str, Any]] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processing_id": self.processing_id,
            "document_id": self.document_id,
            "filename": self.filename,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "processing_time_seconds": self.processing_time_seconds,
            "lineage_steps": list(self.lineage_steps),
        }


def _empty_fields() -> Dict[str, Any]:
    return {name: None for name in FIELD_NAMES}


@dataclass
class ExtractionRecord:
    """
    Structured, provenance-tracked result for one certificate.

    ``needs_review`` is derived: a record is flagged when its confidence is
    below ``review_threshold`` or when any issue was recorded.
    """
    fields: Dict[str, Any] = field(default_factory=_empty_fields)
    proofs: Dict[str, Proof] = field(default_factory=dict)
    confidence: float = 0.0
    issues: List[str] = field(default_factory=list)
    is_certificate: bool = True
    extraction_mode: ExtractionMode = ExtractionMode.STRUCTURED
    review_threshold: float = 0.6
    metadata: Optional[ProcessingMetadata] = None

    @property
    def needs_review(self) -> bool:
        return self.confidence < self.review_threshold or bool(self.issues)

    def get(self, name: str) -> Any:
        return self.fields.get(name)

    def set(self, name: str, value: Any) -> None:
        if name not in FIELD_REGISTRY:
            raise KeyError(f"Unknown field: {name}")
        self.fields[name] = value

    def add_issue(self, message: str) -> None:
        self.issues.append(message)

    def copy(self) -> "ExtractionRecord":
        """Shallow copy with independent field, proof and issue containers."""
        return ExtractionRecord(
            fields=dict(self.fields),
            proofs=dict(self.proofs),
            confidence=self.confidence,
            issues=list(self.issues),
            is_certificate=self.is_certificate,
            extraction_mode=self.extraction_mode,
            review_threshold=self.review_threshold,
            metadata=self.metadata
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fields": dict(self.fields),
            "proofs": {name: proof.to_dict() for name, proof in self.proofs.items()},
            "confidence": self.confidence,
            "issues": list(self.issues),
            "needs_review": self.needs_review,
            "is_certificate": self.is_certificate,
            "extraction_mode": self.extraction_mode.value,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


class ProofPayload(BaseModel):
    """Proof entry as returned by the completion service."""
    model_config = ConfigDict(extra="ignore")

    snippet: str = ""
    page: Optional[float] = None
    x1: Optional[float] = None
    y1: Optional[float] = None
    x2: Optional[float] = None
    y2: Optional[float] = None

    @field_validator("page", "x1", "y1", "x2", "y2", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> Optional[float]:
        return coerce_number(value)

    @field_validator("snippet", mode="before")
    @classmethod
    def _coerce_snippet(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def to_proof(self) -> Proof:
        return Proof(
            snippet=self.snippet[:PROOF_SNIPPET_MAX_CHARS],
            page=int(self.page) if self.page is not None else None,
            x1=self.x1,
            y1=self.y1,
            x2=self.x2,
            y2=self.y2
        )


_TEXT_FIELDS = ("employeur", "caisse", "dateCertificat", "prenom", "nom",
                "dateNaissance", "remarques")
_NUMERIC_FIELDS = tuple(name for name in FIELD_NAMES if FIELD_REGISTRY[name].is_numeric)
_TRUE_WORDS = {"true", "yes", "oui", "ja", "si", "sì", "1"}
_FALSE_WORDS = {"false", "no", "non", "nein", "0"}


class CertificatePayload(BaseModel):
    """
    Logical content of a completion response.

    Every field is optional; loosely typed values (numeric strings, "oui"/"non",
    non-finite numbers) are coerced and anything unusable becomes None.
    """
    model_config = ConfigDict(extra="ignore")

    employeur: Optional[str] = None
    caisse: Optional[str] = None
    dateCertificat: Optional[str] = None
    prenom: Optional[str] = None
    nom: Optional[str] = None
    dateNaissance: Optional[str] = None
    salaireDeterminant: Optional[float] = None
    deductionCoordination: Optional[float] = None
    salaireAssureEpargne: Optional[float] = None
    salaireAssureRisque: Optional[float] = None
    avoirVieillesse: Optional[float] = None
    avoirVieillesseSelonLpp: Optional[float] = None
    interetProjetePct: Optional[float] = None
    renteInvaliditeAnnuelle: Optional[float] = None
    renteEnfantInvaliditeAnnuelle: Optional[float] = None
    renteConjointAnnuelle: Optional[float] = None
    renteOrphelinAnnuelle: Optional[float] = None
    capitalDeces: Optional[float] = None
    capitalRetraite65: Optional[float] = None
    renteRetraite65Annuelle: Optional[float] = None
    rachatPossible: Optional[float] = None
    eplDisponible: Optional[float] = None
    miseEnGage: Optional[bool] = None
    remarques: Optional[str] = None
    proofs: Dict[str, ProofPayload] = {}
    confidence: Optional[float] = None
    issues: List[str] = []

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None

    @field_validator(*_NUMERIC_FIELDS, "confidence", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> Optional[float]:
        return coerce_number(value)

    @field_validator("miseEnGage", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Optional[bool]:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        word = str(value).strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        return None

    @field_validator("proofs", mode="before")
    @classmethod
    def _coerce_proofs(cls, value: Any) -> Dict[str, Any]:
        if isinstance(value, list):
            # [{"field": ..., "snippet": ...}] as produced by the strict schema
            value = {item.get("field"): item for item in value
                     if isinstance(item, dict) and item.get("field")}
        if not isinstance(value, dict):
            return {}
        proofs: Dict[str, Any] = {}
        for name, entry in value.items():
            if isinstance(entry, str):
                proofs[name] = {"snippet": entry}
            elif isinstance(entry, dict):
                proofs[name] = entry
        return proofs

    @field_validator("issues", mode="before")
    @classmethod
    def _coerce_issues(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [str(item) for item in value if item is not None and str(item).strip()]
        return []

    def field_values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in FIELD_NAMES}


@dataclass(frozen=True)
class SchemaConstrainedResponse:
    """Payload returned under the strict JSON schema response mode."""
    data: Dict[str, Any]
    kind: str = "schema_constrained"

    def to_payload(self) -> CertificatePayload:
        return CertificatePayload.model_validate(self.data)


@dataclass(frozen=True)
class LooseJsonResponse:
    """Untyped JSON object returned under the relaxed fallback mode."""
    data: Dict[str, Any]
    kind: str = "loose_json"

    def to_payload(self) -> CertificatePayload:
        data = self.data
        # Some models wrap the object, e.g. {"certificate": {...}}
        if len(data) == 1:
            (inner,) = data.values()
            if isinstance(inner, dict) and any(name in inner for name in FIELD_NAMES):
                data = inner
        return CertificatePayload.model_validate(data)


ProviderResponse = Union[SchemaConstrainedResponse, LooseJsonResponse]


@dataclass
class BatchItemResult:
    """Outcome of one document inside a batch run."""
    document_id: str
    filename: str
    record: Optional[ExtractionRecord] = None
    error: Optional[str] = None
    error_category: Optional[str] = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.record is not None and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "filename": self.filename,
            "record": self.record.to_dict() if self.record else None,
            "error": self.error,
            "error_category": self.error_category,
            "skipped": self.skipped,
        }
