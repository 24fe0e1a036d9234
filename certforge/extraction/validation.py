"""
Plausibility validation for extracted certificate records.

Three checks run in order on a copy of the record:

- the projection guard replaces current-balance values that were taken from a
  future-age projection table with the balance printed next to an
  "as of <date>" label;
- proof sanitation drops current-balance proofs quoting a projection table;
- the magnitude check flags annuities below fixed yearly floors.

Values are only ever replaced by the projection guard; the other checks add
advisory issues. Confidence is then aggregated from the client confidence,
the number of proofs and the number of issues.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from .models import ExtractionRecord, Proof
from .numbers import parse_number
from ..config import ValidationConfig

logger = logging.getLogger(__name__)

_AMOUNT = r"(\d{1,3}(?P<sep>['\u2019\u00a0\u202f ])\d{3}(?:(?P=sep)\d{3})*(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)"
_CURRENCY = r"(?:CHF|Fr\.?)?\s*"
_DATE = r"\d{1,2}\.\d{1,2}\.\d{4}"

# "<age> ans <amount>" rows of future projection tables.
PROJECTION_ROW_RE = re.compile(
    r"\b(\d{2})\s*(?:ans|jahre[n]?|anni|years?)\b\s*" + _CURRENCY + _AMOUNT,
    re.IGNORECASE
)

ANCHORED_BALANCE_RES: Dict[str, re.Pattern] = {
    "avoirVieillesse": re.compile(
        r"(?:avoir\s+de\s+vieillesse|altersguthaben|avere\s+di\s+vecchiaia)"
        r"\s+(?:au|per|am|al|as\s+of)\s+" + _DATE + r"\s*" + _CURRENCY + _AMOUNT,
        re.IGNORECASE
    ),
    "avoirVieillesseSelonLpp": re.compile(
        r"(?:dont\s+selon\s+LPP|davon\s+(?:nach\s+)?BVG|di\s+cui\s+(?:secondo\s+)?LPP)"
        r"\s+(?:au|per|am|al|as\s+of)\s+" + _DATE + r"\s*" + _CURRENCY + _AMOUNT,
        re.IGNORECASE
    ),
}

_PROJECTION_HEADING_RE = re.compile(
    r"prestations?\s+de\s+vieillesse|altersleistung(?:en)?|prestazion[ei]\s+di\s+vecchiaia"
    r"|retirement\s+benefits?",
    re.IGNORECASE
)
_AGE_RE = re.compile(r"\b\d{2}\s*(?:ans|jahre[n]?|anni|years?)\b", re.IGNORECASE)


class CheckType(Enum):
    """Kinds of plausibility checks."""
    MAGNITUDE = "magnitude"
    PROJECTION_LEAKAGE = "projection_leakage"
    PROOF_SANITATION = "proof_sanitation"


@dataclass
class ValidationIssue:
    """Advisory issue raised by a plausibility check."""
    check_type: CheckType
    field_path: str
    message: str
    actual_value: Optional[float] = None
    replacement_value: Optional[float] = None


class PlausibilityCheck(ABC):
    """A single check applied to a record (which it may update in place)."""

    @abstractmethod
    def apply(self, record: ExtractionRecord, raw_text: str) -> List[ValidationIssue]:
        """
        Check the record and return the issues found.

        Args:
            record: Record to check, owned by the caller's validation run
            raw_text: Full OCR text of the document

        Returns:
            List of validation issues
        """


def projected_amounts(raw_text: str) -> Set[float]:
    """Amounts appearing in "<two-digit age> <amount>" projection rows."""
    amounts: Set[float] = set()
    for match in PROJECTION_ROW_RE.finditer(raw_text or ""):
        value = parse_number(match.group(2))
        if value is not None:
            amounts.add(value)
    return amounts


def anchored_balance(raw_text: str, field_name: str) -> Optional[Tuple[float, str]]:
    """Return ``(value, matched_text)`` for a field's "as of <date>" balance, if printed."""
    pattern = ANCHORED_BALANCE_RES.get(field_name)
    match = pattern.search(raw_text or "") if pattern else None
    if not match:
        return None
    value = parse_number(match.group(1))
    return (value, match.group(0)) if value is not None else None


class ProjectionGuard(PlausibilityCheck):
    """Keeps projected retirement values out of current-balance fields."""

    def __init__(self, projection_ratio: float = 5.0):
        self.projection_ratio = projection_ratio

    def apply(self, record: ExtractionRecord, raw_text: str) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        projected = projected_amounts(raw_text)

        for name in ANCHORED_BALANCE_RES:
            value = record.get(name)
            if value is None:
                continue
            anchored = anchored_balance(raw_text, name)
            if anchored is None:
                continue
            balance, snippet = anchored
            if value == balance:
                continue

            if value in projected:
                reason = "matches a projection table amount"
            elif value > balance * self.projection_ratio:
                reason = f"exceeds {self.projection_ratio:g}x the dated balance"
            else:
                continue

            record.set(name, balance)
            record.proofs[name] = Proof(snippet=snippet)
            issues.append(ValidationIssue(
                check_type=CheckType.PROJECTION_LEAKAGE,
                field_path=name,
                message=f"{name} {value:g} {reason}; replaced by dated balance {balance:g}",
                actual_value=value,
                replacement_value=balance
            ))
            logger.warning(f"Projection leakage on {name}: {value} -> {balance}")

        return issues


class ProofSanitizer(PlausibilityCheck):
    """Drops current-balance proofs that quote a future-age projection table."""

    def __init__(self, fields=("avoirVieillesse", "avoirVieillesseSelonLpp")):
        self.fields = tuple(fields)

    def apply(self, record: ExtractionRecord, raw_text: str) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for name in self.fields:
            proof = record.proofs.get(name)
            if proof is None:
                continue
            snippet = proof.snippet or ""
            if _PROJECTION_HEADING_RE.search(snippet) and _AGE_RE.search(snippet):
                del record.proofs[name]
                issues.append(ValidationIssue(
                    check_type=CheckType.PROOF_SANITATION,
                    field_path=name,
                    message=f"{name} proof quoted a projection table and was removed"
                ))
        return issues


class MagnitudeCheck(PlausibilityCheck):
    """Flags annuities below small yearly floors; values are left unchanged."""

    def __init__(self, floors: Dict[str, float]):
        self.floors = dict(floors)

    def apply(self, record: ExtractionRecord, raw_text: str) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for name, floor in self.floors.items():
            value = record.get(name)
            if value is not None and value < floor:
                issues.append(ValidationIssue(
                    check_type=CheckType.MAGNITUDE,
                    field_path=name,
                    message=f"{name} {value:g}/year below {floor:g}/year: improbable",
                    actual_value=value
                ))
        return issues


class PlausibilityValidator:
    """Runs the plausibility checks and aggregates the record confidence."""

    def __init__(self, config: Optional[ValidationConfig] = None):
        self.config = config or ValidationConfig()
        self.checks: List[PlausibilityCheck] = [
            ProjectionGuard(self.config.projection_ratio),
            ProofSanitizer(),
            MagnitudeCheck(self.config.annuity_floors),
        ]

    def aggregate_confidence(self, base: float, proof_count: int, issue_count: int) -> float:
        """Client confidence plus the proof bonus, minus a penalty per issue, clamped to [0, 1]."""
        confidence = base
        if proof_count >= self.config.min_proofs_for_bonus:
            confidence += self.config.proof_bonus
        confidence -= issue_count * self.config.issue_penalty
        return max(0.0, min(1.0, confidence))

    def validate(self, record: ExtractionRecord, raw_text: str) -> ExtractionRecord:
        """
        Validate a record.

        Args:
            record: Record after corrections; left unmodified
            raw_text: Full OCR text of the document

        Returns:
            A validated copy with issues appended and confidence aggregated
        """
        out = record.copy()
        found: List[ValidationIssue] = []
        for check in self.checks:
            issues = check.apply(out, raw_text)
            found.extend(issues)
            out.issues.extend(issue.message for issue in issues)

        out.confidence = self.aggregate_confidence(record.confidence, len(out.proofs), len(out.issues))
        out.review_threshold = self.config.review_threshold

        logger.info(
            f"Validation completed: {len(found)} new issues, "
            f"confidence={out.confidence:.2f}, needs_review={out.needs_review}"
        )
        return out
