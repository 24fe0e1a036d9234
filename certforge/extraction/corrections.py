"""
Layout-based correction and extraction.

:class:`CorrectionLayer` re-checks the client's numbers against the positional
evidence of the reconstructed lines. A layout value replaces a client value
only when the field is empty or the client value is below a quarter of the
layout value; every replacement is recorded as an issue that keeps the
previous value, and the proof is replaced by the layout line.

:class:`LayoutFieldExtractor` resolves every registered field from the layout
alone. The pipeline uses it when no structured extraction is available.
"""

import logging
from typing import Any, List, Optional, Sequence

from .models import ExtractionCandidate, ExtractionMode, ExtractionRecord, Proof
from .numbers import DATE_RE, find_numeric_tokens, is_followed_by_percent
from .registry import (
    CORRECTION_FIELDS,
    FIELD_SPECS,
    NO_PATTERN,
    YES_PATTERN,
    FieldKind,
    FieldSpec,
    LabelMatch,
    find_label_line,
    get_field,
)
from .units import annualize_if_monthly
from ..config import LayoutConfig
from ..layout.geometry import Line
from ..layout.resolver import PositionalValueResolver

logger = logging.getLogger(__name__)

OVERRIDE_RATIO = 4.0
TEXT_VALUE_MAX_CHARS = 120
PLEDGE_FIELD = "miseEnGage"

_LABEL_KINDS = (FieldKind.TEXT, FieldKind.DATE)


def _texts(lines: Sequence[Line]) -> List[str]:
    return [line.text for line in lines]


def resolve_field_amount(lines: Sequence[Line], spec: FieldSpec,
                         resolver: PositionalValueResolver) -> Optional[ExtractionCandidate]:
    """
    Resolve the amount printed next to ``spec``'s label.

    The search is anchored at the end of the label match, so an amount on the
    label's own line is found before the column below or above is searched.
    Annuity fields are annualized when the label line mentions a monthly
    periodicity.
    """
    match = find_label_line(_texts(lines), spec.name)
    if match is None:
        return None

    label_line = lines[match.line_index]
    resolved = resolver.resolve(lines, match.line_index, label_line.x_at_offset(match.end))
    if not resolved.found:
        return None

    value = resolved.value
    if spec.annualize_if_monthly:
        context = label_line.text
        if resolved.line_index != match.line_index:
            context = f"{context} {resolved.proof_text}"
        value = annualize_if_monthly(value, context)

    return ExtractionCandidate(
        value=value,
        source_line_index=resolved.line_index,
        proof_snippet=resolved.proof_text
    )


def resolve_pledge(lines: Sequence[Line]) -> Optional[ExtractionCandidate]:
    """
    Resolve the yes/no pledge flag from its label line.

    Returns a candidate only when exactly one of the yes/no keyword families
    appears on the line.
    """
    match = find_label_line(_texts(lines), PLEDGE_FIELD)
    if match is None:
        return None
    text = lines[match.line_index].text
    tail = text[match.end:]
    yes = bool(YES_PATTERN.search(tail))
    no = bool(NO_PATTERN.search(tail))
    if yes == no:
        return None
    return ExtractionCandidate(value=yes, source_line_index=match.line_index, proof_snippet=text)


class CorrectionLayer:
    """Overrides client values with positional evidence when the guard allows it."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()
        self.resolver = PositionalValueResolver(self.config)

    def apply(self, raw_text: str, lines: Sequence[Line], record: ExtractionRecord) -> ExtractionRecord:
        """
        Apply layout corrections to a record.

        Args:
            raw_text: Full OCR text (kept for parity with the validator inputs)
            lines: Reconstructed lines in reading order
            record: Record produced by the client; left unmodified

        Returns:
            A corrected copy of ``record``
        """
        out = record.copy()
        if not lines:
            return out

        for name in CORRECTION_FIELDS:
            spec = get_field(name)
            candidate = resolve_field_amount(lines, spec, self.resolver)
            if candidate is None or candidate.value is None:
                continue
            if spec.zero_means_absent and not candidate.value:
                continue

            current = out.get(name)
            new_value = candidate.value
            if current is not None and current * OVERRIDE_RATIO >= new_value:
                continue

            out.set(name, new_value)
            if current is None:
                out.add_issue(f"{name} corrected from layout (rightmost amount): {new_value:g}")
            else:
                out.add_issue(
                    f"{name} corrected from layout (rightmost amount): {current:g} -> {new_value:g}"
                )
            out.proofs[name] = Proof.from_line(lines[candidate.source_line_index])
            logger.warning(f"Layout override for {name}: {current} -> {new_value}")

        if out.get(PLEDGE_FIELD) is None:
            pledge = resolve_pledge(lines)
            if pledge is not None:
                out.set(PLEDGE_FIELD, pledge.value)
                out.proofs[PLEDGE_FIELD] = Proof.from_line(lines[pledge.source_line_index])

        return out


def apply_corrections(raw_text: str, lines: Sequence[Line], record: ExtractionRecord,
                      config: Optional[LayoutConfig] = None) -> ExtractionRecord:
    """Convenience wrapper around :class:`CorrectionLayer`."""
    return CorrectionLayer(config).apply(raw_text, lines, record)


class LayoutFieldExtractor:
    """Builds a record from positional evidence only."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()
        self.resolver = PositionalValueResolver(self.config)

    def extract(self, lines: Sequence[Line], confidence: float) -> ExtractionRecord:
        """
        Resolve every registered field from the layout.

        Args:
            lines: Reconstructed lines in reading order
            confidence: Confidence assigned to the resulting record

        Returns:
            ExtractionRecord in layout-only mode
        """
        record = ExtractionRecord(confidence=confidence, extraction_mode=ExtractionMode.LAYOUT_ONLY)
        texts = _texts(lines)

        for spec in FIELD_SPECS:
            if spec.kind in (FieldKind.AMOUNT, FieldKind.ANNUITY):
                candidate = resolve_field_amount(lines, spec, self.resolver)
                value = candidate.value if candidate and candidate.value else None
            elif spec.kind == FieldKind.BOOLEAN:
                candidate = resolve_pledge(lines)
                value = candidate.value if candidate else None
            else:
                match = find_label_line(texts, spec.name)
                candidate = self._resolve_inline(lines, spec, match) if match else None
                value = candidate.value if candidate else None

            if value is None:
                continue
            record.set(spec.name, value)
            record.proofs[spec.name] = Proof.from_line(lines[candidate.source_line_index])

        found = sum(1 for v in record.fields.values() if v is not None)
        logger.info(f"Layout-only extraction resolved {found} fields from {len(lines)} lines")
        return record

    def _resolve_inline(self, lines: Sequence[Line], spec: FieldSpec,
                        match: LabelMatch) -> Optional[ExtractionCandidate]:
        text = lines[match.line_index].text
        tail = _cut_at_next_label(text[match.end:], spec)

        value: Any = None
        if spec.kind == FieldKind.DATE:
            date = DATE_RE.search(tail)
            value = date.group(0) if date else None
        elif spec.kind == FieldKind.PERCENT:
            offset = match.end
            percents = [t for t in find_numeric_tokens(text[offset:], exclude_percent=False)
                        if is_followed_by_percent(text[offset:], t.end)]
            value = percents[-1].value if percents else None
        else:
            cleaned = tail.strip(" :;-\t").strip()
            value = cleaned[:TEXT_VALUE_MAX_CHARS] or None

        if value is None:
            return None
        return ExtractionCandidate(value=value, source_line_index=match.line_index, proof_snippet=text)


def _cut_at_next_label(tail: str, spec: FieldSpec) -> str:
    """Truncate ``tail`` where another text or date label starts."""
    cut = len(tail)
    for other in FIELD_SPECS:
        if other.name == spec.name or other.kind not in _LABEL_KINDS:
            continue
        found = other.search(tail)
        if found:
            cut = min(cut, found[0].start())
    return tail[:cut]
