"""
Periodicity detection and annualization of annuity amounts.

Only fields flagged ``annualize_if_monthly`` in the field registry go through
:func:`annualize_if_monthly`; lump-sum capital fields are never converted.
"""

import re
from typing import Dict, Optional, Tuple

MONTHS_PER_YEAR = 12

MONTHLY_HINTS: Dict[str, Tuple[str, ...]] = {
    "fr": (r"\bpar\s*mois\b", r"\bmensuel(?:le)?s?\b", r"/\s*mois\b"),
    "de": (r"\bmonatlich(?:e|er|en)?\b", r"\bpro\s+monat\b", r"/\s*monat\b"),
    "it": (r"\bal\s*mese\b", r"\bmensil[ei]\b", r"/\s*mese\b"),
    "en": (r"\bper\s+month\b", r"\bmonthly\b", r"/\s*month\b"),
}

_MONTHLY_RE = re.compile(
    "|".join(p for patterns in MONTHLY_HINTS.values() for p in patterns),
    re.IGNORECASE
)


def is_monthly_hint(text: Optional[str]) -> bool:
    """True if the text contains a "per month" phrasing in FR/DE/IT/EN."""
    if not text:
        return False
    return bool(_MONTHLY_RE.search(text))


def annualize_if_monthly(value: Optional[float], context_text: Optional[str]) -> Optional[float]:
    """
    Convert a monthly amount to its yearly equivalent.

    Returns ``value * 12`` when the context carries a monthly hint, ``value``
    unchanged otherwise. ``None`` propagates.
    """
    if value is None:
        return None
    return value * MONTHS_PER_YEAR if is_monthly_hint(context_text) else value
