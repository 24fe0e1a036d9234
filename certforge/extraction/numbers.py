"""
Locale-aware numeric token parsing.

Handles Swiss/European amount notations: apostrophe, typographic apostrophe,
non-breaking and plain space thousands separators, dot thousands groups and
comma-or-point decimals. Percentage exclusion is left to callers through
:func:`is_followed_by_percent`.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional

THOUSANDS_SEPARATORS = "'\u2019\u00a0\u202f "

# Grouped form requires one separator used consistently; otherwise a plain digit run.
AMOUNT_TOKEN_RE = re.compile(
    r"(?<![\d.,'\u2019])"
    r"(\d{1,3}(?P<sep>['\u2019\u00a0\u202f .])\d{3}(?:(?P=sep)\d{3})*(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)"
    r"(?![\d])"
)

DATE_RE = re.compile(r"\b(?:\d{1,2}[./-]\d{1,2}[./-]\d{2,4}|\d{4}-\d{2}-\d{2})\b")

_CURRENCY_PREFIX_RE = re.compile(r"^(?:CHF|SFr\.?|Fr\.?)\s*", re.IGNORECASE)
_DOT_GROUPS_RE = re.compile(r"^[+-]?\d{1,3}(?:\.\d{3})+$")
_COMMA_GROUPS_RE = re.compile(r"^[+-]?\d{1,3}(?:,\d{3})+$")
_NUMERIC_BODY_RE = re.compile(r"^[+-]?[\d.,]*\d[\d.,]*$")
_PERCENT_AFTER_RE = re.compile(r"^\s*%")


@dataclass(frozen=True)
class NumericToken:
    """A parsed numeric token and its character span in the source text."""
    raw: str
    value: float
    start: int
    end: int


def parse_number(token: Optional[str]) -> Optional[float]:
    """
    Parse a numeric token into a float.

    Examples:
        >>> parse_number("12'345.60")
        12345.6
        >>> parse_number("12 345,60")
        12345.6
        >>> parse_number("abc") is None
        True

    Returns:
        The normalized value, or None when the token is not a finite number
    """
    if token is None:
        return None

    s = _CURRENCY_PREFIX_RE.sub("", str(token).strip())
    s = s.rstrip(".-\u2013\u2014")
    for sep in THOUSANDS_SEPARATORS:
        s = s.replace(sep, "")

    if not s or not _NUMERIC_BODY_RE.match(s):
        return None

    has_comma = "," in s
    has_dot = "." in s

    if has_comma and has_dot:
        # The separator appearing last is the decimal mark.
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_comma:
        if _COMMA_GROUPS_RE.match(s):
            s = s.replace(",", "")
        elif s.count(",") == 1:
            s = s.replace(",", ".")
        else:
            return None
    elif has_dot:
        if _DOT_GROUPS_RE.match(s):
            s = s.replace(".", "")
        elif s.count(".") != 1:
            return None

    try:
        value = float(s)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def coerce_number(value: Any) -> Optional[float]:
    """Coerce a loosely typed value (number or string) to a finite float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        return parse_number(value)
    return None


def is_followed_by_percent(text: str, end: int) -> bool:
    """True when the first non-blank character after ``end`` is ``%``."""
    return bool(_PERCENT_AFTER_RE.match(text[end:]))


def mask_dates(text: str) -> str:
    """Blank out date-like substrings, preserving character offsets."""
    return DATE_RE.sub(lambda m: " " * len(m.group(0)), text)


def find_numeric_tokens(text: str, exclude_percent: bool = True) -> List[NumericToken]:
    """
    Find all amount-like tokens in a line of text.

    Dates are ignored. With ``exclude_percent`` a token immediately followed
    by ``%`` is skipped.
    """
    masked = mask_dates(text)
    tokens: List[NumericToken] = []
    for match in AMOUNT_TOKEN_RE.finditer(masked):
        if exclude_percent and is_followed_by_percent(masked, match.end()):
            continue
        value = parse_number(match.group(1))
        if value is None:
            continue
        tokens.append(NumericToken(
            raw=match.group(1),
            value=value,
            start=match.start(1),
            end=match.end(1)
        ))
    return tokens
