"""
Coarse document type classification.

Decides whether an OCR document is an occupational pension (2nd pillar)
certificate from multilingual keywords. Later pages are checked first because
page 1 is often a cover letter; then the full text; then the filename.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config import ClassifierConfig

logger = logging.getLogger(__name__)

CERTIFICATE_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"certificat\s+de\s+pr[ée]voyance",
        r"pr[ée]voyance\s+professionnelle",
        r"\bLPP\b",
        r"\bBVG\b",
        r"\b2(?:e|ème|nd)?\s*pilier\b",
        r"\b2\.\s*s[äa]ule\b",
        r"vorsorgeausweis",
        r"certificato\s+(?:di\s+)?previdenza",
        r"\b(?:pension|occupational\s+pension)\s+certificate\b",
        r"\b2nd\s+pillar\b",
        r"avoir\s+de\s+vieillesse|altersguthaben|avere\s+di\s+vecchiaia",
        r"salaire\s+assur[ée]|versichertes?\s+(?:gehalt|lohn)|salario\s+assicurato",
        r"rente\s+d['’]?\s*invalidit[ée]|invalidenrente|rendita\s+d['’]?\s*invalidit[àa]",
        r"capital[-\s]?d[ée]c[èe]s|todesfallkapital|capitale\s+decesso",
    )
]

FILENAME_PATTERN = re.compile(r"lpp|bvg|vorsorge|certificat|previdenza|epl|pension", re.IGNORECASE)


@dataclass
class ClassificationResult:
    """Verdict with the evidence that produced it."""
    is_certificate: bool
    source: Optional[str] = None
    matched: Optional[str] = None


def _first_match(text: str) -> Optional[str]:
    for pattern in CERTIFICATE_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match.group(0)
    return None


class DocumentTypeClassifier:
    """Keyword classifier for pension certificates. Pure, no I/O."""

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()

    def later_pages(self, page_texts: Sequence[str]) -> List[str]:
        """Pages considered "later" for detection; empty for single-page documents."""
        if len(page_texts) <= 1:
            return []
        return list(page_texts[self.config.later_page_start:self.config.later_page_end])

    def explain(self, full_text: str, filename: str = "",
                later_page_texts: Sequence[str] = ()) -> ClassificationResult:
        """Classify and report which input (later pages, full text, filename) matched."""
        for text in later_page_texts:
            matched = _first_match(text)
            if matched:
                return ClassificationResult(True, "later_pages", matched)

        matched = _first_match(full_text)
        if matched:
            return ClassificationResult(True, "full_text", matched)

        if filename:
            match = FILENAME_PATTERN.search(filename)
            if match:
                return ClassificationResult(True, "filename", match.group(0))

        return ClassificationResult(False)

    def classify(self, full_text: str, filename: str = "",
                 later_page_texts: Sequence[str] = ()) -> bool:
        """
        Decide whether the document is a pension certificate.

        Args:
            full_text: Full OCR text
            filename: Document filename, used only for a keyword check
            later_page_texts: Texts of pages after the first

        Returns:
            True for a certificate; ambiguous input defaults to False
        """
        result = self.explain(full_text, filename, later_page_texts)
        logger.debug(f"Classification of {filename or '<unnamed>'}: {result}")
        return result.is_certificate
