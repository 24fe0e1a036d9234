"""
Output formatting: the canonical record layer handed to collaborators.
"""

from .canonical import CanonicalFormatter, normalize_text, slugify_caisse, text_hash

__all__ = [
    "CanonicalFormatter",
    "normalize_text",
    "slugify_caisse",
    "text_hash",
]
