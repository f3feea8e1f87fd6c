"""String similarity used by duplicate detection and header inference.

Edit distances come from :mod:`rapidfuzz`; this module only fixes the text
normalization both callers agree on.
"""

from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein

_WS_RE = re.compile(r"\s+")


def normalize_text(value: str | None) -> str:
    """Lowercase, trim and collapse internal whitespace."""

    return _WS_RE.sub(" ", (value or "").strip().lower())


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost for insert, delete and substitute."""

    return Levenshtein.distance(a, b)


def similarity_ratio(a: str, b: str) -> float:
    """``1 - distance / max(len)``; two empty strings are identical (1.0)."""

    return Levenshtein.normalized_similarity(a, b)


__all__ = ["levenshtein", "normalize_text", "similarity_ratio"]
