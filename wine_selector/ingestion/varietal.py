"""
Varietal Extractor
==================

Finds the grape variety named in a retailer product title (or, failing that,
its description) using the shared lexicon in :mod:`wine_selector.core.varietals`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from wine_selector.core.varietals import (
    BLEND,
    RAW_VARIETALS,
    canonical_varietal,
    fold_accents,
)


@dataclass(frozen=True)
class VarietalPattern:
    """A compiled lexicon entry."""

    raw: str
    canonical: str
    pattern: re.Pattern[str]


def _build_patterns() -> list[VarietalPattern]:
    # Longest first so multi-word grapes beat their single-word substrings.
    ordered = sorted(RAW_VARIETALS, key=len, reverse=True)
    return [
        VarietalPattern(
            raw=raw,
            canonical=canonical_varietal(raw),
            pattern=re.compile(rf"\b{re.escape(fold_accents(raw))}\b", re.IGNORECASE),
        )
        for raw in ordered
    ]


VARIETAL_PATTERNS: list[VarietalPattern] = _build_patterns()


def find_varietal(text: str | None) -> str | None:
    """
    Return the canonical varietal mentioned in ``text``.

    Args:
        text: Free text such as a product name or description

    Returns:
        Canonical varietal name, or None when no lexicon entry is present
    """
    if not text:
        return None
    folded = fold_accents(text)
    for entry in VARIETAL_PATTERNS:
        if entry.pattern.search(folded):
            return entry.canonical
    return None


def extract_varietal(name: str | None, description: str | None = None) -> str:
    """
    Extract the varietal of a wine, preferring its name over its description.

    Args:
        name: Product name
        description: Optional product description

    Returns:
        Canonical varietal, or "Blend" when neither text names a grape
    """
    return find_varietal(name) or find_varietal(description) or BLEND
