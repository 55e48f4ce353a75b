"""Vivino link and signal-trust helpers shared by ingestion and ranking."""

from __future__ import annotations

import math
from urllib.parse import quote

VIVINO_BASE_URL = "https://www.vivino.com"
VIVINO_SEARCH_PATH = "/search/wines"


def build_vivino_search_url(
    wine_name: str,
    producer: str | None = None,
    country: str | None = None,
) -> str:
    """
    Vivino search URL for a wine.

    The producer is left out of the query when the name already contains it.

    Args:
        wine_name: Catalog wine name
        producer: Producer name, if known
        country: Country to narrow the search

    Returns:
        Absolute search URL
    """
    includes_producer = bool(producer) and producer.lower() in wine_name.lower()
    parts = [wine_name, country] if includes_producer else [producer, wine_name, country]
    query = " ".join(p for p in parts if p)
    return f"{VIVINO_BASE_URL}{VIVINO_SEARCH_PATH}?q={quote(query, safe='')}"


def is_direct_vivino_wine_url(url: str | None) -> bool:
    """True for bottle-level Vivino links, False for search links."""
    if not url:
        return False
    if VIVINO_SEARCH_PATH in url:
        return False
    return url.startswith(f"{VIVINO_BASE_URL}/")


def resolve_vivino_url(
    stored_url: str | None,
    wine_name: str,
    producer: str | None,
    country: str | None,
) -> str:
    """Stored direct link if there is one, otherwise a search link."""
    if stored_url and is_direct_vivino_wine_url(stored_url):
        return stored_url
    return build_vivino_search_url(wine_name, producer, country)


def is_trusted_signal(confidence_score: float | None, min_confidence: float) -> bool:
    """Whether a signal's match confidence reaches ``min_confidence``."""
    if confidence_score is None or not math.isfinite(confidence_score):
        return False
    return confidence_score >= min_confidence
