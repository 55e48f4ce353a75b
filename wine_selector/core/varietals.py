"""
Grape Variety Lexicon
=====================

Single source of truth for grape-variety names, aliases and UI chip labels.
Used by the varietal and producer extractors, the cross-source matcher and
the recommendation filters so that all of them agree on the same strings.
"""

from __future__ import annotations

import unicodedata

from wine_selector.core.enums import WineType

# Sentinels written to storage and returned to the UI.
BLEND = "Blend"
UNKNOWN_PRODUCER = "Unknown Producer"

# Multi-word entries are listed first within each group; the extractor sorts
# longest-first anyway so "Cabernet Sauvignon" wins over "Sauvignon".
RAW_VARIETALS: tuple[str, ...] = (
    # Red (multi-word)
    "Cabernet Sauvignon",
    "Pinot Noir",
    "Cabernet Franc",
    "Petit Verdot",
    "Petite Sirah",
    "Pinot Meunier",
    "Touriga Nacional",
    "Nero d'Avola",
    # Red (single-word)
    "Merlot",
    "Syrah",
    "Shiraz",
    "Sangiovese",
    "Tempranillo",
    "Grenache",
    "Garnacha",
    "Malbec",
    "Zinfandel",
    "Nebbiolo",
    "Barbera",
    "Mourvèdre",
    "Monastrell",
    "Carménère",
    "Pinotage",
    "Gamay",
    "Primitivo",
    "Dolcetto",
    "Montepulciano",
    "Aglianico",
    "Corvina",
    "Tannat",
    "Bonarda",
    "Zweigelt",
    "Blaufränkisch",
    "Mencía",
    # White (multi-word)
    "Sauvignon Blanc",
    "Pinot Grigio",
    "Pinot Gris",
    "Pinot Blanc",
    "Chenin Blanc",
    "Grüner Veltliner",
    "Gruner Veltliner",
    # White (single-word)
    "Chardonnay",
    "Riesling",
    "Viognier",
    "Gewürztraminer",
    "Gewurztraminer",
    "Albariño",
    "Albarino",
    "Torrontés",
    "Torrontes",
    "Muscat",
    "Moscato",
    "Moscatel",
    "Sémillon",
    "Semillon",
    "Marsanne",
    "Roussanne",
    "Verdejo",
    "Vermentino",
    "Trebbiano",
    "Garganega",
    "Fiano",
    "Falanghina",
    "Cortese",
    "Pecorino",
    "Soave",
    # Sparkling designations
    "Prosecco",
    "Champagne",
    "Cava",
    "Crémant",
    "Cremant",
    # Other designations
    "Meritage",
    "Vidal",
    "Baco Noir",
)

# Lowercase variant -> preferred display label.
CANONICAL_MAP: dict[str, str] = {
    "pinot gris": "Pinot Grigio",
    "garnacha": "Grenache",
    "monastrell": "Mourvèdre",
    "gruner veltliner": "Grüner Veltliner",
    "gewurztraminer": "Gewürztraminer",
    "albarino": "Albariño",
    "torrontes": "Torrontés",
    "semillon": "Sémillon",
    "cremant": "Crémant",
}

# Filter chip labels by wine type.
VARIETAL_BY_TYPE: dict[WineType, list[str]] = {
    WineType.RED: ["Cabernet Sauvignon", "Pinot Noir", "Sangiovese", "Merlot", "Syrah"],
    WineType.WHITE: ["Chardonnay", "Sauvignon Blanc", "Riesling", "Pinot Grigio", "Chenin Blanc"],
    WineType.ROSE: ["Provence Rose", "Grenache Rose", "Sangiovese Rose"],
    WineType.BUBBLY: ["Champagne", "Prosecco", "Cava", "Crémant"],
    WineType.OTHER: ["Orange Wine", "Fortified", "Natural"],
}


def fold_accents(text: str) -> str:
    """Strip combining diacritics (``"Grüner"`` -> ``"Gruner"``)."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def canonical_varietal(raw: str) -> str:
    """Map a lexicon entry (any case) to its canonical display form."""
    return CANONICAL_MAP.get(raw.lower(), raw)


def canonical_varietals() -> list[str]:
    """Distinct canonical names in lexicon order."""
    seen: dict[str, None] = {}
    for raw in RAW_VARIETALS:
        seen.setdefault(canonical_varietal(raw), None)
    return list(seen)


def varietal_label(varietal: str | None) -> str:
    """Serialize an optional varietal to its storage/display form."""
    return varietal if varietal else BLEND


def producer_label(producer: str | None) -> str:
    """Serialize an optional producer to its storage/display form."""
    return producer if producer else UNKNOWN_PRODUCER


def parse_varietal(label: str | None) -> str | None:
    """Inverse of :func:`varietal_label`."""
    if not label or label == BLEND:
        return None
    return label


def parse_producer(label: str | None) -> str | None:
    """Inverse of :func:`producer_label`."""
    if not label or label.strip() == UNKNOWN_PRODUCER:
        return None
    return label.strip()
