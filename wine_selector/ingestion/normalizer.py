"""
Text Normalizer Module
======================

Cleans and tokenizes wine names so that names from the retailer catalog and
the ratings site can be compared, and canonicalizes raw catalog fields
(producer, varietal, wine type) before they are stored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from wine_selector.core.enums import WineType
from wine_selector.core.varietals import (
    fold_accents,
    parse_producer,
    producer_label,
    varietal_label,
)
from wine_selector.ingestion.producer import infer_producer
from wine_selector.ingestion.varietal import find_varietal

YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]+")
WHITESPACE_RE = re.compile(r"\s+")

# Generic label words and articles that say nothing about which wine it is.
STOP_WORDS: frozenset[str] = frozenset({
    "wine", "wines", "estate", "estates", "winery", "vineyards", "vineyard",
    "cellars", "cellar", "reserve", "reserva", "riserva", "cuvee", "gran",
    "grande", "grand", "special", "limited", "edition", "classic", "selection",
    "old", "vines", "single", "barrel", "organic", "natural", "dry", "off",
    "sweet", "semi", "brut", "extra", "vintage",
    # appellation / kosher codes
    "vqa", "doc", "docg", "igt", "aoc", "ava", "kp", "do", "dop",
    # articles
    "de", "di", "du", "des", "del", "della", "le", "la", "les", "los", "el",
    "il", "the", "and", "or",
    "bin",
})

# Grapes used by the conflict veto. Two-word grapes are matched on the
# normalised text, one-word grapes on its tokens.
SINGLE_WORD_GRAPES: frozenset[str] = frozenset({
    "chardonnay", "riesling", "merlot", "syrah", "shiraz", "malbec",
    "tempranillo", "sangiovese", "nebbiolo", "barbera", "gamay", "zinfandel",
    "grenache", "mourvedre", "pinotage", "primitivo", "viognier", "moscato",
    "muscat", "prosecco", "champagne", "cava", "verdejo", "vermentino",
    "trebbiano", "garganega", "cortese", "pecorino", "dolcetto", "aglianico",
    "tannat", "zweigelt", "torrontes", "albarino", "carmenere", "montepulciano",
    "negroamaro",
})

TWO_WORD_GRAPES: tuple[str, ...] = (
    "cabernet sauvignon",
    "pinot noir",
    "cabernet franc",
    "sauvignon blanc",
    "pinot grigio",
    "pinot gris",
    "pinot blanc",
    "chenin blanc",
    "petit verdot",
    "petite sirah",
    "gruner veltliner",
    "nero avola",
)

# Spellings that name the same grape.
GRAPE_EQUIVALENTS: dict[str, str] = {"shiraz": "syrah"}


def normalise(text: str | None) -> str:
    """
    Lowercase, strip diacritics and years, drop punctuation, collapse spaces.

    Args:
        text: Raw wine or winery name

    Returns:
        Normalised text (possibly empty)
    """
    if not text:
        return ""
    value = fold_accents(text.lower())
    value = YEAR_RE.sub(" ", value)
    value = NON_ALNUM_RE.sub(" ", value)
    return WHITESPACE_RE.sub(" ", value).strip()


def significant_tokens(text: str | None) -> frozenset[str]:
    """Tokens of ``text`` longer than one character that are not stop words."""
    return frozenset(
        token
        for token in normalise(text).split(" ")
        if len(token) > 1 and token not in STOP_WORDS
    )


def grape_mentions(text: str | None) -> frozenset[str]:
    """Grapes named in ``text``, with equivalent spellings folded together."""
    norm = normalise(text)
    if not norm:
        return frozenset()
    padded = f" {norm} "
    found: set[str] = {g for g in TWO_WORD_GRAPES if f" {g} " in padded}
    for token in norm.split(" "):
        if token in SINGLE_WORD_GRAPES:
            found.add(token)
    return frozenset(GRAPE_EQUIVALENTS.get(g, g) for g in found)


def varietal_conflict(a: str | None, b: str | None) -> bool:
    """
    Whether two names mention grapes and none of them in common.

    A name without any grape never conflicts.
    """
    grapes_a = grape_mentions(a)
    grapes_b = grape_mentions(b)
    if not grapes_a or not grapes_b:
        return False
    return grapes_a.isdisjoint(grapes_b)


def infer_wine_type(category: str | None) -> WineType:
    """Map a retailer category ("Red Wine", "Rosé Wine", ...) to a WineType."""
    value = (category or "").lower()
    if "red" in value:
        return WineType.RED
    if "white" in value:
        return WineType.WHITE
    if "ros" in value:
        return WineType.ROSE
    if "sparkling" in value:
        return WineType.BUBBLY
    return WineType.OTHER


def slugify(text: str) -> str:
    """URL slug of ``text``: accent-folded lowercase alphanumerics joined by hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", fold_accents(text).lower()).strip("-")


@dataclass
class CanonicalFields:
    """Producer and varietal labels derived for one catalog product."""

    producer: str
    varietal: str


class CatalogNormalizer:
    """
    Fills in the producer and varietal of raw retailer products.

    A producer supplied upstream is kept as-is; otherwise it is inferred from
    the product name anchored on the extracted varietal.
    """

    def canonicalize(
        self,
        name: str,
        producer: str | None = None,
        description: str | None = None,
    ) -> CanonicalFields:
        """
        Derive storage labels for a product.

        Args:
            name: Product title
            producer: Producer given by the upstream feed, usually empty
            description: Optional product description

        Returns:
            CanonicalFields with sentinel-serialized values
        """
        varietal = find_varietal(name) or find_varietal(description)
        supplied = parse_producer(producer)
        resolved_producer = supplied or infer_producer(name, varietal)
        return CanonicalFields(
            producer=producer_label(resolved_producer),
            varietal=varietal_label(varietal),
        )
