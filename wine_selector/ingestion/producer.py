"""
Producer Extractor
==================

Infers the producer (brand) of a wine from its product title.

The retailer feed never carries a structured producer, so the producer is
taken as the text in front of the grape variety ("Cloudy Bay Sauvignon
Blanc" -> "Cloudy Bay"). The lookup is an ordered chain of strategies:

1. SuppliedVarietalStrategy - the already-extracted varietal, if present
2. LexiconScanStrategy - any grape in the lexicon, longest first
3. FirstWordsStrategy - leading words, only when the varietal is known
4. give up ("Unknown Producer")
"""

from __future__ import annotations

import re
import unicodedata
from abc import ABC, abstractmethod

from wine_selector.core.varietals import (
    BLEND,
    CANONICAL_MAP,
    RAW_VARIETALS,
    UNKNOWN_PRODUCER,
    fold_accents,
    parse_varietal,
    producer_label,
)

# Label boilerplate that can sit between the producer and the grape.
TRAILING_WINE_TERMS = re.compile(
    r"\b(Riserva|Reserva|Reserve|Gran Reserva|Grand Cru|Premier Cru|Crianza|Roble|"
    r"Superiore|Classico|Estate|Winery|Vineyards?|Cellars?|Wines?)\s*$",
    re.IGNORECASE,
)

VINTAGE_RE = re.compile(r"\b(19|20)\d{2}\b")

# Appellation and kosher markers (KP = kosher for Passover).
LABEL_SUFFIXES_RE = re.compile(
    r"\s+\b(KP|KPM|VQA|DOC|DOCG|IGT|IGP|AOC|AOP|DO)\b\s*",
    re.IGNORECASE,
)

TRAILING_PUNCT_RE = re.compile(r"[-,]+$")

# Words that only describe the kind of business, not which one.
GENERIC_PRODUCER_WORDS: frozenset[str] = frozenset({
    "bodega",
    "bodegas",
    "cantina",
    "cantine",
    "cave",
    "caves",
    "cellar",
    "cellars",
    "chateau",
    "clos",
    "domaine",
    "domaines",
    "estate",
    "estates",
    "maison",
    "quinta",
    "tenuta",
    "vineyard",
    "vineyards",
    "weingut",
    "winery",
    "wines",
})

LEXICON_SCAN_ORDER: list[str] = sorted(
    {v.lower() for v in RAW_VARIETALS} | {v.lower() for v in CANONICAL_MAP.values()},
    key=len,
    reverse=True,
)


def _fold_with_index(text: str) -> tuple[str, list[int]]:
    """Accent-fold and lowercase ``text``, keeping a map back to original offsets."""
    chars: list[str] = []
    offsets: list[int] = []
    for i, ch in enumerate(text):
        for part in unicodedata.normalize("NFKD", ch):
            if unicodedata.combining(part):
                continue
            for lowered in part.lower():
                chars.append(lowered)
                offsets.append(i)
    return "".join(chars), offsets


def strip_label_terms(text: str) -> str:
    """
    Strip vintages, trailing label terms, appellation suffixes and punctuation.

    The strips repeat until nothing changes, so stacked boilerplate
    ("Estate Winery", "Reserve VQA") is removed whatever its order.
    """
    cleaned = re.sub(r"\s+", " ", text).strip()
    while True:
        previous = cleaned
        cleaned = VINTAGE_RE.sub(" ", cleaned).strip()
        cleaned = TRAILING_WINE_TERMS.sub("", cleaned).strip()
        cleaned = LABEL_SUFFIXES_RE.sub(" ", cleaned).strip()
        cleaned = TRAILING_PUNCT_RE.sub("", cleaned).strip()
        cleaned = re.sub(r"\s+", " ", cleaned)
        if cleaned == previous:
            return cleaned


def clean_producer_candidate(text: str) -> str | None:
    """
    Strip vintage years, label boilerplate and suffixes from a producer guess.

    Args:
        text: Text found in front of the grape variety

    Returns:
        Cleaned producer, or None when fewer than 2 characters remain
    """
    cleaned = strip_label_terms(text)
    if len(cleaned) < 2:
        return None
    return cleaned


def text_before(name: str, varietal: str) -> str | None:
    """
    Return the cleaned text in front of ``varietal`` inside ``name``.

    The search is case- and accent-insensitive; the returned text keeps the
    original spelling of ``name``.
    """
    folded_name, offsets = _fold_with_index(name)
    needle, _ = _fold_with_index(varietal)
    if not needle:
        return None
    idx = folded_name.find(needle)
    if idx <= 0:
        return None
    return clean_producer_candidate(name[: offsets[idx]])


class ProducerStrategy(ABC):
    """One step of the producer lookup chain."""

    name: str = "base"

    @abstractmethod
    def extract(self, name: str, varietal: str | None) -> str | None:
        """Return a producer, or None to hand over to the next strategy."""


class SuppliedVarietalStrategy(ProducerStrategy):
    """Split the name on the varietal the caller already extracted."""

    name = "supplied_varietal"

    def extract(self, name: str, varietal: str | None) -> str | None:
        if varietal is None:
            return None
        return text_before(name, varietal)


class LexiconScanStrategy(ProducerStrategy):
    """Split the name on any grape in the lexicon, longest entries first."""

    name = "lexicon_scan"

    def __init__(self, lexicon: list[str] | None = None) -> None:
        self.lexicon = lexicon if lexicon is not None else LEXICON_SCAN_ORDER

    def extract(self, name: str, varietal: str | None) -> str | None:
        for grape in self.lexicon:
            producer = text_before(name, grape)
            if producer:
                return producer
        return None


class FirstWordsStrategy(ProducerStrategy):
    """
    Guess the producer from the leading words of the name.

    Only used when the varietal is known, since without one there is no
    evidence the name carries a producer prefix at all. Names of one or two
    words are treated as bare wine names.
    """

    name = "first_words"

    def extract(self, name: str, varietal: str | None) -> str | None:
        if varietal is None:
            return None

        words = strip_label_terms(name).split()

        if len(words) <= 2:
            return None

        candidate = " ".join(words[:2]) if len(words) >= 4 else words[0]
        return clean_producer_candidate(candidate)


DEFAULT_STRATEGIES: tuple[ProducerStrategy, ...] = (
    SuppliedVarietalStrategy(),
    LexiconScanStrategy(),
    FirstWordsStrategy(),
)


def infer_producer(
    name: str | None,
    varietal: str | None = None,
    strategies: tuple[ProducerStrategy, ...] = DEFAULT_STRATEGIES,
) -> str | None:
    """
    Run the strategy chain and return the first producer found.

    Args:
        name: Product title
        varietal: Canonical varietal, or None for a blend/unknown grape
        strategies: Ordered strategies to try

    Returns:
        Producer name, or None when no strategy produced one
    """
    trimmed = (name or "").strip()
    if not trimmed:
        return None

    for strategy in strategies:
        producer = strategy.extract(trimmed, varietal)
        if producer:
            return producer
    return None


def extract_producer(name: str | None, varietal: str | None = None) -> str:
    """
    Extract the producer label for a wine.

    Args:
        name: Product title
        varietal: Varietal label; "Blend" is treated the same as missing

    Returns:
        Producer name, or "Unknown Producer"
    """
    return producer_label(infer_producer(name, parse_varietal(varietal)))


def is_generic_producer(producer: str | None) -> bool:
    """
    Whether a producer string is too vague to group wines by.

    True for the "Unknown Producer" sentinel and for labels made up only of
    generic business words ("Domaine", "Chateau", "Estate Wines").
    """
    if not producer or producer.strip() in ("", UNKNOWN_PRODUCER, BLEND):
        return True
    words = re.findall(r"[a-z0-9']+", fold_accents(producer).lower())
    if not words:
        return True
    return all(word in GENERIC_PRODUCER_WORDS for word in words)
