"""
Re-canonicalization Backfill Module
===================================

Re-runs varietal and producer extraction over stored wines, so rows synced
before a lexicon or cleaning change pick up the current labels.

Rules per wine:
- The varietal is replaced only by a specific grape. A "Blend" result never
  overwrites a stored varietal.
- The producer is replaced only by a known producer, and only when the
  stored one is "Unknown Producer" or the same name with trailing label
  words. A producer the feed supplied is otherwise kept.
- When the producer changes, or the stored search link still carries the
  "Unknown Producer" sentinel, the search link is rebuilt. Direct links are
  left alone.
- A rewrite that would collide with another wine's identity is skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wine_selector.core.varietals import BLEND, UNKNOWN_PRODUCER, parse_producer
from wine_selector.db.models import WineDB
from wine_selector.db.repositories import WineRepository
from wine_selector.ingestion.producer import extract_producer
from wine_selector.ingestion.varietal import extract_varietal
from wine_selector.services.vivino_trust import (
    build_vivino_search_url,
    is_direct_vivino_wine_url,
)

logger = logging.getLogger(__name__)

UNKNOWN_PRODUCER_QUERY = quote(UNKNOWN_PRODUCER, safe="")


@dataclass
class BackfillResult:
    """Outcome of a backfill run."""

    wines: int = 0
    varietals_updated: int = 0
    producers_updated: int = 0
    search_links_rewritten: int = 0
    still_unknown_producer: int = 0
    collisions: int = 0
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "wines": self.wines,
            "varietals_updated": self.varietals_updated,
            "producers_updated": self.producers_updated,
            "search_links_rewritten": self.search_links_rewritten,
            "still_unknown_producer": self.still_unknown_producer,
            "collisions": self.collisions,
            "dry_run": self.dry_run,
        }


@dataclass(frozen=True)
class RecanonicalizedWine:
    """Labels a wine should carry after re-extraction."""

    varietal: str
    producer: str
    vivino_url: str | None


def replaces_producer(stored: str, extracted: str) -> bool:
    """
    Whether an extracted producer should replace the stored one.

    Only the "Unknown Producer" sentinel and a stored name that is the
    extracted name plus trailing words ("Mission Hill Reserve" for
    "Mission Hill") are replaced.
    """
    if extracted == UNKNOWN_PRODUCER or extracted == stored:
        return False
    return stored == UNKNOWN_PRODUCER or stored.startswith(f"{extracted} ")


def recanonicalize(wine: WineDB) -> RecanonicalizedWine:
    """
    Compute the labels and search link a stored wine should have.

    Args:
        wine: Stored wine

    Returns:
        RecanonicalizedWine; equal to the stored values when nothing changes
    """
    varietal = extract_varietal(wine.name)
    if varietal == BLEND:
        varietal = wine.varietal

    producer = extract_producer(wine.name, varietal)
    if not replaces_producer(wine.producer, producer):
        producer = wine.producer

    vivino_url = wine.vivino_url
    stale_link = bool(vivino_url) and UNKNOWN_PRODUCER_QUERY in vivino_url
    if not is_direct_vivino_wine_url(vivino_url) and (producer != wine.producer or stale_link):
        vivino_url = build_vivino_search_url(wine.name, parse_producer(producer), wine.country)

    return RecanonicalizedWine(varietal=varietal, producer=producer, vivino_url=vivino_url)


def backfill_canonical_fields(session: Session, dry_run: bool = False) -> BackfillResult:
    """
    Re-extract varietal and producer labels for every stored wine.

    Each changed wine is written in its own savepoint, so an identity
    collision skips that wine only.

    Args:
        session: Database session
        dry_run: Report what would change without writing

    Returns:
        BackfillResult with counts
    """
    result = BackfillResult(dry_run=dry_run)
    wines = WineRepository(session).list_all()
    result.wines = len(wines)

    for wine in wines:
        fields = recanonicalize(wine)
        varietal_changed = fields.varietal != wine.varietal
        producer_changed = fields.producer != wine.producer
        link_changed = fields.vivino_url != wine.vivino_url

        if fields.producer == UNKNOWN_PRODUCER:
            result.still_unknown_producer += 1
        if not (varietal_changed or producer_changed or link_changed):
            continue

        if producer_changed:
            logger.debug(f"'{wine.name}': producer '{wine.producer}' -> '{fields.producer}'")
        if not dry_run:
            try:
                with session.begin_nested():
                    wine.varietal = fields.varietal
                    wine.producer = fields.producer
                    wine.vivino_url = fields.vivino_url
                    session.flush()
            except IntegrityError:
                result.collisions += 1
                logger.warning(
                    f"Identity collision, skipped: '{wine.name}' -> "
                    f"{fields.producer} / {fields.varietal}"
                )
                session.refresh(wine)
                continue

        result.varietals_updated += int(varietal_changed)
        result.producers_updated += int(producer_changed)
        result.search_links_rewritten += int(link_changed)

    if not dry_run:
        session.commit()

    logger.info(
        f"Backfill{' (dry run)' if dry_run else ''}: {result.varietals_updated} varietals, "
        f"{result.producers_updated} producers, {result.search_links_rewritten} links updated, "
        f"{result.collisions} collisions"
    )
    return result
