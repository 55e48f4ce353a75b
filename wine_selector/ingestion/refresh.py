"""
Rating Refresh Module
=====================

Keeps matched ratings current. Every wine with a direct Vivino link has its
page re-read, and the stored signal is updated when the live rating or the
review count has moved. Wines whose page cannot be read keep their signal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.orm import Session

from wine_selector.db.repositories import (
    VIVINO_SOURCE,
    QualitySignalRepository,
    WineRepository,
)
from wine_selector.ingestion.adapters.vivino import LiveRating
from wine_selector.ingestion.registry import MatchingConfig
from wine_selector.services.vivino_trust import is_direct_vivino_wine_url

logger = logging.getLogger(__name__)

RATING_CHANGE_MIN = 0.05
COUNT_CHANGE_MIN = 10


class LiveRatingSource(Protocol):
    """Where a refresh reads live ratings from."""

    async def fetch_live_rating(self, url: str) -> LiveRating | None: ...


@dataclass
class RatingChange:
    """One wine whose stored rating moved."""

    wine_id: str
    name: str
    old_rating: float
    new_rating: float
    old_count: int
    new_count: int


@dataclass
class RefreshResult:
    """Outcome of a rating refresh."""

    wines_with_direct_links: int = 0
    refreshed: int = 0
    unchanged: int = 0
    failed: int = 0
    signals_created: int = 0
    urls_updated: int = 0
    changes: list[RatingChange] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "wines_with_direct_links": self.wines_with_direct_links,
            "refreshed": self.refreshed,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "signals_created": self.signals_created,
            "urls_updated": self.urls_updated,
            "dry_run": self.dry_run,
        }


def has_moved(old_rating: float, old_count: int, live: LiveRating) -> bool:
    """Whether a live rating differs enough from the stored one to write."""
    rating_moved = round(abs(live.rating - old_rating), 2) >= RATING_CHANGE_MIN
    count_moved = abs(live.rating_count - old_count) > COUNT_CHANGE_MIN
    return rating_moved or count_moved


async def refresh_ratings(
    session: Session,
    source: LiveRatingSource,
    matching: MatchingConfig | None = None,
    dry_run: bool = False,
) -> RefreshResult:
    """
    Re-read the live rating of every directly linked wine.

    A changed rating replaces the stored signal and keeps its match
    confidence. A linked wine without a signal gets one at the confidence
    ceiling, since its page was read directly. When the page names a
    canonical ``/w/{id}`` link, that link replaces the stored one.

    Args:
        session: Database session
        source: Live rating source (the explore adapter or the sample)
        matching: Match thresholds; supplies the confidence ceiling
        dry_run: Report what would change without writing

    Returns:
        RefreshResult with counts and the list of changes
    """
    matching = matching or MatchingConfig()
    wines_repo = WineRepository(session)
    signals = QualitySignalRepository(session)
    result = RefreshResult(dry_run=dry_run)

    wines = [w for w in wines_repo.list_with_vivino_url() if is_direct_vivino_wine_url(w.vivino_url)]
    result.wines_with_direct_links = len(wines)

    for wine in wines:
        live = await source.fetch_live_rating(wine.vivino_url)
        if live is None:
            result.failed += 1
            logger.debug(f"No live rating for '{wine.name}' at {wine.vivino_url}")
            continue

        existing = signals.get(wine.id, VIVINO_SOURCE)
        old_rating = existing.rating if existing is not None else 0.0
        old_count = (existing.rating_count or 0) if existing is not None else 0
        if not has_moved(old_rating, old_count, live):
            result.unchanged += 1
            continue

        result.refreshed += 1
        result.changes.append(
            RatingChange(wine.id, wine.name, old_rating, live.rating, old_count, live.rating_count)
        )
        if existing is None:
            result.signals_created += 1
        canonical = live.canonical_url
        if canonical and canonical != wine.vivino_url:
            result.urls_updated += 1
        if dry_run:
            continue

        signals.replace(
            wine_id=wine.id,
            rating=round(live.rating, 2),
            rating_count=live.rating_count,
            confidence_score=(
                existing.confidence_score if existing is not None else matching.confidence_ceiling
            ),
            source=VIVINO_SOURCE,
        )
        if canonical and canonical != wine.vivino_url:
            wines_repo.set_vivino_url(wine.id, canonical)
        session.commit()

    logger.info(
        f"Rating refresh{' (dry run)' if dry_run else ''}: {result.refreshed} refreshed, "
        f"{result.unchanged} unchanged, {result.failed} failed "
        f"of {result.wines_with_direct_links} linked wines"
    )
    return result
