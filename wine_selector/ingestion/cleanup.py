"""
False-Match Cleanup Module
==========================

Repairs many-to-one matches left by earlier runs: when several catalog wines
share one direct Vivino link, only the wine with the highest signal
confidence keeps it. The others lose their Vivino signal and their link, so
the UI falls back to a search link for them.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from wine_selector.db.models import WineDB
from wine_selector.db.repositories import (
    VIVINO_SOURCE,
    QualitySignalRepository,
    WineRepository,
)
from wine_selector.services.vivino_trust import is_direct_vivino_wine_url

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """Outcome of a cleanup run."""

    wines_with_direct_links: int = 0
    unique_links: int = 0
    duplicate_groups: int = 0
    kept: int = 0
    signals_deleted: int = 0
    urls_reset: int = 0
    purged_wine_ids: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "wines_with_direct_links": self.wines_with_direct_links,
            "unique_links": self.unique_links,
            "duplicate_groups": self.duplicate_groups,
            "kept": self.kept,
            "signals_deleted": self.signals_deleted,
            "urls_reset": self.urls_reset,
            "dry_run": self.dry_run,
        }


def group_by_direct_link(wines: list[WineDB]) -> dict[str, list[WineDB]]:
    """Group wines by their direct Vivino link, ignoring search links."""
    groups: dict[str, list[WineDB]] = defaultdict(list)
    for wine in wines:
        if is_direct_vivino_wine_url(wine.vivino_url):
            groups[wine.vivino_url].append(wine)
    return groups


def cleanup_false_matches(session: Session, dry_run: bool = False) -> CleanupResult:
    """
    Keep one wine per direct Vivino link.

    Within each group the wine with the highest Vivino signal confidence is
    kept (no signal counts as 0; ties keep the first wine by id).

    Args:
        session: Database session
        dry_run: Report what would change without writing

    Returns:
        CleanupResult with counts
    """
    wines_repo = WineRepository(session)
    signals = QualitySignalRepository(session)
    result = CleanupResult(dry_run=dry_run)

    groups = group_by_direct_link(wines_repo.list_with_vivino_url())
    result.wines_with_direct_links = sum(len(g) for g in groups.values())
    result.unique_links = sum(1 for g in groups.values() if len(g) == 1)

    for url, group in groups.items():
        if len(group) < 2:
            continue
        result.duplicate_groups += 1

        confidence = {}
        for wine in group:
            signal = signals.get(wine.id, VIVINO_SOURCE)
            confidence[wine.id] = signal.confidence_score if signal is not None else 0.0

        ranked = sorted(group, key=lambda w: (-confidence[w.id], w.id))
        keeper, losers = ranked[0], ranked[1:]
        result.kept += 1
        logger.info(f"Keeping '{keeper.name}' for {url}, purging {len(losers)} wines")

        for loser in losers:
            result.purged_wine_ids.append(loser.id)
            if dry_run:
                if signals.get(loser.id, VIVINO_SOURCE) is not None:
                    result.signals_deleted += 1
                result.urls_reset += 1
                continue
            result.signals_deleted += signals.delete(loser.id, VIVINO_SOURCE)
            wines_repo.set_vivino_url(loser.id, None)
            result.urls_reset += 1
        if not dry_run:
            session.commit()

    logger.info(
        f"Cleanup{' (dry run)' if dry_run else ''}: {result.duplicate_groups} duplicate groups, "
        f"{result.signals_deleted} signals deleted, {result.urls_reset} links reset"
    )
    return result
