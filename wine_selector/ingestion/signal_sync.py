"""
Signal Sync Module
==================

Writes pre-computed quality signals (keyed by the retailer's product id) onto
catalog wines. Signals for unknown products are skipped.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from wine_selector.core.schema import DeadLetterRecord
from wine_selector.db.repositories import (
    DeadLetterRepository,
    IngestionRunRepository,
    QualitySignalRepository,
    WineRepository,
)
from wine_selector.ingestion.catalog_sync import SyncResult
from wine_selector.ingestion.validation import validate_signal_items

logger = logging.getLogger(__name__)

SIGNAL_SOURCE = "vivino_signals"


def sync_signals(
    session: Session,
    feed: list[Any],
    source: str = SIGNAL_SOURCE,
    adapter_dead_letters: list[DeadLetterRecord] | None = None,
) -> SyncResult:
    """
    Validate and persist a quality-signal feed.

    Args:
        session: Database session
        feed: Raw signal records
        source: Source name recorded on the run and dead letters
        adapter_dead_letters: Records the adapter already rejected

    Returns:
        SyncResult for the run
    """
    outcome = validate_signal_items(feed, source)
    dead_letters = list(adapter_dead_letters or []) + outcome.dead_letters

    runs = IngestionRunRepository(session)
    run = runs.start(source, items_read=len(feed), rejected_items=len(dead_letters))
    DeadLetterRepository(session).add_many(dead_letters, run.id)
    session.commit()

    wines = WineRepository(session)
    signals = QualitySignalRepository(session)
    items_written = 0
    skipped = 0

    try:
        for item in outcome.valid_items:
            wine = wines.get_by_external_id(item.external_id)
            if wine is None:
                skipped += 1
                continue
            signals.replace(
                wine_id=wine.id,
                source=item.source,
                rating=item.rating,
                rating_count=item.rating_count,
                confidence_score=item.confidence_score,
                fetched_at=item.fetched_at,
            )
            session.commit()
            items_written += 1

        runs.complete(run, items_written)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.exception(f"Signal sync failed after {items_written} items")
        runs.fail(run, items_written, str(e) or "Unknown signal sync failure")
        session.commit()
        raise

    if skipped:
        logger.info(f"Skipped {skipped} signals for unknown products")
    return SyncResult(
        run_id=run.id,
        source=source,
        items_read=len(feed),
        items_written=items_written,
        rejected_items=len(dead_letters),
    )
