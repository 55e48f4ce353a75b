"""
Catalog Sync Module
===================

Writes a retailer catalog feed into the database: stores, wines and per-store
market data. Each item is committed on its own, so a failure part-way through
leaves the earlier items in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from wine_selector.core.schema import DeadLetterRecord
from wine_selector.db.repositories import (
    DeadLetterRepository,
    IngestionRunRepository,
    MarketDataRepository,
    StoreRepository,
    WineRepository,
)
from wine_selector.ingestion.validation import validate_catalog_items

logger = logging.getLogger(__name__)

CATALOG_SOURCE = "lcbo_catalog"


@dataclass
class SyncResult:
    """Summary of one sync run."""

    run_id: str
    source: str
    items_read: int
    items_written: int
    rejected_items: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "source": self.source,
            "items_read": self.items_read,
            "items_written": self.items_written,
            "rejected_items": self.rejected_items,
        }


def sync_catalog(
    session: Session,
    feed: list[Any],
    source: str = CATALOG_SOURCE,
    adapter_dead_letters: list[DeadLetterRecord] | None = None,
) -> SyncResult:
    """
    Validate and persist a catalog feed.

    Args:
        session: Database session
        feed: Raw catalog records
        source: Source name recorded on the run and dead letters
        adapter_dead_letters: Records the adapter already rejected

    Returns:
        SyncResult for the run

    Raises:
        Exception: Any persistence error, after the run is marked failed
    """
    outcome = validate_catalog_items(feed, source)
    dead_letters = list(adapter_dead_letters or []) + outcome.dead_letters

    runs = IngestionRunRepository(session)
    run = runs.start(source, items_read=len(feed), rejected_items=len(dead_letters))
    DeadLetterRepository(session).add_many(dead_letters, run.id)
    session.commit()

    stores = StoreRepository(session)
    wines = WineRepository(session)
    market = MarketDataRepository(session)
    items_written = 0

    try:
        for item in outcome.valid_items:
            store = stores.upsert(
                store_code=item.store_code,
                name=item.store_label,
                city=item.store_city,
                latitude=item.store_latitude,
                longitude=item.store_longitude,
            )
            wine = wines.upsert_from_feed(item)
            market.replace(
                wine_id=wine.id,
                store_id=store.id,
                listed_price_cents=item.listed_price_cents,
                inventory_quantity=item.inventory_quantity,
                in_stock=item.in_stock,
                source_updated_at=item.source_updated_at,
            )
            session.commit()
            items_written += 1

        runs.complete(run, items_written)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.exception(f"Catalog sync failed after {items_written} items")
        runs.fail(run, items_written, str(e) or "Unknown catalog sync failure")
        session.commit()
        raise

    logger.info(
        f"Catalog sync: read {len(feed)}, wrote {items_written}, "
        f"rejected {len(dead_letters)}"
    )
    return SyncResult(
        run_id=run.id,
        source=source,
        items_read=len(feed),
        items_written=items_written,
        rejected_items=len(dead_letters),
    )
