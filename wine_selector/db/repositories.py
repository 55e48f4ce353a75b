"""Repository classes for catalog, signal and ingestion bookkeeping tables."""

import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wine_selector.core.enums import RunStatus
from wine_selector.core.schema import CatalogFeedItem, DeadLetterRecord
from wine_selector.db.models import (
    IngestionDeadLetterDB,
    IngestionRunDB,
    StoreDB,
    WineDB,
    WineMarketDataDB,
    WineQualitySignalDB,
)
from wine_selector.services.vivino_trust import is_direct_vivino_wine_url

logger = logging.getLogger(__name__)

VIVINO_SOURCE = "vivino"


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# ============================================================================
# Catalog Repositories
# ============================================================================


class StoreRepository:
    """Repository for store upserts and lookups."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_code(self, store_code: str) -> StoreDB | None:
        """Get a store by the retailer's store code."""
        stmt = select(StoreDB).where(StoreDB.lcbo_store_code == store_code)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_id(self, store_id: str) -> StoreDB | None:
        """Get a store by ID."""
        return self.session.get(StoreDB, store_id)

    def upsert(
        self,
        store_code: str,
        name: str,
        city: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> StoreDB:
        """
        Create a store or update it in place.

        Missing optional fields never blank out stored values.
        """
        store = self.get_by_code(store_code)
        if store is None:
            store = StoreDB(
                lcbo_store_code=store_code,
                name=name,
                city=city or "Unknown",
                latitude=latitude,
                longitude=longitude,
            )
            self.session.add(store)
        else:
            store.name = name
            if city is not None:
                store.city = city
            if latitude is not None:
                store.latitude = latitude
            if longitude is not None:
                store.longitude = longitude
        self.session.flush()
        return store

    def list_all(self) -> list[StoreDB]:
        """All stores ordered by name."""
        stmt = select(StoreDB).order_by(StoreDB.name)
        return list(self.session.execute(stmt).scalars().all())


class WineRepository:
    """Repository for catalog wines."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, wine_id: str) -> WineDB | None:
        """Get a wine by ID."""
        return self.session.get(WineDB, wine_id)

    def get_by_external_id(self, external_id: str) -> WineDB | None:
        """Get a wine by the retailer's product id."""
        stmt = select(WineDB).where(WineDB.lcbo_product_id == external_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_identity(
        self,
        name: str,
        producer: str,
        varietal: str,
        country: str,
        sub_region: str,
    ) -> WineDB | None:
        """Get a wine by its canonical identity tuple."""
        stmt = select(WineDB).where(
            WineDB.name == name,
            WineDB.producer == producer,
            WineDB.varietal == varietal,
            WineDB.country == country,
            WineDB.sub_region == sub_region,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[WineDB]:
        """All wines in insertion order."""
        stmt = select(WineDB).order_by(WineDB.created_at, WineDB.id)
        return list(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        """Total number of wines."""
        stmt = select(func.count()).select_from(WineDB)
        return self.session.execute(stmt).scalar() or 0

    @staticmethod
    def _feed_fields(item: CatalogFeedItem) -> dict[str, Any]:
        return {
            "name": item.name,
            "producer": item.producer,
            "type": item.type.value,
            "varietal": item.varietal,
            "country": item.country,
            "sub_region": item.sub_region,
            "region_label": item.region_label,
            "lcbo_url": item.lcbo_url,
            "vivino_url": item.vivino_url,
        }

    @staticmethod
    def _apply(wine: WineDB, fields: dict[str, Any]) -> None:
        # A matched direct link survives a catalog refresh that only has a search link.
        if is_direct_vivino_wine_url(wine.vivino_url) and not is_direct_vivino_wine_url(
            fields.get("vivino_url")
        ):
            fields = {k: v for k, v in fields.items() if k != "vivino_url"}
        for key, value in fields.items():
            setattr(wine, key, value)

    def upsert_from_feed(self, item: CatalogFeedItem) -> WineDB:
        """
        Create or update a wine from a catalog feed item.

        The wine is looked up by external id. If the write collides with a
        different row on the identity tuple, that row is updated instead and
        keeps its own external id when it has one.

        Args:
            item: Validated catalog feed item

        Returns:
            The persisted wine
        """
        fields = self._feed_fields(item)
        try:
            with self.session.begin_nested():
                wine = self.get_by_external_id(item.external_id)
                if wine is None:
                    wine = WineDB(lcbo_product_id=item.external_id, **fields)
                    self.session.add(wine)
                else:
                    self._apply(wine, fields)
                self.session.flush()
            return wine
        except IntegrityError:
            existing = self.get_by_identity(*item.identity)
            if existing is None:
                raise
            logger.info(
                f"Identity collision for '{item.name}' ({item.external_id}), "
                f"updating wine {existing.id}"
            )
            existing.lcbo_product_id = existing.lcbo_product_id or item.external_id
            self._apply(existing, fields)
            self.session.flush()
            return existing

    def set_vivino_url(self, wine_id: str, url: str | None) -> None:
        """Set (or clear) the stored Vivino URL of a wine."""
        wine = self.get_by_id(wine_id)
        if wine is None:
            raise ValueError(f"Wine with id {wine_id} not found")
        wine.vivino_url = url
        self.session.flush()

    def list_with_vivino_url(self) -> list[WineDB]:
        """Wines that have any Vivino URL stored."""
        stmt = (
            select(WineDB)
            .where(WineDB.vivino_url.is_not(None))
            .order_by(WineDB.vivino_url, WineDB.id)
        )
        return list(self.session.execute(stmt).scalars().all())


class MarketDataRepository:
    """Repository for per-store price and inventory rows."""

    def __init__(self, session: Session):
        self.session = session

    def replace(
        self,
        wine_id: str,
        store_id: str,
        listed_price_cents: int,
        inventory_quantity: int,
        in_stock: bool,
        source_updated_at: datetime,
    ) -> WineMarketDataDB:
        """Replace the market row for a wine at a store."""
        self.session.execute(
            delete(WineMarketDataDB).where(
                WineMarketDataDB.wine_id == wine_id,
                WineMarketDataDB.store_id == store_id,
            )
        )
        row = WineMarketDataDB(
            wine_id=wine_id,
            store_id=store_id,
            listed_price_cents=listed_price_cents,
            inventory_quantity=inventory_quantity,
            in_stock=in_stock,
            source_updated_at=source_updated_at,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def list_for_wine(self, wine_id: str) -> list[WineMarketDataDB]:
        stmt = select(WineMarketDataDB).where(WineMarketDataDB.wine_id == wine_id)
        return list(self.session.execute(stmt).scalars().all())


class QualitySignalRepository:
    """Repository for quality signals. At most one row per (wine, source)."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, wine_id: str, source: str = VIVINO_SOURCE) -> WineQualitySignalDB | None:
        """Get the signal of a wine for a source."""
        stmt = select(WineQualitySignalDB).where(
            WineQualitySignalDB.wine_id == wine_id,
            WineQualitySignalDB.source == source,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def delete(self, wine_id: str, source: str = VIVINO_SOURCE) -> int:
        """
        Delete the signal of a wine for a source.

        Returns:
            Number of rows deleted
        """
        result = self.session.execute(
            delete(WineQualitySignalDB).where(
                WineQualitySignalDB.wine_id == wine_id,
                WineQualitySignalDB.source == source,
            )
        )
        self.session.flush()
        return result.rowcount or 0

    def replace(
        self,
        wine_id: str,
        rating: float,
        rating_count: int,
        confidence_score: float,
        source: str = VIVINO_SOURCE,
        fetched_at: datetime | None = None,
    ) -> WineQualitySignalDB:
        """Delete any existing signal for (wine, source) and create a new one."""
        self.delete(wine_id, source)
        signal = WineQualitySignalDB(
            wine_id=wine_id,
            source=source,
            rating=rating,
            rating_count=rating_count,
            confidence_score=confidence_score,
            fetched_at=fetched_at or _utc_now(),
        )
        self.session.add(signal)
        self.session.flush()
        return signal

    def count(self, source: str = VIVINO_SOURCE) -> int:
        stmt = (
            select(func.count())
            .select_from(WineQualitySignalDB)
            .where(WineQualitySignalDB.source == source)
        )
        return self.session.execute(stmt).scalar() or 0


# ============================================================================
# Ingestion Bookkeeping Repositories
# ============================================================================


class IngestionRunRepository:
    """Repository for ingestion run records."""

    def __init__(self, session: Session):
        self.session = session

    def start(self, source: str, items_read: int = 0, rejected_items: int = 0) -> IngestionRunDB:
        """Record a new running run."""
        run = IngestionRunDB(
            source=source,
            status=RunStatus.RUNNING.value,
            items_read=items_read,
            rejected_items=rejected_items,
        )
        self.session.add(run)
        self.session.flush()
        return run

    def complete(self, run: IngestionRunDB, items_written: int) -> IngestionRunDB:
        """Mark a run completed."""
        run.status = RunStatus.COMPLETED.value
        run.finished_at = _utc_now()
        run.items_written = items_written
        self.session.flush()
        return run

    def fail(self, run: IngestionRunDB, items_written: int, error_message: str) -> IngestionRunDB:
        """Mark a run failed."""
        run.status = RunStatus.FAILED.value
        run.finished_at = _utc_now()
        run.items_written = items_written
        run.error_message = error_message
        self.session.flush()
        return run

    def latest_completed(self, source: str) -> IngestionRunDB | None:
        """Most recent completed run of a source."""
        stmt = (
            select(IngestionRunDB)
            .where(
                IngestionRunDB.source == source,
                IngestionRunDB.status == RunStatus.COMPLETED.value,
            )
            .order_by(IngestionRunDB.started_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_latest(self, limit: int = 10) -> list[IngestionRunDB]:
        """Most recent runs across all sources, newest first."""
        stmt = select(IngestionRunDB).order_by(IngestionRunDB.started_at.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def list_recent(self, source: str, limit: int = 5) -> list[IngestionRunDB]:
        """Most recent runs of a source, newest first."""
        stmt = (
            select(IngestionRunDB)
            .where(IngestionRunDB.source == source)
            .order_by(IngestionRunDB.started_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())


class DeadLetterRepository:
    """Repository for rejected feed records."""

    def __init__(self, session: Session):
        self.session = session

    def add_many(
        self,
        records: Iterable[DeadLetterRecord],
        ingestion_run_id: str | None = None,
    ) -> int:
        """
        Persist dead letters.

        Returns:
            Number of records written
        """
        count = 0
        for record in records:
            self.session.add(
                IngestionDeadLetterDB(
                    ingestion_run_id=ingestion_run_id,
                    source=record.source,
                    stage=record.stage.value,
                    reason=record.reason,
                    external_id=record.external_id,
                    payload_json=json.dumps(record.payload, default=str),
                )
            )
            count += 1
        if count:
            self.session.flush()
        return count

    def count_since(self, since: datetime) -> int:
        """Dead letters created at or after ``since``."""
        stmt = (
            select(func.count())
            .select_from(IngestionDeadLetterDB)
            .where(IngestionDeadLetterDB.created_at >= since)
        )
        return self.session.execute(stmt).scalar() or 0

    def list_recent(self, limit: int = 20) -> list[IngestionDeadLetterDB]:
        stmt = (
            select(IngestionDeadLetterDB)
            .order_by(IngestionDeadLetterDB.created_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())
