"""SQLAlchemy ORM models for the Wine Selector database."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class StoreDB(Base):
    """A retail store, keyed by the retailer's store code."""

    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    lcbo_store_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    market_data: Mapped[list["WineMarketDataDB"]] = relationship(
        "WineMarketDataDB", back_populates="store", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<StoreDB(code={self.lcbo_store_code}, name='{self.name}')>"


class WineDB(Base):
    """
    A catalog wine.

    ``producer`` and ``varietal`` hold storage labels, including the
    "Unknown Producer" and "Blend" sentinels.
    """

    __tablename__ = "wines"
    __table_args__ = (
        UniqueConstraint(
            "name", "producer", "varietal", "country", "sub_region",
            name="uq_wine_identity",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    lcbo_product_id: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    producer: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    varietal: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sub_region: Mapped[str] = mapped_column(String(100), nullable=False)
    region_label: Mapped[str] = mapped_column(String(255), default="")
    lcbo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    vivino_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    market_data: Mapped[list["WineMarketDataDB"]] = relationship(
        "WineMarketDataDB", back_populates="wine", cascade="all, delete-orphan"
    )
    quality_signals: Mapped[list["WineQualitySignalDB"]] = relationship(
        "WineQualitySignalDB", back_populates="wine", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<WineDB(id={self.id}, name='{self.name}', producer='{self.producer}')>"


class WineMarketDataDB(Base):
    """Price and inventory of a wine at one store."""

    __tablename__ = "wine_market_data"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    wine_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("wines.id"), nullable=False, index=True
    )
    store_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("stores.id"), nullable=False, index=True
    )
    listed_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    inventory_quantity: Mapped[int] = mapped_column(Integer, default=0)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=False)
    source_updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    wine: Mapped["WineDB"] = relationship("WineDB", back_populates="market_data")
    store: Mapped["StoreDB"] = relationship("StoreDB", back_populates="market_data")


class WineQualitySignalDB(Base):
    """A third-party quality rating for a wine. At most one per source."""

    __tablename__ = "wine_quality_signals"
    __table_args__ = (
        UniqueConstraint("wine_id", "source", name="uq_signal_wine_source"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    wine_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("wines.id"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="vivino")
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)

    wine: Mapped["WineDB"] = relationship("WineDB", back_populates="quality_signals")

    def __repr__(self) -> str:
        return (
            f"<WineQualitySignalDB(wine_id={self.wine_id}, rating={self.rating}, "
            f"confidence={self.confidence_score})>"
        )


class IngestionRunDB(Base):
    """One sync run of one source."""

    __tablename__ = "ingestion_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")
    started_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    items_read: Mapped[int] = mapped_column(Integer, default=0)
    items_written: Mapped[int] = mapped_column(Integer, default=0)
    rejected_items: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<IngestionRunDB(source={self.source}, status={self.status})>"


class IngestionDeadLetterDB(Base):
    """A rejected feed record and the reason it was rejected."""

    __tablename__ = "ingestion_dead_letters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    ingestion_run_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("ingestion_runs.id"), nullable=True, index=True
    )
    source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    stage: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payload_json: Mapped[str] = mapped_column(Text, default="null")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
