"""Pydantic v2 models for Wine Selector feeds and the recommendation contract.

These models define:
- CatalogFeedItem, SignalFeedItem (validated upstream records)
- DeadLetterRecord (rejected upstream records)
- RecommendationFilterInput, RecommendationWine, RecommendationResponse
  (query contract consumed by the UI/API layer)

Wire names are camelCase; Python attributes are snake_case.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from wine_selector.core.enums import (
    IngestionStage,
    LinkType,
    RatingSource,
    StockConfidence,
    WineType,
)


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Feed Records
# ============================================================================


class CatalogFeedItem(CamelModel):
    """
    One retailer product-at-store-at-price tuple.

    ``producer`` and ``varietal`` hold their storage labels, so the sentinels
    "Unknown Producer" and "Blend" are valid values here.
    """

    external_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    producer: str = Field(min_length=1)
    type: WineType
    varietal: str = Field(min_length=1)
    country: str = Field(min_length=1)
    sub_region: str = Field(min_length=1)
    region_label: str = Field(min_length=1)
    lcbo_url: str | None = None
    vivino_url: str | None = None
    store_code: str = Field(min_length=1)
    store_label: str = Field(min_length=1)
    store_city: str | None = Field(default=None, min_length=1)
    store_latitude: float | None = Field(default=None, ge=-90, le=90)
    store_longitude: float | None = Field(default=None, ge=-180, le=180)
    listed_price_cents: int = Field(ge=0)
    inventory_quantity: int = Field(ge=0)
    in_stock: bool
    source_updated_at: datetime

    @field_validator("lcbo_url", "vivino_url")
    @classmethod
    def must_be_http_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("must be an absolute http(s) URL")
        return v

    @property
    def identity(self) -> tuple[str, str, str, str, str]:
        """Canonical identity used when the external id is absent or changes."""
        return (self.name, self.producer, self.varietal, self.country, self.sub_region)


class SignalFeedItem(CamelModel):
    """A pre-computed quality signal keyed by the retailer's external id."""

    external_id: str = Field(min_length=1)
    source: Literal["vivino"] = "vivino"
    rating: float = Field(ge=0, le=5)
    rating_count: int = Field(ge=0)
    confidence_score: float = Field(ge=0, le=1)
    fetched_at: datetime = Field(default_factory=_utc_now)


class DeadLetterRecord(CamelModel):
    """A rejected feed record preserved with its rejection reason."""

    source: str
    stage: IngestionStage
    reason: str
    payload: Any = None
    external_id: str | None = None


# ============================================================================
# Recommendation Contract
# ============================================================================


class RecommendationFilterInput(CamelModel):
    """Filters accepted by the recommendation query."""

    search: str = ""
    types: list[str] = Field(default_factory=list)
    varietals: list[str] = Field(default_factory=list)
    countries: list[str] = Field(default_factory=list)
    sub_regions: list[str] = Field(default_factory=list)
    min_price: float = 0.0
    max_price: float = 10_000.0
    min_rating: float = 4.0
    store_id: str = ""


class RecommendationWine(CamelModel):
    """A single ranked recommendation."""

    id: str
    name: str
    producer: str
    type: WineType
    varietal: str
    country: str
    sub_region: str
    region: str
    price: float
    rating: float = 0.0
    rating_count: int | None = None
    rating_source: RatingSource = RatingSource.NONE
    has_vivino_match: bool = False
    vivino_match_confidence: float | None = None
    match_score: float = 0.0
    stock_confidence: StockConfidence = StockConfidence.MEDIUM
    why: list[str] = Field(default_factory=list)
    store_id: str = ""
    store_label: str = ""
    lcbo_url: str = ""
    lcbo_link_type: LinkType = LinkType.SEARCH_FALLBACK
    vivino_url: str = ""


class RecommendationResponse(CamelModel):
    """Response of the recommendation query."""

    query: RecommendationFilterInput
    available_countries: list[str] = Field(default_factory=list)
    available_sub_regions: list[str] = Field(default_factory=list)
    quality_rule: str = ""
    ranking_rule: str = ""
    review_count_note: str = ""
    store_fallback_applied: bool = False
    store_fallback_note: str | None = None
    recommendations: list[RecommendationWine] = Field(default_factory=list)
