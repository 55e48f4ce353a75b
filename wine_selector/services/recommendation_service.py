"""Recommendation service ranking catalog wines by rating trust.

This service provides:
- Catalog providers (database-backed and static)
- Trust tiering: direct Vivino match, producer average, unrated
- Filtering by type, varietal, country, sub-region, price, search and store
- Store fallback when a store has nothing in stock
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from wine_selector.core.enums import LinkType, RatingSource, StockConfidence, WineType
from wine_selector.core.schema import (
    RecommendationFilterInput,
    RecommendationResponse,
    RecommendationWine,
)
from wine_selector.core.varietals import (
    fold_accents,
    parse_producer,
    parse_varietal,
    producer_label,
    varietal_label,
)
from wine_selector.db.models import WineDB, WineMarketDataDB, WineQualitySignalDB
from wine_selector.db.repositories import VIVINO_SOURCE
from wine_selector.ingestion.normalizer import normalise
from wine_selector.ingestion.producer import is_generic_producer
from wine_selector.ingestion.registry import RankingConfig
from wine_selector.services.vivino_trust import is_trusted_signal, resolve_vivino_url

logger = logging.getLogger(__name__)

LCBO_SEARCH_URL = "https://www.lcbo.com/en/catalogsearch/result/?q="

STORE_FALLBACK_NOTE = (
    "No matching wines are in stock at the selected store, so results show "
    "wines in stock at other stores."
)
RANKING_RULE = (
    "Wines with a verified Vivino match rank first, then producer-average estimates, "
    "then unrated wines. Within each tier in-stock wines come first, then rating (desc), "
    "then review count."
)
REVIEW_COUNT_NOTE = (
    "Review counts come from our latest Vivino match. Producer averages have no review count."
)


@dataclass(frozen=True)
class CatalogEntry:
    """A catalog wine joined with its latest Vivino signal and one market row."""

    id: str
    name: str
    producer: str | None
    type: WineType
    varietal: str | None
    country: str
    sub_region: str
    region: str = ""
    price: float = 0.0
    in_stock: bool = False
    store_id: str = ""
    store_label: str = ""
    lcbo_url: str | None = None
    vivino_url: str | None = None
    signal_rating: float | None = None
    signal_rating_count: int | None = None
    signal_confidence: float | None = None
    refreshed_at: datetime | None = None


@dataclass(frozen=True)
class TieredEntry:
    """A catalog entry with the rating its trust tier assigns."""

    entry: CatalogEntry
    rating_source: RatingSource
    rating: float
    rating_count: int | None

    @property
    def stock_confidence(self) -> StockConfidence:
        return StockConfidence.HIGH if self.entry.in_stock else StockConfidence.MEDIUM


class CatalogProvider(Protocol):
    """Source of catalog entries for ranking."""

    def list_candidates(self, store_id: str = "") -> list[CatalogEntry]:
        """
        Catalog entries, one per wine.

        When ``store_id`` is given, each entry carries that store's market
        row if the wine is listed there.
        """
        ...


class StaticCatalogProvider:
    """Provider over a fixed list of entries."""

    def __init__(self, entries: list[CatalogEntry]):
        self.entries = list(entries)

    def list_candidates(self, store_id: str = "") -> list[CatalogEntry]:
        return list(self.entries)


def _store_code(market: WineMarketDataDB) -> str:
    return market.store.lcbo_store_code or market.store.id


def _pick_market(markets: list[WineMarketDataDB], store_id: str) -> WineMarketDataDB | None:
    if not markets:
        return None
    if store_id:
        for market in markets:
            if _store_code(market) == store_id:
                return market
    ordered = sorted(markets, key=lambda m: m.source_updated_at, reverse=True)
    for market in ordered:
        if market.in_stock:
            return market
    return ordered[0]


def _latest_signal(signals: list[WineQualitySignalDB]) -> WineQualitySignalDB | None:
    vivino = [s for s in signals if s.source == VIVINO_SOURCE]
    if not vivino:
        return None
    return max(vivino, key=lambda s: s.fetched_at)


class DatabaseCatalogProvider:
    """Provider joining wines with their latest signal and market data."""

    def __init__(self, session: Session, limit: int | None = None):
        """
        Initialize the provider.

        Args:
            session: SQLAlchemy session
            limit: Maximum number of wines to load (None for all)
        """
        self.session = session
        self.limit = limit

    def list_candidates(self, store_id: str = "") -> list[CatalogEntry]:
        stmt = (
            select(WineDB)
            .options(
                selectinload(WineDB.market_data).selectinload(WineMarketDataDB.store),
                selectinload(WineDB.quality_signals),
            )
            .order_by(WineDB.name, WineDB.id)
        )
        if self.limit is not None:
            stmt = stmt.limit(self.limit)

        entries = []
        for wine in self.session.execute(stmt).scalars().all():
            market = _pick_market(wine.market_data, store_id)
            if market is None:
                continue
            signal = _latest_signal(wine.quality_signals)
            entries.append(
                CatalogEntry(
                    id=wine.id,
                    name=wine.name,
                    producer=parse_producer(wine.producer),
                    type=WineType(wine.type),
                    varietal=parse_varietal(wine.varietal),
                    country=wine.country,
                    sub_region=wine.sub_region,
                    region=wine.region_label,
                    price=market.listed_price_cents / 100,
                    in_stock=market.in_stock,
                    store_id=_store_code(market),
                    store_label=market.store.name,
                    lcbo_url=wine.lcbo_url,
                    vivino_url=wine.vivino_url,
                    signal_rating=signal.rating if signal else None,
                    signal_rating_count=signal.rating_count if signal else None,
                    signal_confidence=signal.confidence_score if signal else None,
                    refreshed_at=signal.fetched_at if signal else market.source_updated_at,
                )
            )
        return entries


# ============================================================================
# Tiering
# ============================================================================


def cohort_key(entry: CatalogEntry) -> tuple[str, str, str] | None:
    """Producer cohort of an entry, or None when the producer is too vague."""
    if is_generic_producer(entry.producer):
        return None
    return (normalise(entry.producer), entry.type.value, entry.country.lower())


def has_trusted_signal(entry: CatalogEntry, trust_floor: float) -> bool:
    return (
        entry.signal_rating is not None
        and entry.signal_rating > 0
        and is_trusted_signal(entry.signal_confidence, trust_floor)
    )


def producer_averages(
    entries: list[CatalogEntry], ranking: RankingConfig
) -> dict[tuple[str, str, str], list[tuple[str, float]]]:
    """Trusted ratings per producer cohort, as (wine id, rating) pairs."""
    cohorts: dict[tuple[str, str, str], list[tuple[str, float]]] = defaultdict(list)
    for entry in entries:
        key = cohort_key(entry)
        if key is not None and has_trusted_signal(entry, ranking.trust_floor):
            cohorts[key].append((entry.id, entry.signal_rating))
    return cohorts


def round_half_up(value: float) -> float:
    """Round to one decimal place with halves going up (4.25 -> 4.3)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def classify(
    entry: CatalogEntry,
    cohorts: dict[tuple[str, str, str], list[tuple[str, float]]],
    min_rating: float,
    ranking: RankingConfig,
) -> TieredEntry | None:
    """
    Assign an entry to a trust tier.

    Args:
        entry: Catalog entry
        cohorts: Trusted ratings per producer cohort
        min_rating: Minimum rating, inclusive
        ranking: Trust floor and cohort size

    Returns:
        TieredEntry, or None when a trusted rating is below ``min_rating``
    """
    if has_trusted_signal(entry, ranking.trust_floor):
        if entry.signal_rating < min_rating:
            return None
        return TieredEntry(
            entry, RatingSource.DIRECT, entry.signal_rating, entry.signal_rating_count
        )

    key = cohort_key(entry)
    if key is not None:
        others = [rating for wine_id, rating in cohorts.get(key, []) if wine_id != entry.id]
        if len(others) >= ranking.producer_avg_min_samples:
            average = round_half_up(sum(others) / len(others))
            if average >= min_rating:
                return TieredEntry(entry, RatingSource.PRODUCER_AVG, average, None)

    return TieredEntry(entry, RatingSource.NONE, 0.0, None)


def _stock_rank(tiered: TieredEntry) -> int:
    return 0 if tiered.entry.in_stock else 1


def sort_tiers(tiered: list[TieredEntry]) -> list[TieredEntry]:
    """Direct, then producer average, then unrated, each sorted within."""

    def rated_key(t: TieredEntry):
        return (_stock_rank(t), -t.rating, -(t.rating_count or 0), t.entry.name.lower())

    def unrated_key(t: TieredEntry):
        return (_stock_rank(t), t.entry.name.lower())

    direct = sorted((t for t in tiered if t.rating_source == RatingSource.DIRECT), key=rated_key)
    average = sorted(
        (t for t in tiered if t.rating_source == RatingSource.PRODUCER_AVG), key=rated_key
    )
    unrated = sorted((t for t in tiered if t.rating_source == RatingSource.NONE), key=unrated_key)
    return direct + average + unrated


# ============================================================================
# Response building
# ============================================================================


def fallback_lcbo_url(name: str, producer: str | None) -> str:
    query = f'"{name} {producer_label(producer)}"'
    return f"{LCBO_SEARCH_URL}{quote(query, safe='')}"


def lcbo_link_type(url: str | None) -> LinkType:
    if url and "/en/" in url and "catalogsearch" not in url:
        return LinkType.VERIFIED_PRODUCT
    return LinkType.SEARCH_FALLBACK


def match_score(tiered: TieredEntry) -> float:
    """Display score blending rating and match confidence."""
    entry = tiered.entry
    if entry.signal_rating is None:
        return 3.3
    boosted = entry.signal_rating + (entry.signal_confidence or 0.0) * 0.3
    return round(max(3.5, min(5.0, boosted)), 2)


def why_lines(tiered: TieredEntry, cohort_size: int) -> list[str]:
    entry = tiered.entry
    if tiered.rating_source == RatingSource.DIRECT:
        rating_line = f"Vivino {tiered.rating:.1f} with {tiered.rating_count or 0} reviews"
    elif tiered.rating_source == RatingSource.PRODUCER_AVG:
        rating_line = (
            f"Estimated {tiered.rating:.1f} from {cohort_size} other "
            f"{producer_label(entry.producer)} wines"
        )
    else:
        rating_line = "Vivino rating is not matched yet; use the Vivino search link to verify"
    lines = [
        rating_line,
        "Available based on latest inventory sync"
        if entry.in_stock
        else "Inventory can change quickly by store",
    ]
    if entry.refreshed_at is not None:
        lines.append(f"Source refreshed {entry.refreshed_at.date().isoformat()}")
    return lines


def to_recommendation(tiered: TieredEntry, cohort_size: int = 0) -> RecommendationWine:
    """Wire model for a tiered entry."""
    entry = tiered.entry
    lcbo_url = entry.lcbo_url or fallback_lcbo_url(entry.name, entry.producer)
    return RecommendationWine(
        id=entry.id,
        name=entry.name,
        producer=producer_label(entry.producer),
        type=entry.type,
        varietal=varietal_label(entry.varietal),
        country=entry.country,
        sub_region=entry.sub_region,
        region=entry.region,
        price=entry.price,
        rating=tiered.rating,
        rating_count=tiered.rating_count,
        rating_source=tiered.rating_source,
        has_vivino_match=entry.signal_rating is not None,
        vivino_match_confidence=entry.signal_confidence,
        match_score=match_score(tiered),
        stock_confidence=tiered.stock_confidence,
        why=why_lines(tiered, cohort_size),
        store_id=entry.store_id,
        store_label=entry.store_label,
        lcbo_url=lcbo_url,
        lcbo_link_type=lcbo_link_type(entry.lcbo_url),
        vivino_url=resolve_vivino_url(entry.vivino_url, entry.name, entry.producer, entry.country),
    )


def normalize_filters(filters: RecommendationFilterInput) -> RecommendationFilterInput:
    """Lowercase and trim the search text."""
    return filters.model_copy(
        update={"search": filters.search.lower().strip(), "store_id": filters.store_id.strip()}
    )


def _matches_search(entry: CatalogEntry, search: str) -> bool:
    if not search:
        return True
    haystack = " ".join(
        [entry.name, producer_label(entry.producer), varietal_label(entry.varietal), entry.region]
    )
    return fold_accents(search) in fold_accents(haystack).lower()


class RecommendationService:
    """Service ranking catalog wines for the recommendation query."""

    def __init__(
        self,
        provider: CatalogProvider | None = None,
        session: Session | None = None,
        ranking: RankingConfig | None = None,
    ):
        """
        Initialize the recommendation service.

        Args:
            provider: Catalog provider (defaults to the database provider)
            session: SQLAlchemy session for the default provider
            ranking: Trust floor, cohort size and default minimum rating
        """
        if provider is None:
            if session is None:
                raise ValueError("Either a provider or a session is required")
            provider = DatabaseCatalogProvider(session)
        self.provider = provider
        self.ranking = ranking or RankingConfig()

    def _tier(
        self, entries: list[CatalogEntry], min_rating: float
    ) -> tuple[list[TieredEntry], dict[tuple[str, str, str], list[tuple[str, float]]]]:
        cohorts = producer_averages(entries, self.ranking)
        tiered = [classify(entry, cohorts, min_rating, self.ranking) for entry in entries]
        return [t for t in tiered if t is not None], cohorts

    def _rank(
        self, filters: RecommendationFilterInput, store_id: str, in_stock_only: bool
    ) -> tuple[list[RecommendationWine], list[str], list[str]]:
        entries = self.provider.list_candidates(store_id)
        tiered, cohorts = self._tier(entries, filters.min_rating)

        pool = [
            t
            for t in tiered
            if (not filters.types or t.entry.type.value in filters.types)
            and (not filters.varietals or varietal_label(t.entry.varietal) in filters.varietals)
            and (not filters.countries or t.entry.country in filters.countries)
        ]
        countries = sorted({t.entry.country for t in pool})
        sub_regions = sorted({t.entry.sub_region for t in pool})

        selected = [
            t
            for t in pool
            if (not filters.sub_regions or t.entry.sub_region in filters.sub_regions)
            and (not store_id or t.entry.store_id == store_id)
            and (not (store_id or in_stock_only) or t.entry.in_stock)
            and filters.min_price <= t.entry.price <= filters.max_price
            and _matches_search(t.entry, filters.search)
        ]

        def cohort_size(t: TieredEntry) -> int:
            key = cohort_key(t.entry)
            if key is None:
                return 0
            return sum(1 for wine_id, _ in cohorts.get(key, []) if wine_id != t.entry.id)

        ranked = [to_recommendation(t, cohort_size(t)) for t in sort_tiers(selected)]
        return ranked, countries, sub_regions

    def recommend(self, raw_filters: RecommendationFilterInput) -> RecommendationResponse:
        """
        Ranked recommendations for a query.

        Args:
            raw_filters: Query filters

        Returns:
            RecommendationResponse; when a store filter yields nothing, the
            results come from in-stock wines at any store and the fallback
            flag is set
        """
        filters = normalize_filters(raw_filters)
        recommendations, countries, sub_regions = self._rank(filters, filters.store_id, False)

        fallback_applied = False
        if filters.store_id and not recommendations:
            logger.info(f"No in-stock results at store {filters.store_id}; widening to all stores")
            recommendations, countries, sub_regions = self._rank(filters, "", True)
            fallback_applied = bool(recommendations)

        return RecommendationResponse(
            query=filters,
            available_countries=countries,
            available_sub_regions=sub_regions,
            quality_rule=(
                f"Rated wines are shown when their trusted Vivino rating or producer "
                f"average is at least {filters.min_rating:.1f}; unrated wines are listed last."
            ),
            ranking_rule=RANKING_RULE,
            review_count_note=REVIEW_COUNT_NOTE,
            store_fallback_applied=fallback_applied,
            store_fallback_note=STORE_FALLBACK_NOTE if fallback_applied else None,
            recommendations=recommendations,
        )

