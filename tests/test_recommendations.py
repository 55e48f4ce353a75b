"""Tests for trust-tiered ranking in the recommendation service."""

import pytest
import pytest_asyncio
from sqlalchemy.orm import Session

from wine_selector.core.enums import LinkType, RatingSource, StockConfidence, WineType
from wine_selector.core.schema import RecommendationFilterInput
from wine_selector.ingestion.adapters.sample import SampleFeedAdapter
from wine_selector.ingestion.catalog_sync import sync_catalog
from wine_selector.ingestion.matching import run_match
from wine_selector.ingestion.registry import RankingConfig
from wine_selector.services.recommendation_service import (
    STORE_FALLBACK_NOTE,
    CatalogEntry,
    RecommendationService,
    StaticCatalogProvider,
    TieredEntry,
    match_score,
    to_recommendation,
)


def entry(
    id: str,
    name: str,
    producer: str | None = "Catena",
    rating: float | None = None,
    confidence: float | None = None,
    rating_count: int | None = None,
    in_stock: bool = True,
    type: WineType = WineType.RED,
    country: str = "Argentina",
    sub_region: str = "Mendoza",
    price: float = 20.0,
    store_id: str = "217",
    varietal: str | None = "Malbec",
    **extra,
) -> CatalogEntry:
    if rating is not None and rating_count is None:
        rating_count = 100
    return CatalogEntry(
        id=id,
        name=name,
        producer=producer,
        type=type,
        varietal=varietal,
        country=country,
        sub_region=sub_region,
        region=f"{country} - {sub_region}",
        price=price,
        in_stock=in_stock,
        store_id=store_id,
        store_label="Queens Quay" if store_id == "217" else "Summerhill",
        signal_rating=rating,
        signal_rating_count=rating_count,
        signal_confidence=confidence,
        **extra,
    )


def recommend(entries: list[CatalogEntry], **filters):
    service = RecommendationService(provider=StaticCatalogProvider(entries))
    return service.recommend(RecommendationFilterInput(**filters))


def catena_cohort(rating: float, count: int = 3) -> list[CatalogEntry]:
    """Trusted Catena reds for producer averages."""
    return [
        entry(f"c{i}", f"Catena Cabernet {i}", rating=rating, confidence=0.9, varietal="Cabernet Sauvignon")
        for i in range(count)
    ]


class TestTrustTiers:
    """Tests for tier assignment and tier ordering."""

    def test_direct_ranks_above_producer_average(self) -> None:
        """Test a direct match outranks a higher producer estimate."""
        entries = catena_cohort(4.8) + [
            entry("z", "Zuccardi Malbec", producer="Zuccardi", rating=3.9, confidence=0.9),
            entry("alta", "Catena Alta Malbec"),
        ]
        response = recommend(entries, min_rating=3.5)
        ids = [r.id for r in response.recommendations]

        assert ids.index("z") < ids.index("alta")
        alta = response.recommendations[ids.index("alta")]
        assert alta.rating_source == RatingSource.PRODUCER_AVG
        assert alta.rating == 4.8
        assert alta.rating_count is None
        assert alta.why[0] == "Estimated 4.8 from 3 other Catena wines"

    def test_min_rating_is_inclusive(self) -> None:
        """Test a trusted rating equal to the minimum is kept."""
        entries = [
            entry("a", "Exactly Four", producer="A", rating=4.0, confidence=0.9),
            entry("b", "Just Under", producer="B", rating=3.99, confidence=0.9),
        ]
        ids = [r.id for r in recommend(entries, min_rating=4.0).recommendations]
        assert ids == ["a"]

    def test_untrusted_signal_is_unrated(self) -> None:
        """Test a low-confidence match does not provide a rating."""
        response = recommend([entry("u", "Catena Malbec", rating=4.6, confidence=0.6)])
        wine = response.recommendations[0]
        assert wine.rating_source == RatingSource.NONE
        assert wine.rating == 0.0
        assert wine.rating_count is None
        assert wine.has_vivino_match is True

    def test_trust_floor_from_config(self) -> None:
        """Test the trust floor comes from the ranking settings."""
        service = RecommendationService(
            provider=StaticCatalogProvider([entry("u", "Catena Malbec", rating=4.6, confidence=0.6)]),
            ranking=RankingConfig(trust_floor=0.55),
        )
        wine = service.recommend(RecommendationFilterInput()).recommendations[0]
        assert wine.rating_source == RatingSource.DIRECT

    def test_low_producer_average_is_unrated(self) -> None:
        """Test a producer average below the minimum falls to unrated."""
        entries = catena_cohort(3.6) + [entry("alta", "Catena Alta Malbec")]
        response = recommend(entries, min_rating=4.0)
        assert [(r.id, r.rating_source) for r in response.recommendations] == [
            ("alta", RatingSource.NONE)
        ]

    def test_producer_average_rounds_half_up(self) -> None:
        """Test a cohort mean of 4.25 is shown as 4.3 and passes a 4.3 minimum."""
        entries = [
            entry(f"c{i}", f"Catena Cabernet {i}", rating=rating, confidence=0.9)
            for i, rating in enumerate([4.0, 4.5, 4.25])
        ] + [entry("alta", "Catena Alta Malbec")]
        alta = next(r for r in recommend(entries, min_rating=4.3).recommendations if r.id == "alta")
        assert alta.rating_source == RatingSource.PRODUCER_AVG
        assert alta.rating == 4.3

    def test_cohort_needs_three_other_wines(self) -> None:
        """Test two trusted siblings are not enough for an estimate."""
        entries = catena_cohort(4.5, count=2) + [entry("alta", "Catena Alta Malbec")]
        alta = next(r for r in recommend(entries).recommendations if r.id == "alta")
        assert alta.rating_source == RatingSource.NONE

    def test_cohort_is_split_by_type_and_country(self) -> None:
        """Test whites or wines from other countries do not join a red cohort."""
        entries = [
            entry("w0", "Catena White 0", rating=4.5, confidence=0.9, type=WineType.WHITE),
            entry("w1", "Catena White 1", rating=4.5, confidence=0.9, type=WineType.WHITE),
            entry("c0", "Catena Chile", rating=4.5, confidence=0.9, country="Chile"),
            entry("alta", "Catena Alta Malbec"),
        ]
        alta = next(r for r in recommend(entries).recommendations if r.id == "alta")
        assert alta.rating_source == RatingSource.NONE

    def test_unknown_producer_has_no_cohort(self) -> None:
        """Test wines without a producer never get an estimate."""
        entries = [
            entry(f"n{i}", f"Mystery Red {i}", producer=None, rating=4.5, confidence=0.9)
            for i in range(3)
        ] + [entry("m", "Mystery Red", producer=None)]
        mystery = next(r for r in recommend(entries).recommendations if r.id == "m")
        assert mystery.rating_source == RatingSource.NONE
        assert mystery.producer == "Unknown Producer"


class TestOrderingAndFilters:
    """Tests for ordering, filters and the store fallback."""

    def test_in_stock_first_within_tier(self) -> None:
        """Test stock outranks rating inside a tier."""
        entries = [
            entry("out", "Out Of Stock", producer="A", rating=4.5, confidence=0.9, in_stock=False),
            entry("in", "In Stock", producer="B", rating=4.2, confidence=0.9),
        ]
        response = recommend(entries)
        assert [r.id for r in response.recommendations] == ["in", "out"]
        assert response.recommendations[0].stock_confidence == StockConfidence.HIGH
        assert response.recommendations[1].stock_confidence == StockConfidence.MEDIUM

    def test_review_count_breaks_rating_ties(self) -> None:
        """Test more reviews win on equal ratings."""
        entries = [
            entry("few", "Few Reviews", producer="A", rating=4.2, confidence=0.9, rating_count=10),
            entry("many", "Many Reviews", producer="B", rating=4.2, confidence=0.9, rating_count=900),
        ]
        assert [r.id for r in recommend(entries).recommendations] == ["many", "few"]

    def test_filters(self) -> None:
        """Test type, country and price filters."""
        entries = [
            entry("red", "Catena Malbec", price=20.0),
            entry("white", "Catena Chardonnay", type=WineType.WHITE, varietal="Chardonnay"),
            entry("cheap", "Catena Cheap", price=9.0),
            entry("chile", "Gato Negro Merlot", producer="Gato Negro", country="Chile"),
        ]
        response = recommend(
            entries, types=["Red"], countries=["Argentina"], min_price=15, max_price=50
        )
        assert [r.id for r in response.recommendations] == ["red"]

    def test_varietal_filter_uses_labels(self) -> None:
        """Test blends are selected by the Blend label."""
        entries = [entry("blend", "Catena Red", varietal=None), entry("malbec", "Catena Malbec")]
        response = recommend(entries, varietals=["Blend"])
        assert [r.id for r in response.recommendations] == ["blend"]
        assert response.recommendations[0].varietal == "Blend"

    def test_available_sub_regions_ignore_sub_region_filter(self) -> None:
        """Test facets are computed before the sub-region filter."""
        entries = [
            entry("m", "Catena Malbec"),
            entry("s", "Catena Salta", sub_region="Salta"),
            entry("c", "Gato Negro", producer="Gato Negro", country="Chile", sub_region="Central Valley"),
        ]
        response = recommend(entries, countries=["Argentina"], sub_regions=["Mendoza"])
        assert [r.id for r in response.recommendations] == ["m"]
        assert response.available_countries == ["Argentina"]
        assert response.available_sub_regions == ["Mendoza", "Salta"]

    def test_search_folds_accents(self) -> None:
        """Test search ignores case and accents."""
        entries = [
            entry(
                "cdc",
                "Château des Charmes Riesling",
                producer="Château des Charmes",
                type=WineType.WHITE,
                varietal="Riesling",
                country="Canada",
                sub_region="Niagara",
            ),
            entry("cat", "Catena Malbec"),
        ]
        assert [r.id for r in recommend(entries, search="chateau").recommendations] == ["cdc"]
        assert [r.id for r in recommend(entries, search="  CHÂTEAU ").recommendations] == ["cdc"]
        assert [r.id for r in recommend(entries, search="riesling").recommendations] == ["cdc"]

    def test_store_filter(self) -> None:
        """Test a store filter keeps only that store's in-stock wines."""
        entries = [
            entry("a", "Catena Malbec", store_id="217"),
            entry("b", "Catena Cabernet", store_id="217", in_stock=False),
            entry("c", "Catena Syrah", store_id="511"),
        ]
        response = recommend(entries, store_id="217")
        assert [r.id for r in response.recommendations] == ["a"]
        assert response.store_fallback_applied is False
        assert response.store_fallback_note is None

    def test_store_fallback(self) -> None:
        """Test an empty store widens to in-stock wines anywhere."""
        entries = [
            entry("a", "Catena Malbec", store_id="217"),
            entry("b", "Catena Cabernet", store_id="511", in_stock=False),
        ]
        response = recommend(entries, store_id="999")
        assert [r.id for r in response.recommendations] == ["a"]
        assert response.store_fallback_applied is True
        assert response.store_fallback_note == STORE_FALLBACK_NOTE

    def test_store_fallback_not_applied_when_still_empty(self) -> None:
        """Test the flag stays off when the fallback finds nothing either."""
        response = recommend([entry("b", "Catena Cabernet", in_stock=False)], store_id="999")
        assert response.recommendations == []
        assert response.store_fallback_applied is False

    def test_requires_provider_or_session(self) -> None:
        """Test the service needs a catalog."""
        with pytest.raises(ValueError):
            RecommendationService()

    def test_quality_rule_mentions_min_rating(self) -> None:
        """Test the rule text reflects the query."""
        response = recommend([], min_rating=3.5)
        assert "at least 3.5" in response.quality_rule


class TestRecommendationWire:
    """Tests for the wire model."""

    def test_links(self) -> None:
        """Test LCBO and Vivino link resolution."""
        verified = to_recommendation(
            TieredEntry(
                entry(
                    "v",
                    "Catena Malbec",
                    lcbo_url="https://www.lcbo.com/en/catena-malbec-10008",
                    vivino_url="https://www.vivino.com/catena/w/1107",
                ),
                RatingSource.NONE,
                0.0,
                None,
            )
        )
        assert verified.lcbo_link_type == LinkType.VERIFIED_PRODUCT
        assert verified.vivino_url == "https://www.vivino.com/catena/w/1107"

        fallback = to_recommendation(
            TieredEntry(
                entry(
                    "s",
                    "Catena Malbec",
                    vivino_url="https://www.vivino.com/search/wines?q=old",
                ),
                RatingSource.NONE,
                0.0,
                None,
            )
        )
        assert fallback.lcbo_link_type == LinkType.SEARCH_FALLBACK
        assert "catalogsearch" in fallback.lcbo_url
        assert fallback.vivino_url.startswith("https://www.vivino.com/search/wines?q=")
        assert "Argentina" in fallback.vivino_url

    @pytest.mark.parametrize(
        "rating,confidence,expected",
        [(None, None, 3.3), (4.3, 0.9, 4.57), (4.9, 0.95, 5.0), (3.0, 0.6, 3.5)],
    )
    def test_match_score(self, rating, confidence, expected) -> None:
        """Test the display score is clamped and rounded."""
        tiered = TieredEntry(
            entry("x", "Catena Malbec", rating=rating, confidence=confidence),
            RatingSource.NONE,
            0.0,
            None,
        )
        assert match_score(tiered) == pytest.approx(expected)

    def test_camel_case_dump(self) -> None:
        """Test wire field names."""
        wine = recommend([entry("a", "Catena Malbec", rating=4.2, confidence=0.9, rating_count=9800)])
        data = wine.recommendations[0].model_dump(by_alias=True, mode="json")
        assert data["ratingSource"] == "direct"
        assert data["ratingCount"] == 9800
        assert data["subRegion"] == "Mendoza"
        assert data["why"][0] == "Vivino 4.2 with 9800 reviews"


class TestDatabaseRanking:
    """End-to-end ranking over the synced and matched sample catalog."""

    @pytest_asyncio.fixture
    async def matched_catalog(self, test_session: Session) -> Session:
        adapter = SampleFeedAdapter()
        feed = await adapter.fetch_feed()
        sync_catalog(test_session, feed.items, "sample")
        await run_match(test_session, adapter, run_source="sample")
        return test_session

    @pytest.mark.asyncio
    async def test_sample_ranking(self, matched_catalog: Session) -> None:
        """Test tiers and ordering from the database provider."""
        service = RecommendationService(session=matched_catalog)
        response = service.recommend(RecommendationFilterInput(min_rating=4.0))
        names = [r.name for r in response.recommendations]

        assert names[:4] == [
            "Cloudy Bay Sauvignon Blanc",
            "Penfolds Bin 28 Kalimna Shiraz",
            "Tawse Cabernet Franc VQA",
            "Gato Negro Chardonnay",
        ]
        assert names[4].startswith("Henry of Pelham Baco Noir")
        assert names[5] == "Catena Malbec"
        assert names[-1] == "Maison Test Réserve Rouge"
        assert "Château des Charmes Riesling" not in names
        assert len(names) == 8

        cloudy = response.recommendations[0]
        assert cloudy.rating_source == RatingSource.DIRECT
        assert cloudy.rating == 4.3
        assert cloudy.vivino_url == "https://www.vivino.com/cloudy-bay/w/1104"
        assert cloudy.lcbo_link_type == LinkType.VERIFIED_PRODUCT
        assert response.recommendations[-1].rating_source == RatingSource.NONE

    @pytest.mark.asyncio
    async def test_sample_store_filter(self, matched_catalog: Session) -> None:
        """Test the database provider resolves the selected store's row."""
        service = RecommendationService(session=matched_catalog)
        response = service.recommend(RecommendationFilterInput(min_rating=4.0, store_id="511"))

        assert response.store_fallback_applied is False
        assert all(r.store_id == "511" for r in response.recommendations)
        names = {r.name for r in response.recommendations}
        assert "Tawse Cabernet Franc VQA" in names
        assert "Maison Test Réserve Rouge" in names
        assert "Henry of Pelham Baco Noir 2022" in names
        assert len(names) == 3
