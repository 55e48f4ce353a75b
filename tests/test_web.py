"""Tests for web routes."""

import pytest
from fastapi.testclient import TestClient

from wine_selector.db.engine import get_session
from wine_selector.ingestion.catalog_sync import sync_catalog
from wine_selector.ingestion.signal_sync import sync_signals


@pytest.fixture
def client(global_db) -> TestClient:
    """Test client bound to a temporary database."""
    from wine_selector.web.app import create_app

    return TestClient(create_app())


@pytest.fixture
def seeded(global_db, make_catalog_item):
    """Two wines, one with a trusted Vivino signal."""
    with get_session() as session:
        sync_catalog(
            session,
            [
                make_catalog_item(),
                make_catalog_item(
                    externalId="20002",
                    name="Gato Negro Chardonnay",
                    producer="Gato Negro",
                    varietal="Chardonnay",
                    country="Chile",
                    subRegion="Central Valley",
                    regionLabel="Chile - Central Valley",
                    lcboUrl="https://www.lcbo.com/en/gato-negro-chardonnay-20002",
                    listedPriceCents=995,
                    storeCode="511",
                    storeLabel="Summerhill - Toronto",
                ),
            ],
        )
        sync_signals(
            session,
            [
                {
                    "externalId": "20001",
                    "source": "vivino",
                    "rating": 4.3,
                    "ratingCount": 12400,
                    "confidenceScore": 0.85,
                }
            ],
        )
    return global_db


class TestRecommendationsRoute:
    """Tests for GET /api/recommendations."""

    def test_empty_catalog(self, client: TestClient) -> None:
        """Test an empty database answers with no recommendations."""
        response = client.get("/api/recommendations")
        assert response.status_code == 200
        data = response.json()
        assert data["recommendations"] == []
        assert data["storeFallbackApplied"] is False

    def test_defaults(self, client: TestClient, seeded) -> None:
        """Test default price and rating filters."""
        data = client.get("/api/recommendations").json()

        assert data["query"]["minPrice"] == 15
        assert data["query"]["maxPrice"] == 500
        assert data["query"]["minRating"] == 4.0
        # The 9.95 bottle is below the default minimum price
        assert [r["name"] for r in data["recommendations"]] == ["Cloudy Bay Sauvignon Blanc"]

        wine = data["recommendations"][0]
        assert wine["ratingSource"] == "direct"
        assert wine["rating"] == 4.3
        assert wine["ratingCount"] == 12400
        assert wine["stockConfidence"] == "High"
        assert wine["lcboLinkType"] == "verified_product"
        assert wine["vivinoUrl"].startswith("https://www.vivino.com/search/wines?q=")

    def test_filters_from_query(self, client: TestClient, seeded) -> None:
        """Test comma-separated filters and price overrides."""
        data = client.get(
            "/api/recommendations",
            params={"countries": "Chile, ", "minPrice": "5", "maxPrice": "bad"},
        ).json()
        assert [r["name"] for r in data["recommendations"]] == ["Gato Negro Chardonnay"]
        assert data["query"]["countries"] == ["Chile"]
        assert data["query"]["maxPrice"] == 500

    def test_search(self, client: TestClient, seeded) -> None:
        """Test free-text search."""
        data = client.get("/api/recommendations", params={"search": "cloudy"}).json()
        assert len(data["recommendations"]) == 1

    def test_store_fallback(self, client: TestClient, seeded) -> None:
        """Test an unknown store falls back to other stores."""
        data = client.get("/api/recommendations", params={"storeId": "999"}).json()
        assert data["storeFallbackApplied"] is True
        assert data["storeFallbackNote"]
        assert data["recommendations"][0]["storeId"] == "217"


class TestHealthRoute:
    """Tests for GET /api/ingestion/health."""

    def test_unhealthy_is_still_200(self, client: TestClient) -> None:
        """Test the route reports status in the body."""
        response = client.get("/api/ingestion/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unhealthy"
        assert set(data["sources"]) == {"lcbo_catalog", "vivino_signals", "dead_letters"}

    def test_after_sync(self, client: TestClient, seeded) -> None:
        """Test runs written by syncs show up in the report."""
        data = client.get("/api/ingestion/health").json()
        assert data["status"] == "healthy"
        assert {r["source"] for r in data["latestRuns"]} == {"lcbo_catalog", "vivino_signals"}
