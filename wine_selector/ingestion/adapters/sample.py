"""
Sample Feed Adapter
===================

Offline adapter with a small bundled catalog and ratings-site candidate pool.
Lets the whole sync, match and ranking flow run without network access.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from wine_selector.core.enums import WineType
from wine_selector.ingestion.adapters.base import BaseFeedAdapter, FeedResult
from wine_selector.ingestion.adapters.lcbo import to_lcbo_url
from wine_selector.ingestion.adapters.vivino import (
    CandidatePool,
    ExplorePage,
    LiveRating,
    WineryInfo,
)
from wine_selector.ingestion.normalizer import CatalogNormalizer
from wine_selector.ingestion.resolver import ExternalRatingCandidate
from wine_selector.services.vivino_trust import build_vivino_search_url

SAMPLE_STORES: dict[str, dict[str, Any]] = {
    "217": {"name": "Queens Quay", "city": "Toronto", "latitude": 43.6404, "longitude": -79.3806},
    "511": {"name": "Summerhill", "city": "Toronto", "latitude": 43.6822, "longitude": -79.3905},
}

# (sku, name, type, country, sub_region, price_cents, {store_code: quantity})
SAMPLE_PRODUCTS: list[tuple[str, str, WineType, str, str, int, dict[str, int]]] = [
    ("10001", "Gato Negro Chardonnay", WineType.WHITE, "Chile", "Central Valley", 995, {"217": 40}),
    ("10002", "Henry of Pelham Baco Noir 2021", WineType.RED, "Canada", "Ontario", 1595, {"217": 12}),
    ("10003", "Henry of Pelham Baco Noir 2022", WineType.RED, "Canada", "Ontario", 1595, {"511": 8}),
    ("10004", "Tawse Cabernet Franc VQA", WineType.RED, "Canada", "Niagara Peninsula", 2895, {"217": 0, "511": 5}),
    ("10005", "Cloudy Bay Sauvignon Blanc", WineType.WHITE, "New Zealand", "Marlborough", 3695, {"217": 18}),
    ("10006", "Château des Charmes Riesling", WineType.WHITE, "Canada", "Niagara-on-the-Lake", 1495, {"511": 22}),
    ("10007", "Penfolds Bin 28 Kalimna Shiraz", WineType.RED, "Australia", "South Australia", 4500, {"217": 3}),
    ("10008", "Catena Malbec", WineType.RED, "Argentina", "Mendoza", 1995, {"217": 0}),
    ("10009", "Maison Test Réserve Rouge", WineType.RED, "France", "Languedoc", 1395, {"511": 11}),
]

# (wine_id, winery_id, winery, winery_seo, wine_name, rating, rating_count)
SAMPLE_CANDIDATES: list[tuple[str, int, str, str, str, float, int]] = [
    ("1101", 501, "Gato Negro", "gato-negro", "Chardonnay", 4.1, 1850),
    ("1102", 502, "Henry of Pelham", "henry-of-pelham", "Baco Noir", 4.0, 2210),
    ("1103", 503, "Tawse", "tawse", "Cabernet Franc", 4.2, 640),
    ("1104", 504, "Cloudy Bay", "cloudy-bay", "Sauvignon Blanc", 4.3, 12400),
    ("1105", 505, "Château des Charmes", "chateau-des-charmes", "Riesling", 3.9, 310),
    ("1106", 506, "Penfolds", "penfolds", "Bin 28 Kalimna Shiraz", 4.2, 5300),
    ("1107", 507, "Catena", "catena", "Malbec", 4.0, 9800),
    ("1108", 506, "Penfolds", "penfolds", "Bin 389 Cabernet Shiraz", 4.3, 7100),
    ("1109", 508, "Zero Reviews", "zero-reviews", "Merlot", 0.0, 0),
]


def _sample_candidate(row: tuple[str, int, str, str, str, float, int]) -> ExternalRatingCandidate:
    wine_id, _, winery, winery_seo, wine_name, rating, rating_count = row
    return ExternalRatingCandidate(
        wine_id=wine_id,
        winery_name=winery,
        wine_name_only=wine_name,
        full_name=f"{winery} {wine_name}",
        rating=rating,
        rating_count=rating_count,
        direct_url=f"https://www.vivino.com/{winery_seo}/w/{wine_id}",
    )


class SampleFeedAdapter(BaseFeedAdapter):
    """
    Offline adapter serving the bundled sample data.

    Implements the same candidate-pool interface as the explore adapter so
    match runs can use it in place of the ratings site.
    """

    ADAPTER_NAME = "sample"
    ADAPTER_VERSION = "1.0.0"

    def __init__(self, config=None, client=None) -> None:
        super().__init__(config, client)
        self.normalizer = CatalogNormalizer()
        self.fetched_at = datetime.now(UTC)

    def catalog_items(self) -> list[dict[str, Any]]:
        """Catalog records, one per product and store."""
        items = []
        for sku, name, wine_type, country, sub_region, price, stock in SAMPLE_PRODUCTS:
            canonical = self.normalizer.canonicalize(name)
            for store_code, quantity in stock.items():
                store = SAMPLE_STORES[store_code]
                items.append(
                    {
                        "externalId": sku,
                        "name": name,
                        "producer": canonical.producer,
                        "type": wine_type.value,
                        "varietal": canonical.varietal,
                        "country": country,
                        "subRegion": sub_region,
                        "regionLabel": f"{country} - {sub_region}",
                        "lcboUrl": to_lcbo_url(name, sku),
                        "vivinoUrl": build_vivino_search_url(name),
                        "storeCode": store_code,
                        "storeLabel": f"{store['name']} - {store['city']}",
                        "storeCity": store["city"],
                        "storeLatitude": store["latitude"],
                        "storeLongitude": store["longitude"],
                        "listedPriceCents": price,
                        "inventoryQuantity": quantity,
                        "inStock": quantity > 0,
                        "sourceUpdatedAt": self.fetched_at,
                    }
                )
        return items

    def signal_items(self) -> list[dict[str, Any]]:
        """Signal records keyed by SKU, for the sample signal feed."""
        by_name = {f"{c[2]} {c[4]}": c for c in SAMPLE_CANDIDATES}
        signals = []
        for sku, name, *_ in SAMPLE_PRODUCTS:
            row = by_name.get(name)
            if row is None or row[6] <= 0:
                continue
            signals.append(
                {
                    "externalId": sku,
                    "source": "vivino",
                    "rating": row[5],
                    "ratingCount": row[6],
                    "confidenceScore": 0.85,
                    "fetchedAt": self.fetched_at,
                }
            )
        return signals

    async def fetch_feed(self) -> FeedResult:
        """Return the sample catalog (or signals when ``feed: signals``)."""
        if self.config.get("feed") == "signals":
            return FeedResult(items=self.signal_items())
        return FeedResult(items=self.catalog_items())

    async def fetch_candidate_pool(self, max_pages: int | None = None) -> CandidatePool:
        """The sample ratings-site pool as a single page."""
        candidates = [_sample_candidate(row) for row in SAMPLE_CANDIDATES]
        wineries = {
            row[1]: WineryInfo(id=row[1], name=row[2], seo_name=row[3]) for row in SAMPLE_CANDIDATES
        }
        pool = CandidatePool(records_matched=len(SAMPLE_CANDIDATES))
        pool.add_page(
            ExplorePage(
                candidates=[c for c in candidates if c.is_eligible],
                wineries=list(wineries.values()),
            )
        )
        return pool

    async def fetch_winery_wines(
        self,
        winery: WineryInfo,
        min_rating_count: int = 5,
    ) -> list[ExternalRatingCandidate]:
        """Sample wines of one winery with enough reviews."""
        return [
            _sample_candidate(row)
            for row in SAMPLE_CANDIDATES
            if row[1] == winery.id and row[5] > 0 and row[6] >= min_rating_count
        ]

    async def fetch_live_rating(self, url: str) -> LiveRating | None:
        """Current rating of a sample wine, looked up by its direct link."""
        for row in SAMPLE_CANDIDATES:
            candidate = _sample_candidate(row)
            if candidate.direct_url == url and candidate.rating > 0:
                return LiveRating(rating=candidate.rating, rating_count=candidate.rating_count)
        return None
