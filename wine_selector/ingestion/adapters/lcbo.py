"""
LCBO Catalog Adapter
====================

Pages through the LCBO GraphQL product API and yields one catalog record per
(product, store inventory) pair. The retailer does not reliably supply a
producer or grape, so both are derived from the product name.

Environment overrides (take precedence over sources.yaml):
- LCBO_API_BASE_URL: GraphQL endpoint
- LCBO_SYNC_MAX_PRODUCTS: stop after this many records (0 = no limit)
- LCBO_INVENTORY_PER_PRODUCT: store inventories requested per product
- LCBO_INVENTORY_FOCUS_LAT / LCBO_INVENTORY_FOCUS_LNG / LCBO_INVENTORY_RADIUS_KM:
  only return inventories near this point
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import Any

from wine_selector.ingestion.adapters.base import BaseFeedAdapter, FeedResult
from wine_selector.ingestion.normalizer import CatalogNormalizer, infer_wine_type, slugify
from wine_selector.services.vivino_trust import build_vivino_search_url

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.lcbo.dev/graphql"
LCBO_PRODUCT_BASE_URL = "https://www.lcbo.com/en"

_PRODUCT_FIELDS = """
            sku
            name
            producerName
            primaryCategory
            shortDescription
            countryOfManufacture
            regionName
            priceInCents
            updatedAt
"""

_INVENTORY_FIELDS = """
              edges {
                node {
                  quantity
                  store {
                    externalId
                    name
                    city
                    latitude
                    longitude
                  }
                }
              }
"""

FOCUSED_QUERY = f"""
query ProductsPage($after: String, $first: Int!, $inventoryPerProduct: Int!,
                   $focusLatitude: Float!, $focusLongitude: Float!, $focusRadiusKm: Float!) {{
  products(
    filters: {{ categorySlug: "wine", isBuyable: true }}
    pagination: {{ first: $first, after: $after }}
  ) {{
    pageInfo {{ hasNextPage endCursor }}
    edges {{
      node {{
{_PRODUCT_FIELDS}
            inventories(
              filters: {{ latitude: $focusLatitude, longitude: $focusLongitude, radiusKm: $focusRadiusKm }}
              pagination: {{ first: $inventoryPerProduct }}
            ) {{
{_INVENTORY_FIELDS}
            }}
      }}
    }}
  }}
}}
"""

UNFOCUSED_QUERY = f"""
query ProductsPage($after: String, $first: Int!, $inventoryPerProduct: Int!) {{
  products(
    filters: {{ categorySlug: "wine", isBuyable: true }}
    pagination: {{ first: $first, after: $after }}
  ) {{
    pageInfo {{ hasNextPage endCursor }}
    edges {{
      node {{
{_PRODUCT_FIELDS}
            inventories(pagination: {{ first: $inventoryPerProduct }}) {{
{_INVENTORY_FIELDS}
            }}
      }}
    }}
  }}
}}
"""


def _env_float(name: str, fallback: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return fallback
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}")
        return fallback


def to_lcbo_url(name: str, sku: str) -> str:
    """Product page URL built from the product name and SKU."""
    return f"{LCBO_PRODUCT_BASE_URL}/{slugify(name)}-{sku}"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(UTC)


class LcboCatalogAdapter(BaseFeedAdapter):
    """
    Adapter for the LCBO GraphQL catalog.

    Pagination follows ``pageInfo.hasNextPage`` / ``endCursor``. When the
    location-focused query returns no product edges the page is retried
    without the focus filter.
    """

    ADAPTER_NAME = "lcbo_catalog"
    ADAPTER_VERSION = "1.0.0"

    def __init__(self, config=None, client=None) -> None:
        super().__init__(config, client)
        self.endpoint = (
            os.environ.get("LCBO_API_BASE_URL", "").strip()
            or self.config.get("base_url")
            or DEFAULT_ENDPOINT
        )
        self.page_size = int(self.config.get("page_size", 20))
        max_products = int(
            _env_float("LCBO_SYNC_MAX_PRODUCTS", float(self.config.get("max_products", 0)))
        )
        self.max_products: int | None = max_products if max_products > 0 else None
        self.inventory_per_product = max(
            1,
            int(
                _env_float(
                    "LCBO_INVENTORY_PER_PRODUCT",
                    float(self.config.get("inventory_per_product", 1)),
                )
            ),
        )
        self.focus_latitude = _env_float(
            "LCBO_INVENTORY_FOCUS_LAT", float(self.config.get("focus_latitude", 43.6532))
        )
        self.focus_longitude = _env_float(
            "LCBO_INVENTORY_FOCUS_LNG", float(self.config.get("focus_longitude", -79.3832))
        )
        self.focus_radius_km = max(
            1.0,
            _env_float("LCBO_INVENTORY_RADIUS_KM", float(self.config.get("focus_radius_km", 35))),
        )
        self.normalizer = CatalogNormalizer()

    def _limit_reached(self, items: list[Any]) -> bool:
        return self.max_products is not None and len(items) >= self.max_products

    async def fetch_products_page(self, cursor: str | None, focused: bool = True) -> Any:
        """
        Fetch one page of products.

        Args:
            cursor: ``endCursor`` of the previous page, None for the first page
            focused: Restrict inventories to the configured focus area

        Returns:
            Decoded GraphQL response
        """
        variables: dict[str, Any] = {
            "after": cursor,
            "first": self.page_size,
            "inventoryPerProduct": self.inventory_per_product,
        }
        if focused:
            variables.update(
                {
                    "focusLatitude": self.focus_latitude,
                    "focusLongitude": self.focus_longitude,
                    "focusRadiusKm": self.focus_radius_km,
                }
            )
        query = FOCUSED_QUERY if focused else UNFOCUSED_QUERY
        return await self.client.post_json(
            self.endpoint,
            json={"query": query, "variables": variables},
            headers={"Content-Type": "application/json"},
        )

    @staticmethod
    def _products_of(payload: Any) -> dict[str, Any] | None:
        if not isinstance(payload, dict):
            return None
        products = (payload.get("data") or {}).get("products")
        if not isinstance(products, dict) or not isinstance(products.get("edges"), list):
            return None
        return products

    def node_to_items(self, node: Any, result: FeedResult) -> list[dict[str, Any]]:
        """
        Turn one product node into catalog records.

        Malformed nodes and inventory entries are added to ``result`` as
        dead letters.

        Args:
            node: GraphQL product node
            result: FeedResult collecting dead letters

        Returns:
            One record per usable store inventory
        """
        if (
            not isinstance(node, dict)
            or not node.get("sku")
            or not node.get("name")
            or not isinstance(node.get("priceInCents"), (int, float))
        ):
            result.dead_letters.append(
                self.dead_letter(
                    "Missing required fields (sku/name/priceInCents) on LCBO product node",
                    payload=node,
                )
            )
            return []

        sku = str(node["sku"])
        edges = ((node.get("inventories") or {}).get("edges")) or []
        inventories = [e.get("node") for e in edges if isinstance(e, dict) and e.get("node")]
        if not inventories:
            result.dead_letters.append(
                self.dead_letter(
                    "No inventory records returned for product",
                    payload=node,
                    external_id=sku,
                )
            )
            return []

        name = node["name"].strip()
        canonical = self.normalizer.canonicalize(
            name,
            producer=node.get("producerName"),
            description=node.get("shortDescription"),
        )
        country = (node.get("countryOfManufacture") or "").strip() or "Unknown"
        sub_region = (node.get("regionName") or "").strip() or "Unspecified"

        items = []
        for inventory in inventories:
            store = inventory.get("store") or {}
            if not store.get("externalId") or not store.get("name"):
                result.dead_letters.append(
                    self.dead_letter(
                        "Inventory entry missing store metadata",
                        payload=inventory,
                        external_id=sku,
                    )
                )
                continue

            quantity = max(0, int(inventory.get("quantity") or 0))
            latitude = store.get("latitude")
            longitude = store.get("longitude")
            items.append(
                {
                    "externalId": sku,
                    "name": name,
                    "producer": canonical.producer,
                    "type": infer_wine_type(node.get("primaryCategory")).value,
                    "varietal": canonical.varietal,
                    "country": country,
                    "subRegion": sub_region,
                    "regionLabel": f"{country} - {sub_region}",
                    "lcboUrl": to_lcbo_url(name, sku),
                    "vivinoUrl": build_vivino_search_url(name),
                    "storeCode": str(store["externalId"]),
                    "storeLabel": " - ".join(p for p in (store["name"], store.get("city")) if p),
                    "storeCity": store.get("city") or None,
                    "storeLatitude": latitude if isinstance(latitude, (int, float)) else None,
                    "storeLongitude": longitude if isinstance(longitude, (int, float)) else None,
                    "listedPriceCents": round(node["priceInCents"]),
                    "inventoryQuantity": quantity,
                    "inStock": quantity > 0,
                    "sourceUpdatedAt": _parse_timestamp(node.get("updatedAt")),
                }
            )
        return items

    async def fetch_feed(self) -> FeedResult:
        """
        Page through the catalog.

        Returns:
            FeedResult of catalog records and adapter-stage dead letters

        Raises:
            FeedUnavailableError: If a page cannot be fetched
        """
        result = FeedResult()
        cursor: str | None = None
        has_next = True
        pages = 0

        while has_next and not self._limit_reached(result.items):
            payload = await self.fetch_products_page(cursor, focused=True)
            products = self._products_of(payload)
            if products is None:
                logger.info("Focused LCBO query returned no products, retrying without focus")
                payload = await self.fetch_products_page(cursor, focused=False)
                products = self._products_of(payload)
            if products is None:
                result.dead_letters.append(
                    self.dead_letter(
                        "Expected data.products.edges to exist in LCBO response",
                        payload=payload,
                    )
                )
                break

            for edge in products["edges"]:
                if self._limit_reached(result.items):
                    break
                node = edge.get("node") if isinstance(edge, dict) else None
                result.items.extend(self.node_to_items(node, result))

            pages += 1
            page_info = products.get("pageInfo") or {}
            has_next = bool(page_info.get("hasNextPage"))
            cursor = page_info.get("endCursor")

        logger.info(
            f"Fetched {len(result.items)} LCBO records from {pages} pages "
            f"({len(result.dead_letters)} rejected)"
        )
        return result
