"""
Vivino Adapters
===============

Two adapters for the ratings site:

- VivinoExploreAdapter pages the public explore API into the candidate pool
  used by match runs, fetches a single winery's wines for the winery
  expansion pass and reads the live rating off a matched wine's page.
- VivinoSignalAdapter reads pre-computed quality signals from an upstream
  ``/signals`` endpoint (VIVINO_API_BASE_URL / VIVINO_API_KEY).
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from wine_selector.ingestion.adapters.base import BaseFeedAdapter, FeedResult
from wine_selector.ingestion.http_client import FeedUnavailableError
from wine_selector.ingestion.normalizer import normalise
from wine_selector.ingestion.resolver import ExternalRatingCandidate
from wine_selector.services.vivino_trust import VIVINO_BASE_URL

logger = logging.getLogger(__name__)

# Stop paging once this many wines beyond the reported total have been read.
RECORDS_MATCHED_SLACK = 200

JSON_LD_RE = re.compile(r'<script type="application/ld\+json">(.*?)</script>', re.DOTALL)
RATING_VALUE_RE = re.compile(r"ratingValue[\"']?\s*[:=]\s*[\"']?([0-9.]+)", re.IGNORECASE)
REVIEW_COUNT_RE = re.compile(r"reviewCount[\"']?\s*[:=]\s*[\"']?([0-9]+)", re.IGNORECASE)
RATINGS_COUNT_RE = re.compile(r"ratings_count[\"']?\s*[:=]\s*[\"']?([0-9]+)", re.IGNORECASE)
CANONICAL_PATH_RE = re.compile(r'href="(/w/[0-9]+)"')


@dataclass(frozen=True)
class WineryInfo:
    """A winery seen in the explore feed."""

    id: int
    name: str
    seo_name: str = ""


@dataclass(frozen=True)
class LiveRating:
    """Rating read from a wine's own page."""

    rating: float
    rating_count: int
    canonical_url: str | None = None


@dataclass
class ExplorePage:
    """Parsed contents of one explore page."""

    candidates: list[ExternalRatingCandidate] = field(default_factory=list)
    wineries: list[WineryInfo] = field(default_factory=list)
    records_matched: int = 0


@dataclass
class CandidatePool:
    """Everything phase one of a match run collects from the explore feed."""

    candidates: list[ExternalRatingCandidate] = field(default_factory=list)
    wineries: dict[str, WineryInfo] = field(default_factory=dict)
    pages_fetched: int = 0
    records_matched: int = 0

    def add_page(self, page: ExplorePage) -> None:
        self.candidates.extend(page.candidates)
        for winery in page.wineries:
            key = normalise(winery.name)
            if key and key not in self.wineries:
                self.wineries[key] = winery
        self.pages_fetched += 1


def _statistics(node: dict[str, Any]) -> tuple[float, int]:
    stats = node.get("statistics") or {}
    rating = stats.get("ratings_average") or 0
    count = stats.get("ratings_count") or 0
    return float(rating), int(count)


def _number(pattern: re.Pattern[str], html: str, cast: Callable[[str], Any]) -> Any:
    match = pattern.search(html)
    if match is None:
        return 0
    try:
        return cast(match.group(1))
    except ValueError:
        return 0


class VivinoExploreAdapter(BaseFeedAdapter):
    """
    Adapter for the Vivino explore API.

    Wines with no rating or no reviews are dropped on parse, so every
    candidate returned is a valid match target.
    """

    ADAPTER_NAME = "vivino_explore"
    ADAPTER_VERSION = "1.0.0"

    def __init__(self, config=None, client=None) -> None:
        super().__init__(config, client)
        self.base_url = str(self.config.get("base_url") or VIVINO_BASE_URL).rstrip("/")
        self.page_size = int(self.config.get("page_size", 50))
        self.max_pages = int(self.config.get("max_pages") or 1025)
        self.country_code = self.config.get("country_code", "CA")
        self.currency_code = self.config.get("currency_code", "CAD")

    def direct_url(self, winery_seo: str, vintage_seo: str, wine_id: int | str) -> str:
        """Bottle-level URL, or the short ``/w/{id}`` form when slugs are missing."""
        if winery_seo and vintage_seo:
            return f"{self.base_url}/{winery_seo}/{vintage_seo}"
        return f"{self.base_url}/w/{wine_id}"

    def parse_explore_page(self, payload: Any) -> ExplorePage:
        """
        Parse an explore response.

        Args:
            payload: Decoded JSON of ``/api/explore/explore``

        Returns:
            ExplorePage with rated candidates and newly seen wineries
        """
        page = ExplorePage()
        if not isinstance(payload, dict):
            return page
        explore = payload.get("explore_vintage") or {}
        page.records_matched = int(explore.get("records_matched") or 0)
        seen_wineries: set[int] = set()

        for match in explore.get("matches") or []:
            vintage = (match or {}).get("vintage")
            wine = (vintage or {}).get("wine")
            if not vintage or not wine or not wine.get("id"):
                continue
            winery = wine.get("winery") or {}
            winery_name = winery.get("name") or ""
            wine_name_only = wine.get("name") or ""
            full_name = vintage.get("name") or f"{winery_name} {wine_name_only}".strip()
            rating, rating_count = _statistics(vintage)
            if rating <= 0 or rating_count <= 0:
                continue

            winery_seo = winery.get("seo_name") or ""
            region = wine.get("region") or {}
            page.candidates.append(
                ExternalRatingCandidate(
                    wine_id=str(wine["id"]),
                    winery_name=winery_name,
                    wine_name_only=wine_name_only,
                    full_name=full_name,
                    rating=rating,
                    rating_count=rating_count,
                    direct_url=self.direct_url(winery_seo, vintage.get("seo_name") or "", wine["id"]),
                    region=region.get("name") or "",
                    country=(region.get("country") or {}).get("name") or "",
                )
            )

            winery_id = winery.get("id")
            if winery_id and winery_id not in seen_wineries:
                seen_wineries.add(winery_id)
                page.wineries.append(
                    WineryInfo(id=int(winery_id), name=winery_name, seo_name=winery_seo)
                )
        return page

    async def fetch_explore_page(self, page: int) -> ExplorePage:
        """
        Fetch and parse one explore page (1-based).

        Raises:
            FeedUnavailableError: If the page cannot be fetched
        """
        params = {
            "country_code": self.country_code,
            "currency_code": self.currency_code,
            "min_rating": "1",
            "order_by": "ratings_count",
            "order": "desc",
            "page": str(page),
            "per_page": str(self.page_size),
        }
        payload = await self.client.get_json(f"{self.base_url}/api/explore/explore", params=params)
        return self.parse_explore_page(payload)

    async def fetch_candidate_pool(self, max_pages: int | None = None) -> CandidatePool:
        """
        Page through the explore feed.

        Paging stops at the first empty page, at ``max_pages``, or once the
        pool passes the reported record total. A failure on the first page
        propagates; a later failure keeps the pages already read.

        Args:
            max_pages: Page limit, defaults to the configured one

        Returns:
            CandidatePool with candidates and a winery directory keyed by
            normalised winery name

        Raises:
            FeedUnavailableError: If the first page cannot be fetched
        """
        limit = max_pages or self.max_pages
        pool = CandidatePool()

        for page_number in range(1, limit + 1):
            try:
                page = await self.fetch_explore_page(page_number)
            except FeedUnavailableError as e:
                if page_number == 1:
                    raise
                logger.warning(f"Explore paging stopped at page {page_number}: {e}")
                break

            if page_number == 1:
                pool.records_matched = page.records_matched
                logger.info(f"Explore feed reports {page.records_matched} wines")
            if not page.candidates:
                break
            if len(pool.candidates) >= pool.records_matched + RECORDS_MATCHED_SLACK:
                break
            pool.add_page(page)
            if page_number % 25 == 0:
                logger.info(
                    f"Explore page {page_number}: {len(pool.candidates)} wines, "
                    f"{len(pool.wineries)} wineries"
                )

        logger.info(
            f"Candidate pool: {len(pool.candidates)} wines, {len(pool.wineries)} wineries "
            f"from {pool.pages_fetched} pages"
        )
        return pool

    def parse_winery_wines(
        self,
        payload: Any,
        winery: WineryInfo,
        min_rating_count: int = 5,
    ) -> list[ExternalRatingCandidate]:
        """Parse ``/api/wineries/{id}/wines``, keeping wines with enough reviews."""
        if not isinstance(payload, dict):
            return []
        candidates = []
        for wine in payload.get("wines") or []:
            if not isinstance(wine, dict) or not wine.get("id"):
                continue
            rating, rating_count = _statistics(wine)
            if rating <= 0 or rating_count < min_rating_count:
                continue
            seo = wine.get("seo_name") or ""
            if winery.seo_name and seo:
                url = f"{self.base_url}/{winery.seo_name}/{winery.seo_name}-{seo}-nv"
            else:
                url = f"{self.base_url}/w/{wine['id']}"
            name = wine.get("name") or ""
            candidates.append(
                ExternalRatingCandidate(
                    wine_id=str(wine["id"]),
                    winery_name=winery.name,
                    wine_name_only=name,
                    full_name=f"{winery.name} {name}".strip(),
                    rating=rating,
                    rating_count=rating_count,
                    direct_url=url,
                )
            )
        return candidates

    async def fetch_winery_wines(
        self,
        winery: WineryInfo,
        min_rating_count: int = 5,
    ) -> list[ExternalRatingCandidate]:
        """
        Fetch a winery's full catalog.

        Failures are logged and yield an empty list so one winery cannot stop
        the expansion pass.
        """
        url = f"{self.base_url}/api/wineries/{winery.id}/wines"
        try:
            payload = await self.client.get_json(url)
        except FeedUnavailableError as e:
            logger.warning(f"Could not fetch wines for winery '{winery.name}': {e}")
            return []
        return self.parse_winery_wines(payload, winery, min_rating_count)

    def parse_wine_page(self, html: str) -> LiveRating | None:
        """
        Read the aggregate rating off a wine page.

        The schema.org JSON-LD block is preferred; loose ``ratingValue`` and
        ``reviewCount`` patterns are the fallback. A larger ``ratings_count``
        anywhere on the page wins over the JSON-LD review count.

        Returns:
            LiveRating, or None when the page shows no rating
        """
        rating, rating_count = 0.0, 0
        block = JSON_LD_RE.search(html)
        if block is not None:
            try:
                data = json.loads(block.group(1))
            except ValueError:
                data = None
            aggregate = data.get("aggregateRating") if isinstance(data, dict) else None
            if isinstance(aggregate, dict):
                try:
                    rating = float(aggregate.get("ratingValue") or 0)
                    rating_count = int(aggregate.get("reviewCount") or 0)
                except (TypeError, ValueError):
                    rating, rating_count = 0.0, 0

        if rating <= 0:
            rating = _number(RATING_VALUE_RE, html, float)
            rating_count = _number(REVIEW_COUNT_RE, html, int)
        rating_count = max(rating_count, _number(RATINGS_COUNT_RE, html, int))

        if rating <= 0:
            return None
        canonical = CANONICAL_PATH_RE.search(html)
        return LiveRating(
            rating=rating,
            rating_count=rating_count,
            canonical_url=f"{self.base_url}{canonical.group(1)}" if canonical else None,
        )

    async def fetch_live_rating(self, url: str) -> LiveRating | None:
        """
        Fetch a matched wine's page and read its current rating.

        Failures are logged and yield None so one page cannot stop a refresh.
        """
        try:
            html = await self.client.get_text(url, headers={"Accept": "text/html"})
        except FeedUnavailableError as e:
            logger.warning(f"Could not fetch wine page {url}: {e}")
            return None
        return self.parse_wine_page(html)

    async def fetch_feed(self) -> FeedResult:
        """Fetch the candidate pool as a feed of candidates."""
        pool = await self.fetch_candidate_pool()
        return FeedResult(items=list(pool.candidates))


class VivinoSignalAdapter(BaseFeedAdapter):
    """
    Adapter for an upstream service that publishes quality signals keyed by
    LCBO SKU. Returns an empty feed when no endpoint is configured.
    """

    ADAPTER_NAME = "vivino_signals"
    ADAPTER_VERSION = "1.0.0"

    def __init__(self, config=None, client=None) -> None:
        super().__init__(config, client)
        self.base_url = (
            os.environ.get("VIVINO_API_BASE_URL", "").strip()
            or str(self.config.get("base_url") or "")
        ).rstrip("/")
        self.api_key = os.environ.get("VIVINO_API_KEY") or self.config.get("api_key")

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def fetch_feed(self) -> FeedResult:
        """
        Fetch ``{base_url}/signals``.

        Returns:
            FeedResult of raw signal records; a payload without a ``signals``
            list becomes a single adapter-stage dead letter

        Raises:
            FeedUnavailableError: If the endpoint cannot be reached
        """
        if not self.is_configured:
            logger.info("No Vivino signal endpoint configured, nothing to fetch")
            return FeedResult()

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        payload = await self.client.get_json(f"{self.base_url}/signals", headers=headers)
        signals = payload.get("signals") if isinstance(payload, dict) else None
        if not isinstance(signals, list):
            return FeedResult(
                dead_letters=[self.dead_letter("Expected payload.signals to be an array", payload)]
            )
        return FeedResult(items=signals)
