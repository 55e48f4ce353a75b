"""
HTTP Client Module
==================

JSON (and page) fetching for upstream feeds with retries, linear backoff and a fixed
minimum interval between consecutive calls.

The interval limiter belongs to the client instance, so every sync or match
run paces its own calls and no state leaks between runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from wine_selector.ingestion.registry import GlobalConfig, SourceConfig

logger = logging.getLogger(__name__)


class FeedUnavailableError(Exception):
    """Raised when an upstream feed cannot be reached after all retries."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"{url}: {message}")


class MinIntervalLimiter:
    """
    Serial rate limiter enforcing a minimum delay between calls.

    Unlike a token bucket there is no burst allowance: each call waits until
    ``interval`` seconds have passed since the previous one.
    """

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self.last_call: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until the next call is allowed."""
        async with self._lock:
            now = time.monotonic()
            if self.last_call is not None:
                elapsed = now - self.last_call
                if elapsed < self.interval:
                    await asyncio.sleep(self.interval - elapsed)
            self.last_call = time.monotonic()


class JsonHttpClient:
    """
    Async JSON client used by the feed adapters.

    Features:
    - Minimum interval between consecutive requests
    - Retries with linear backoff (``backoff * attempt``)
    - Longer wait on HTTP 429 before retrying
    """

    def __init__(
        self,
        user_agent: str = "WineSelector/0.1",
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        min_interval: float = 0.25,
        rate_limited_wait: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            user_agent: User-Agent header sent with every request
            timeout: Per-request timeout in seconds
            max_retries: Retries after the first attempt
            retry_backoff: Base backoff in seconds, multiplied by the attempt
            min_interval: Minimum seconds between consecutive requests
            rate_limited_wait: Seconds to wait after an HTTP 429
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.rate_limited_wait = rate_limited_wait
        self.limiter = MinIntervalLimiter(min_interval)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_source(
        cls,
        source: SourceConfig,
        global_config: GlobalConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> JsonHttpClient:
        """Create a client paced for ``source``."""
        return cls(
            user_agent=global_config.user_agent,
            timeout=global_config.request_timeout,
            max_retries=global_config.max_retries,
            retry_backoff=global_config.retry_backoff_ms / 1000,
            min_interval=source.min_interval_ms / 1000,
            rate_limited_wait=float(source.custom_config.get("rate_limited_wait_seconds", 10)),
            transport=transport,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> JsonHttpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        decode: Callable[[httpx.Response], Any] = httpx.Response.json,
    ) -> Any:
        """
        Send a request and decode its body.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Optional query parameters
            json: Optional JSON body
            headers: Extra headers
            decode: Turns the response into the return value (JSON by default)

        Returns:
            Decoded payload

        Raises:
            FeedUnavailableError: If every attempt failed, or at once on a
                client error other than 429
        """
        client = self._get_client()
        last_error = "unknown error"

        for attempt in range(self.max_retries + 1):
            await self.limiter.acquire()
            try:
                response = await client.request(
                    method, url, params=params, json=json, headers=headers
                )
                if response.status_code == 429:
                    last_error = "HTTP 429 (rate limited)"
                    logger.warning(
                        f"Rate limited by {url}, waiting {self.rate_limited_wait}s "
                        f"(attempt {attempt + 1}/{self.max_retries + 1})"
                    )
                    if attempt < self.max_retries:
                        await asyncio.sleep(self.rate_limited_wait)
                    continue
                response.raise_for_status()
                return decode(response)
            except httpx.TimeoutException:
                last_error = f"Timeout after {self.timeout}s"
                logger.warning(
                    f"Timeout fetching {url} (attempt {attempt + 1}/{self.max_retries + 1})"
                )
            except httpx.HTTPStatusError as e:
                last_error = str(e)
                logger.warning(
                    f"Error fetching {url}: {e} (attempt {attempt + 1}/{self.max_retries + 1})"
                )
                if e.response.status_code < 500:
                    raise FeedUnavailableError(url, last_error) from e
            except (httpx.HTTPError, ValueError) as e:
                last_error = str(e)
                logger.warning(
                    f"Error fetching {url}: {e} (attempt {attempt + 1}/{self.max_retries + 1})"
                )

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_backoff * (attempt + 1))

        raise FeedUnavailableError(url, last_error)

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """GET ``url`` and decode JSON."""
        return await self.request("GET", url, params=params, headers=headers)

    async def post_json(
        self,
        url: str,
        json: Any,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """POST a JSON body to ``url`` and decode JSON."""
        return await self.request("POST", url, json=json, headers=headers)

    async def get_text(self, url: str, headers: dict[str, str] | None = None) -> str:
        """GET ``url`` and return the body as text (HTML pages)."""
        return await self.request(
            "GET", url, headers=headers, decode=lambda response: response.text
        )
