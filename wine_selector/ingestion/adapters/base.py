"""
Adapter Base Module
===================

Defines the abstract base class for upstream feed adapters.
Adapters are responsible for:
1. Fetching raw records from one upstream source
2. Rejecting records that are structurally unusable (adapter-stage dead letters)
3. Shaping the rest into the camelCase records the sync layer validates
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from wine_selector.core.enums import IngestionStage
from wine_selector.core.schema import DeadLetterRecord
from wine_selector.ingestion.http_client import JsonHttpClient


@dataclass
class FeedResult:
    """Raw records fetched from a source plus the records rejected on the way."""

    items: list[Any] = field(default_factory=list)
    dead_letters: list[DeadLetterRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)


class BaseFeedAdapter(ABC):
    """
    Abstract base class for upstream feed adapters.

    Subclasses must implement:
    - fetch_feed: Fetch the whole feed and return a FeedResult
    """

    # Adapter identification (override in subclasses)
    ADAPTER_NAME: str = "base"
    ADAPTER_VERSION: str = "1.0.0"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        client: JsonHttpClient | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            config: Optional configuration from sources.yaml
                (see :meth:`SourceConfig.adapter_config`)
            client: HTTP client; one is created on first use if omitted
        """
        self.config = config or {}
        self._client = client
        self._owns_client = client is None

    @property
    def source_name(self) -> str:
        """Source name written on ingestion runs and dead letters."""
        return self.config.get("source_name", self.ADAPTER_NAME)

    @property
    def client(self) -> JsonHttpClient:
        if self._client is None:
            self._client = JsonHttpClient()
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    def dead_letter(
        self,
        reason: str,
        payload: Any = None,
        external_id: str | None = None,
    ) -> DeadLetterRecord:
        """Build an adapter-stage dead letter for this source."""
        return DeadLetterRecord(
            source=self.source_name,
            stage=IngestionStage.ADAPTER,
            reason=reason,
            payload=payload,
            external_id=external_id,
        )

    @abstractmethod
    async def fetch_feed(self) -> FeedResult:
        """
        Fetch the full feed from the source.

        Returns:
            FeedResult with raw records and adapter-stage dead letters

        Raises:
            FeedUnavailableError: If the source cannot be reached
        """
        pass

    def get_adapter_info(self) -> dict[str, str]:
        """
        Get adapter identification info.

        Returns:
            Dict with adapter name and version
        """
        return {
            "name": self.ADAPTER_NAME,
            "version": self.ADAPTER_VERSION,
        }
