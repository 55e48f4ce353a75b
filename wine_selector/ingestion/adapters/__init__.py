"""
Adapter Registry Module
=======================

Central registry for upstream feed adapters.
Provides factory functions for creating adapters by name.
"""

from __future__ import annotations

from typing import Any, Type

from wine_selector.ingestion.adapters.base import BaseFeedAdapter, FeedResult
from wine_selector.ingestion.adapters.lcbo import LcboCatalogAdapter
from wine_selector.ingestion.adapters.sample import SampleFeedAdapter
from wine_selector.ingestion.adapters.vivino import (
    CandidatePool,
    LiveRating,
    VivinoExploreAdapter,
    VivinoSignalAdapter,
    WineryInfo,
)
from wine_selector.ingestion.http_client import JsonHttpClient


# Registry mapping adapter names to their classes
ADAPTER_REGISTRY: dict[str, Type[BaseFeedAdapter]] = {
    "lcbo_catalog": LcboCatalogAdapter,
    "vivino_explore": VivinoExploreAdapter,
    "vivino_signals": VivinoSignalAdapter,
    "sample": SampleFeedAdapter,
}


def get_adapter(
    adapter_type: str,
    config: dict[str, Any] | None = None,
    client: JsonHttpClient | None = None,
) -> BaseFeedAdapter | None:
    """
    Get an adapter instance by type name.

    Args:
        adapter_type: Name of the adapter (e.g., "lcbo_catalog")
        config: Optional adapter configuration
        client: Optional HTTP client shared with the caller

    Returns:
        Adapter instance, or None if type not found
    """
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None
    return adapter_class(config, client)


def register_adapter(name: str, adapter_class: Type[BaseFeedAdapter]) -> None:
    """
    Register a new adapter type.

    Args:
        name: Name to register the adapter under
        adapter_class: Adapter class (must inherit from BaseFeedAdapter)
    """
    if not issubclass(adapter_class, BaseFeedAdapter):
        raise TypeError(f"{adapter_class} must inherit from BaseFeedAdapter")
    ADAPTER_REGISTRY[name] = adapter_class


def list_adapters() -> list[str]:
    """
    List all registered adapter names.

    Returns:
        List of adapter type names
    """
    return list(ADAPTER_REGISTRY.keys())


def get_adapter_info(adapter_type: str) -> dict[str, str] | None:
    """
    Get information about an adapter type.

    Args:
        adapter_type: Name of the adapter

    Returns:
        Dict with adapter info, or None if not found
    """
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None

    return {
        "name": adapter_class.ADAPTER_NAME,
        "version": adapter_class.ADAPTER_VERSION,
        "class": adapter_class.__name__,
    }


__all__ = [
    # Registry functions
    "get_adapter",
    "register_adapter",
    "list_adapters",
    "get_adapter_info",
    "ADAPTER_REGISTRY",
    # Base classes
    "BaseFeedAdapter",
    "FeedResult",
    # Concrete adapters
    "LcboCatalogAdapter",
    "VivinoExploreAdapter",
    "VivinoSignalAdapter",
    "SampleFeedAdapter",
    "CandidatePool",
    "LiveRating",
    "WineryInfo",
]
