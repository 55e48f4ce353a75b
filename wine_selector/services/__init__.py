"""Application services for Wine Selector."""

from wine_selector.services.vivino_trust import (
    build_vivino_search_url,
    is_direct_vivino_wine_url,
    is_trusted_signal,
    resolve_vivino_url,
)

__all__ = [
    "build_vivino_search_url",
    "is_direct_vivino_wine_url",
    "is_trusted_signal",
    "resolve_vivino_url",
]
