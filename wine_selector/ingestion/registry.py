"""
Source Registry Module
======================

Loads feed sources, matching thresholds and ranking settings from a YAML
file. Sources define which upstream feeds are synced and how they are paced.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class GlobalConfig:
    """Global HTTP settings shared by every source."""

    user_agent: str = "WineSelector/0.1"
    request_timeout: float = 15.0
    max_retries: int = 3
    retry_backoff_ms: int = 500
    min_interval_ms: int = 250

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", "WineSelector/0.1"),
            request_timeout=float(data.get("request_timeout", 15.0)),
            max_retries=int(data.get("max_retries", 3)),
            retry_backoff_ms=int(data.get("retry_backoff_ms", 500)),
            min_interval_ms=int(data.get("min_interval_ms", 250)),
        )


@dataclass
class SourceConfig:
    """Configuration for a single upstream feed."""

    name: str
    adapter: str
    enabled: bool = True
    description: str = ""
    base_url: str = ""
    min_interval_ms: int = 250
    page_size: int = 50
    max_pages: int | None = None
    custom_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], default_interval_ms: int = 250
    ) -> SourceConfig:
        """Create from dictionary."""
        max_pages = data.get("max_pages")
        return cls(
            name=data["name"],
            adapter=data["adapter"],
            enabled=data.get("enabled", True),
            description=data.get("description", ""),
            base_url=data.get("base_url", ""),
            min_interval_ms=int(data.get("min_interval_ms", default_interval_ms)),
            page_size=int(data.get("page_size", 50)),
            max_pages=int(max_pages) if max_pages is not None else None,
            custom_config=data.get("custom_config", {}) or {},
        )

    def adapter_config(self) -> dict[str, Any]:
        """Settings handed to the source's adapter constructor."""
        config: dict[str, Any] = {
            "source_name": self.name,
            "page_size": self.page_size,
        }
        if self.base_url:
            config["base_url"] = self.base_url
        if self.max_pages is not None:
            config["max_pages"] = self.max_pages
        config.update(self.custom_config)
        return config


@dataclass
class MatchingConfig:
    """Thresholds used by the cross-source matcher and match runs."""

    min_score_known_producer: float = 0.45
    min_score_unknown_producer: float = 0.50
    confidence_floor: float = 0.55
    confidence_ceiling: float = 0.95
    link_worthy_threshold: float = 0.55
    high_confidence_threshold: float = 0.72
    winery_min_rating_count: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MatchingConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            min_score_known_producer=float(data.get("min_score_known_producer", 0.45)),
            min_score_unknown_producer=float(data.get("min_score_unknown_producer", 0.50)),
            confidence_floor=float(data.get("confidence_floor", 0.55)),
            confidence_ceiling=float(data.get("confidence_ceiling", 0.95)),
            link_worthy_threshold=float(data.get("link_worthy_threshold", 0.55)),
            high_confidence_threshold=float(data.get("high_confidence_threshold", 0.72)),
            winery_min_rating_count=int(data.get("winery_min_rating_count", 5)),
        )


@dataclass
class RankingConfig:
    """Settings for trust-tiered ranking."""

    trust_floor: float = 0.72
    producer_avg_min_samples: int = 3
    default_min_rating: float = 4.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RankingConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            trust_floor=float(data.get("trust_floor", 0.72)),
            producer_avg_min_samples=int(data.get("producer_avg_min_samples", 3)),
            default_min_rating=float(data.get("default_min_rating", 4.0)),
        )


class SourceRegistry:
    """
    Registry for feed sources and pipeline settings.

    Loads definitions from a YAML file and provides methods to query and
    toggle them.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceConfig] = {}
        self._global_config: GlobalConfig = GlobalConfig()
        self._matching: MatchingConfig = MatchingConfig()
        self._ranking: RankingConfig = RankingConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def matching(self) -> MatchingConfig:
        """Get matching thresholds."""
        return self._matching

    @property
    def ranking(self) -> RankingConfig:
        """Get ranking settings."""
        return self._ranking

    @property
    def config_path(self) -> Path | None:
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the sources.yaml file

        Raises:
            FileNotFoundError: If the file does not exist
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._matching = MatchingConfig.from_dict(data.get("matching"))
        self._ranking = RankingConfig.from_dict(data.get("ranking"))

        self._sources.clear()
        for source_data in data.get("sources", []):
            source = SourceConfig.from_dict(
                source_data, self._global_config.min_interval_ms
            )
            self._sources[source.name] = source

    def register_source(self, source: SourceConfig) -> None:
        """Add or replace a source definition."""
        self._sources[source.name] = source

    def get_source(self, name: str) -> SourceConfig | None:
        """
        Get a source configuration by name.

        Args:
            name: Source name

        Returns:
            SourceConfig if found, None otherwise
        """
        return self._sources.get(name)

    def list_sources(self) -> list[SourceConfig]:
        """All registered sources."""
        return list(self._sources.values())

    def list_enabled_sources(self) -> list[SourceConfig]:
        """All enabled sources."""
        return [s for s in self._sources.values() if s.enabled]

    def enable_source(self, name: str) -> bool:
        """
        Enable a source.

        Returns:
            True if source was found and enabled, False otherwise
        """
        source = self._sources.get(name)
        if source is None:
            return False
        source.enabled = True
        return True

    def disable_source(self, name: str) -> bool:
        """
        Disable a source.

        Returns:
            True if source was found and disabled, False otherwise
        """
        source = self._sources.get(name)
        if source is None:
            return False
        source.enabled = False
        return True


# Global registry instance
_default_registry: SourceRegistry | None = None


def get_default_registry() -> SourceRegistry:
    """
    Get the default source registry instance.

    Loads configuration from the path in the SOURCES_CONFIG_PATH environment
    variable, or falls back to config/sources.yaml at the project root.

    Returns:
        The global SourceRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = SourceRegistry()

        config_path = os.environ.get("SOURCES_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "sources.yaml"

        if path.exists():
            _default_registry.load_config(path)

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
