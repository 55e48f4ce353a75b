"""Enums for catalog, signal and recommendation fields."""

from enum import Enum


class WineType(str, Enum):
    """Retail wine type as shown in the selector."""

    RED = "Red"
    WHITE = "White"
    ROSE = "Rose"
    BUBBLY = "Bubbly"
    OTHER = "Other"


class RatingSource(str, Enum):
    """How a recommendation's rating was derived (trust tier)."""

    DIRECT = "direct"  # Direct Vivino match above the trust floor
    PRODUCER_AVG = "producer_avg"  # Mean of the producer cohort's trusted ratings
    NONE = "none"  # No usable rating


class StockConfidence(str, Enum):
    """Confidence that a bottle can actually be bought."""

    HIGH = "High"
    MEDIUM = "Medium"


class LinkType(str, Enum):
    """Whether an outbound link points at a product page or a search page."""

    VERIFIED_PRODUCT = "verified_product"
    SEARCH_FALLBACK = "search_fallback"


class IngestionStage(str, Enum):
    """Pipeline stage at which a record was rejected."""

    ADAPTER = "adapter"
    SYNC = "sync"


class RunStatus(str, Enum):
    """Status of an ingestion run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class HealthStatus(str, Enum):
    """Aggregated ingestion health."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
