"""
Wine Selector Ingestion Framework
=================================

This package provides the pipeline that turns retailer and ratings-site feeds
into canonical catalog wines with quality signals.

Pipeline Stages:
1. Fetch - Adapters page upstream feeds through a rate-limited JSON client
2. Canonicalize - Varietal and producer are extracted from free-text names
3. Validate - Malformed records become dead letters instead of aborting
4. Sync - Stores, wines, market data and signals are upserted per run
5. Match - Catalog wines are linked 1:1 to ratings-site wines
6. Maintenance - Many-to-one links are repaired, live ratings refreshed and
   labels re-extracted after lexicon changes
7. Health - Run records and dead letters are summarised for monitoring
"""

from wine_selector.ingestion.registry import (
    SourceRegistry,
    SourceConfig,
    MatchingConfig,
    RankingConfig,
    get_default_registry,
)
from wine_selector.ingestion.varietal import extract_varietal, find_varietal
from wine_selector.ingestion.producer import (
    extract_producer,
    infer_producer,
    is_generic_producer,
)
from wine_selector.ingestion.normalizer import (
    CatalogNormalizer,
    normalise,
    significant_tokens,
    varietal_conflict,
)
from wine_selector.ingestion.resolver import (
    CandidateIndex,
    CrossSourceMatcher,
    ExternalRatingCandidate,
    MatchResult,
    ScoreBreakdown,
    match_one,
    score_candidate,
)
from wine_selector.ingestion.arbiter import ClaimArbiter, ClaimOutcome, to_confidence
from wine_selector.ingestion.http_client import FeedUnavailableError, JsonHttpClient
from wine_selector.ingestion.catalog_sync import SyncResult, sync_catalog
from wine_selector.ingestion.signal_sync import sync_signals
from wine_selector.ingestion.matching import MatchStats, run_match
from wine_selector.ingestion.cleanup import CleanupResult, cleanup_false_matches
from wine_selector.ingestion.refresh import RefreshResult, refresh_ratings
from wine_selector.ingestion.backfill import BackfillResult, backfill_canonical_fields
from wine_selector.ingestion.health import HealthThresholds, health_report
from wine_selector.ingestion.jobs import (
    PhaseReport,
    SyncAllReport,
    enqueue_job,
    match_source,
    refresh_source,
    sync_all,
    sync_source,
)

__all__ = [
    # Registry
    "SourceRegistry",
    "SourceConfig",
    "MatchingConfig",
    "RankingConfig",
    "get_default_registry",
    # Extraction
    "extract_varietal",
    "find_varietal",
    "extract_producer",
    "infer_producer",
    "is_generic_producer",
    # Normalizer
    "CatalogNormalizer",
    "normalise",
    "significant_tokens",
    "varietal_conflict",
    # Resolver
    "CandidateIndex",
    "CrossSourceMatcher",
    "ExternalRatingCandidate",
    "MatchResult",
    "ScoreBreakdown",
    "match_one",
    "score_candidate",
    # Arbiter
    "ClaimArbiter",
    "ClaimOutcome",
    "to_confidence",
    # Transport
    "FeedUnavailableError",
    "JsonHttpClient",
    # Sync
    "SyncResult",
    "sync_catalog",
    "sync_signals",
    # Matching
    "MatchStats",
    "run_match",
    "CleanupResult",
    "cleanup_false_matches",
    "RefreshResult",
    "refresh_ratings",
    "BackfillResult",
    "backfill_canonical_fields",
    # Health
    "HealthThresholds",
    "health_report",
    # Jobs
    "PhaseReport",
    "SyncAllReport",
    "enqueue_job",
    "match_source",
    "refresh_source",
    "sync_all",
    "sync_source",
]
