"""
Background Jobs Module
======================

Orchestrates feed syncs, match runs and rating refreshes, and defines arq
tasks so they can be queued on Redis.

Every phase degrades to stale data: when an upstream feed is unreachable or
returns nothing, the phase is skipped and the last-known-good rows stay in
place rather than being overwritten with an empty or partial result.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import uuid4

import httpx
from arq import create_pool
from arq.connections import RedisSettings
from sqlalchemy.orm import Session

from wine_selector.core.schema import DeadLetterRecord
from wine_selector.db.engine import get_session
from wine_selector.db.repositories import DeadLetterRepository
from wine_selector.ingestion.adapters import get_adapter
from wine_selector.ingestion.catalog_sync import CATALOG_SOURCE, SyncResult, sync_catalog
from wine_selector.ingestion.http_client import FeedUnavailableError, JsonHttpClient
from wine_selector.ingestion.matching import MATCH_SOURCE, run_match
from wine_selector.ingestion.refresh import refresh_ratings
from wine_selector.ingestion.registry import SourceRegistry, get_default_registry
from wine_selector.ingestion.signal_sync import SIGNAL_SOURCE, sync_signals

logger = logging.getLogger(__name__)

SyncFunction = Callable[[Session, list[Any], str, "list[DeadLetterRecord] | None"], SyncResult]

SYNC_KINDS: dict[str, SyncFunction] = {
    "catalog": sync_catalog,
    "signals": sync_signals,
}


@dataclass
class PhaseReport:
    """Outcome of one orchestration phase."""

    source: str
    status: str  # "completed", "skipped" or "failed"
    result: dict[str, Any] | None = None
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source": self.source,
            "status": self.status,
            "result": self.result,
            "warning": self.warning,
        }


@dataclass
class SyncAllReport:
    """Outcome of a full sync."""

    job_id: str
    phases: list[PhaseReport] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [p.warning for p in self.phases if p.warning]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "phases": [p.to_dict() for p in self.phases],
            "warnings": self.warnings,
        }


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


def _skip(source: str, message: str) -> PhaseReport:
    logger.warning(f"{message}; keeping last-known-good data")
    return PhaseReport(source=source, status="skipped", warning=message)


def _open_adapter(
    registry: SourceRegistry,
    source_name: str,
    transport: httpx.AsyncBaseTransport | None,
):
    source = registry.get_source(source_name)
    if source is None:
        return None, f"Source '{source_name}' not found"
    if not source.enabled:
        return None, f"Source '{source_name}' is disabled"
    client = JsonHttpClient.from_source(source, registry.global_config, transport)
    adapter = get_adapter(source.adapter, source.adapter_config(), client)
    if adapter is None:
        return None, f"Adapter '{source.adapter}' not found"
    return adapter, None


async def sync_source(
    session: Session,
    source_name: str,
    kind: str,
    registry: SourceRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PhaseReport:
    """
    Fetch one feed and sync it.

    Args:
        session: Database session
        source_name: Source in the registry
        kind: "catalog" or "signals"
        registry: Source registry, defaults to the process-wide one
        transport: Optional httpx transport (tests)

    Returns:
        PhaseReport; "skipped" when the feed was unavailable or empty

    Raises:
        ValueError: If ``kind`` is unknown
    """
    if kind not in SYNC_KINDS:
        raise ValueError(f"Unknown sync kind '{kind}'")
    registry = registry or get_default_registry()
    adapter, problem = _open_adapter(registry, source_name, transport)
    if adapter is None:
        return _skip(source_name, problem)

    try:
        feed = await adapter.fetch_feed()
    except FeedUnavailableError as e:
        return _skip(source_name, f"{source_name} feed unavailable ({e})")
    finally:
        await adapter.client.close()

    if not feed.items:
        if feed.dead_letters:
            DeadLetterRepository(session).add_many(feed.dead_letters)
            session.commit()
        return _skip(source_name, f"{source_name} returned no records")

    result = SYNC_KINDS[kind](session, feed.items, adapter.source_name, feed.dead_letters)
    return PhaseReport(source=source_name, status="completed", result=result.to_dict())


async def match_source(
    session: Session,
    source_name: str = MATCH_SOURCE,
    registry: SourceRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    dry_run: bool = False,
    max_pages: int | None = None,
) -> PhaseReport:
    """
    Run a match run against a candidate source.

    Returns:
        PhaseReport with MatchStats; "skipped" when the pool is unavailable
    """
    registry = registry or get_default_registry()
    adapter, problem = _open_adapter(registry, source_name, transport)
    if adapter is None:
        return _skip(source_name, problem)

    try:
        stats = await run_match(
            session,
            adapter,
            matching=registry.matching,
            dry_run=dry_run,
            max_pages=max_pages,
            run_source=adapter.source_name,
        )
    except FeedUnavailableError as e:
        return _skip(source_name, f"{source_name} candidate pool unavailable ({e})")
    finally:
        await adapter.client.close()
    return PhaseReport(source=source_name, status="completed", result=stats.to_dict())


async def refresh_source(
    session: Session,
    source_name: str = MATCH_SOURCE,
    registry: SourceRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    dry_run: bool = False,
) -> PhaseReport:
    """
    Re-read live ratings for directly linked wines through a source.

    Returns:
        PhaseReport with RefreshResult; "skipped" when the source cannot be used
    """
    registry = registry or get_default_registry()
    adapter, problem = _open_adapter(registry, source_name, transport)
    if adapter is None:
        return _skip(source_name, problem)
    if not hasattr(adapter, "fetch_live_rating"):
        await adapter.client.close()
        return _skip(source_name, f"{source_name} cannot read live ratings")

    try:
        result = await refresh_ratings(
            session, adapter, matching=registry.matching, dry_run=dry_run
        )
    finally:
        await adapter.client.close()
    return PhaseReport(source=source_name, status="completed", result=result.to_dict())


async def sync_all(
    session: Session,
    registry: SourceRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    include_match: bool = False,
    catalog_source: str = CATALOG_SOURCE,
    signal_source: str = SIGNAL_SOURCE,
    match_source_name: str = MATCH_SOURCE,
) -> SyncAllReport:
    """
    Sync the catalog, then signals, then optionally run matching.

    Each phase is independent: a skipped catalog sync does not stop the
    signal sync.

    Returns:
        SyncAllReport
    """
    registry = registry or get_default_registry()
    report = SyncAllReport(job_id=str(uuid4()))
    report.phases.append(await sync_source(session, catalog_source, "catalog", registry, transport))
    report.phases.append(await sync_source(session, signal_source, "signals", registry, transport))
    if include_match:
        report.phases.append(
            await match_source(session, match_source_name, registry, transport)
        )
    logger.info(
        "Sync-all finished: "
        + ", ".join(f"{p.source}={p.status}" for p in report.phases)
    )
    return report


# ============================================================================
# arq tasks
# ============================================================================


async def sync_all_task(ctx: dict[str, Any], include_match: bool = False) -> dict[str, Any]:
    """arq task wrapping :func:`sync_all`."""
    with get_session() as session:
        report = await sync_all(session, include_match=include_match)
    report.job_id = ctx.get("job_id", report.job_id)
    return report.to_dict()


async def match_task(
    ctx: dict[str, Any],
    dry_run: bool = False,
    max_pages: int | None = None,
) -> dict[str, Any]:
    """arq task wrapping :func:`match_source`."""
    with get_session() as session:
        phase = await match_source(session, dry_run=dry_run, max_pages=max_pages)
    return phase.to_dict()


async def refresh_task(ctx: dict[str, Any], dry_run: bool = False) -> dict[str, Any]:
    """arq task wrapping :func:`refresh_source`."""
    with get_session() as session:
        phase = await refresh_source(session, dry_run=dry_run)
    return phase.to_dict()


async def enqueue_job(function_name: str, *args: Any) -> str:
    """
    Enqueue a job for the worker.

    Args:
        function_name: "sync_all_task", "match_task" or "refresh_task"
        *args: Task arguments

    Returns:
        Job ID
    """
    redis = await create_pool(get_redis_settings())
    job = await redis.enqueue_job(function_name, *args)
    await redis.close()
    return job.job_id


class WorkerSettings:
    """arq worker settings."""

    functions = [sync_all_task, match_task, refresh_task]
    redis_settings = get_redis_settings()
    max_jobs = 1
    job_timeout = 6 * 3600
    keep_result = 86400  # 24 hours
