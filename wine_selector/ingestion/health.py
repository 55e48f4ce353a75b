"""
Ingestion Health Module
=======================

Summarises ingestion freshness from run records and dead letters.

Each source is healthy while its last completed run is younger than its
staleness threshold, degraded past the threshold, and unhealthy past twice
the threshold or when it has never completed. Recent failed runs degrade
every source. The dead-letter volume of the last 24 hours is graded the
same way against its own limit.

Thresholds come from the environment:
- INGESTION_LCBO_STALE_MINUTES (default 1440)
- INGESTION_VIVINO_STALE_MINUTES (default 1440)
- INGESTION_MAX_FAILED_SAMPLE_RUNS (default 1)
- INGESTION_MAX_DEAD_LETTERS_24H (default 25)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from wine_selector.core.enums import HealthStatus, RunStatus
from wine_selector.db.models import IngestionRunDB
from wine_selector.db.repositories import DeadLetterRepository, IngestionRunRepository
from wine_selector.ingestion.catalog_sync import CATALOG_SOURCE
from wine_selector.ingestion.matching import MATCH_SOURCE
from wine_selector.ingestion.signal_sync import SIGNAL_SOURCE

RUN_SAMPLE_SIZE = 10
VIVINO_SOURCES = (SIGNAL_SOURCE, MATCH_SOURCE)


def env_number(name: str, fallback: float) -> float:
    """Positive number from the environment, or ``fallback``."""
    try:
        value = float(os.environ.get(name, ""))
    except ValueError:
        return fallback
    return value if value > 0 else fallback


@dataclass
class HealthThresholds:
    """Limits that separate healthy, degraded and unhealthy."""

    stale_lcbo_minutes: float = 24 * 60
    stale_vivino_minutes: float = 24 * 60
    max_failed_sample_runs: float = 1
    max_dead_letters_24h: float = 25

    @classmethod
    def from_env(cls) -> HealthThresholds:
        """Read thresholds from the environment."""
        return cls(
            stale_lcbo_minutes=env_number("INGESTION_LCBO_STALE_MINUTES", 24 * 60),
            stale_vivino_minutes=env_number("INGESTION_VIVINO_STALE_MINUTES", 24 * 60),
            max_failed_sample_runs=env_number("INGESTION_MAX_FAILED_SAMPLE_RUNS", 1),
            max_dead_letters_24h=env_number("INGESTION_MAX_DEAD_LETTERS_24H", 25),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "staleLcboMinutes": self.stale_lcbo_minutes,
            "staleVivinoMinutes": self.stale_vivino_minutes,
            "maxFailedSampleRuns": self.max_failed_sample_runs,
            "maxDeadLetters24h": self.max_dead_letters_24h,
        }


def compute_source_status(
    stale_minutes: float,
    stale_threshold_minutes: float,
    failed_runs: int,
) -> HealthStatus:
    """
    Status of one source.

    Args:
        stale_minutes: Minutes since the last completed run
        stale_threshold_minutes: Staleness threshold of the source
        failed_runs: 1 when recent failed runs exceed the limit, else 0

    Returns:
        HealthStatus
    """
    if failed_runs > 0:
        return HealthStatus.DEGRADED
    if stale_minutes > stale_threshold_minutes * 2:
        return HealthStatus.UNHEALTHY
    if stale_minutes > stale_threshold_minutes:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def aggregate_status(statuses: list[HealthStatus]) -> HealthStatus:
    """Worst of several statuses."""
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def dead_letter_status(count_24h: int, limit: float) -> HealthStatus:
    """Status of the last day's dead-letter volume."""
    if count_24h > limit * 2:
        return HealthStatus.UNHEALTHY
    if count_24h > limit:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes; they were written as UTC.
    if value is None:
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _completed_at(run: IngestionRunDB | None) -> datetime | None:
    if run is None:
        return None
    return _as_utc(run.finished_at or run.started_at)


def _latest_completed(runs: IngestionRunRepository, sources: tuple[str, ...]) -> datetime | None:
    times = [t for t in (_completed_at(runs.latest_completed(s)) for s in sources) if t]
    return max(times) if times else None


def _stale_minutes(completed_at: datetime | None, now: datetime) -> int | None:
    if completed_at is None:
        return None
    return round((now - completed_at).total_seconds() / 60)


def _source_entry(
    completed_at: datetime | None,
    stale_minutes: int | None,
    threshold: float,
    failing: int,
) -> tuple[HealthStatus, dict[str, Any]]:
    if stale_minutes is None:
        status = HealthStatus.UNHEALTHY
    else:
        status = compute_source_status(stale_minutes, threshold, failing)
    return status, {
        "status": status.value,
        "staleMinutes": stale_minutes,
        "latestCompletedAt": completed_at.isoformat() if completed_at else None,
    }


def health_report(
    session: Session,
    thresholds: HealthThresholds | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Full ingestion health report, as served by the health endpoint.

    Args:
        session: Database session
        thresholds: Limits, defaults to :meth:`HealthThresholds.from_env`
        now: Reference time (defaults to the current UTC time)

    Returns:
        JSON-ready dict with status, summary, thresholds, per-source status,
        latest runs and latest dead letters
    """
    thresholds = thresholds or HealthThresholds.from_env()
    now = now or datetime.now(UTC)
    runs = IngestionRunRepository(session)
    dead_letters = DeadLetterRepository(session)

    latest_runs = runs.list_latest(RUN_SAMPLE_SIZE)
    failing_runs = sum(1 for r in latest_runs if r.status == RunStatus.FAILED.value)
    failing = 1 if failing_runs >= thresholds.max_failed_sample_runs else 0
    dead_letters_24h = dead_letters.count_since((now - timedelta(hours=24)).replace(tzinfo=None))

    lcbo_at = _latest_completed(runs, (CATALOG_SOURCE,))
    vivino_at = _latest_completed(runs, VIVINO_SOURCES)
    lcbo_status, lcbo_entry = _source_entry(
        lcbo_at, _stale_minutes(lcbo_at, now), thresholds.stale_lcbo_minutes, failing
    )
    vivino_status, vivino_entry = _source_entry(
        vivino_at, _stale_minutes(vivino_at, now), thresholds.stale_vivino_minutes, failing
    )
    dl_status = dead_letter_status(dead_letters_24h, thresholds.max_dead_letters_24h)

    status = aggregate_status([lcbo_status, vivino_status, dl_status])
    return {
        "status": status.value,
        "summary": {
            "failingRunsInLastSample": failing_runs,
            "deadLettersLast24h": dead_letters_24h,
        },
        "thresholds": thresholds.to_dict(),
        "sources": {
            CATALOG_SOURCE: lcbo_entry,
            "vivino_signals": vivino_entry,
            "dead_letters": {
                "status": dl_status.value,
                "deadLettersLast24h": dead_letters_24h,
            },
        },
        "latestRuns": [
            {
                "id": r.id,
                "source": r.source,
                "status": r.status,
                "startedAt": _as_utc(r.started_at).isoformat() if r.started_at else None,
                "completedAt": _as_utc(r.finished_at).isoformat() if r.finished_at else None,
                "itemsRead": r.items_read,
                "itemsWritten": r.items_written,
                "rejectedItems": r.rejected_items,
                "errorMessage": r.error_message,
            }
            for r in latest_runs
        ],
        "latestDeadLetters": [
            {
                "id": d.id,
                "source": d.source,
                "stage": d.stage,
                "reason": d.reason,
                "externalId": d.external_id,
                "receivedAt": _as_utc(d.created_at).isoformat() if d.created_at else None,
                "ingestionRunId": d.ingestion_run_id,
                "payload": json.loads(d.payload_json or "null"),
            }
            for d in dead_letters.list_recent(10)
        ],
        "notes": [
            "Ingestion uses adapter-level retry and validation-level dead-letter capture.",
            "Rejected payloads are stored in the ingestion dead-letter table for debugging.",
        ],
    }


def current_health_status(session: Session, thresholds: HealthThresholds | None = None) -> HealthStatus:
    """Aggregated ingestion health."""
    return HealthStatus(health_report(session, thresholds)["status"])
