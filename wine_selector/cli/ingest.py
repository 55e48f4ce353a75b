"""
Ingestion CLI Commands
======================

CLI commands for syncing feeds and matching against Vivino, plus the
maintenance commands (rating refresh, label backfill, cleanup) and the
ingestion health check.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from wine_selector.db.engine import get_session, init_db
from wine_selector.ingestion.adapters import get_adapter_info, list_adapters
from wine_selector.ingestion.backfill import backfill_canonical_fields
from wine_selector.ingestion.catalog_sync import CATALOG_SOURCE
from wine_selector.ingestion.cleanup import cleanup_false_matches
from wine_selector.ingestion.health import health_report
from wine_selector.ingestion.jobs import (
    PhaseReport,
    enqueue_job,
    match_source,
    refresh_source,
    sync_all,
    sync_source,
)
from wine_selector.ingestion.matching import MATCH_SOURCE
from wine_selector.ingestion.registry import get_default_registry
from wine_selector.ingestion.signal_sync import SIGNAL_SOURCE

console = Console()
ingest_app = typer.Typer(help="Ingestion pipeline commands")
sources_app = typer.Typer(help="Source management commands")

ingest_app.add_typer(sources_app, name="sources")

SAMPLE_CATALOG_SOURCE = "sample"
SAMPLE_SIGNAL_SOURCE = "sample_signals"

STATUS_COLORS = {
    "completed": "green",
    "skipped": "yellow",
    "failed": "red",
    "healthy": "green",
    "degraded": "yellow",
    "unhealthy": "red",
}


def _colored(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _display_phase(phase: PhaseReport) -> None:
    """Display one phase result as a table."""
    rprint(f"\n[bold]{phase.source}[/bold]: {_colored(phase.status)}")
    if phase.warning:
        rprint(f"  [yellow]{phase.warning}[/yellow]")
    if not phase.result:
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    for key, value in phase.result.items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@ingest_app.command("sync-all")
def sync_all_command(
    match: bool = typer.Option(False, "--match", help="Run a match run after syncing"),
    sample: bool = typer.Option(False, "--sample", help="Use the bundled sample feeds"),
    enqueue: bool = typer.Option(False, "--enqueue", help="Queue the job for the worker"),
) -> None:
    """
    Sync the catalog and quality signals.

    Unreachable or empty feeds are skipped and the existing data is kept.

    Examples:
        wine-selector ingest sync-all
        wine-selector ingest sync-all --sample --match
    """
    if enqueue:
        try:
            job_id = asyncio.run(enqueue_job("sync_all_task", match))
        except Exception as e:
            rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
            rprint("\nMake sure Redis is running")
            raise typer.Exit(1)
        rprint(f"\n[green]Job enqueued successfully![/green]")
        rprint(f"Job ID: [bold]{job_id}[/bold]")
        return

    init_db()
    with get_session() as session, console.status("[bold blue]Syncing...[/bold blue]"):
        report = asyncio.run(
            sync_all(
                session,
                include_match=match,
                catalog_source=SAMPLE_CATALOG_SOURCE if sample else CATALOG_SOURCE,
                signal_source=SAMPLE_SIGNAL_SOURCE if sample else SIGNAL_SOURCE,
                match_source_name=SAMPLE_CATALOG_SOURCE if sample else MATCH_SOURCE,
            )
        )

    for phase in report.phases:
        _display_phase(phase)
    if report.warnings:
        rprint(f"\n[yellow]{len(report.warnings)} phase(s) kept last-known-good data[/yellow]")


@ingest_app.command("sync-catalog")
def sync_catalog_command(
    source: str = typer.Option(CATALOG_SOURCE, "--source", "-s", help="Catalog source name"),
) -> None:
    """
    Sync one catalog source.

    Examples:
        wine-selector ingest sync-catalog
        wine-selector ingest sync-catalog --source sample
    """
    init_db()
    with get_session() as session, console.status("[bold blue]Syncing catalog...[/bold blue]"):
        phase = asyncio.run(sync_source(session, source, "catalog"))
    _display_phase(phase)
    if phase.status != "completed":
        raise typer.Exit(1)


@ingest_app.command("sync-signals")
def sync_signals_command(
    source: str = typer.Option(SIGNAL_SOURCE, "--source", "-s", help="Signal source name"),
) -> None:
    """
    Sync one quality-signal source.

    Examples:
        wine-selector ingest sync-signals --source sample_signals
    """
    init_db()
    with get_session() as session, console.status("[bold blue]Syncing signals...[/bold blue]"):
        phase = asyncio.run(sync_source(session, source, "signals"))
    _display_phase(phase)
    if phase.status != "completed":
        raise typer.Exit(1)


@ingest_app.command("match")
def match_command(
    dry_run: bool = typer.Option(False, "--dry-run", help="Score without writing"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", "-m", help="Explore page limit"),
    sample: bool = typer.Option(False, "--sample", help="Match against the sample candidates"),
    enqueue: bool = typer.Option(False, "--enqueue", help="Queue the job for the worker"),
) -> None:
    """
    Match catalog wines to Vivino wines.

    Examples:
        wine-selector ingest match --dry-run --max-pages 5
        wine-selector ingest match --sample
    """
    if enqueue:
        try:
            job_id = asyncio.run(enqueue_job("match_task", dry_run, max_pages))
        except Exception as e:
            rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
            rprint("\nMake sure Redis is running")
            raise typer.Exit(1)
        rprint(f"\n[green]Job enqueued successfully![/green]")
        rprint(f"Job ID: [bold]{job_id}[/bold]")
        return

    source = SAMPLE_CATALOG_SOURCE if sample else MATCH_SOURCE
    init_db()
    with get_session() as session, console.status("[bold blue]Matching...[/bold blue]"):
        phase = asyncio.run(
            match_source(session, source, dry_run=dry_run, max_pages=max_pages)
        )
    _display_phase(phase)
    if phase.status != "completed":
        raise typer.Exit(1)


@ingest_app.command("cleanup")
def cleanup_command(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without writing"),
) -> None:
    """
    Keep one wine per direct Vivino link.

    Examples:
        wine-selector ingest cleanup --dry-run
    """
    init_db()
    with get_session() as session:
        result = cleanup_false_matches(session, dry_run=dry_run)

    label = " (dry run)" if dry_run else ""
    rprint(f"\n[bold]Cleanup{label}[/bold]")
    rprint(f"  Wines with direct links: {result.wines_with_direct_links}")
    rprint(f"  Unique links: {result.unique_links}")
    rprint(f"  Duplicate groups: {result.duplicate_groups}")
    rprint(f"  Signals deleted: {result.signals_deleted}")
    rprint(f"  Links reset: {result.urls_reset}")


@ingest_app.command("refresh")
def refresh_command(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without writing"),
    sample: bool = typer.Option(False, "--sample", help="Read ratings from the sample data"),
    enqueue: bool = typer.Option(False, "--enqueue", help="Queue the job for the worker"),
) -> None:
    """
    Re-read live Vivino ratings for directly linked wines.

    Examples:
        wine-selector ingest refresh --dry-run
        wine-selector ingest refresh --sample
    """
    if enqueue:
        try:
            job_id = asyncio.run(enqueue_job("refresh_task", dry_run))
        except Exception as e:
            rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
            rprint("\nMake sure Redis is running")
            raise typer.Exit(1)
        rprint(f"\n[green]Job enqueued successfully![/green]")
        rprint(f"Job ID: [bold]{job_id}[/bold]")
        return

    source = SAMPLE_CATALOG_SOURCE if sample else MATCH_SOURCE
    init_db()
    with get_session() as session, console.status("[bold blue]Refreshing...[/bold blue]"):
        phase = asyncio.run(refresh_source(session, source, dry_run=dry_run))
    _display_phase(phase)
    if phase.status != "completed":
        raise typer.Exit(1)


@ingest_app.command("backfill")
def backfill_command(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without writing"),
) -> None:
    """
    Re-extract varietal and producer labels for stored wines.

    Run after the grape lexicon or producer rules change.

    Examples:
        wine-selector ingest backfill --dry-run
    """
    init_db()
    with get_session() as session:
        result = backfill_canonical_fields(session, dry_run=dry_run)

    label = " (dry run)" if dry_run else ""
    rprint(f"\n[bold]Backfill{label}[/bold]")
    rprint(f"  Wines: {result.wines}")
    rprint(f"  Varietals updated: {result.varietals_updated}")
    rprint(f"  Producers updated: {result.producers_updated}")
    rprint(f"  Search links rewritten: {result.search_links_rewritten}")
    rprint(f"  Still unknown producer: {result.still_unknown_producer}")
    rprint(f"  Collisions skipped: {result.collisions}")


@ingest_app.command("health")
def health_command() -> None:
    """
    Show ingestion health.

    Exits with status 1 when unhealthy.

    Examples:
        wine-selector ingest health
    """
    init_db()
    with get_session() as session:
        report = health_report(session)

    rprint(f"\n[bold]Ingestion health:[/bold] {_colored(report['status'])}")

    table = Table(title="Sources")
    table.add_column("Source", style="bold")
    table.add_column("Status")
    table.add_column("Stale (min)")
    table.add_column("Detail")
    for name, entry in report["sources"].items():
        table.add_row(
            name,
            _colored(entry["status"]),
            str(entry.get("staleMinutes", "")),
            str(entry.get("latestCompletedAt") or entry.get("deadLettersLast24h", "")),
        )
    console.print(table)

    summary = report["summary"]
    rprint(f"  Failed runs in last sample: {summary['failingRunsInLastSample']}")
    rprint(f"  Dead letters (24h): {summary['deadLettersLast24h']}")

    if report["status"] == "unhealthy":
        raise typer.Exit(1)


@ingest_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the ingestion worker.

    The worker processes queued sync and match jobs from Redis.

    Examples:
        wine-selector ingest worker
        wine-selector ingest worker --burst
    """
    rprint("[bold]Starting ingestion worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    from arq import run_worker

    from wine_selector.ingestion.jobs import WorkerSettings

    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)


# Sources subcommands


@sources_app.command("list")
def list_sources(
    all_sources: bool = typer.Option(False, "--all", "-a", help="Show all sources including disabled"),
) -> None:
    """
    List configured feed sources.

    Examples:
        wine-selector ingest sources list
        wine-selector ingest sources list --all
    """
    registry = get_default_registry()
    sources = registry.list_sources() if all_sources else registry.list_enabled_sources()

    if not sources:
        rprint("[yellow]No sources configured[/yellow]")
        rprint("\nAdd sources to config/sources.yaml")
        return

    table = Table(title="Feed Sources")
    table.add_column("Name", style="bold")
    table.add_column("Adapter")
    table.add_column("Status")
    table.add_column("Min interval")
    table.add_column("Description")

    for source in sources:
        status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"
        table.add_row(
            source.name,
            source.adapter,
            status,
            f"{source.min_interval_ms} ms",
            source.description,
        )

    console.print(table)


@sources_app.command("adapters")
def list_source_adapters() -> None:
    """
    List available adapters.

    Examples:
        wine-selector ingest sources adapters
    """
    table = Table(title="Available Adapters")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Class")

    for adapter_name in list_adapters():
        info = get_adapter_info(adapter_name)
        if info:
            table.add_row(info["name"], info["version"], info["class"])

    console.print(table)
