"""Tests for the command-line interface."""

from typer.testing import CliRunner

from wine_selector.cli.main import app
from wine_selector.db.engine import get_session
from wine_selector.db.repositories import QualitySignalRepository, WineRepository

runner = CliRunner()


class TestIngestCommands:
    """Tests for the ingest subcommands."""

    def test_sample_sync_all_with_match(self, global_db) -> None:
        """Test the offline pipeline end to end."""
        result = runner.invoke(app, ["ingest", "sync-all", "--sample", "--match"])

        assert result.exit_code == 0, result.output
        assert "sample" in result.output
        with get_session() as session:
            assert WineRepository(session).count() == 9
            assert QualitySignalRepository(session).count() == 7

    def test_disabled_source_fails(self, global_db) -> None:
        """Test a skipped phase exits non-zero."""
        result = runner.invoke(app, ["ingest", "sync-signals", "--source", "vivino_signals"])
        assert result.exit_code == 1
        assert "disabled" in result.output

    def test_match_dry_run(self, global_db) -> None:
        """Test a dry run writes no signals."""
        assert runner.invoke(app, ["ingest", "sync-catalog", "--source", "sample"]).exit_code == 0
        result = runner.invoke(app, ["ingest", "match", "--sample", "--dry-run"])

        assert result.exit_code == 0, result.output
        with get_session() as session:
            assert QualitySignalRepository(session).count() == 0

    def test_cleanup(self, global_db) -> None:
        """Test cleanup on an empty catalog."""
        result = runner.invoke(app, ["ingest", "cleanup", "--dry-run"])
        assert result.exit_code == 0
        assert "Duplicate groups: 0" in result.output

    def test_refresh_sample(self, global_db) -> None:
        """Test refreshing sample matches leaves their signals in place."""
        assert runner.invoke(app, ["ingest", "sync-all", "--sample", "--match"]).exit_code == 0
        result = runner.invoke(app, ["ingest", "refresh", "--sample"])

        assert result.exit_code == 0, result.output
        with get_session() as session:
            assert QualitySignalRepository(session).count() == 7

    def test_backfill_dry_run(self, global_db) -> None:
        """Test backfill reports counts for a freshly synced catalog."""
        assert runner.invoke(app, ["ingest", "sync-catalog", "--source", "sample"]).exit_code == 0
        result = runner.invoke(app, ["ingest", "backfill", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Backfill (dry run)" in result.output
        assert "Wines: 9" in result.output
        assert "Producers updated: 0" in result.output

    def test_health_unhealthy_exit_code(self, global_db) -> None:
        """Test health exits 1 before any sync."""
        result = runner.invoke(app, ["ingest", "health"])
        assert result.exit_code == 1
        assert "unhealthy" in result.output

    def test_sources_list(self) -> None:
        """Test listing the bundled sources."""
        result = runner.invoke(app, ["ingest", "sources", "list", "--all"])
        assert result.exit_code == 0
        assert "lcbo_catalog" in result.output
        assert "vivino_signals" in result.output

    def test_adapters(self) -> None:
        """Test listing adapters."""
        result = runner.invoke(app, ["ingest", "sources", "adapters"])
        assert result.exit_code == 0
        assert "LcboCatalogAdapter" in result.output


class TestMainCommands:
    """Tests for the top-level commands."""

    def test_version(self) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Wine Selector v" in result.output

    def test_check_config(self, global_db) -> None:
        """Test the configuration summary."""
        result = runner.invoke(app, ["check-config"])
        assert result.exit_code == 0
        assert "sources.yaml" in result.output
        assert str(global_db) in result.output
