"""Wine Selector CLI using Typer."""

import logging
from pathlib import Path

import typer
from dotenv import load_dotenv

from wine_selector.cli.ingest import ingest_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="wine-selector",
    help="Wine Selector - LCBO wine recommendations ranked by trusted Vivino ratings",
    add_completion=False,
)
app.add_typer(ingest_app, name="ingest")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the Wine Selector API server."""
    import uvicorn

    typer.echo(f"Starting Wine Selector on http://{host}:{port}")
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "wine_selector.web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from wine_selector.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Wine Selector version."""
    from wine_selector import __version__

    typer.echo(f"Wine Selector v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from wine_selector.db.engine import get_database_url
    from wine_selector.ingestion.registry import get_default_registry

    typer.echo("Wine Selector Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    registry = get_default_registry()
    typer.echo(f"  Sources config: {registry.config_path or 'Not found'}")
    typer.echo(f"  Enabled sources: {', '.join(s.name for s in registry.list_enabled_sources())}")
    typer.echo(f"  Database: {get_database_url()}")


if __name__ == "__main__":
    app()
