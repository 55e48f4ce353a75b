"""FastAPI application factory for Wine Selector."""

from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from wine_selector.db.engine import init_db

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Wine Selector",
        description="Wine recommendations joining the LCBO catalog with Vivino ratings",
        version="0.1.0",
    )

    # Initialize database tables
    init_db()

    # Include routers (import here to avoid circular imports)
    from wine_selector.web.routes import health, recommendations

    app.include_router(recommendations.router)
    app.include_router(health.router)

    return app


# Application instance
app = create_app()
