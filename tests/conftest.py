"""Shared fixtures for the Wine Selector tests."""

from datetime import UTC, datetime
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

from wine_selector.db.engine import create_db_engine, init_db, reset_engine
from wine_selector.db.models import Base
from wine_selector.ingestion.registry import reset_default_registry


@pytest.fixture(autouse=True)
def _fresh_registry():
    """Every test starts from the on-disk sources.yaml."""
    reset_default_registry()
    yield
    reset_default_registry()


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Path of a throwaway SQLite database."""
    return tmp_path / "test.db"


@pytest.fixture
def test_engine(temp_db_path: Path):
    """Create a test database engine with all tables."""
    engine = create_db_engine(temp_db_path)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def test_session(test_engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=test_engine, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def global_db(temp_db_path: Path, monkeypatch):
    """Point the process-wide engine (used by routes and the CLI) at a temp database."""
    monkeypatch.setenv("DATABASE_URL", str(temp_db_path))
    reset_engine()
    init_db()
    yield temp_db_path
    reset_engine()


def catalog_item(**overrides) -> dict:
    """A valid camelCase catalog feed record."""
    item = {
        "externalId": "20001",
        "name": "Cloudy Bay Sauvignon Blanc",
        "producer": "Cloudy Bay",
        "type": "White",
        "varietal": "Sauvignon Blanc",
        "country": "New Zealand",
        "subRegion": "Marlborough",
        "regionLabel": "New Zealand - Marlborough",
        "lcboUrl": "https://www.lcbo.com/en/cloudy-bay-sauvignon-blanc-20001",
        "vivinoUrl": "https://www.vivino.com/search/wines?q=Cloudy%20Bay%20Sauvignon%20Blanc",
        "storeCode": "217",
        "storeLabel": "Queens Quay - Toronto",
        "storeCity": "Toronto",
        "storeLatitude": 43.64,
        "storeLongitude": -79.38,
        "listedPriceCents": 3695,
        "inventoryQuantity": 12,
        "inStock": True,
        "sourceUpdatedAt": datetime(2026, 1, 10, 12, 0, tzinfo=UTC).isoformat(),
    }
    item.update(overrides)
    return item


@pytest.fixture
def make_catalog_item():
    """Factory for catalog feed records."""
    return catalog_item
