"""Database initialization and persistence layer."""

from wine_selector.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from wine_selector.db.models import (
    Base,
    IngestionDeadLetterDB,
    IngestionRunDB,
    StoreDB,
    WineDB,
    WineMarketDataDB,
    WineQualitySignalDB,
)
from wine_selector.db.repositories import (
    DeadLetterRepository,
    IngestionRunRepository,
    MarketDataRepository,
    QualitySignalRepository,
    StoreRepository,
    WineRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "StoreDB",
    "WineDB",
    "WineMarketDataDB",
    "WineQualitySignalDB",
    "IngestionRunDB",
    "IngestionDeadLetterDB",
    # Repositories
    "StoreRepository",
    "WineRepository",
    "MarketDataRepository",
    "QualitySignalRepository",
    "IngestionRunRepository",
    "DeadLetterRepository",
]
