"""Ingestion health route."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from wine_selector.db.engine import get_session
from wine_selector.ingestion.health import health_report

router = APIRouter(prefix="/api/ingestion", tags=["ingestion"])


@router.get("/health")
async def ingestion_health() -> JSONResponse:
    """
    Freshness of the catalog and Vivino data, plus recent failures.

    Always answers 200; the ``status`` field carries healthy, degraded or
    unhealthy.
    """
    with get_session() as session:
        report = health_report(session)
    return JSONResponse(report)
