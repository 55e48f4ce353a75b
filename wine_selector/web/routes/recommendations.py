"""Recommendation query route."""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from wine_selector.core.schema import RecommendationFilterInput
from wine_selector.db.engine import get_session
from wine_selector.ingestion.registry import get_default_registry
from wine_selector.services.recommendation_service import RecommendationService

router = APIRouter(prefix="/api", tags=["recommendations"])

DEFAULT_MIN_PRICE = 15.0
DEFAULT_MAX_PRICE = 500.0


def _split_csv(value: str | None) -> list[str]:
    """Split a comma-separated query value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_float(value: str | None, fallback: float) -> float:
    """Parse a string to float, returning ``fallback`` for empty or bad input."""
    if value is None or value == "":
        return fallback
    try:
        return float(value)
    except (ValueError, TypeError):
        return fallback


@router.get("/recommendations")
async def api_recommendations(
    search: str = "",
    types: str = "",
    varietals: str = "",
    countries: str = "",
    sub_regions: str = Query("", alias="subRegions"),
    min_price: str | None = Query(None, alias="minPrice"),
    max_price: str | None = Query(None, alias="maxPrice"),
    min_rating: str | None = Query(None, alias="minRating"),
    store_id: str = Query("", alias="storeId"),
) -> JSONResponse:
    """
    Ranked wine recommendations.

    List filters are comma-separated. Results are ordered by trust tier:
    direct Vivino matches, then producer averages, then unrated wines.
    """
    ranking = get_default_registry().ranking
    filters = RecommendationFilterInput(
        search=search,
        types=_split_csv(types),
        varietals=_split_csv(varietals),
        countries=_split_csv(countries),
        sub_regions=_split_csv(sub_regions),
        min_price=_parse_float(min_price, DEFAULT_MIN_PRICE),
        max_price=_parse_float(max_price, DEFAULT_MAX_PRICE),
        min_rating=_parse_float(min_rating, ranking.default_min_rating),
        store_id=store_id,
    )

    with get_session() as session:
        service = RecommendationService(session=session, ranking=ranking)
        response = service.recommend(filters)

    return JSONResponse(response.model_dump(mode="json", by_alias=True))
