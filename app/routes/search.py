"""Search endpoints.

GET /v1/search?q=...             - Full-text search, best 5 matches
GET /v1/stores/near?lng=&lat=    - Stores within 10 km, nearest first, max 10

Routers are thin: call services for business logic.
"""

from fastapi import APIRouter, Depends, Query

from app.routes.deps import get_app_settings, get_backend
from app.schemas import NearbyStore, SearchHit, StoreOut
from app.services.proximity import find_nearby
from app.services.search import search_stores
from app.settings import Settings
from app.stores.base import StoreBackend

router = APIRouter()


@router.get("/search", response_model=list[SearchHit])
async def search(
    q: str = Query(
        default="",
        max_length=200,
        description="Search text, matched against store names and descriptions",
        examples=["coffee", "vegan bakery"],
    ),
    backend: StoreBackend = Depends(get_backend),
    settings: Settings = Depends(get_app_settings),
) -> list[SearchHit]:
    """Search stores by relevance.

    Returns:
        Up to SEARCH_LIMIT stores, highest score first; [] when nothing matches.
    """
    hits = await search_stores(backend, q, limit=settings.search_limit)
    return [
        SearchHit(**StoreOut.from_record(store).model_dump(), score=score)
        for store, score in hits
    ]


@router.get("/stores/near", response_model=list[NearbyStore])
async def stores_near(
    # Optional strings: missing or malformed values map to INVALID_COORDINATES (400).
    lng: str | None = Query(default=None, description="Longitude", examples=["-0.1"]),
    lat: str | None = Query(default=None, description="Latitude", examples=["51.5"]),
    backend: StoreBackend = Depends(get_backend),
    settings: Settings = Depends(get_app_settings),
) -> list[NearbyStore]:
    """Get stores near a point, nearest first."""
    stores = await find_nearby(
        backend,
        lng,
        lat,
        max_distance_m=settings.nearby_max_distance_m,
        limit=settings.nearby_limit,
    )
    return [NearbyStore.from_record(store) for store in stores]
