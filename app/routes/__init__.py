"""API routes."""

from fastapi import APIRouter

from app.routes import favorites, search, stores
from app.schemas import ErrorResponse

# Every domain failure is rendered as ErrorResponse by the app-level handler.
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 404, 415, 422, 503)
}

api_router = APIRouter(responses=ERROR_RESPONSES)

# Store listing, detail, tags and create/update
api_router.include_router(stores.router, prefix="/v1", tags=["stores"])

# Full-text and nearby search
api_router.include_router(search.router, prefix="/v1", tags=["search"])

# Hearts (favorites)
api_router.include_router(favorites.router, prefix="/v1", tags=["favorites"])
