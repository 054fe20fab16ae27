"""Pydantic schemas for API request/response validation."""

from app.schemas.common import ErrorDetail, ErrorResponse
from app.schemas.store import (
    HeartsResponse,
    Location,
    LocationFields,
    NearbyStore,
    SearchHit,
    StoreFields,
    StoreOut,
    StorePageResponse,
    TagFacet,
    TagsResponse,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "HeartsResponse",
    "Location",
    "LocationFields",
    "NearbyStore",
    "SearchHit",
    "StoreFields",
    "StoreOut",
    "StorePageResponse",
    "TagFacet",
    "TagsResponse",
]
