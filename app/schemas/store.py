"""Schemas for store input validation and API responses."""

import math
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.stores.base import StoreRecord

NAME_MAX_LENGTH = 200
TAG_MAX_LENGTH = 100


# ============================================================
# Input
# ============================================================


class LocationFields(BaseModel):
    """Submitted location. `type` is accepted but always stored as "Point"."""

    type: str | None = None
    coordinates: tuple[float, float]
    address: str | None = Field(default=None, max_length=500)

    @field_validator("coordinates")
    @classmethod
    def _check_coordinates(cls, v: tuple[float, float]) -> tuple[float, float]:
        lng, lat = v
        if not (math.isfinite(lng) and math.isfinite(lat)):
            raise ValueError("You must supply coordinates!")
        if not -180.0 <= lng <= 180.0:
            raise ValueError("Longitude must be between -180 and 180")
        if not -90.0 <= lat <= 90.0:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("address")
    @classmethod
    def _strip_address(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class StoreFields(BaseModel):
    """Submitted store form. All fields optional; create enforces required ones."""

    name: str | None = Field(default=None, max_length=NAME_MAX_LENGTH)
    description: str | None = None
    tags: list[str] | None = None
    location: LocationFields | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("Please enter a store name!")
        return v

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        """Strip, drop blanks and de-duplicate, keeping first-seen order."""
        if v is None:
            return None
        seen: dict[str, None] = {}
        for tag in v:
            tag = str(tag).strip()
            if not tag:
                continue
            if len(tag) > TAG_MAX_LENGTH:
                raise ValueError(f"Tags must be at most {TAG_MAX_LENGTH} characters")
            seen.setdefault(tag, None)
        return list(seen)


# ============================================================
# Output
# ============================================================


class Location(BaseModel):
    type: str = "Point"
    coordinates: list[float]
    address: str | None = None


class StoreOut(BaseModel):
    """A store as returned by the API."""

    id: int
    name: str
    slug: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    location: Location
    photo: str | None = None
    author: int
    created: datetime

    @classmethod
    def from_record(cls, store: StoreRecord) -> "StoreOut":
        return cls(
            id=store.id,
            name=store.name,
            slug=store.slug,
            description=store.description,
            tags=list(store.tags),
            location=Location(
                type=store.location.type,
                coordinates=store.location.coordinates,
                address=store.location.address,
            ),
            photo=store.photo,
            author=store.author_id,
            created=store.created_at,
        )


class SearchHit(StoreOut):
    """Search result with its relevance score (higher is better)."""

    score: float


class NearbyStore(BaseModel):
    """Minimal projection returned by the nearby query."""

    slug: str
    name: str
    description: str | None = None
    location: Location
    photo: str | None = None

    @classmethod
    def from_record(cls, store: StoreRecord) -> "NearbyStore":
        return cls(
            slug=store.slug,
            name=store.name,
            description=store.description,
            location=Location(
                type=store.location.type,
                coordinates=store.location.coordinates,
                address=store.location.address,
            ),
            photo=store.photo,
        )


class StorePageResponse(BaseModel):
    """One page of the store listing."""

    stores: list[StoreOut]
    count: int = Field(ge=0)
    page: int = Field(ge=1)
    pages: int = Field(ge=0)


class TagFacet(BaseModel):
    tag: str
    count: int = Field(ge=1)


class TagsResponse(BaseModel):
    """Tag facets plus the stores matching the selected tag."""

    tag: str | None = None
    tags: list[TagFacet]
    stores: list[StoreOut]


class HeartsResponse(BaseModel):
    """Post-toggle favorite set of the requester."""

    hearts: list[int]
