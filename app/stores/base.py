"""Storage contract shared by the Postgres and in-memory backends.

Services talk to storage only through `StoreBackend`. Each method is a named
operation (add_to_set, remove, geo_near, text_search, ...) instead of a raw
query, so the ranking / ownership logic stays engine-agnostic and can be
exercised against `InMemoryBackend` in tests.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.services.errors import ValidationError

# Fields an update may touch. `author_id`, `id` and `created_at` are immutable.
MUTABLE_STORE_FIELDS = frozenset({"name", "slug", "description", "tags", "location", "photo"})


@dataclass(frozen=True)
class GeoPoint:
    """GeoJSON-style point. Coordinates are [lng, lat]."""

    lng: float
    lat: float
    address: str | None = None
    type: str = "Point"

    @property
    def coordinates(self) -> list[float]:
        return [self.lng, self.lat]


@dataclass(frozen=True)
class StoreRecord:
    id: int
    name: str
    slug: str
    author_id: int
    location: GeoPoint
    created_at: datetime
    description: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    photo: str | None = None


@dataclass(frozen=True)
class UserRecord:
    id: int
    email: str
    name: str


_EMAIL_ADAPTER = TypeAdapter(EmailStr)


def normalize_email(email: str) -> str:
    """Validate an email address and return it lowercased.

    Raises:
        ValidationError: Not a well-formed address.
    """
    try:
        return _EMAIL_ADAPTER.validate_python(email.strip()).lower()
    except PydanticValidationError as e:
        raise ValidationError({"email": "Please supply a valid email address"}) from e


# Raises to veto an update; called with the current row before changes apply.
UpdateGuard = Callable[[StoreRecord], None]


class StoreBackend(Protocol):
    """Durable store for stores, users and hearts."""

    # Stores

    async def insert_store(
        self,
        *,
        name: str,
        slug: str,
        author_id: int,
        location: GeoPoint,
        description: str | None = None,
        tags: Iterable[str] = (),
        photo: str | None = None,
    ) -> StoreRecord: ...

    async def get_store(self, store_id: int) -> StoreRecord | None: ...

    async def get_store_by_slug(self, slug: str) -> StoreRecord | None: ...

    async def update_store(
        self,
        store_id: int,
        changes: dict[str, Any],
        guard: UpdateGuard,
    ) -> StoreRecord:
        """Apply `changes` atomically after `guard` accepted the current row.

        Raises NotFound if the store does not exist.
        """
        ...

    async def slugs_matching(self, base_slug: str, exclude_id: int | None = None) -> set[str]:
        """Return existing slugs equal to `base_slug` or `base_slug-<n>`."""
        ...

    async def count_stores(self) -> int: ...

    async def list_stores(self, skip: int, limit: int) -> list[StoreRecord]:
        """Newest first."""
        ...

    async def tag_counts(self) -> list[tuple[str, int]]:
        """Distinct tags with store counts, most used first."""
        ...

    async def stores_with_tag(self, tag: str | None) -> list[StoreRecord]:
        """Stores carrying `tag`, or every tagged store when `tag` is None."""
        ...

    async def text_search(self, terms: list[str], limit: int) -> list[tuple[StoreRecord, float]]:
        """Stores matching any term, best relevance first."""
        ...

    async def geo_near(
        self,
        lng: float,
        lat: float,
        max_distance_m: float,
        limit: int,
    ) -> list[tuple[StoreRecord, float]]:
        """Stores within `max_distance_m` metres, nearest first."""
        ...

    async def stores_by_ids(self, store_ids: Iterable[int]) -> list[StoreRecord]: ...

    # Users / hearts

    async def insert_user(self, *, email: str, name: str) -> UserRecord: ...

    async def get_user(self, user_id: int) -> UserRecord | None: ...

    async def get_user_by_email(self, email: str) -> UserRecord | None: ...

    async def get_hearts(self, user_id: int) -> set[int]: ...

    async def add_to_set(self, user_id: int, store_id: int) -> set[int]:
        """Add a heart (no-op when present); return the user's hearts."""
        ...

    async def remove(self, user_id: int, store_id: int) -> set[int]:
        """Remove a heart (no-op when absent); return the user's hearts."""
        ...

    # Lifecycle

    async def ping(self) -> None: ...

    async def close(self) -> None: ...
