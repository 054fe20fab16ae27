"""In-memory store backend.

Used by the test-suite and for running the API locally without Postgres
(STORAGE_BACKEND=memory). Data lives for the lifetime of the instance only.

Mutating methods never await between reading and writing a record, so each
one is atomic with respect to other requests on the same event loop.
"""

import itertools
import re
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from app.services.errors import NotFound, SlugTaken, ValidationError
from app.services.proximity import haversine_m
from app.services.search import text_score
from app.stores.base import (
    MUTABLE_STORE_FIELDS,
    GeoPoint,
    StoreRecord,
    UpdateGuard,
    UserRecord,
    normalize_email,
)


class InMemoryBackend:
    """Dict-backed implementation of `StoreBackend`."""

    def __init__(self) -> None:
        self._stores: dict[int, StoreRecord] = {}
        self._users: dict[int, UserRecord] = {}
        self._hearts: dict[int, set[int]] = {}
        self._store_ids = itertools.count(1)
        self._user_ids = itertools.count(1)

    # ============================================================
    # Stores
    # ============================================================

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
    ) -> StoreRecord:
        self._check_slug_free(slug)
        if author_id not in self._users:
            raise ValidationError({"author": f"Unknown user {author_id}"})

        store = StoreRecord(
            id=next(self._store_ids),
            name=name,
            slug=slug,
            author_id=author_id,
            location=location,
            created_at=datetime.now(timezone.utc),
            description=description,
            tags=tuple(tags),
            photo=photo,
        )
        self._stores[store.id] = store
        return store

    async def get_store(self, store_id: int) -> StoreRecord | None:
        return self._stores.get(store_id)

    async def get_store_by_slug(self, slug: str) -> StoreRecord | None:
        return next((s for s in self._stores.values() if s.slug == slug), None)

    async def update_store(
        self,
        store_id: int,
        changes: dict[str, Any],
        guard: UpdateGuard,
    ) -> StoreRecord:
        current = self._stores.get(store_id)
        if current is None:
            raise NotFound(f"Store {store_id} not found", detail={"store_id": store_id})

        guard(current)

        unknown = set(changes) - MUTABLE_STORE_FIELDS
        if unknown:
            raise ValueError(f"Immutable or unknown store fields: {sorted(unknown)}")
        if "slug" in changes and changes["slug"] != current.slug:
            self._check_slug_free(changes["slug"])
        if "tags" in changes:
            changes = {**changes, "tags": tuple(changes["tags"])}

        updated = replace(current, **changes)
        self._stores[store_id] = updated
        return updated

    async def slugs_matching(self, base_slug: str, exclude_id: int | None = None) -> set[str]:
        pattern = re.compile(rf"^{re.escape(base_slug)}(-[0-9]+)?$")
        return {
            s.slug
            for s in self._stores.values()
            if s.id != exclude_id and pattern.match(s.slug)
        }

    async def count_stores(self) -> int:
        return len(self._stores)

    async def list_stores(self, skip: int, limit: int) -> list[StoreRecord]:
        newest_first = sorted(self._stores.values(), key=lambda s: (s.created_at, s.id), reverse=True)
        return newest_first[skip : skip + limit]

    async def tag_counts(self) -> list[tuple[str, int]]:
        counts: dict[str, int] = {}
        for store in self._stores.values():
            for tag in set(store.tags):
                counts[tag] = counts.get(tag, 0) + 1
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))

    async def stores_with_tag(self, tag: str | None) -> list[StoreRecord]:
        stores = sorted(self._stores.values(), key=lambda s: s.id)
        if tag is None:
            return [s for s in stores if s.tags]
        return [s for s in stores if tag in s.tags]

    async def text_search(self, terms: list[str], limit: int) -> list[tuple[StoreRecord, float]]:
        hits = []
        for store in self._stores.values():
            score = text_score(terms, store.name, store.description)
            if score > 0:
                hits.append((store, score))
        hits.sort(key=lambda hit: (-hit[1], hit[0].id))
        return hits[:limit]

    async def geo_near(
        self,
        lng: float,
        lat: float,
        max_distance_m: float,
        limit: int,
    ) -> list[tuple[StoreRecord, float]]:
        hits = []
        for store in self._stores.values():
            distance = haversine_m(lng, lat, store.location.lng, store.location.lat)
            if distance <= max_distance_m:
                hits.append((store, distance))
        hits.sort(key=lambda hit: (hit[1], hit[0].id))
        return hits[:limit]

    async def stores_by_ids(self, store_ids: Iterable[int]) -> list[StoreRecord]:
        wanted = set(store_ids)
        return [s for s in sorted(self._stores.values(), key=lambda s: s.id) if s.id in wanted]

    def _check_slug_free(self, slug: str) -> None:
        if any(s.slug == slug for s in self._stores.values()):
            raise SlugTaken(slug)

    # ============================================================
    # Users / hearts
    # ============================================================

    async def insert_user(self, *, email: str, name: str) -> UserRecord:
        email = normalize_email(email)
        if any(u.email == email for u in self._users.values()):
            raise ValidationError({"email": f"Email '{email}' is already registered"})
        user = UserRecord(id=next(self._user_ids), email=email, name=name.strip())
        self._users[user.id] = user
        self._hearts[user.id] = set()
        return user

    async def get_user(self, user_id: int) -> UserRecord | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        email = email.strip().lower()
        return next((u for u in self._users.values() if u.email == email), None)

    async def get_hearts(self, user_id: int) -> set[int]:
        return set(self._hearts.get(user_id, set()))

    async def add_to_set(self, user_id: int, store_id: int) -> set[int]:
        hearts = self._hearts.setdefault(user_id, set())
        hearts.add(store_id)
        return set(hearts)

    async def remove(self, user_id: int, store_id: int) -> set[int]:
        hearts = self._hearts.setdefault(user_id, set())
        hearts.discard(store_id)
        return set(hearts)

    # ============================================================
    # Lifecycle
    # ============================================================

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None
