"""PostgreSQL implementation of `StoreBackend`.

Text search uses the generated `stores.search_vector` column (GIN index) with
`ts_rank` as the relevance score. Nearby search uses a haversine expression,
prefiltered by a latitude band so the (lat, lng) index can be used.
"""

import logging
import math
from collections.abc import Iterable
from typing import Any

from sqlalchemy import Float, delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.models import Heart, Store, User
from app.services.errors import NotFound, SlugTaken, ValidationError
from app.services.proximity import EARTH_RADIUS_M
from app.settings import Settings
from app.stores.base import (
    MUTABLE_STORE_FIELDS,
    GeoPoint,
    StoreRecord,
    UpdateGuard,
    UserRecord,
    normalize_email,
)
from app.stores.postgres import create_engine, create_session_factory, create_tables, ping_db, session_scope

logger = logging.getLogger("uvicorn.error")


def _to_record(row: Store) -> StoreRecord:
    return StoreRecord(
        id=row.id,
        name=row.name,
        slug=row.slug,
        author_id=row.author_id,
        location=GeoPoint(
            lng=row.lng,
            lat=row.lat,
            address=row.address,
            type=row.location_type,
        ),
        created_at=row.created_at,
        description=row.description,
        tags=tuple(row.tags or ()),
        photo=row.photo,
    )


def _integrity_error(exc: IntegrityError, slug: str | None = None) -> ValidationError:
    """Map a constraint violation to the form field that caused it."""
    message = str(exc.orig)
    if "slug" in message:
        return SlugTaken(slug or "")
    if "email" in message:
        return ValidationError({"email": "Email is already registered"})
    if "author_id" in message:
        return ValidationError({"author": "Unknown user"})
    return ValidationError({"record": "Violates a database constraint"})


def _haversine_sql(lng: float, lat: float) -> Any:
    """SQL expression: metres between (lng, lat) and each store."""
    dlat = func.radians(Store.lat - lat, type_=Float)
    dlng = func.radians(Store.lng - lng, type_=Float)
    a = func.power(func.sin(dlat / 2, type_=Float), 2, type_=Float) + (
        func.cos(func.radians(lat, type_=Float), type_=Float)
        * func.cos(func.radians(Store.lat, type_=Float), type_=Float)
        * func.power(func.sin(dlng / 2, type_=Float), 2, type_=Float)
    )
    return (2 * EARTH_RADIUS_M) * func.asin(
        func.least(1.0, func.sqrt(a, type_=Float), type_=Float),
        type_=Float,
    )


class PostgresBackend:
    """Async SQLAlchemy-backed store backend."""

    def __init__(self, engine: AsyncEngine, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._engine = engine
        self._sessions = session_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresBackend":
        engine = create_engine(settings)
        return cls(engine, create_session_factory(engine))

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
        async with session_scope(self._sessions) as session:
            row = Store(
                name=name,
                slug=slug,
                description=description,
                tags=list(tags),
                location_type=location.type,
                lng=location.lng,
                lat=location.lat,
                address=location.address,
                photo=photo,
                author_id=author_id,
            )
            session.add(row)
            try:
                await session.flush()
            except IntegrityError as e:
                raise _integrity_error(e, slug) from e
            await session.refresh(row)
            return _to_record(row)

    async def get_store(self, store_id: int) -> StoreRecord | None:
        async with session_scope(self._sessions) as session:
            row = await session.get(Store, store_id)
            return _to_record(row) if row else None

    async def get_store_by_slug(self, slug: str) -> StoreRecord | None:
        async with session_scope(self._sessions) as session:
            result = await session.execute(select(Store).where(Store.slug == slug))
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    async def update_store(
        self,
        store_id: int,
        changes: dict[str, Any],
        guard: UpdateGuard,
    ) -> StoreRecord:
        unknown = set(changes) - MUTABLE_STORE_FIELDS
        if unknown:
            raise ValueError(f"Immutable or unknown store fields: {sorted(unknown)}")

        async with session_scope(self._sessions) as session:
            # Row lock: the guard and the write see the same version of the store.
            row = await session.get(Store, store_id, with_for_update=True)
            if row is None:
                raise NotFound(f"Store {store_id} not found", detail={"store_id": store_id})

            guard(_to_record(row))

            for key, value in changes.items():
                if key == "location":
                    row.lng = value.lng
                    row.lat = value.lat
                    row.address = value.address
                    row.location_type = value.type
                elif key == "tags":
                    row.tags = list(value)
                else:
                    setattr(row, key, value)

            try:
                await session.flush()
            except IntegrityError as e:
                raise _integrity_error(e, changes.get("slug")) from e
            await session.refresh(row)
            return _to_record(row)

    async def slugs_matching(self, base_slug: str, exclude_id: int | None = None) -> set[str]:
        # Slugs only contain [a-z0-9-], so the base needs no regex escaping.
        query = select(Store.slug).where(Store.slug.op("~")(f"^{base_slug}(-[0-9]+)?$"))
        if exclude_id is not None:
            query = query.where(Store.id != exclude_id)
        async with session_scope(self._sessions) as session:
            result = await session.execute(query)
            return set(result.scalars().all())

    async def count_stores(self) -> int:
        async with session_scope(self._sessions) as session:
            result = await session.execute(select(func.count(Store.id)))
            return result.scalar() or 0

    async def list_stores(self, skip: int, limit: int) -> list[StoreRecord]:
        query = (
            select(Store)
            .order_by(Store.created_at.desc(), Store.id.desc())
            .offset(skip)
            .limit(limit)
        )
        async with session_scope(self._sessions) as session:
            result = await session.execute(query)
            return [_to_record(row) for row in result.scalars().all()]

    async def tag_counts(self) -> list[tuple[str, int]]:
        unnested = select(Store.id, func.unnest(Store.tags).label("tag")).subquery()
        count = func.count(func.distinct(unnested.c.id))
        query = (
            select(unnested.c.tag, count)
            .group_by(unnested.c.tag)
            .order_by(count.desc(), unnested.c.tag.asc())
        )
        async with session_scope(self._sessions) as session:
            result = await session.execute(query)
            return [(tag, int(n)) for tag, n in result.all()]

    async def stores_with_tag(self, tag: str | None) -> list[StoreRecord]:
        query = select(Store).order_by(Store.id.asc())
        if tag is None:
            query = query.where(func.cardinality(Store.tags) > 0)
        else:
            query = query.where(Store.tags.any(tag))
        async with session_scope(self._sessions) as session:
            result = await session.execute(query)
            return [_to_record(row) for row in result.scalars().all()]

    async def text_search(self, terms: list[str], limit: int) -> list[tuple[StoreRecord, float]]:
        # Terms are \w+ tokens, safe to join into tsquery syntax (OR semantics).
        tsquery = func.to_tsquery("english", " | ".join(terms))
        score = func.ts_rank(Store.search_vector, tsquery, type_=Float).label("score")
        query = (
            select(Store, score)
            .where(Store.search_vector.op("@@")(tsquery))
            .order_by(score.desc(), Store.id.asc())
            .limit(limit)
        )
        async with session_scope(self._sessions) as session:
            result = await session.execute(query)
            return [(_to_record(row), float(s)) for row, s in result.all()]

    async def geo_near(
        self,
        lng: float,
        lat: float,
        max_distance_m: float,
        limit: int,
    ) -> list[tuple[StoreRecord, float]]:
        distance = _haversine_sql(lng, lat).label("distance")
        lat_band = math.degrees(max_distance_m / EARTH_RADIUS_M)
        query = (
            select(Store, distance)
            .where(Store.lat.between(lat - lat_band, lat + lat_band))
            .where(_haversine_sql(lng, lat) <= max_distance_m)
            .order_by(distance.asc(), Store.id.asc())
            .limit(limit)
        )
        async with session_scope(self._sessions) as session:
            result = await session.execute(query)
            return [(_to_record(row), float(d)) for row, d in result.all()]

    async def stores_by_ids(self, store_ids: Iterable[int]) -> list[StoreRecord]:
        ids = list(store_ids)
        if not ids:
            return []
        async with session_scope(self._sessions) as session:
            result = await session.execute(
                select(Store).where(Store.id.in_(ids)).order_by(Store.id.asc())
            )
            return [_to_record(row) for row in result.scalars().all()]

    # ============================================================
    # Users / hearts
    # ============================================================

    async def insert_user(self, *, email: str, name: str) -> UserRecord:
        async with session_scope(self._sessions) as session:
            row = User(email=normalize_email(email), name=name.strip())
            session.add(row)
            try:
                await session.flush()
            except IntegrityError as e:
                raise _integrity_error(e) from e
            return UserRecord(id=row.id, email=row.email, name=row.name)

    async def get_user(self, user_id: int) -> UserRecord | None:
        async with session_scope(self._sessions) as session:
            row = await session.get(User, user_id)
            return UserRecord(id=row.id, email=row.email, name=row.name) if row else None

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        async with session_scope(self._sessions) as session:
            result = await session.execute(select(User).where(User.email == email.strip().lower()))
            row = result.scalar_one_or_none()
            return UserRecord(id=row.id, email=row.email, name=row.name) if row else None

    async def get_hearts(self, user_id: int) -> set[int]:
        async with session_scope(self._sessions) as session:
            return await self._hearts(session, user_id)

    async def add_to_set(self, user_id: int, store_id: int) -> set[int]:
        async with session_scope(self._sessions) as session:
            await session.execute(
                pg_insert(Heart)
                .values(user_id=user_id, store_id=store_id)
                .on_conflict_do_nothing(index_elements=["user_id", "store_id"])
            )
            return await self._hearts(session, user_id)

    async def remove(self, user_id: int, store_id: int) -> set[int]:
        async with session_scope(self._sessions) as session:
            await session.execute(
                delete(Heart).where(Heart.user_id == user_id, Heart.store_id == store_id)
            )
            return await self._hearts(session, user_id)

    @staticmethod
    async def _hearts(session: AsyncSession, user_id: int) -> set[int]:
        result = await session.execute(select(Heart.store_id).where(Heart.user_id == user_id))
        return set(result.scalars().all())

    # ============================================================
    # Lifecycle
    # ============================================================

    async def ping(self) -> None:
        await ping_db(self._engine)

    async def create_tables(self) -> None:
        """Create the schema without Alembic (development only)."""
        await create_tables(self._engine)

    async def close(self) -> None:
        await self._engine.dispose()
