"""Store create / update / listing service.

Write flow (create_or_update_store):
1. Validate submitted fields (nothing is written on failure)
2. Update only: store must exist and belong to the requester
3. Ingest the photo, if any, and wait for it to be fully written
4. Write the record (ownership re-checked under the row lock)
5. If the record write fails, discard the photo written in step 3
6. If an update replaced the photo, discard the old file

The slug is re-derived and the write retried (SLUG_ATTEMPTS) when another
store takes it between choosing and writing.

Listing:
- Pages of PAGE_SIZE stores, newest first
- A page past the end (with stores existing) is flagged out_of_range so the
  route can redirect to the last page instead of rendering an empty page
"""

import asyncio
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.schemas.store import StoreFields
from app.services.errors import NotFound, OwnershipError, SlugTaken, ValidationError
from app.services.media import MediaIngestor, UploadedPhoto
from app.services.slugs import unique_slug
from app.stores.base import GeoPoint, StoreBackend, StoreRecord
from app.stores.redis import FacetCache

logger = logging.getLogger("uvicorn.error")

PAGE_SIZE = 4

# Slug is chosen before the write; a concurrent writer can take it in between.
SLUG_ATTEMPTS = 3


@dataclass
class StorePage:
    """One page of the store listing."""

    stores: list[StoreRecord]
    count: int
    page: int
    pages: int
    out_of_range: bool = False

    @property
    def redirect_page(self) -> int:
        """Page to send the client to when out_of_range."""
        return max(self.pages, 1)


@dataclass
class TagListing:
    tag: str | None
    tags: list[tuple[str, int]]
    stores: list[StoreRecord]


# ============================================================
# Validation / ownership
# ============================================================


def validate_fields(raw: Mapping[str, Any], *, partial: bool) -> StoreFields:
    """Parse a submitted store form.

    Args:
        raw: Form data (name, description, tags, location).
        partial: True for updates (missing fields are left unchanged).

    Raises:
        ValidationError: With one message per offending field.
    """
    try:
        fields = StoreFields.model_validate(dict(raw))
    except PydanticValidationError as e:
        errors: dict[str, str] = {}
        for err in e.errors():
            key = ".".join(str(part) for part in err["loc"]) or "__all__"
            errors.setdefault(key, err["msg"])
        raise ValidationError(errors) from e

    if not partial:
        missing: dict[str, str] = {}
        if fields.name is None:
            missing["name"] = "Please enter a store name!"
        if fields.location is None:
            missing["location"] = "You must supply coordinates!"
        if missing:
            raise ValidationError(missing)
    return fields


def confirm_owner(store: StoreRecord, requester_id: int) -> None:
    """Raise OwnershipError unless `requester_id` created `store`."""
    if store.author_id != requester_id:
        raise OwnershipError(
            "You must own a store in order to edit it!",
            detail={"store_id": store.id},
        )


def _point(fields: StoreFields) -> GeoPoint | None:
    if fields.location is None:
        return None
    lng, lat = fields.location.coordinates
    # Always a Point, whatever type the client sent.
    return GeoPoint(lng=lng, lat=lat, address=fields.location.address, type="Point")


async def _invalidate_tags(cache: FacetCache | None) -> None:
    if cache is not None:
        await cache.invalidate()


# ============================================================
# Writes
# ============================================================


async def create_store(
    backend: StoreBackend,
    fields: StoreFields,
    author_id: int,
    *,
    photo: str | None = None,
    cache: FacetCache | None = None,
) -> StoreRecord:
    """Create a store owned by `author_id`."""
    if fields.name is None or fields.location is None:
        raise ValidationError({"name": "Name and location are required"})

    for attempt in range(1, SLUG_ATTEMPTS + 1):
        slug = await unique_slug(backend, fields.name)
        try:
            store = await backend.insert_store(
                name=fields.name,
                slug=slug,
                author_id=author_id,
                location=_point(fields),
                description=fields.description,
                tags=fields.tags or [],
                photo=photo,
            )
            break
        except SlugTaken:
            if attempt == SLUG_ATTEMPTS:
                raise
            logger.info(f"Slug {slug} taken concurrently, retrying ({attempt}/{SLUG_ATTEMPTS})")
    await _invalidate_tags(cache)
    logger.info(f"Created store {store.slug} (id={store.id}) by user {author_id}")
    return store


async def update_owned_store(
    backend: StoreBackend,
    store_id: int,
    fields: StoreFields,
    requester_id: int,
    *,
    photo: str | None = None,
    cache: FacetCache | None = None,
) -> StoreRecord:
    """Update a store, only if `requester_id` owns it.

    Raises:
        NotFound: No such store.
        OwnershipError: Requester is not the author (nothing is changed).
    """
    current = await get_owned_store(backend, store_id, requester_id)

    changes: dict[str, Any] = {}
    if fields.name is not None and fields.name != current.name:
        changes["name"] = fields.name
        changes["slug"] = await unique_slug(backend, fields.name, exclude_id=store_id)
    if "description" in fields.model_fields_set:
        changes["description"] = fields.description
    if fields.tags is not None:
        changes["tags"] = fields.tags
    location = _point(fields)
    if location is not None:
        changes["location"] = location
    if photo is not None:
        changes["photo"] = photo

    for attempt in range(1, SLUG_ATTEMPTS + 1):
        try:
            store = await backend.update_store(
                store_id,
                changes,
                guard=lambda row: confirm_owner(row, requester_id),
            )
            break
        except SlugTaken:
            if "slug" not in changes or attempt == SLUG_ATTEMPTS:
                raise
            logger.info(f"Slug {changes['slug']} taken concurrently, retrying ({attempt}/{SLUG_ATTEMPTS})")
            changes["slug"] = await unique_slug(backend, fields.name, exclude_id=store_id)

    if "tags" in changes:
        await _invalidate_tags(cache)
    logger.info(f"Updated store {store.slug} (id={store.id}): {sorted(changes)}")
    return store


async def create_or_update_store(
    backend: StoreBackend,
    media: MediaIngestor,
    raw_fields: Mapping[str, Any],
    upload: UploadedPhoto | None,
    requester_id: int,
    store_id: int | None = None,
    *,
    cache: FacetCache | None = None,
) -> StoreRecord:
    """Handle a submitted store form, with optional photo.

    The photo is written before the record; the record never references a
    photo that is not on disk.
    """
    fields = validate_fields(raw_fields, partial=store_id is not None)
    previous_photo = None
    if store_id is not None:
        previous_photo = (await get_owned_store(backend, store_id, requester_id)).photo

    photo = await media.ingest(upload)
    try:
        if store_id is None:
            return await create_store(backend, fields, requester_id, photo=photo, cache=cache)
        store = await update_owned_store(
            backend, store_id, fields, requester_id, photo=photo, cache=cache
        )
    except Exception:
        if photo is not None:
            media.discard(photo)
        raise

    # Replaced photo is no longer referenced once the update has committed.
    if photo is not None and previous_photo and previous_photo != photo:
        media.discard(previous_photo)
    return store


# ============================================================
# Reads
# ============================================================


async def get_owned_store(backend: StoreBackend, store_id: int, requester_id: int) -> StoreRecord:
    """Fetch a store for editing."""
    store = await backend.get_store(store_id)
    if store is None:
        raise NotFound(f"Store {store_id} not found", detail={"store_id": store_id})
    confirm_owner(store, requester_id)
    return store


async def find_by_slug(backend: StoreBackend, slug: str) -> StoreRecord:
    store = await backend.get_store_by_slug(slug)
    if store is None:
        raise NotFound(f"Store '{slug}' not found", detail={"slug": slug})
    return store


async def list_page(backend: StoreBackend, page: int = 1, page_size: int = PAGE_SIZE) -> StorePage:
    """Get one page of stores, newest first.

    Args:
        backend: Storage backend.
        page: 1-based page number.
        page_size: Stores per page (default 4).

    Returns:
        StorePage; out_of_range is set when the page is empty but earlier
        pages exist.
    """
    if page < 1:
        raise ValidationError({"page": "Page must be 1 or greater"})

    skip = (page - 1) * page_size
    stores, count = await asyncio.gather(
        backend.list_stores(skip, page_size),
        backend.count_stores(),
    )
    pages = math.ceil(count / page_size)
    out_of_range = not stores and skip > 0
    if out_of_range:
        logger.info(f"Page {page} requested but only {pages} page(s) exist")
    return StorePage(stores=stores, count=count, page=page, pages=pages, out_of_range=out_of_range)


async def list_by_tag(
    backend: StoreBackend,
    tag: str | None = None,
    *,
    cache: FacetCache | None = None,
) -> TagListing:
    """Get tag facets and the stores carrying `tag` (any tag when None)."""
    tag = tag.strip() if tag else None

    counts = await cache.get_tag_counts() if cache is not None else None
    if counts is None:
        counts = await backend.tag_counts()
        if cache is not None:
            await cache.set_tag_counts(counts)

    stores = await backend.stores_with_tag(tag or None)
    return TagListing(tag=tag or None, tags=counts, stores=stores)
