"""Store endpoints.

GET  /v1/stores                 - First page of stores
GET  /v1/stores/page/{page}     - Page N (302 to the last page when past the end)
POST /v1/stores                 - Create a store (multipart form, optional photo)
POST /v1/stores/{id}            - Update an owned store
GET  /v1/stores/{id}/edit       - Owned store for the edit form
GET  /v1/store/{slug}           - Store detail
GET  /v1/tags[/{tag}]           - Tag facets + stores

Routers are thin: call services for business logic.
"""

from typing import Any

from fastapi import APIRouter, Depends, File, Form, Path, Request, UploadFile
from fastapi.responses import RedirectResponse

from app.routes.deps import get_app_settings, get_backend, get_facet_cache, get_media, get_requester_id
from app.schemas import StoreOut, StorePageResponse, TagFacet, TagsResponse
from app.services.media import MediaIngestor, UploadedPhoto
from app.services.store_repository import (
    create_or_update_store,
    find_by_slug,
    get_owned_store,
    list_by_tag,
    list_page,
)
from app.settings import Settings
from app.stores.base import StoreBackend
from app.stores.redis import FacetCache

router = APIRouter()


def _form_fields(
    name: str | None,
    description: str | None,
    tags: list[str] | None,
    lng: str | None,
    lat: str | None,
    address: str | None,
    location_type: str | None,
) -> dict[str, Any]:
    """Collect submitted form values; absent fields are left out (unchanged)."""
    raw: dict[str, Any] = {}
    if name is not None:
        raw["name"] = name
    if description is not None:
        raw["description"] = description
    if tags:
        raw["tags"] = tags
    if lng is not None or lat is not None:
        raw["location"] = {
            "type": location_type,
            "coordinates": [lng, lat],
            "address": address,
        }
    return raw


async def _read_upload(photo: UploadFile | None) -> UploadedPhoto | None:
    """Browsers post an empty, nameless part when no file was picked."""
    if photo is None or not photo.filename:
        return None
    data = await photo.read()
    if not data:
        return None
    return UploadedPhoto(data=data, content_type=photo.content_type or "")


async def _store_page(request: Request, page: int, backend: StoreBackend, settings: Settings):
    result = await list_page(backend, page=page, page_size=settings.page_size)
    if result.out_of_range:
        return RedirectResponse(
            url=str(request.url_for("get_stores_page", page=result.redirect_page)),
            status_code=302,
        )
    return StorePageResponse(
        stores=[StoreOut.from_record(s) for s in result.stores],
        count=result.count,
        page=result.page,
        pages=result.pages,
    )


@router.get("/stores", response_model=StorePageResponse)
async def get_stores(
    request: Request,
    backend: StoreBackend = Depends(get_backend),
    settings: Settings = Depends(get_app_settings),
):
    """Get the first page of stores (newest first)."""
    return await _store_page(request, 1, backend, settings)


@router.get("/stores/page/{page}", response_model=StorePageResponse)
async def get_stores_page(
    request: Request,
    page: int = Path(ge=1, description="1-based page number"),
    backend: StoreBackend = Depends(get_backend),
    settings: Settings = Depends(get_app_settings),
):
    """Get a page of stores.

    Returns:
        StorePageResponse, or 302 to the last page if `page` is past the end.
    """
    return await _store_page(request, page, backend, settings)


@router.post("/stores", response_model=StoreOut, status_code=201)
async def create_store(
    name: str | None = Form(default=None),
    description: str | None = Form(default=None),
    tags: list[str] | None = Form(default=None),
    lng: str | None = Form(default=None, description="Longitude"),
    lat: str | None = Form(default=None, description="Latitude"),
    address: str | None = Form(default=None),
    location_type: str | None = Form(default=None, alias="locationType"),
    photo: UploadFile | None = File(default=None),
    requester_id: int = Depends(get_requester_id),
    backend: StoreBackend = Depends(get_backend),
    media: MediaIngestor = Depends(get_media),
    cache: FacetCache | None = Depends(get_facet_cache),
) -> StoreOut:
    """Create a store authored by the requester."""
    store = await create_or_update_store(
        backend,
        media,
        _form_fields(name, description, tags, lng, lat, address, location_type),
        await _read_upload(photo),
        requester_id,
        cache=cache,
    )
    return StoreOut.from_record(store)


@router.post("/stores/{store_id}", response_model=StoreOut)
async def update_store(
    store_id: int = Path(ge=1),
    name: str | None = Form(default=None),
    description: str | None = Form(default=None),
    tags: list[str] | None = Form(default=None),
    lng: str | None = Form(default=None, description="Longitude"),
    lat: str | None = Form(default=None, description="Latitude"),
    address: str | None = Form(default=None),
    location_type: str | None = Form(default=None, alias="locationType"),
    photo: UploadFile | None = File(default=None),
    requester_id: int = Depends(get_requester_id),
    backend: StoreBackend = Depends(get_backend),
    media: MediaIngestor = Depends(get_media),
    cache: FacetCache | None = Depends(get_facet_cache),
) -> StoreOut:
    """Update a store. Only its author may do this."""
    store = await create_or_update_store(
        backend,
        media,
        _form_fields(name, description, tags, lng, lat, address, location_type),
        await _read_upload(photo),
        requester_id,
        store_id=store_id,
        cache=cache,
    )
    return StoreOut.from_record(store)


@router.get("/stores/{store_id}/edit", response_model=StoreOut)
async def edit_store(
    store_id: int = Path(ge=1),
    requester_id: int = Depends(get_requester_id),
    backend: StoreBackend = Depends(get_backend),
) -> StoreOut:
    """Get a store for the edit form (author only)."""
    return StoreOut.from_record(await get_owned_store(backend, store_id, requester_id))


@router.get("/store/{slug}", response_model=StoreOut)
async def get_store_by_slug(
    slug: str = Path(min_length=1, max_length=220, pattern=r"^[a-z0-9-]+$"),
    backend: StoreBackend = Depends(get_backend),
) -> StoreOut:
    return StoreOut.from_record(await find_by_slug(backend, slug))


@router.get("/tags", response_model=TagsResponse)
@router.get("/tags/{tag}", response_model=TagsResponse)
async def get_stores_by_tag(
    tag: str | None = None,
    backend: StoreBackend = Depends(get_backend),
    cache: FacetCache | None = Depends(get_facet_cache),
) -> TagsResponse:
    """Get all tags (with store counts) and the stores carrying `tag`.

    Without a tag, every tagged store is returned.
    """
    listing = await list_by_tag(backend, tag, cache=cache)
    return TagsResponse(
        tag=listing.tag,
        tags=[TagFacet(tag=t, count=n) for t, n in listing.tags],
        stores=[StoreOut.from_record(s) for s in listing.stores],
    )
