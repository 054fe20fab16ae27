"""Heart (favorite) endpoints.

POST /v1/stores/{id}/heart  - Toggle a store in the requester's hearts
GET  /v1/hearts             - Stores the requester has hearted
"""

from fastapi import APIRouter, Depends, Path

from app.routes.deps import get_backend, get_requester_id
from app.schemas import HeartsResponse, StoreOut
from app.services.favorites import hearted_stores, toggle_favorite
from app.stores.base import StoreBackend

router = APIRouter()


@router.post("/stores/{store_id}/heart", response_model=HeartsResponse)
async def heart_store(
    store_id: int = Path(ge=1),
    requester_id: int = Depends(get_requester_id),
    backend: StoreBackend = Depends(get_backend),
) -> HeartsResponse:
    """Toggle the heart on a store.

    Returns:
        The requester's hearts after the toggle.
    """
    hearts = await toggle_favorite(backend, requester_id, store_id)
    return HeartsResponse(hearts=sorted(hearts))


@router.get("/hearts", response_model=list[StoreOut])
async def get_hearts(
    requester_id: int = Depends(get_requester_id),
    backend: StoreBackend = Depends(get_backend),
) -> list[StoreOut]:
    return [StoreOut.from_record(s) for s in await hearted_stores(backend, requester_id)]
