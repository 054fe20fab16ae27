"""Favorite ("heart") toggling.

A heart is toggled, not set: hearting an already-hearted store removes it.
"""

import logging

from app.services.errors import NotFound
from app.stores.base import StoreBackend, StoreRecord

logger = logging.getLogger("uvicorn.error")


async def toggle_favorite(backend: StoreBackend, requester_id: int, store_id: int) -> set[int]:
    """Toggle `store_id` in the requester's hearts.

    Returns:
        The requester's hearts after the toggle.

    Raises:
        NotFound: Unknown user, or unknown store when adding.
    """
    if await backend.get_user(requester_id) is None:
        raise NotFound(f"User {requester_id} not found", detail={"user_id": requester_id})

    hearts = await backend.get_hearts(requester_id)
    if store_id in hearts:
        hearts = await backend.remove(requester_id, store_id)
        logger.info(f"User {requester_id} unhearted store {store_id}")
        return hearts

    if await backend.get_store(store_id) is None:
        raise NotFound(f"Store {store_id} not found", detail={"store_id": store_id})
    hearts = await backend.add_to_set(requester_id, store_id)
    logger.info(f"User {requester_id} hearted store {store_id}")
    return hearts


async def hearted_stores(backend: StoreBackend, requester_id: int) -> list[StoreRecord]:
    """Get the stores the requester has hearted."""
    hearts = await backend.get_hearts(requester_id)
    return await backend.stores_by_ids(hearts)
