import pytest

from app.services.errors import NotFound
from app.services.favorites import hearted_stores, toggle_favorite
from app.stores.base import GeoPoint


@pytest.fixture
async def store(backend, wes):
    return await backend.insert_store(
        name="Café A", slug="cafe-a", author_id=wes.id, location=GeoPoint(lng=-0.1, lat=51.5)
    )


@pytest.mark.asyncio
async def test_toggle_adds_then_removes(backend, ada, store):
    assert await toggle_favorite(backend, ada.id, store.id) == {store.id}
    assert await hearted_stores(backend, ada.id) == [store]

    assert await toggle_favorite(backend, ada.id, store.id) == set()
    assert await hearted_stores(backend, ada.id) == []


@pytest.mark.asyncio
async def test_hearts_are_per_user(backend, wes, ada, store):
    await toggle_favorite(backend, ada.id, store.id)

    assert await backend.get_hearts(wes.id) == set()
    assert await backend.get_hearts(ada.id) == {store.id}


@pytest.mark.asyncio
async def test_toggle_unknown_store(backend, ada):
    with pytest.raises(NotFound):
        await toggle_favorite(backend, ada.id, 404)

    assert await backend.get_hearts(ada.id) == set()


@pytest.mark.asyncio
async def test_toggle_unknown_user(backend, store):
    with pytest.raises(NotFound):
        await toggle_favorite(backend, 999, store.id)
