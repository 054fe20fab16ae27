import pytest

from app.services.slugs import slugify, unique_slug
from app.stores.base import GeoPoint


def test_slugify_folds_accents_and_hyphenates():
    assert slugify("Café A") == "cafe-a"
    assert slugify("  Café A & Sons!  ") == "cafe-a-sons"


def test_slugify_falls_back_when_nothing_is_left():
    assert slugify("☕☕") == "store"


@pytest.mark.asyncio
async def test_unique_slug_appends_suffix_on_collision(backend, wes):
    assert await unique_slug(backend, "Café A") == "cafe-a"

    for slug in ("cafe-a", "cafe-a-2"):
        await backend.insert_store(
            name="Café A", slug=slug, author_id=wes.id, location=GeoPoint(lng=0, lat=0)
        )

    assert await unique_slug(backend, "Cafe A") == "cafe-a-3"


@pytest.mark.asyncio
async def test_unique_slug_ignores_the_store_being_renamed(backend, wes):
    store = await backend.insert_store(
        name="Café A", slug="cafe-a", author_id=wes.id, location=GeoPoint(lng=0, lat=0)
    )
    assert await unique_slug(backend, "Cafe A", exclude_id=store.id) == "cafe-a"
