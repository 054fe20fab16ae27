import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.store_repository import list_by_tag
from app.settings import Settings
from app.stores.base import GeoPoint
from app.stores.redis import KEY_TAG_FACETS, FacetCache


class FakeRedis:
    """Just enough of redis.asyncio.Redis for FacetCache."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key):
        self.data.pop(key, None)


class BrokenRedis:
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def setex(self, key, ttl, value):
        raise RedisConnectionError("connection refused")

    async def delete(self, key):
        raise RedisConnectionError("connection refused")


def test_cache_disabled_without_url():
    assert FacetCache.from_settings(Settings(redis_url="")) is None


@pytest.mark.asyncio
async def test_round_trip_with_ttl():
    client = FakeRedis()
    cache = FacetCache(client, ttl=60)

    assert await cache.get_tag_counts() is None
    await cache.set_tag_counts([("Wifi", 2), ("Open Late", 1)])

    assert await cache.get_tag_counts() == [("Wifi", 2), ("Open Late", 1)]
    assert client.ttls[KEY_TAG_FACETS] == 60


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss():
    client = FakeRedis()
    client.data[KEY_TAG_FACETS] = "{not json"

    assert await FacetCache(client).get_tag_counts() is None


@pytest.mark.asyncio
async def test_redis_failures_fall_back_to_backend(backend, wes):
    await backend.insert_store(
        name="Café A", slug="cafe-a", author_id=wes.id, location=GeoPoint(lng=0, lat=0), tags=["Wifi"]
    )
    cache = FacetCache(BrokenRedis())

    listing = await list_by_tag(backend, None, cache=cache)
    await cache.invalidate()

    assert listing.tags == [("Wifi", 1)]


@pytest.mark.asyncio
async def test_listing_reads_through_cache(backend, wes):
    client = FakeRedis()
    cache = FacetCache(client)
    await backend.insert_store(
        name="Café A", slug="cafe-a", author_id=wes.id, location=GeoPoint(lng=0, lat=0), tags=["Wifi"]
    )

    await list_by_tag(backend, None, cache=cache)
    client.data[KEY_TAG_FACETS] = '[["Cached", 7]]'

    assert (await list_by_tag(backend, None, cache=cache)).tags == [("Cached", 7)]
