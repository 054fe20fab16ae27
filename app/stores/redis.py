"""Redis cache for the tag facet list.

The distinct tag list (with store counts) is read on every tag page but only
changes when a store is created or edited, so it is cached with a short TTL
and invalidated on writes.

The cache is best-effort: any Redis error is logged and reported as a miss, so
callers fall back to the storage backend.

TTL policies:
- Tag facets: 60 seconds (TAG_CACHE_TTL)
"""

import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.settings import Settings

TTL_TAG_FACETS = 60  # 1 minute

# Key prefixes
PREFIX_TAGS = "tags:"
KEY_TAG_FACETS = f"{PREFIX_TAGS}facets"

logger = logging.getLogger("uvicorn.error")


class FacetCache:
    """Tag facet cache on top of a Redis client."""

    def __init__(self, client: redis.Redis, ttl: int = TTL_TAG_FACETS) -> None:
        self._redis = client
        self._ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "FacetCache | None":
        """Build the cache, or None when REDIS_URL is empty."""
        if not settings.redis_url:
            return None
        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, ttl=settings.tag_cache_ttl)

    async def ping(self) -> None:
        await self._redis.ping()
        logger.info("Redis connected")

    async def close(self) -> None:
        await self._redis.aclose()

    async def get_tag_counts(self) -> list[tuple[str, int]] | None:
        """Get cached tag counts.

        Returns:
            [(tag, count), ...] or None on miss / Redis failure.
        """
        try:
            value = await self._redis.get(KEY_TAG_FACETS)
        except RedisError as e:
            logger.warning(f"Tag cache read failed: {e}")
            return None
        if not value:
            return None
        try:
            return [(str(tag), int(count)) for tag, count in json.loads(value)]
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("Tag cache entry is corrupt, ignoring")
            return None

    async def set_tag_counts(self, counts: list[tuple[str, int]]) -> None:
        try:
            await self._redis.setex(KEY_TAG_FACETS, self._ttl, json.dumps(counts))
        except RedisError as e:
            logger.warning(f"Tag cache write failed: {e}")

    async def invalidate(self) -> None:
        try:
            await self._redis.delete(KEY_TAG_FACETS)
        except RedisError as e:
            logger.warning(f"Tag cache invalidation failed: {e}")
