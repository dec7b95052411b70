"""
Catalog Cache - Read-through cache for catalog queries with Redis.
"""

import json
from typing import Any

import redis.asyncio as redis
from loguru import logger

from cakeheaven.core.config import settings


class CatalogCache:
    """
    TTL cache for serialized catalog responses.

    Every key lives under the `catalog:` prefix so a single product
    mutation can drop the whole catalog view at once. Redis being down
    is logged and treated as a miss.

    Usage:
        cache = CatalogCache()
        products = await cache.get("all_products")
        if products is None:
            products = ...
            await cache.set("all_products", products)
    """

    PREFIX = "catalog"

    def __init__(
        self,
        client: redis.Redis | None = None,
        ttl: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        """Initialize with an optional pre-built Redis client."""
        self._redis: redis.Redis | None = client
        self.ttl = ttl if ttl is not None else settings.catalog_cache_ttl
        self.enabled = settings.catalog_cache_enabled if enabled is None else enabled

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(
                str(settings.redis_url),
                encoding="utf-8",
                decode_responses=True,
            )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _key(self, name: str) -> str:
        """Generate Redis key for a cache entry."""
        return f"{self.PREFIX}:{name}"

    async def get(self, name: str) -> Any | None:
        """Return the cached value or None on miss."""
        if not self.enabled:
            return None
        if not self._redis:
            await self.connect()

        try:
            data = await self._redis.get(self._key(name))
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Catalog cache unavailable on get {name}: {e}")
            return None

        if data is None:
            return None

        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Invalid catalog cache entry {name}")
            return None

    async def set(self, name: str, value: Any) -> None:
        """Store a JSON-serializable value with the configured TTL."""
        if not self.enabled:
            return
        if not self._redis:
            await self.connect()

        try:
            await self._redis.setex(self._key(name), self.ttl, json.dumps(value))
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Catalog cache unavailable on set {name}: {e}")

    async def invalidate(self) -> None:
        """Drop every catalog entry."""
        if not self.enabled:
            return
        if not self._redis:
            await self.connect()

        try:
            keys = [key async for key in self._redis.scan_iter(match=f"{self.PREFIX}:*")]
            if keys:
                await self._redis.delete(*keys)
                logger.debug(f"Invalidated {len(keys)} catalog cache entries")
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Catalog cache unavailable on invalidate: {e}")


# Singleton instance
_catalog_cache: CatalogCache | None = None


async def get_catalog_cache() -> CatalogCache:
    """Get or create catalog cache singleton."""
    global _catalog_cache
    if _catalog_cache is None:
        _catalog_cache = CatalogCache()
        await _catalog_cache.connect()
    return _catalog_cache


async def close_catalog_cache() -> None:
    """Close the singleton's connection, if any."""
    global _catalog_cache
    if _catalog_cache is not None:
        await _catalog_cache.disconnect()
        _catalog_cache = None
