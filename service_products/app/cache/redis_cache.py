"""
Redis caching layer for Products Service.
"""

import asyncio
from datetime import timedelta
from typing import Optional, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import ServiceStartupError
from ..errors import CacheUnavailableError


# Cached snapshots are kept for a fixed five minutes; nothing invalidates them early.
PRODUCT_CACHE_TTL = timedelta(minutes=5)
PRODUCT_CACHE_KEY = "cache_products:{product_id}"
PRODUCT_CACHE_FIELD = "data"

Timeout = Optional[float]


class ProductCache:
    """Redis hash-backed cache of serialized product snapshots.

    Each key holds a single hash field ``data``; the hash is a storage
    convention only. Expiry is applied on write and left to Redis to enforce.
    """

    def __init__(
        self,
        redis_url: str,
        client: Optional[redis.Redis] = None,
        default_timeout: float = 1.0,
    ):
        self.redis_url = redis_url
        self.logger = get_logger("products.cache.redis")
        self.redis: Optional[redis.Redis] = client
        self.default_timeout = default_timeout

    async def start(self):
        """Start the Redis cache."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

        try:
            # Test connection
            await self.redis.ping()
        except (RedisError, OSError) as e:
            self.logger.error("Failed to start Redis cache", redis_url=self.redis_url, error=str(e))
            raise ServiceStartupError("redis", str(e)) from e

        self.logger.info("Redis cache started")

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    @staticmethod
    def key_for(product_id: int) -> str:
        """Cache key for a product id."""
        return PRODUCT_CACHE_KEY.format(product_id=product_id)

    async def exists(self, key: str, timeout: Timeout = None) -> bool:
        """Whether ``key`` currently holds a cached snapshot."""
        return bool(await self._call("exists", key, self.redis.hexists(key, PRODUCT_CACHE_FIELD), timeout))

    async def get(self, key: str, timeout: Timeout = None) -> Optional[str]:
        """Serialized snapshot under ``key``, or ``None`` when absent."""
        return await self._call("get", key, self.redis.hget(key, PRODUCT_CACHE_FIELD), timeout)

    async def set(self, key: str, value: str, ttl: Union[int, timedelta] = PRODUCT_CACHE_TTL, timeout: Timeout = None):
        """Store ``value`` under ``key`` and apply ``ttl`` in the same transaction."""
        async def _write():
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(key, PRODUCT_CACHE_FIELD, value)
                pipe.expire(key, ttl)
                await pipe.execute()

        await self._call("set", key, _write(), timeout)
        self.logger.debug("Cached product snapshot", cache_key=key, ttl=str(ttl))

    async def _call(self, operation: str, key: str, awaitable, timeout: Timeout):
        if timeout is None:
            timeout = self.default_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            raise CacheUnavailableError(
                f"Redis {operation} timed out after {timeout}s",
                operation=f"cache.{operation}",
                details={"cache_key": key},
            ) from e
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(
                f"Redis {operation} failed: {e}",
                operation=f"cache.{operation}",
                details={"cache_key": key},
            ) from e

    async def health_check(self) -> bool:
        """Check Redis health."""
        if self.redis is None:
            return False
        try:
            await self.redis.ping()
            return True
        except (RedisError, OSError):
            return False
