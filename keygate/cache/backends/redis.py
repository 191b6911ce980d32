"""
Keygate Cache - Redis backend.

- Connection pool with configurable size
- Pipelined SET with expiry
- Lua script for the atomic in-document counter increment
- JSON documents via JsonCacheSerializer
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import redis.asyncio as aioredis

from ...config import mask_url
from ..core import CacheBackend, CacheStats
from ..serializers import JsonCacheSerializer

logger = logging.getLogger("keygate.cache.redis")

# KEYS[1] = document key, ARGV[1] = field, ARGV[2] = delta
_INCREMENT_FIELD = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return nil
end
local doc = cjson.decode(raw)
local value = (tonumber(doc[ARGV[1]]) or 0) + tonumber(ARGV[2])
doc[ARGV[1]] = value
redis.call('SET', KEYS[1], cjson.encode(doc), 'KEEPTTL')
return value
"""


def _short(key: str) -> str:
    return key if len(key) <= 24 else f"{key[:24]}..."


class RedisBackend(CacheBackend):
    """
    Redis-backed cache using redis-py's asyncio client.

    Errors are counted and re-raised; a failed read is never reported as a
    miss.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        retry_on_timeout: bool = True,
        key_prefix: str = "",
        client: Any = None,
    ):
        self._url = url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout
        self._retry_on_timeout = retry_on_timeout
        self._key_prefix = key_prefix
        self._redis = client
        self._owns_client = client is None
        self._serializer = JsonCacheSerializer()
        self._stats = CacheStats(backend="redis")

    @property
    def name(self) -> str:
        return "redis"

    async def initialize(self) -> None:
        """Connect to Redis and create connection pool."""
        if self._redis is not None:
            return
        try:
            self._redis = aioredis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                retry_on_timeout=self._retry_on_timeout,
                decode_responses=False,
            )
            await self._redis.ping()
            logger.info(f"Redis cache connected: {mask_url(self._url)}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    async def shutdown(self) -> None:
        """Close Redis connection pool."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
        self._redis = None

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._redis.get(self._full_key(key))
        except Exception as e:
            logger.warning(f"Redis GET error for key '{_short(key)}': {e}")
            self._stats.errors += 1
            raise
        if raw is None:
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return self._serializer.deserialize(raw)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        serialized = self._serializer.serialize(value)
        try:
            pipe = self._redis.pipeline()
            if ttl and ttl > 0:
                pipe.set(self._full_key(key), serialized, px=int(ttl * 1000))
            else:
                pipe.set(self._full_key(key), serialized)
            await pipe.execute()
        except Exception as e:
            logger.warning(f"Redis SET error for key '{_short(key)}': {e}")
            self._stats.errors += 1
            raise
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        try:
            result = await self._redis.delete(self._full_key(key))
        except Exception as e:
            logger.warning(f"Redis DELETE error for key '{_short(key)}': {e}")
            self._stats.errors += 1
            raise
        if result:
            self._stats.deletes += 1
        return bool(result)

    async def exists(self, key: str) -> bool:
        return bool(await self._redis.exists(self._full_key(key)))

    async def increment_field(self, key: str, field: str, delta: int = 1) -> Optional[int]:
        try:
            result = await self._redis.eval(_INCREMENT_FIELD, 1, self._full_key(key), field, delta)
        except Exception as e:
            logger.warning(f"Redis increment error for key '{_short(key)}': {e}")
            self._stats.errors += 1
            raise
        return int(result) if result is not None else None

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    async def stats(self) -> CacheStats:
        return self._stats
