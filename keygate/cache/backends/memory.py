"""
Keygate Cache - In-memory backend.

Single-process TTL cache for development and tests. Values are stored
serialized so callers never share mutable documents with the cache, the
same as with Redis.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from ..core import CacheBackend, CacheStats
from ..serializers import JsonCacheSerializer

logger = logging.getLogger("keygate.cache.memory")


class MemoryBackend(CacheBackend):
    """
    Dict-backed cache with per-entry TTL.

    Expired entries are dropped lazily on read and by a background sweeper
    started in ``initialize()``.
    """

    def __init__(
        self,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store: Dict[str, Tuple[bytes, Optional[float]]] = {}
        self._lock = asyncio.Lock()
        self._serializer = JsonCacheSerializer()
        self._stats = CacheStats(backend="memory")
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._sweeper_task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return "memory"

    async def initialize(self) -> None:
        """Start the background TTL sweeper."""
        if self._sweeper_task is None:
            self._sweeper_task = asyncio.get_running_loop().create_task(self._ttl_sweeper())

    async def shutdown(self) -> None:
        """Stop sweeper and clear all data."""
        if self._sweeper_task and not self._sweeper_task.done():
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
        self._sweeper_task = None
        async with self._lock:
            self._store.clear()

    def _live(self, key: str) -> Optional[Tuple[bytes, Optional[float]]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            self._stats.evictions += 1
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._live(key)
        if entry is None:
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return self._serializer.deserialize(entry[0])

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        data = self._serializer.serialize(value)
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        async with self._lock:
            self._store[key] = (data, expires_at)
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        async with self._lock:
            existed = self._store.pop(key, None) is not None
        if existed:
            self._stats.deletes += 1
        return existed

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def increment_field(self, key: str, field: str, delta: int = 1) -> Optional[int]:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            document = self._serializer.deserialize(entry[0])
            value = int(document.get(field, 0)) + delta
            document[field] = value
            self._store[key] = (self._serializer.serialize(document), entry[1])
            return value

    async def stats(self) -> CacheStats:
        self._stats.size = len(self._store)
        return self._stats

    async def _ttl_sweeper(self) -> None:
        """Background task to clean expired entries."""
        while True:
            try:
                await asyncio.sleep(self._sweep_interval)
                swept = await self._sweep_expired()
                if swept:
                    logger.debug(f"TTL sweeper removed {swept} expired entries")
            except asyncio.CancelledError:
                break

    async def _sweep_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [
                key for key, (_, expires_at) in self._store.items()
                if expires_at is not None and now >= expires_at
            ]
            for key in expired:
                del self._store[key]
            self._stats.evictions += len(expired)
            return len(expired)
