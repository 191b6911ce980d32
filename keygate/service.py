"""
Keygate - Service facade.

``KeyService`` owns the component graph (store, cache, lock, limiter,
metrics) and exposes the boundary operations. Build it from a
``KeygateConfig`` with ``from_config`` or pass components explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis

from .admin import AdminService
from .cache import CredentialCache, MemoryBackend, RedisBackend
from .cache.core import CacheBackend
from .config import KeygateConfig
from .credentials import CredentialCodec, PublishedCredential, ValidationGrant, utcnow
from .faults import Outcome
from .locks import DistributedLock, MemoryLock, RedisLock
from .metrics import KeyMetrics
from .pipeline import Publisher, Validator
from .ratelimit import MemoryWindowStore, RedisWindowStore, SlidingWindowRateLimiter
from .stores import ExpirySweeper, RecordStore, create_store

logger = logging.getLogger("keygate.service")


class KeyService:
    """Publish, validate and administer credentials."""

    def __init__(
        self,
        codec: CredentialCodec,
        store: RecordStore,
        cache_backend: CacheBackend,
        lock: DistributedLock,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        metrics: Optional[KeyMetrics] = None,
        cache_ttl: float = 900,
        lock_ttl: float = 10.0,
        sweep_interval: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        redis_client: Any = None,
    ):
        self.codec = codec
        self.store = store
        self.cache_backend = cache_backend
        self.cache = CredentialCache(cache_backend, ttl=cache_ttl)
        self.lock = lock
        self.limiter = limiter
        self.metrics = metrics or KeyMetrics()
        self._redis = redis_client
        self.publisher = Publisher(codec, store, metrics=self.metrics, clock=clock)
        self.validator = Validator(
            codec,
            store,
            self.cache,
            lock,
            limiter=limiter,
            metrics=self.metrics,
            clock=clock,
            lock_ttl=lock_ttl,
        )
        self.admin = AdminService(store, clock=clock)
        self.sweeper = ExpirySweeper(store, sweep_interval, clock=clock) if sweep_interval else None
        self._initialized = False

    @classmethod
    def from_config(cls, config: KeygateConfig) -> "KeyService":
        """
        Wire components for a config.

        With ``redis_url`` set, cache, lock and rate windows share one Redis
        connection pool; otherwise in-process backends are used.
        """
        codec = CredentialCodec(
            secret_bytes=config.secret_bytes,
            time_cost=config.argon2_time_cost,
            memory_cost=config.argon2_memory_cost,
            parallelism=config.argon2_parallelism,
        )
        store = create_store(config.database_url)

        redis_client = None
        if config.redis_url:
            redis_client = aioredis.from_url(
                config.redis_url,
                max_connections=config.redis_max_connections,
                socket_timeout=config.redis_socket_timeout,
                socket_connect_timeout=config.redis_socket_timeout,
                retry_on_timeout=True,
                decode_responses=False,
            )
            cache_backend: CacheBackend = RedisBackend(config.redis_url, client=redis_client)
            lock: DistributedLock = RedisLock(redis_client)
            windows = RedisWindowStore(redis_client)
        else:
            cache_backend = MemoryBackend()
            lock = MemoryLock()
            windows = MemoryWindowStore()

        limiter = SlidingWindowRateLimiter(
            windows,
            max_requests=config.rate_limit_max,
            window=config.rate_limit_window,
        )
        return cls(
            codec=codec,
            store=store,
            cache_backend=cache_backend,
            lock=lock,
            limiter=limiter,
            cache_ttl=config.cache_ttl,
            lock_ttl=config.lock_ttl,
            sweep_interval=config.sweep_interval,
            redis_client=redis_client,
        )

    async def initialize(self, start_sweeper: bool = True) -> None:
        if self._initialized:
            return
        await self.store.initialize()
        await self.cache_backend.initialize()
        await self.lock.initialize()
        if self.sweeper is not None and start_sweeper:
            self.sweeper.start()
        self._initialized = True
        logger.info(f"Key service ready (cache={self.cache_backend.name})")

    async def shutdown(self) -> None:
        if self.sweeper is not None:
            await self.sweeper.stop()
        await self.lock.shutdown()
        await self.cache_backend.shutdown()
        await self.store.shutdown()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._initialized = False
        logger.info("Key service stopped")

    async def __aenter__(self) -> "KeyService":
        await self.initialize()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.shutdown()

    # ── Boundary operations ─────────────────────────────────────────

    async def publish(
        self,
        item_key: str,
        permissions: list[str],
        expires_at: datetime | str,
        max_uses: int,
    ) -> Outcome[PublishedCredential]:
        return await self.publisher.publish(item_key, permissions, expires_at, max_uses)

    async def validate(self, secret: str, caller: Optional[str] = None) -> Outcome[ValidationGrant]:
        return await self.validator.validate(secret, caller)

    async def revoke(self, ref: str) -> Outcome[Dict[str, Any]]:
        return await self.admin.revoke(ref)

    async def health_check(self) -> Dict[str, Any]:
        """Check store and cache, and attach the in-process counters."""
        store_ok = await self.store.health_check()
        cache_ok = await self.cache.health_check()
        cache_stats = await self.cache_backend.stats()
        return {
            "status": "healthy" if store_ok and cache_ok else "unhealthy",
            "services": {
                "store": "up" if store_ok else "down",
                "cache": "up" if cache_ok else "down",
            },
            "cache": cache_stats.to_dict(),
            "metrics": self.metrics.snapshot(),
            "timestamp": utcnow().isoformat(),
        }
