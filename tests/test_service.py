"""
Tests for the KeyService facade and its config wiring.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from keygate.cache import MemoryBackend, RedisBackend
from keygate.config import KeygateConfig
from keygate.credentials import utcnow
from keygate.faults import FaultKind
from keygate.locks import MemoryLock, RedisLock
from keygate.ratelimit import MemoryWindowStore, RedisWindowStore
from keygate.service import KeyService
from keygate.stores import MemoryRecordStore, SQLiteRecordStore

from conftest import FAST_ARGON2


def fast_config(**overrides) -> KeygateConfig:
    data = dict(
        database_url="memory://",
        argon2_time_cost=FAST_ARGON2["time_cost"],
        argon2_memory_cost=FAST_ARGON2["memory_cost"],
        argon2_parallelism=FAST_ARGON2["parallelism"],
    )
    data.update(overrides)
    return KeygateConfig(**data)


class TestWiring:

    def test_in_process_backends(self):
        service = KeyService.from_config(fast_config(rate_limit_max=7))
        assert isinstance(service.store, MemoryRecordStore)
        assert isinstance(service.cache_backend, MemoryBackend)
        assert isinstance(service.lock, MemoryLock)
        assert isinstance(service.limiter.store, MemoryWindowStore)
        assert service.limiter.max_requests == 7
        assert service.sweeper is not None

    def test_sqlite_store(self, tmp_path):
        service = KeyService.from_config(fast_config(database_url=f"sqlite:///{tmp_path / 'k.db'}"))
        assert isinstance(service.store, SQLiteRecordStore)

    @pytest.mark.asyncio
    async def test_redis_backends_share_one_client(self, monkeypatch):
        client = MagicMock()
        client.aclose = AsyncMock()
        from_url = MagicMock(return_value=client)
        monkeypatch.setattr("keygate.service.aioredis.from_url", from_url)

        service = KeyService.from_config(fast_config(redis_url="redis://cache:6379/0"))

        from_url.assert_called_once()
        assert isinstance(service.cache_backend, RedisBackend)
        assert isinstance(service.lock, RedisLock)
        assert isinstance(service.limiter.store, RedisWindowStore)
        assert service.lock._redis is client
        assert service.limiter.store._redis is client

        await service.shutdown()
        client.aclose.assert_awaited_once()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_end_to_end(self):
        async with KeyService.from_config(fast_config()) as service:
            assert service.sweeper.running

            published = (
                await service.publish(
                    "app://users/u1", ["read"], utcnow() + timedelta(hours=1), 2
                )
            ).unwrap()

            assert (await service.validate(published.secret, "alice")).value.used_count == 1
            assert (await service.validate(published.secret, "alice")).value.used_count == 2
            assert (await service.validate(published.secret, "alice")).kind is FaultKind.USAGE_LIMIT

            assert (await service.revoke(published.id)).ok
            assert service.metrics.published == 1
            assert service.metrics.validated == 2

        assert service.sweeper.running is False

    @pytest.mark.asyncio
    async def test_initialize_without_sweeper(self):
        service = KeyService.from_config(fast_config())
        await service.initialize(start_sweeper=False)
        try:
            assert not service.sweeper.running
        finally:
            await service.shutdown()


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self):
        async with KeyService.from_config(fast_config()) as service:
            report = await service.health_check()
        assert report["status"] == "healthy"
        assert report["services"] == {"store": "up", "cache": "up"}
        assert "timestamp" in report

    @pytest.mark.asyncio
    async def test_reports_counters(self):
        async with KeyService.from_config(fast_config()) as service:
            published = (
                await service.publish(
                    "app://users/u1", ["read"], utcnow() + timedelta(hours=1), 5
                )
            ).unwrap()
            await service.validate(published.secret)
            await service.validate(published.secret)
            report = await service.health_check()

        assert report["metrics"]["keys_published"] == 1
        assert report["metrics"]["keys_validated"] == 2
        assert report["metrics"]["cache_hits"] == 1
        assert report["cache"]["backend"] == "memory"
        assert report["cache"]["sets"] == 1
        assert report["cache"]["size"] == 1

    @pytest.mark.asyncio
    async def test_cache_down(self):
        async with KeyService.from_config(fast_config()) as service:
            service.cache_backend.health_check = AsyncMock(return_value=False)
            report = await service.health_check()
        assert report["status"] == "unhealthy"
        assert report["services"]["cache"] == "down"
        assert report["services"]["store"] == "up"
