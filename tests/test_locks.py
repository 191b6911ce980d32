"""
Tests for the per-resource validation locks.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from keygate.faults import LockAcquisitionFault
from keygate.locks import LOCK_PREFIX, MemoryLock, RedisLock, short_resource

from conftest import FakeTimer


class TestMemoryLock:

    @pytest.mark.asyncio
    async def test_acquire_excludes_second_holder(self, lock):
        token = await lock.acquire("res", ttl=10)
        assert token is not None
        assert await lock.acquire("res", ttl=10) is None
        assert await lock.acquire("other", ttl=10) is not None

    @pytest.mark.asyncio
    async def test_release_requires_matching_token(self, lock):
        token = await lock.acquire("res")
        assert await lock.release("res", "not-the-token") is False
        assert lock.is_held("res")
        assert await lock.release("res", token) is True
        assert not lock.is_held("res")
        assert await lock.release("res", token) is False

    @pytest.mark.asyncio
    async def test_expired_lock_can_be_retaken(self):
        timer = FakeTimer(0.0)
        lock = MemoryLock(clock=timer)
        first = await lock.acquire("res", ttl=5)
        timer.advance(5)
        second = await lock.acquire("res", ttl=5)
        assert second is not None and second != first
        # The stale holder must not release the new claim
        assert await lock.release("res", first) is False
        assert lock.is_held("res")

    @pytest.mark.asyncio
    async def test_rejects_non_positive_ttl(self, lock):
        with pytest.raises(ValueError):
            await lock.acquire("res", ttl=0)


class TestHold:

    @pytest.mark.asyncio
    async def test_releases_on_normal_exit(self, lock):
        async with lock.hold("res") as token:
            assert token
            assert lock.is_held("res")
        assert not lock.is_held("res")

    @pytest.mark.asyncio
    async def test_releases_on_exception(self, lock):
        with pytest.raises(RuntimeError):
            async with lock.hold("res"):
                raise RuntimeError("boom")
        assert not lock.is_held("res")

    @pytest.mark.asyncio
    async def test_contended(self, lock):
        await lock.acquire("res")
        with pytest.raises(LockAcquisitionFault) as exc_info:
            async with lock.hold("res"):
                pass
        assert exc_info.value.metadata["reason"] == "contended"

    @pytest.mark.asyncio
    async def test_unreachable_service_fails_closed(self, lock):
        lock.acquire = AsyncMock(side_effect=ConnectionError("down"))
        with pytest.raises(LockAcquisitionFault) as exc_info:
            async with lock.hold("res"):
                pytest.fail("body must not run")
        assert exc_info.value.metadata["reason"] == "unavailable"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_release_error_does_not_mask_body(self, lock):
        lock.release = AsyncMock(side_effect=ConnectionError("down"))
        async with lock.hold("res") as token:
            result = token
        assert result
        lock.release.assert_awaited_once()


class TestRedisLock:

    def _client(self, set_result=True, eval_result=1):
        client = MagicMock()
        client.set = AsyncMock(return_value=set_result)
        client.eval = AsyncMock(return_value=eval_result)
        return client

    @pytest.mark.asyncio
    async def test_acquire_uses_set_nx_px(self):
        client = self._client()
        token = await RedisLock(client).acquire("validate:abc", ttl=10)
        assert token
        client.set.assert_awaited_once_with(
            f"{LOCK_PREFIX}validate:abc", token, nx=True, px=10000
        )

    @pytest.mark.asyncio
    async def test_acquire_contended(self):
        client = self._client(set_result=None)
        assert await RedisLock(client).acquire("res") is None

    @pytest.mark.asyncio
    async def test_release_is_compare_and_delete(self):
        client = self._client(eval_result=0)
        assert await RedisLock(client).release("res", "tok") is False
        script, numkeys, key, token = client.eval.await_args.args
        assert "GET" in script and "DEL" in script
        assert (numkeys, key, token) == (1, f"{LOCK_PREFIX}res", "tok")

    @pytest.mark.asyncio
    async def test_hold_round_trip(self):
        client = self._client()
        async with RedisLock(client).hold("res"):
            pass
        client.eval.assert_awaited_once()


def test_short_resource_hides_tail():
    assert short_resource("validate:abcdefghijklmnopqrstuvwxyz") == "validate:abcdefg..."
    assert short_resource("short") == "short"
