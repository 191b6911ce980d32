"""
Shared test fixtures and helpers for the Keygate test suite.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

from keygate.cache import CredentialCache, MemoryBackend
from keygate.credentials import CredentialCodec
from keygate.locks import MemoryLock
from keygate.metrics import KeyMetrics
from keygate.pipeline import Publisher, Validator
from keygate.ratelimit import MemoryWindowStore, SlidingWindowRateLimiter
from keygate.stores import MemoryRecordStore, SQLiteRecordStore

EPOCH = datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

# Argon2 parameters lowered so each hash takes milliseconds
FAST_ARGON2 = {"time_cost": 1, "memory_cost": 1024, "parallelism": 1}


# ============================================================================
# Clocks
# ============================================================================


class FakeClock:
    """Settable UTC clock for the pipelines."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeTimer:
    """Settable epoch-seconds clock for the rate limiter."""

    def __init__(self, start: float = 1_900_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Components
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def codec():
    return CredentialCodec(**FAST_ARGON2)


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    s = SQLiteRecordStore(f"sqlite:///{tmp_path / 'keys.db'}")
    await s.initialize()
    yield s
    await s.shutdown()


@pytest.fixture
def cache_backend():
    return MemoryBackend()


@pytest.fixture
def cache(cache_backend):
    return CredentialCache(cache_backend, ttl=900)


@pytest.fixture
def lock():
    return MemoryLock()


@pytest.fixture
def metrics():
    return KeyMetrics()


@pytest.fixture
def limiter(timer):
    return SlidingWindowRateLimiter(MemoryWindowStore(), max_requests=100, window=60.0, clock=timer)


@pytest.fixture
def publisher(codec, store, metrics, clock):
    return Publisher(codec, store, metrics=metrics, clock=clock)


@pytest.fixture
def validator(codec, store, cache, lock, limiter, metrics, clock):
    return Validator(codec, store, cache, lock, limiter=limiter, metrics=metrics, clock=clock)


# ============================================================================
# Helpers
# ============================================================================


async def publish_key(
    publisher: Publisher,
    clock: FakeClock,
    *,
    item_key: str = "app://users/u1",
    permissions: Optional[list] = None,
    ttl: float = 3600,
    max_uses: int = 2,
):
    """Publish through the pipeline and return the PublishedCredential."""
    outcome = await publisher.publish(
        item_key,
        permissions or ["read"],
        clock() + timedelta(seconds=ttl),
        max_uses,
    )
    assert outcome.ok, outcome.fault
    return outcome.value
