"""
Keygate Locks - In-process lock table.

Same contract as the Redis lock, for single-process deployments and tests.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from typing import Callable, Dict, Optional, Tuple

from .core import DEFAULT_LOCK_TTL, DistributedLock


class MemoryLock(DistributedLock):
    """Dict of resource -> (token, deadline) behind an asyncio.Lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._held: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def acquire(self, resource: str, ttl: float = DEFAULT_LOCK_TTL) -> Optional[str]:
        if ttl <= 0:
            raise ValueError("lock ttl must be positive")
        async with self._lock:
            now = self._clock()
            current = self._held.get(resource)
            if current is not None and current[1] > now:
                return None
            token = secrets.token_hex(16)
            self._held[resource] = (token, now + ttl)
            return token

    async def release(self, resource: str, token: str) -> bool:
        async with self._lock:
            current = self._held.get(resource)
            if current is None or current[0] != token or current[1] <= self._clock():
                return False
            del self._held[resource]
            return True

    def is_held(self, resource: str) -> bool:
        current = self._held.get(resource)
        return current is not None and current[1] > self._clock()
