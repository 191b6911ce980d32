"""
Keygate Rate Limiting - Redis window store.

One MULTI/EXEC pipeline per check:
ZREMRANGEBYSCORE, ZCARD, ZADD, PEXPIRE, ZRANGE 0 0.
"""

from __future__ import annotations

import math
import secrets
from typing import Any, Optional, Tuple

from .core import WindowStore

KEY_PREFIX = "keygate:"


def _oldest(entries: Any) -> Optional[float]:
    if not entries:
        return None
    return float(entries[0][1])


class RedisWindowStore(WindowStore):
    """Sorted sets scored by request time, one per identity."""

    def __init__(self, client: Any, prefix: str = KEY_PREFIX):
        self._redis = client
        self.prefix = prefix

    async def record(self, key: str, now: float, window: float) -> Tuple[int, Optional[float]]:
        full_key = f"{self.prefix}{key}"
        member = f"{now}-{secrets.token_hex(4)}"
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(full_key, 0, now - window)
        pipe.zcard(full_key)
        pipe.zadd(full_key, {member: now})
        pipe.pexpire(full_key, max(1, math.ceil(window * 1000)))
        pipe.zrange(full_key, 0, 0, withscores=True)
        results = await pipe.execute()
        return int(results[1]), _oldest(results[4])

    async def peek(self, key: str, now: float, window: float) -> Tuple[int, Optional[float]]:
        full_key = f"{self.prefix}{key}"
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(full_key, 0, now - window)
        pipe.zcard(full_key)
        pipe.zrange(full_key, 0, 0, withscores=True)
        results = await pipe.execute()
        return int(results[1]), _oldest(results[2])
