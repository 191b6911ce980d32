"""
Keygate Locks - Redis lock.

Acquire is ``SET key token NX PX ttl``; release is a Lua compare-and-delete
so a lock that expired and was re-taken by someone else is left alone.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from .core import DEFAULT_LOCK_TTL, DistributedLock, short_resource

logger = logging.getLogger("keygate.locks.redis")

LOCK_PREFIX = "keygate:lock:"

_RELEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisLock(DistributedLock):
    """Single-instance Redis lock over a shared redis.asyncio client."""

    def __init__(self, client: Any, prefix: str = LOCK_PREFIX):
        self._redis = client
        self.prefix = prefix

    def _key(self, resource: str) -> str:
        return f"{self.prefix}{resource}"

    async def acquire(self, resource: str, ttl: float = DEFAULT_LOCK_TTL) -> Optional[str]:
        if ttl <= 0:
            raise ValueError("lock ttl must be positive")
        token = secrets.token_hex(16)
        acquired = await self._redis.set(
            self._key(resource), token, nx=True, px=max(1, int(ttl * 1000))
        )
        if not acquired:
            return None
        logger.debug(f"Lock acquired: {short_resource(resource)}")
        return token

    async def release(self, resource: str, token: str) -> bool:
        result = await self._redis.eval(_RELEASE, 1, self._key(resource), token)
        return bool(result)
