"""
Keygate Cache - Credential cache-aside layer.

Mirrors hot credential records keyed by the raw secret. Entries are
advisory: the validator re-verifies and re-checks expiry on every hit.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..credentials.codec import redact
from ..credentials.core import CachedCredential
from .core import CacheBackend

logger = logging.getLogger("keygate.cache")

KEY_PREFIX = "keygate:api_key:"
DEFAULT_TTL = 900


class CredentialCache:
    """Typed view over a CacheBackend for credential projections."""

    def __init__(self, backend: CacheBackend, ttl: float = DEFAULT_TTL, prefix: str = KEY_PREFIX):
        if ttl <= 0:
            raise ValueError("cache ttl must be positive")
        self.backend = backend
        self.ttl = ttl
        self.prefix = prefix

    def key_for(self, secret: str) -> str:
        return f"{self.prefix}{secret}"

    async def get(self, secret: str) -> Optional[CachedCredential]:
        """
        Cached projection for a secret.

        An undecodable entry is evicted and reported as a miss.
        """
        document = await self.backend.get(self.key_for(secret))
        if document is None:
            return None
        try:
            return CachedCredential.from_dict(document)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping undecodable cache entry for {redact(secret)}: {e}")
            await self.backend.delete(self.key_for(secret))
            return None

    async def put(self, secret: str, projection: CachedCredential, ttl: Optional[float] = None) -> None:
        await self.backend.set(self.key_for(secret), projection.to_dict(), ttl or self.ttl)

    async def increment_usage(self, secret: str) -> Optional[int]:
        """Bump the cached ``used_count``; None if the entry is gone."""
        return await self.backend.increment_field(self.key_for(secret), "used_count", 1)

    async def evict(self, secret: str) -> bool:
        return await self.backend.delete(self.key_for(secret))

    async def health_check(self) -> bool:
        return await self.backend.health_check()
