"""
Keygate Locks - Distributed lock interface.

A lock is a TTL-bound exclusive claim on a resource name. Acquire is a
single non-blocking attempt; release only succeeds for the token that
acquired it. ``hold()`` wraps both so the release runs on every exit path.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ..faults import LockAcquisitionFault

logger = logging.getLogger("keygate.locks")

DEFAULT_LOCK_TTL = 10.0


def short_resource(resource: str, visible: int = 16) -> str:
    """Resource names embed secrets, so logs only get a prefix."""
    if len(resource) <= visible:
        return resource
    return f"{resource[:visible]}..."


class DistributedLock(ABC):
    """Non-blocking exclusion primitive keyed by resource name."""

    @abstractmethod
    async def acquire(self, resource: str, ttl: float = DEFAULT_LOCK_TTL) -> Optional[str]:
        """
        Try once to take the lock.

        Returns a random token on success, None when the lock is held.
        """

    @abstractmethod
    async def release(self, resource: str, token: str) -> bool:
        """Delete the lock only if it still carries ``token``."""

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    @asynccontextmanager
    async def hold(self, resource: str, ttl: float = DEFAULT_LOCK_TTL) -> AsyncIterator[str]:
        """
        Scoped acquisition.

        Raises LockAcquisitionFault if the lock is taken or the lock service
        cannot be reached. The lock is released however the block exits.
        """
        try:
            token = await self.acquire(resource, ttl)
        except LockAcquisitionFault:
            raise
        except Exception as e:
            logger.error(f"Lock service error acquiring {short_resource(resource)}: {e}")
            raise LockAcquisitionFault(metadata={"reason": "unavailable"}) from e

        if token is None:
            logger.debug(f"Lock contended: {short_resource(resource)}")
            raise LockAcquisitionFault(metadata={"reason": "contended"})

        try:
            yield token
        finally:
            try:
                released = await self.release(resource, token)
            except Exception as e:
                # TTL expiry reclaims the lock
                logger.warning(f"Lock release error for {short_resource(resource)}: {e}")
            else:
                if not released:
                    logger.warning(
                        f"Lock {short_resource(resource)} was no longer held at release"
                    )
