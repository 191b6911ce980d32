"""
Keygate Rate Limiting - Sliding window limiter.

Exact sliding window: every request timestamp is kept in an ordered set
per caller identity. On each check the set is pruned to the window,
counted, and the new request is added, all in one atomic step of the
window store. A request is rejected when the pre-insert count is already
at the ceiling; rejected requests are still recorded.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..faults import RateLimitFault

logger = logging.getLogger("keygate.ratelimit")

RATE_PREFIX = "ratelimit:"


@dataclass(frozen=True)
class RateDecision:
    """Result of one rate check."""
    allowed: bool
    count: int
    limit: int
    retry_after: float = 0.0


class WindowStore(ABC):
    """Ordered-set storage of request timestamps (seconds) per key."""

    @abstractmethod
    async def record(self, key: str, now: float, window: float) -> Tuple[int, Optional[float]]:
        """
        Atomically prune entries older than ``now - window``, count what is
        left, add ``now``, and refresh the key's expiry to ``window``.

        Returns (count before insert, oldest surviving timestamp or None).
        """

    @abstractmethod
    async def peek(self, key: str, now: float, window: float) -> Tuple[int, Optional[float]]:
        """Same count as ``record`` without adding an entry."""


class SlidingWindowRateLimiter:
    """
    Per-identity request ceiling over a rolling window.

    Attributes:
        max_requests: Requests allowed per window.
        window: Window duration in seconds.
    """

    def __init__(
        self,
        store: WindowStore,
        max_requests: int = 100,
        window: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self.store = store
        self.max_requests = max_requests
        self.window = window
        self._clock = clock

    def _key(self, identity: str) -> str:
        return f"{RATE_PREFIX}{identity}"

    async def check(self, identity: str) -> RateDecision:
        """Record a request for ``identity`` and decide whether it may proceed."""
        now = self._clock()
        count, oldest = await self.store.record(self._key(identity), now, self.window)
        if count >= self.max_requests:
            retry_after = (oldest + self.window - now) if oldest is not None else self.window
            logger.warning(
                f"Rate limit exceeded for {identity}: {count}/{self.max_requests} "
                f"in {self.window:g}s"
            )
            return RateDecision(False, count, self.max_requests, max(0.0, retry_after))
        return RateDecision(True, count, self.max_requests)

    async def enforce(self, identity: str) -> RateDecision:
        """``check`` that raises RateLimitFault on rejection."""
        decision = await self.check(identity)
        if not decision.allowed:
            raise RateLimitFault(identity, self.max_requests, self.window, decision.retry_after)
        return decision

    async def usage(self, identity: str) -> Tuple[int, float]:
        """Current occupancy of the window and the epoch second it resets."""
        now = self._clock()
        count, oldest = await self.store.peek(self._key(identity), now, self.window)
        reset_at = (oldest if oldest is not None else now) + self.window
        return count, reset_at
