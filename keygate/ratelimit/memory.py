"""
Keygate Rate Limiting - In-memory window store.
"""

from __future__ import annotations

import asyncio
import bisect
from typing import Dict, List, Optional, Tuple

from .core import WindowStore


class MemoryWindowStore(WindowStore):
    """
    Sorted timestamp lists per key.

    Keys whose newest entry is older than the window are dropped, mirroring
    the Redis key expiry. The sweep over idle keys runs at most once per
    window.
    """

    def __init__(self):
        self._windows: Dict[str, List[float]] = {}
        self._expiry: Dict[str, float] = {}
        self._next_sweep = 0.0
        self._lock = asyncio.Lock()

    def _sweep_idle(self, now: float, window: float) -> None:
        if now < self._next_sweep:
            return
        for stale in [k for k, deadline in self._expiry.items() if deadline <= now]:
            self._windows.pop(stale, None)
            self._expiry.pop(stale, None)
        self._next_sweep = now + window

    def _prune(self, key: str, now: float, window: float) -> List[float]:
        self._sweep_idle(now, window)
        entries = self._windows.get(key, [])
        cutoff = bisect.bisect_right(entries, now - window)
        if cutoff:
            del entries[:cutoff]
        return entries

    async def record(self, key: str, now: float, window: float) -> Tuple[int, Optional[float]]:
        async with self._lock:
            entries = self._prune(key, now, window)
            count = len(entries)
            bisect.insort(entries, now)
            self._windows[key] = entries
            self._expiry[key] = now + window
            return count, entries[0]

    async def peek(self, key: str, now: float, window: float) -> Tuple[int, Optional[float]]:
        async with self._lock:
            entries = self._prune(key, now, window)
            return len(entries), (entries[0] if entries else None)
