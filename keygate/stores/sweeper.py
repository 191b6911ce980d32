"""
Keygate Stores - Expiry sweeper.

Background task that periodically removes expired records from a store
that has no native time-based expiry.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..credentials.core import utcnow
from .base import RecordStore

logger = logging.getLogger("keygate.sweeper")


class ExpirySweeper:
    """Runs ``store.delete_expired(now)`` every ``interval`` seconds."""

    def __init__(
        self,
        store: RecordStore,
        interval: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.store = store
        self.interval = interval
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.total_swept = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Expiry sweeper started (interval={self.interval}s)")

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def sweep_once(self) -> int:
        """Remove everything expired right now."""
        deleted = await self.store.delete_expired(self._clock())
        self.total_swept += deleted
        if deleted:
            logger.info(f"Expiry sweep removed {deleted} records")
        return deleted

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval)
                await self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Expiry sweep failed")
