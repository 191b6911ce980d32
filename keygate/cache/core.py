"""
Keygate Cache - Core types and backend interface.

Defines:
- CacheStats: counters for observability
- CacheBackend: abstract interface every backend implements
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


# ============================================================================
# Cache Stats
# ============================================================================

@dataclass
class CacheStats:
    """Aggregate cache statistics for observability."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    errors: int = 0
    size: int = 0
    backend: str = "unknown"

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 2),
            "size": self.size,
            "backend": self.backend,
        }


class CacheBackend(ABC):
    """
    Abstract cache backend.

    Values are JSON-compatible documents. Transport failures propagate to
    the caller; the cache layer above decides which of them are fatal.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections, start background tasks."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Close connections, stop background tasks."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored document, or None on miss or expiry."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a document, replacing any previous one, with optional TTL in seconds."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def increment_field(self, key: str, field: str, delta: int = 1) -> Optional[int]:
        """
        Atomically add ``delta`` to an integer field of a stored document.

        The entry keeps its remaining TTL. Returns the new value, or None
        if the key is absent.
        """

    @abstractmethod
    async def stats(self) -> CacheStats:
        ...

    async def health_check(self) -> bool:
        """True when the backend answers."""
        try:
            await self.exists("__health__")
            return True
        except Exception:
            return False

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier."""
