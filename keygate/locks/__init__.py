"""
Keygate Locks - per-resource exclusion for validations.
"""

from .core import DEFAULT_LOCK_TTL, DistributedLock, short_resource
from .memory import MemoryLock
from .redis import LOCK_PREFIX, RedisLock

__all__ = [
    "DEFAULT_LOCK_TTL",
    "LOCK_PREFIX",
    "DistributedLock",
    "MemoryLock",
    "RedisLock",
    "short_resource",
]
