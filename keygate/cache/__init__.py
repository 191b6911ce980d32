"""
Keygate Cache - ephemeral mirror of hot credential records.

Core exports:
- CacheBackend / CacheStats: backend interface
- MemoryBackend / RedisBackend: implementations
- CredentialCache: typed cache-aside layer used by the validator
"""

from .backends import MemoryBackend, RedisBackend
from .core import CacheBackend, CacheStats
from .credentials import KEY_PREFIX, CredentialCache
from .serializers import JsonCacheSerializer

__all__ = [
    "KEY_PREFIX",
    "CacheBackend",
    "CacheStats",
    "CredentialCache",
    "JsonCacheSerializer",
    "MemoryBackend",
    "RedisBackend",
]
