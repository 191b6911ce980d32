"""
Keygate Stores - durable credential record storage.
"""

from .base import RecordStore, StoreStats
from .memory import MemoryRecordStore
from .sqlite import SQLiteRecordStore
from .sweeper import ExpirySweeper


def create_store(url: str) -> RecordStore:
    """
    Build a record store from a URL.

    ``memory://`` gives a MemoryRecordStore; ``sqlite:///path`` (or
    ``sqlite://`` for an in-memory database) a SQLiteRecordStore.
    """
    if url.startswith("memory:"):
        return MemoryRecordStore()
    if url.startswith("sqlite:"):
        return SQLiteRecordStore(url)
    raise ValueError(f"Unsupported database URL scheme: {url.split(':', 1)[0]}")


__all__ = [
    "ExpirySweeper",
    "MemoryRecordStore",
    "RecordStore",
    "SQLiteRecordStore",
    "StoreStats",
    "create_store",
]
