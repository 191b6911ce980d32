"""
Keygate Stores - Record store capability interface.

Any durable backend satisfying ``RecordStore`` can sit under the
pipelines. Two ship with the package: ``MemoryRecordStore`` for tests and
single-process use, ``SQLiteRecordStore`` for durable storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from ..credentials.core import CredentialRecord


@dataclass
class StoreStats:
    """Aggregate counts over every stored record."""
    total_keys: int = 0
    active_keys: int = 0
    expired_keys: int = 0
    exhausted_keys: int = 0
    top_items: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_keys": self.total_keys,
            "active_keys": self.active_keys,
            "expired_keys": self.expired_keys,
            "exhausted_keys": self.exhausted_keys,
            "top_items": list(self.top_items),
        }


@runtime_checkable
class RecordStore(Protocol):
    """Durable storage of credential records."""

    async def initialize(self) -> None:
        """Open connections and create schema."""
        ...

    async def shutdown(self) -> None:
        """Release connections."""
        ...

    async def health_check(self) -> bool:
        """True when the backend answers."""
        ...

    async def create(self, record: CredentialRecord) -> CredentialRecord:
        """Persist a new record. Raises DuplicateFault on verifier collision."""
        ...

    async def exists(self, verifier: str) -> bool:
        """True if a record with this verifier is stored."""
        ...

    async def find_by_fingerprint(self, fingerprint: str) -> list[CredentialRecord]:
        """Every record sharing the fingerprint, oldest first."""
        ...

    async def find_by_verifier(self, verifier: str) -> CredentialRecord | None:
        ...

    async def find_by_ref(self, ref: str) -> CredentialRecord | None:
        """Look up a record by verifier or by id."""
        ...

    async def find_by_item_key(self, item_key: str) -> list[CredentialRecord]:
        """Records for an item, newest first; ties ordered by id."""
        ...

    async def increment_usage(self, verifier: str, now: datetime) -> CredentialRecord | None:
        """
        Atomically add one use.

        Applies only while the record is unexpired at ``now`` and has uses
        left. Returns the updated record, or None when nothing was changed.
        """
        ...

    async def revoke(self, ref: str, now: datetime) -> CredentialRecord | None:
        """Set ``expires_at`` to ``now``. Returns None if no record matches."""
        ...

    async def delete_expired(self, now: datetime) -> int:
        """Remove records expired at ``now``; returns how many went."""
        ...

    async def stats(self, now: datetime, top: int = 10) -> StoreStats:
        ...
