"""
Keygate Stores - In-memory record store.

For development, tests and single-process deployments. Records are held in
dicts guarded by an asyncio.Lock; nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, defaultdict
from dataclasses import replace
from datetime import datetime

from ..credentials.core import CredentialRecord
from ..faults import DuplicateFault
from .base import StoreStats

logger = logging.getLogger("keygate.stores.memory")


def _detached(record: CredentialRecord) -> CredentialRecord:
    return replace(record, permissions=list(record.permissions))


class MemoryRecordStore:
    """In-memory credential record storage."""

    def __init__(self):
        self._records: dict[str, CredentialRecord] = {}
        self._by_id: dict[str, str] = {}
        self._by_fingerprint: dict[str, list[str]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True

    async def create(self, record: CredentialRecord) -> CredentialRecord:
        async with self._lock:
            if record.verifier in self._records or record.id in self._by_id:
                raise DuplicateFault()
            self._records[record.verifier] = _detached(record)
            self._by_id[record.id] = record.verifier
            self._by_fingerprint[record.fingerprint].append(record.verifier)
            return record

    async def exists(self, verifier: str) -> bool:
        return verifier in self._records

    async def find_by_fingerprint(self, fingerprint: str) -> list[CredentialRecord]:
        return [
            _detached(self._records[v])
            for v in self._by_fingerprint.get(fingerprint, [])
            if v in self._records
        ]

    async def find_by_verifier(self, verifier: str) -> CredentialRecord | None:
        record = self._records.get(verifier)
        return _detached(record) if record else None

    async def find_by_ref(self, ref: str) -> CredentialRecord | None:
        record = self._lookup(ref)
        return _detached(record) if record else None

    async def find_by_item_key(self, item_key: str) -> list[CredentialRecord]:
        matches = sorted((r for r in self._records.values() if r.item_key == item_key), key=lambda r: r.id)
        matches.sort(key=lambda r: r.published_at, reverse=True)
        return [_detached(r) for r in matches]

    async def increment_usage(self, verifier: str, now: datetime) -> CredentialRecord | None:
        async with self._lock:
            record = self._records.get(verifier)
            if record is None or record.is_expired(now) or record.is_exhausted:
                return None
            record.used_count += 1
            return _detached(record)

    async def revoke(self, ref: str, now: datetime) -> CredentialRecord | None:
        async with self._lock:
            record = self._lookup(ref)
            if record is None:
                return None
            record.expires_at = now
            return _detached(record)

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [r for r in self._records.values() if r.is_expired(now)]
            for record in expired:
                del self._records[record.verifier]
                self._by_id.pop(record.id, None)
                bucket = self._by_fingerprint.get(record.fingerprint, [])
                if record.verifier in bucket:
                    bucket.remove(record.verifier)
                if not bucket:
                    self._by_fingerprint.pop(record.fingerprint, None)
            if expired:
                logger.debug(f"Removed {len(expired)} expired records")
            return len(expired)

    async def stats(self, now: datetime, top: int = 10) -> StoreStats:
        records = list(self._records.values())
        expired = sum(1 for r in records if r.is_expired(now))
        exhausted = sum(1 for r in records if r.is_exhausted)
        active = sum(1 for r in records if not r.is_expired(now) and not r.is_exhausted)
        counts = Counter(r.item_key for r in records)
        return StoreStats(
            total_keys=len(records),
            active_keys=active,
            expired_keys=expired,
            exhausted_keys=exhausted,
            top_items=[
                {"item_key": item_key, "key_count": count}
                for item_key, count in counts.most_common(top)
            ],
        )

    def _lookup(self, ref: str) -> CredentialRecord | None:
        record = self._records.get(ref)
        if record is None and ref in self._by_id:
            record = self._records.get(self._by_id[ref])
        return record
