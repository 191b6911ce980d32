"""
Keygate - Administrative operations.

Listing, per-key statistics, revocation and expiry cleanup over the record
store. Results come back as ``Outcome`` values carrying plain dicts, ready
for the response envelope. Records are addressed by verifier or by id;
verifiers are never included in output.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from .credentials.core import CredentialRecord, utcnow
from .faults import CredentialFault, InternalFault, NotFoundFault, Outcome
from .stores.base import RecordStore

logger = logging.getLogger("keygate.admin")

TOP_ITEMS = 10


def summarize(record: CredentialRecord, now: datetime) -> Dict[str, Any]:
    """Public view of a record."""
    return {
        "id": record.id,
        "item_key": record.item_key,
        "permissions": list(record.permissions),
        "published_at": record.published_at.isoformat(),
        "expires_at": record.expires_at.isoformat(),
        "used_count": record.used_count,
        "max_uses": record.max_uses,
        "is_expired": record.is_expired(now),
        "is_exhausted": record.is_exhausted,
    }


class AdminService:
    """Operator-facing queries and mutations."""

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    async def _run(self, operation: str, coro) -> Outcome[Dict[str, Any]]:
        try:
            return Outcome.success(await coro)
        except CredentialFault as fault:
            logger.warning(f"{operation} rejected: {fault}")
            return Outcome.failure(fault)
        except Exception as e:
            logger.exception(f"{operation} failed")
            return Outcome.failure(InternalFault(e, operation=operation))

    async def list_keys_by_item(self, item_key: str) -> Outcome[Dict[str, Any]]:
        return await self._run("list_keys_by_item", self._list_keys_by_item(item_key))

    async def _list_keys_by_item(self, item_key: str) -> Dict[str, Any]:
        now = self._clock()
        records = await self.store.find_by_item_key(item_key)
        return {
            "item_key": item_key,
            "count": len(records),
            "keys": [summarize(r, now) for r in records],
        }

    async def key_stats(self, ref: str) -> Outcome[Dict[str, Any]]:
        return await self._run("key_stats", self._key_stats(ref))

    async def _key_stats(self, ref: str) -> Dict[str, Any]:
        record = await self.store.find_by_ref(ref)
        if record is None:
            raise NotFoundFault()
        now = self._clock()
        return {
            "id": record.id,
            "used_count": record.used_count,
            "max_uses": record.max_uses,
            "remaining_uses": record.remaining_uses,
            "expires_at": record.expires_at.isoformat(),
            "is_expired": record.is_expired(now),
            "is_exhausted": record.is_exhausted,
            "utilization_rate": round(record.used_count / record.max_uses * 100, 2),
        }

    async def cleanup_expired(self) -> Outcome[Dict[str, Any]]:
        return await self._run("cleanup_expired", self._cleanup_expired())

    async def _cleanup_expired(self) -> Dict[str, Any]:
        deleted = await self.store.delete_expired(self._clock())
        logger.info(f"Deleted {deleted} expired API key(s)")
        return {"deleted_count": deleted}

    async def overall_stats(self) -> Outcome[Dict[str, Any]]:
        return await self._run("overall_stats", self._overall_stats())

    async def _overall_stats(self) -> Dict[str, Any]:
        stats = await self.store.stats(self._clock(), top=TOP_ITEMS)
        return stats.to_dict()

    async def revoke(self, ref: str) -> Outcome[Dict[str, Any]]:
        return await self._run("revoke", self._revoke(ref))

    async def _revoke(self, ref: str) -> Dict[str, Any]:
        now = self._clock()
        record = await self.store.revoke(ref, now)
        if record is None:
            raise NotFoundFault()
        logger.info(f"Revoked key id={record.id}")
        return {"id": record.id, "revoked_at": record.expires_at.isoformat()}
