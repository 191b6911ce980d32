"""
Keygate Pipeline - Publisher.

Issuance flow:
1. Validate input
2. Generate a random secret
3. Derive fingerprint and verifier
4. Reject verifier collisions
5. Persist the record with zero uses
6. Return the plaintext secret (the only time it leaves the process)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlsplit

from ..credentials.codec import CredentialCodec, redact
from ..credentials.core import CredentialRecord, PublishedCredential, parse_instant, utcnow
from ..faults import (
    CredentialFault,
    DuplicateFault,
    InternalFault,
    Outcome,
    ValidationFault,
)
from ..metrics import KeyMetrics
from ..stores.base import RecordStore

logger = logging.getLogger("keygate.publisher")


def validate_item_key(item_key: Any) -> str:
    """``scheme://host/path?query`` with a non-empty scheme and host."""
    if not isinstance(item_key, str) or not item_key.strip():
        raise ValidationFault("item_key", "must be a non-empty string")
    try:
        parts = urlsplit(item_key)
    except ValueError as e:
        raise ValidationFault("item_key", str(e)) from e
    if not parts.scheme or not parts.hostname:
        raise ValidationFault(
            "item_key", "expected format <scheme>://<service>/<key>?<query>"
        )
    return item_key


def validate_permissions(permissions: Any) -> list[str]:
    if isinstance(permissions, str) or not isinstance(permissions, Iterable):
        raise ValidationFault("permissions", "must be a list of strings")
    result = list(permissions)
    if not result:
        raise ValidationFault("permissions", "must not be empty")
    for entry in result:
        if not isinstance(entry, str) or not entry.strip():
            raise ValidationFault("permissions", "entries must be non-empty strings")
    return result


def validate_expiry(expires_at: Any, now: datetime) -> datetime:
    try:
        instant = parse_instant(expires_at)
    except (TypeError, ValueError) as e:
        raise ValidationFault("expires_at", "not a valid ISO-8601 instant") from e
    if instant <= now:
        raise ValidationFault("expires_at", "must be in the future")
    return instant


def validate_max_uses(max_uses: Any) -> int:
    if isinstance(max_uses, bool) or not isinstance(max_uses, int):
        raise ValidationFault("max_uses", "must be an integer")
    if max_uses < 1:
        raise ValidationFault("max_uses", "must be at least 1")
    return max_uses


class Publisher:
    """Mints credentials and persists their records."""

    def __init__(
        self,
        codec: CredentialCodec,
        store: RecordStore,
        metrics: Optional[KeyMetrics] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.codec = codec
        self.store = store
        self.metrics = metrics or KeyMetrics()
        self._clock = clock

    async def publish(
        self,
        item_key: str,
        permissions: list[str],
        expires_at: datetime | str,
        max_uses: int,
    ) -> Outcome[PublishedCredential]:
        started = time.perf_counter()
        try:
            published = await self._publish(item_key, permissions, expires_at, max_uses)
        except CredentialFault as fault:
            logger.warning(f"Publish rejected for {item_key!r}: {fault}")
            self.metrics.record_failure(fault.kind)
            return Outcome.failure(fault)
        except Exception as e:
            logger.exception(f"Publish failed for {item_key!r}")
            fault = InternalFault(e, operation="publish")
            self.metrics.record_failure(fault.kind)
            return Outcome.failure(fault)

        self.metrics.record_publish((time.perf_counter() - started) * 1000)
        return Outcome.success(published)

    async def _publish(
        self,
        item_key: Any,
        permissions: Any,
        expires_at: Any,
        max_uses: Any,
    ) -> PublishedCredential:
        now = self._clock()
        item_key = validate_item_key(item_key)
        permissions = validate_permissions(permissions)
        expiry = validate_expiry(expires_at, now)
        max_uses = validate_max_uses(max_uses)

        secret = self.codec.generate()
        fingerprint = self.codec.fingerprint(secret)
        verifier = await asyncio.to_thread(self.codec.derive, secret)

        if await self.store.exists(verifier):
            logger.error(f"Verifier collision while publishing for {item_key!r}")
            raise DuplicateFault()

        record = CredentialRecord(
            id=uuid.uuid4().hex,
            fingerprint=fingerprint,
            verifier=verifier,
            item_key=item_key,
            permissions=permissions,
            published_at=now,
            expires_at=expiry,
            max_uses=max_uses,
            used_count=0,
        )
        await self.store.create(record)

        logger.info(
            f"Published key {redact(secret)} id={record.id} for {item_key!r} "
            f"(max_uses={max_uses}, expires_at={expiry.isoformat()})"
        )
        return PublishedCredential(
            id=record.id,
            secret=secret,
            item_key=item_key,
            permissions=list(permissions),
            published_at=now,
            expires_at=expiry,
            max_uses=max_uses,
        )
