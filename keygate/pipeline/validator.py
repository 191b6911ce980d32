"""
Keygate Pipeline - Validator.

State machine per presented secret:

    RateCheck -> LockAcquire -> CacheLookup
        hit:  Verify(cached) -> LimitCheck -> Increment(store, cache)
        miss: StoreLookup(fingerprint) -> Verify(candidates) -> LimitCheck
              -> Increment(store) -> CacheRefresh
    -> Unlock

Every failure is a CredentialFault returned inside an Outcome. The lock is
held through ``DistributedLock.hold`` so it is released on every exit path.

The cache is advisory. A hit is re-verified against its verifier and its
expiry is re-checked, and the store increment is conditional, so an entry
that outlived a revoke or a sweep is evicted and the request re-runs
against the store instead of being granted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from ..cache.credentials import CredentialCache
from ..credentials.codec import CredentialCodec, redact
from ..credentials.core import (
    CachedCredential,
    CredentialRecord,
    ValidationGrant,
    utcnow,
)
from ..faults import (
    CredentialFault,
    ExpiredFault,
    InternalFault,
    NotFoundFault,
    Outcome,
    StoreFault,
    UnauthorizedFault,
    UsageLimitFault,
    ValidationFault,
)
from ..locks.core import DEFAULT_LOCK_TTL, DistributedLock
from ..metrics import KeyMetrics
from ..ratelimit.core import SlidingWindowRateLimiter
from ..stores.base import RecordStore

logger = logging.getLogger("keygate.validator")

ANONYMOUS = "anonymous"
LOCK_PREFIX = "validate:"


def enforce_limits(expires_at: datetime, used_count: int, max_uses: int, now: datetime) -> None:
    """Expiry takes precedence over exhaustion."""
    if expires_at <= now:
        raise ExpiredFault()
    if used_count >= max_uses:
        raise UsageLimitFault()


class Validator:
    """Verifies presented secrets and counts their uses."""

    def __init__(
        self,
        codec: CredentialCodec,
        store: RecordStore,
        cache: CredentialCache,
        lock: DistributedLock,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        metrics: Optional[KeyMetrics] = None,
        clock: Callable[[], datetime] = utcnow,
        lock_ttl: float = DEFAULT_LOCK_TTL,
    ):
        self.codec = codec
        self.store = store
        self.cache = cache
        self.lock = lock
        self.limiter = limiter
        self.metrics = metrics or KeyMetrics()
        self.lock_ttl = lock_ttl
        self._clock = clock

    async def validate(self, secret: str, caller: Optional[str] = None) -> Outcome[ValidationGrant]:
        started = time.perf_counter()
        try:
            grant = await self._validate(secret, caller or ANONYMOUS)
        except CredentialFault as fault:
            logger.warning(f"Validation of {redact(secret)} rejected: {fault}")
            self.metrics.record_failure(fault.kind)
            return Outcome.failure(fault)
        except Exception as e:
            logger.exception(f"Validation of {redact(secret)} failed")
            fault = InternalFault(e, operation="validate")
            self.metrics.record_failure(fault.kind)
            return Outcome.failure(fault)

        self.metrics.record_validation((time.perf_counter() - started) * 1000)
        logger.info(
            f"Validated {redact(secret)} for {grant.item_key!r} "
            f"({grant.used_count}/{grant.max_uses}, via {grant.source})"
        )
        return Outcome.success(grant)

    async def _validate(self, secret: str, caller: str) -> ValidationGrant:
        if self.limiter is not None:
            await self.limiter.enforce(caller)

        if not isinstance(secret, str) or not secret:
            raise ValidationFault("api_key", "must not be empty")

        async with self.lock.hold(f"{LOCK_PREFIX}{secret}", self.lock_ttl):
            cached = await self.cache.get(secret)
            self.metrics.record_cache(cached is not None)
            if cached is not None:
                grant = await self._from_cache(secret, cached)
                if grant is not None:
                    return grant
            return await self._from_store(secret)

    async def _verify(self, verifier: str, secret: str) -> bool:
        return await asyncio.to_thread(self.codec.verify, verifier, secret)

    async def _from_cache(self, secret: str, cached: CachedCredential) -> Optional[ValidationGrant]:
        """Hit path. None means the entry was stale and has been evicted."""
        if not await self._verify(cached.verifier, secret):
            logger.warning(f"Cached verifier mismatch for {redact(secret)}, evicting")
            await self.cache.evict(secret)
            raise UnauthorizedFault()

        now = self._clock()
        try:
            enforce_limits(cached.expires_at, cached.used_count, cached.max_uses, now)
        except UsageLimitFault:
            # Exhaustion seen in the cache is unconfirmed; the store decides
            # whether expiry or a sweep outranks it
            await self.cache.evict(secret)
            return None

        record = await self.store.increment_usage(cached.verifier, now)
        if record is None:
            logger.info(f"Cache entry for {redact(secret)} is stale, re-reading store")
            await self.cache.evict(secret)
            return None

        try:
            await self.cache.increment_usage(secret)
        except Exception as e:
            logger.warning(f"Cache usage increment failed for {redact(secret)}: {e}")

        return self._grant(record, "cache")

    async def _from_store(self, secret: str) -> ValidationGrant:
        candidates = await self.store.find_by_fingerprint(self.codec.fingerprint(secret))
        if not candidates:
            raise NotFoundFault()

        match: Optional[CredentialRecord] = None
        for candidate in candidates:
            if await self._verify(candidate.verifier, secret):
                match = candidate
                break
        if match is None:
            raise UnauthorizedFault()

        now = self._clock()
        enforce_limits(match.expires_at, match.used_count, match.max_uses, now)

        record = await self.store.increment_usage(match.verifier, now)
        if record is None:
            # Revoked, swept or used up between read and increment
            current = await self.store.find_by_verifier(match.verifier)
            if current is None:
                raise NotFoundFault()
            enforce_limits(current.expires_at, current.used_count, current.max_uses, now)
            raise StoreFault("increment_usage", "refused for a usable record")

        try:
            await self.cache.put(secret, CachedCredential.from_record(record))
        except Exception as e:
            logger.warning(f"Cache refresh failed for {redact(secret)}: {e}")

        return self._grant(record, "store")

    @staticmethod
    def _grant(record: CredentialRecord, source: str) -> ValidationGrant:
        return ValidationGrant(
            item_key=record.item_key,
            permissions=list(record.permissions),
            expires_at=record.expires_at,
            used_count=record.used_count,
            max_uses=record.max_uses,
            source=source,
        )
