"""
Keygate - Core Types

Credential records and the projections handed to callers and to the cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    """Timezone-aware current instant."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: str | datetime) -> datetime:
    """
    Parse an ISO-8601 instant.

    Accepts a trailing ``Z``; naive values are taken as UTC.
    Raises ValueError on anything unparseable.
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not an ISO-8601 instant: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


# ============================================================================
# Durable Record
# ============================================================================

@dataclass
class CredentialRecord:
    """
    Durable credential record.

    Owned by the record store. ``used_count`` only ever moves up, and only
    through the store's increment operation.

    Security:
    - The plaintext secret is never stored
    - ``fingerprint`` is a short non-secret digest used to narrow lookups
    - ``verifier`` is the Argon2id hash and the only proof of possession
    """
    id: str
    fingerprint: str
    verifier: str
    item_key: str
    permissions: list[str]
    published_at: datetime
    expires_at: datetime
    max_uses: int
    used_count: int = 0

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())

    @property
    def is_exhausted(self) -> bool:
        return self.used_count >= self.max_uses

    @property
    def remaining_uses(self) -> int:
        return max(0, self.max_uses - self.used_count)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted document shape."""
        return {
            "id": self.id,
            "fingerprint": self.fingerprint,
            "verifier": self.verifier,
            "item_key": self.item_key,
            "permissions": list(self.permissions),
            "published_at": self.published_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "used_count": self.used_count,
            "max_uses": self.max_uses,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CredentialRecord":
        return cls(
            id=data["id"],
            fingerprint=data["fingerprint"],
            verifier=data["verifier"],
            item_key=data["item_key"],
            permissions=list(data["permissions"]),
            published_at=parse_instant(data["published_at"]),
            expires_at=parse_instant(data["expires_at"]),
            used_count=int(data.get("used_count", 0)),
            max_uses=int(data["max_uses"]),
        )


# ============================================================================
# Cache Projection
# ============================================================================

@dataclass
class CachedCredential:
    """
    Denormalized projection of a record, keyed in the cache by the raw secret.

    Advisory only: the verifier is re-checked on every hit and expiry is
    re-evaluated against the clock, so a stale entry can cost a store
    round-trip but never grant access.
    """
    verifier: str
    item_key: str
    permissions: list[str]
    expires_at: datetime
    used_count: int
    max_uses: int

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "CachedCredential":
        return cls(
            verifier=record.verifier,
            item_key=record.item_key,
            permissions=list(record.permissions),
            expires_at=record.expires_at,
            used_count=record.used_count,
            max_uses=record.max_uses,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "verifier": self.verifier,
            "item_key": self.item_key,
            "permissions": list(self.permissions),
            "expires_at": self.expires_at.isoformat(),
            "used_count": self.used_count,
            "max_uses": self.max_uses,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedCredential":
        return cls(
            verifier=data["verifier"],
            item_key=data["item_key"],
            permissions=list(data["permissions"]),
            expires_at=parse_instant(data["expires_at"]),
            used_count=int(data["used_count"]),
            max_uses=int(data["max_uses"]),
        )


# ============================================================================
# Pipeline Results
# ============================================================================

@dataclass(frozen=True)
class PublishedCredential:
    """
    Result of a publish.

    ``secret`` is the only copy of the plaintext key that will ever exist.
    """
    id: str
    secret: str
    item_key: str
    permissions: list[str]
    published_at: datetime
    expires_at: datetime
    max_uses: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "api_key": self.secret,
            "id": self.id,
            "item_key": self.item_key,
            "permissions": list(self.permissions),
            "published_at": self.published_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "max_uses": self.max_uses,
        }


@dataclass(frozen=True)
class ValidationGrant:
    """Result of a successful validation."""
    item_key: str
    permissions: list[str]
    expires_at: datetime
    used_count: int
    max_uses: int
    source: str = "store"

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": True,
            "item_key": self.item_key,
            "permissions": list(self.permissions),
            "expires_at": self.expires_at.isoformat(),
            "used_count": self.used_count,
            "max_uses": self.max_uses,
        }
