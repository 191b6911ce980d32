"""
Keygate Credentials - record types and the credential codec.
"""

from .codec import CredentialCodec, redact
from .core import (
    CachedCredential,
    CredentialRecord,
    PublishedCredential,
    ValidationGrant,
    as_utc,
    parse_instant,
    utcnow,
)

__all__ = [
    "CachedCredential",
    "CredentialCodec",
    "CredentialRecord",
    "PublishedCredential",
    "ValidationGrant",
    "as_utc",
    "parse_instant",
    "redact",
    "utcnow",
]
