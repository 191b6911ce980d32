"""
Keygate - scoped API key issuance and validation.

Pieces:
- Credentials: codec (secret, fingerprint, Argon2id verifier) and record types
- Stores: durable record storage (memory, SQLite) with an expiry sweeper
- Cache / Locks / Rate limiting: memory and Redis backends
- Pipelines: Publisher and Validator returning Outcome values
- Admin: listing, statistics, revocation
- KeyService: wires everything from a KeygateConfig
"""

__version__ = "0.1.0"

from .admin import AdminService
from .cache import CredentialCache, MemoryBackend, RedisBackend
from .config import ConfigLoader, KeygateConfig, load_config
from .credentials import (
    CachedCredential,
    CredentialCodec,
    CredentialRecord,
    PublishedCredential,
    ValidationGrant,
    redact,
)
from .faults import (
    CredentialFault,
    Fault,
    FaultKind,
    Outcome,
)
from .locks import DistributedLock, MemoryLock, RedisLock
from .metrics import KeyMetrics
from .pipeline import Publisher, Validator
from .ratelimit import (
    MemoryWindowStore,
    RedisWindowStore,
    SlidingWindowRateLimiter,
)
from .service import KeyService
from .stores import ExpirySweeper, MemoryRecordStore, RecordStore, SQLiteRecordStore

__all__ = [
    "__version__",
    "AdminService",
    "CachedCredential",
    "ConfigLoader",
    "CredentialCache",
    "CredentialCodec",
    "CredentialFault",
    "CredentialRecord",
    "DistributedLock",
    "ExpirySweeper",
    "Fault",
    "FaultKind",
    "KeyMetrics",
    "KeyService",
    "KeygateConfig",
    "MemoryBackend",
    "MemoryLock",
    "MemoryRecordStore",
    "MemoryWindowStore",
    "Outcome",
    "PublishedCredential",
    "Publisher",
    "RecordStore",
    "RedisBackend",
    "RedisLock",
    "RedisWindowStore",
    "SQLiteRecordStore",
    "SlidingWindowRateLimiter",
    "ValidationGrant",
    "Validator",
    "load_config",
    "redact",
]
