"""
Keygate - Credential Faults

Typed outcomes of the publish and validate pipelines. Every fault carries a
stable code and an HTTP status hint for whatever boundary layer maps them to
responses.
"""

from __future__ import annotations

from typing import Any

from .core import Fault, FaultDomain, FaultKind, Severity


class CredentialFault(Fault):
    """Base class for every expected pipeline failure."""
    domain = FaultDomain.CREDENTIALS
    kind: FaultKind = FaultKind.INTERNAL
    status: int = 500
    public = True


# ============================================================================
# Publish Faults
# ============================================================================

class ValidationFault(CredentialFault):
    """Malformed publish input or an empty presented secret."""
    kind = FaultKind.VALIDATION
    code = "VALIDATION_ERROR"
    message = "Invalid request"
    status = 400

    def __init__(self, field: str, reason: str):
        super().__init__(
            message=f"Invalid {field}: {reason}",
            metadata={"field": field},
        )
        self.field = field


class DuplicateFault(CredentialFault):
    """Verifier collision on publish."""
    kind = FaultKind.DUPLICATE
    code = "DUPLICATE_ERROR"
    message = "API key already exists, retry with a fresh key"
    status = 409
    retryable = True


# ============================================================================
# Validation Faults
# ============================================================================

class NotFoundFault(CredentialFault):
    """No record shares the presented secret's fingerprint."""
    kind = FaultKind.NOT_FOUND
    code = "NOT_FOUND"
    message = "API key not found"
    status = 404


class UnauthorizedFault(CredentialFault):
    """A fingerprint matched but no candidate verifier did."""
    kind = FaultKind.UNAUTHORIZED
    code = "UNAUTHORIZED"
    message = "Invalid API key"
    status = 401


class ExpiredFault(CredentialFault):
    """Matched record is past its expiry instant."""
    kind = FaultKind.EXPIRED
    code = "EXPIRED"
    message = "API key has expired"
    status = 403


class UsageLimitFault(CredentialFault):
    """Matched record has no uses left."""
    kind = FaultKind.USAGE_LIMIT
    code = "USAGE_LIMIT_EXCEEDED"
    message = "API key usage limit exceeded"
    status = 403


# ============================================================================
# Protection Faults
# ============================================================================

class RateLimitFault(CredentialFault):
    """Caller identity is over its request ceiling."""
    domain = FaultDomain.SECURITY
    kind = FaultKind.RATE_LIMITED
    code = "RATE_LIMIT_EXCEEDED"
    message = "Too many requests"
    status = 429
    retryable = True

    def __init__(self, identity: str, limit: int, window: float, retry_after: float = 0.0):
        super().__init__(
            message=f"Rate limit exceeded. Maximum {limit} requests per {window:g}s",
            metadata={"identity": identity, "limit": limit, "window": window},
        )
        self.identity = identity
        self.retry_after = retry_after


class LockAcquisitionFault(CredentialFault):
    """Per-secret validation lock is held elsewhere or unreachable."""
    domain = FaultDomain.SECURITY
    kind = FaultKind.LOCK_CONTENDED
    code = "LOCK_ACQUISITION_FAILED"
    message = "Failed to acquire lock for API key validation"
    status = 503
    retryable = True


class InternalFault(CredentialFault):
    """Infrastructure failure surfaced as a generic error."""
    domain = FaultDomain.SYSTEM
    kind = FaultKind.INTERNAL
    code = "INTERNAL_ERROR"
    message = "An unexpected error occurred"
    severity = Severity.ERROR
    status = 500
    public = False

    def __init__(self, cause: BaseException | None = None, **metadata: Any):
        if cause is not None:
            metadata.setdefault("cause", type(cause).__name__)
        super().__init__(metadata=metadata)


class StoreFault(Fault):
    """Record store misuse or corruption (not a pipeline outcome)."""
    domain = FaultDomain.STORAGE
    code = "STORE_ERROR"
    message = "Record store error"

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Record store {operation} failed: {reason}",
            metadata={"operation": operation, "reason": reason},
        )
