"""
Keygate Faults - Core types and fault taxonomy.

Defines:
- Fault base class (structured fault objects)
- FaultDomain (explicit fault domains)
- Severity levels
- FaultKind (the outward-facing failure kinds of the key pipelines)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines logging level and whether an operator should look at it.
    """
    INFO = "info"       # Informational, no action needed
    WARN = "warn"       # Expected rejection, worth counting
    ERROR = "error"     # Error, immediate attention
    FATAL = "fatal"     # Unrecoverable, abort


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.CREDENTIALS = FaultDomain("credentials", "Key issuance and validation")
FaultDomain.SECURITY = FaultDomain("security", "Rate limiting and exclusion")
FaultDomain.STORAGE = FaultDomain("storage", "Durable record store")
FaultDomain.SYSTEM = FaultDomain("system", "Infrastructure faults")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.CREDENTIALS: {"severity": Severity.WARN, "retryable": False},
    FaultDomain.SECURITY: {"severity": Severity.WARN, "retryable": True},
    FaultDomain.STORAGE: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.SYSTEM: {"severity": Severity.ERROR, "retryable": False},
}


class FaultKind(str, Enum):
    """Failure kinds surfaced by the publish and validate pipelines."""
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    EXPIRED = "expired"
    USAGE_LIMIT = "usage_limit"
    RATE_LIMITED = "rate_limited"
    LOCK_CONTENDED = "lock_contended"
    INTERNAL = "internal"


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    A fault carries:
    - Stable machine-readable code
    - Human-readable message
    - Severity level
    - Domain classification
    - Retry semantics
    - Public exposure control

    Subclasses usually declare ``code``, ``message`` and ``domain`` as class
    attributes and only pass metadata at raise time.

    Example:
        ```python
        raise Fault(
            code="KEY_NOT_FOUND",
            message="API key not found",
            domain=FaultDomain.CREDENTIALS,
            public=True,
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        # Fallback to class attributes if not provided
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or getattr(type(self), "severity", None) or defaults["severity"]
        if retryable is None:
            retryable = getattr(type(self), "retryable", defaults["retryable"])
        self.retryable = retryable
        self.public = public if public is not None else getattr(type(self), "public", False)
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value}, public={self.public})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize fault for logging."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "public": self.public,
            "metadata": self.metadata,
        }


class ConfigFault(Fault):
    """Invalid or missing configuration."""
    domain = FaultDomain.CONFIG
    code = "CONFIG_INVALID"
    message = "Invalid configuration"

    def __init__(self, reason: str, *, field: str | None = None):
        super().__init__(
            message=f"Invalid configuration: {reason}",
            metadata={"field": field} if field else None,
        )
        self.field = field
