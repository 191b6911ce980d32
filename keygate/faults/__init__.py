"""
Keygate Faults - typed failure signals for the key pipelines.

Core exports:
- Fault: Base fault class
- FaultDomain / Severity / FaultKind: classification
- CredentialFault and its subclasses: the pipeline taxonomy
- Outcome: success-or-fault value returned at pipeline boundaries
"""

from .core import (
    ConfigFault,
    Fault,
    FaultDomain,
    FaultKind,
    Severity,
)
from .domains import (
    CredentialFault,
    DuplicateFault,
    ExpiredFault,
    InternalFault,
    LockAcquisitionFault,
    NotFoundFault,
    RateLimitFault,
    StoreFault,
    UnauthorizedFault,
    UsageLimitFault,
    ValidationFault,
)
from .outcome import Outcome

__all__ = [
    "ConfigFault",
    "CredentialFault",
    "DuplicateFault",
    "ExpiredFault",
    "Fault",
    "FaultDomain",
    "FaultKind",
    "InternalFault",
    "LockAcquisitionFault",
    "NotFoundFault",
    "Outcome",
    "RateLimitFault",
    "Severity",
    "StoreFault",
    "UnauthorizedFault",
    "UsageLimitFault",
    "ValidationFault",
]
