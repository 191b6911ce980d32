"""
Keygate Faults - Outcome values.

Pipelines return an ``Outcome`` instead of raising so that every failure
path shows up in the signature. ``unwrap()`` turns it back into a raise for
callers that prefer exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from .core import FaultKind
from .domains import CredentialFault

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the fault that prevented it."""

    value: Optional[T] = None
    fault: Optional[CredentialFault] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, fault: CredentialFault) -> "Outcome[T]":
        return cls(fault=fault)

    @property
    def ok(self) -> bool:
        return self.fault is None

    @property
    def kind(self) -> Optional[FaultKind]:
        """Failure kind, or None on success."""
        return self.fault.kind if self.fault is not None else None

    def unwrap(self) -> T:
        """Return the value or raise the fault."""
        if self.fault is not None:
            raise self.fault
        return self.value

    def to_dict(self) -> dict[str, Any]:
        """
        Render the response envelope used by the boundary layer::

            {"success": true, "data": {...}}
            {"success": false, "error": {"code": "...", "message": "..."}}
        """
        if self.fault is not None:
            return {
                "success": False,
                "error": {"code": self.fault.code, "message": self.fault.message},
            }
        data = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
        return {"success": True, "data": data}
