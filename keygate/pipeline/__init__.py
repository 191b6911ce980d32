"""
Keygate Pipelines - publish and validate.
"""

from .publisher import Publisher
from .validator import Validator, enforce_limits

__all__ = ["Publisher", "Validator", "enforce_limits"]
