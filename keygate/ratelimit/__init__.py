"""
Keygate Rate Limiting - sliding window request ceilings per caller.
"""

from .core import RATE_PREFIX, RateDecision, SlidingWindowRateLimiter, WindowStore
from .memory import MemoryWindowStore
from .redis import RedisWindowStore

__all__ = [
    "RATE_PREFIX",
    "MemoryWindowStore",
    "RateDecision",
    "RedisWindowStore",
    "SlidingWindowRateLimiter",
    "WindowStore",
]
