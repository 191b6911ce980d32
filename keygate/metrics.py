"""
Keygate - In-process key metrics.

``KeyMetrics`` is an explicit sink handed to the pipelines; nothing reads
or writes it as module-level state. Counters are best-effort observability:
they are updated separately from the durable usage counter and can lag it
if the process dies between the two.

Metrics kept:
- keys published / validated
- failures per fault kind
- cache hits / misses
- rate-limit and lock rejections
- rolling average validate and publish latency (last 100 samples)
"""

from __future__ import annotations

import threading
import time
from collections import Counter, deque
from typing import Any, Deque, Dict

from .faults import FaultKind

SAMPLE_WINDOW = 100


class KeyMetrics:
    """Thread-safe counters and rolling timings for the key pipelines."""

    def __init__(self, sample_window: int = SAMPLE_WINDOW):
        self._lock = threading.Lock()
        self._started = time.monotonic()
        self.published = 0
        self.validated = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.failures: Counter = Counter()
        self._validate_ms: Deque[float] = deque(maxlen=sample_window)
        self._publish_ms: Deque[float] = deque(maxlen=sample_window)

    def record_publish(self, duration_ms: float) -> None:
        with self._lock:
            self.published += 1
            self._publish_ms.append(duration_ms)

    def record_validation(self, duration_ms: float) -> None:
        with self._lock:
            self.validated += 1
            self._validate_ms.append(duration_ms)

    def record_failure(self, kind: FaultKind) -> None:
        with self._lock:
            self.failures[kind.value] += 1

    def record_cache(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self.cache_hits += 1
            else:
                self.cache_misses += 1

    @property
    def rate_limit_rejections(self) -> int:
        return self.failures[FaultKind.RATE_LIMITED.value]

    @property
    def lock_rejections(self) -> int:
        return self.failures[FaultKind.LOCK_CONTENDED.value]

    @property
    def cache_hit_rate(self) -> float:
        """Hit rate as a percentage."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return (self.cache_hits / total) * 100.0

    @staticmethod
    def _average(samples: Deque[float]) -> float:
        if not samples:
            return 0.0
        return sum(samples) / len(samples)

    def snapshot(self) -> Dict[str, Any]:
        """Consistent copy of every metric."""
        with self._lock:
            return {
                "keys_published": self.published,
                "keys_validated": self.validated,
                "validation_failures": dict(self.failures),
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "cache_hit_rate": round(self.cache_hit_rate, 2),
                "rate_limit_rejections": self.failures[FaultKind.RATE_LIMITED.value],
                "lock_rejections": self.failures[FaultKind.LOCK_CONTENDED.value],
                "avg_validation_ms": round(self._average(self._validate_ms), 3),
                "avg_publish_ms": round(self._average(self._publish_ms), 3),
                "uptime_seconds": round(time.monotonic() - self._started, 2),
            }

    def reset(self) -> None:
        with self._lock:
            self.published = 0
            self.validated = 0
            self.cache_hits = 0
            self.cache_misses = 0
            self.failures.clear()
            self._validate_ms.clear()
            self._publish_ms.clear()
            self._started = time.monotonic()
