"""
Tests for the in-process key metrics sink.
"""

import threading

from keygate.faults import FaultKind
from keygate.metrics import KeyMetrics


class TestKeyMetrics:

    def test_empty_snapshot(self, metrics):
        snap = metrics.snapshot()
        assert snap["keys_published"] == 0
        assert snap["cache_hit_rate"] == 0.0
        assert snap["avg_validation_ms"] == 0.0
        assert snap["validation_failures"] == {}

    def test_counts_and_averages(self, metrics):
        metrics.record_publish(4.0)
        metrics.record_validation(2.0)
        metrics.record_validation(4.0)
        metrics.record_cache(True)
        metrics.record_cache(True)
        metrics.record_cache(False)
        metrics.record_failure(FaultKind.RATE_LIMITED)
        metrics.record_failure(FaultKind.LOCK_CONTENDED)
        metrics.record_failure(FaultKind.LOCK_CONTENDED)

        snap = metrics.snapshot()
        assert snap["keys_published"] == 1
        assert snap["keys_validated"] == 2
        assert snap["avg_validation_ms"] == 3.0
        assert snap["avg_publish_ms"] == 4.0
        assert snap["cache_hit_rate"] == 66.67
        assert snap["rate_limit_rejections"] == 1
        assert snap["lock_rejections"] == 2
        assert snap["validation_failures"] == {"rate_limited": 1, "lock_contended": 2}

    def test_rolling_window(self):
        metrics = KeyMetrics(sample_window=3)
        for ms in (100.0, 1.0, 2.0, 3.0):
            metrics.record_validation(ms)
        assert metrics.snapshot()["avg_validation_ms"] == 2.0
        assert metrics.validated == 4

    def test_reset(self, metrics):
        metrics.record_publish(1.0)
        metrics.record_failure(FaultKind.EXPIRED)
        metrics.reset()
        snap = metrics.snapshot()
        assert snap["keys_published"] == 0
        assert snap["validation_failures"] == {}

    def test_thread_safety(self, metrics):
        def hammer():
            for _ in range(1000):
                metrics.record_validation(1.0)
                metrics.record_cache(True)

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert metrics.validated == 8000
        assert metrics.cache_hits == 8000
