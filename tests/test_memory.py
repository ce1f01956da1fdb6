"""
Tests for the memory monitor (psutil process replaced by a fake).
"""

from conftest import FakeProcess
from doc_crawler.memory import MemoryMonitor


class TestSample:

    def test_sample_in_mb(self):
        monitor = MemoryMonitor(process=FakeProcess(rss_mb=256))
        assert monitor.sample() == 256
        assert monitor.last_sample_mb == 256

    def test_pressure_threshold(self):
        proc = FakeProcess(rss_mb=1024)
        monitor = MemoryMonitor(threshold_mb=1024, process=proc)
        assert monitor.under_pressure() is False
        proc.rss = 1025 * 1024 * 1024
        assert monitor.under_pressure() is True


class TestReclaim:

    def test_reclaim_runs_only_under_pressure(self):
        calls = []
        proc = FakeProcess(rss_mb=10)
        monitor = MemoryMonitor(threshold_mb=100, reclaim=lambda: calls.append(1), process=proc)
        assert monitor.maybe_reclaim() is False
        proc.rss = 200 * 1024 * 1024
        assert monitor.maybe_reclaim() is True
        assert calls == [1]
        assert monitor.reclaim_count == 1

    def test_missing_hook_is_tolerated(self):
        monitor = MemoryMonitor(threshold_mb=0, reclaim=None, process=FakeProcess(rss_mb=5))
        assert monitor.maybe_reclaim() is False

    def test_failing_hook_is_tolerated(self):
        def broken():
            raise RuntimeError("nope")

        monitor = MemoryMonitor(threshold_mb=0, reclaim=broken, process=FakeProcess(rss_mb=5))
        assert monitor.maybe_reclaim() is False

    def test_default_hook_is_gc(self):
        monitor = MemoryMonitor(threshold_mb=0, process=FakeProcess(rss_mb=5))
        assert monitor.maybe_reclaim() is True


class TestUsage:

    def test_usage_wire_shape(self):
        monitor = MemoryMonitor(process=FakeProcess(rss_mb=100, vms_mb=400, shared_mb=10))
        data = monitor.usage().to_dict()
        assert data == {
            'heapUsed': 100 * 1024 * 1024,
            'heapTotal': 400 * 1024 * 1024,
            'external': 10 * 1024 * 1024,
            'percentageUsed': 25.0,
        }
