"""
Tests for query timing.
"""

import logging

import pytest

from replivity.database.monitoring import QueryMonitor


class FakePerfCounter:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def perf():
    return FakePerfCounter()


@pytest.fixture
def monitor(perf):
    return QueryMonitor(max_samples=3, slow_query_threshold_ms=1000, clock=perf)


class TestQueryMonitor:

    def test_start_timer_records_elapsed_ms(self, monitor, perf):
        stop = monitor.start_timer("user:profile")
        perf.now += 0.25
        assert stop() == pytest.approx(250)

        stats = monitor.get_stats("user:profile")
        assert stats.count == 1
        assert stats.avg == pytest.approx(250)

    def test_stats(self, monitor):
        for elapsed in (10, 20, 30):
            monitor.record("q", elapsed)

        stats = monitor.get_stats("q")
        assert (stats.avg, stats.min, stats.max, stats.count) == (20, 10, 30, 3)
        assert stats.as_dict() == {"avg": 20, "min": 10, "max": 30, "count": 3}

    def test_ring_buffer_keeps_newest_samples(self, monitor):
        for elapsed in (1000, 1, 2, 3):
            monitor.record("q", elapsed)

        stats = monitor.get_stats("q")
        assert stats.count == 3
        assert stats.max == 3

    def test_unknown_query(self, monitor):
        assert monitor.get_stats("never-run") is None

    def test_slow_queries_sorted_by_average(self, monitor):
        monitor.record("fast", 5)
        monitor.record("slow", 1500)
        monitor.record("slower", 3000)

        slow = monitor.get_slow_queries()
        assert [item["query"] for item in slow] == ["slower", "slow"]
        assert [item["query"] for item in monitor.get_slow_queries(threshold_ms=1)] == [
            "slower", "slow", "fast",
        ]

    def test_slow_query_is_logged(self, monitor, caplog):
        with caplog.at_level(logging.WARNING, logger="replivity.database.monitoring"):
            monitor.record("report", 2500)
        assert "Slow query detected: report" in caplog.text

    def test_performance_summary(self, monitor):
        monitor.record("a", 10)
        monitor.record("a", 30)
        monitor.record("b", 1200)

        summary = monitor.get_performance_summary()
        assert summary["total_queries"] == 3
        assert summary["query_kinds"] == 2
        assert summary["avg_query_time_ms"] == pytest.approx(413.33)
        assert summary["slow_queries"][0]["query"] == "b"
        assert summary["queries"]["a"]["count"] == 2

    def test_empty_summary(self, monitor):
        summary = monitor.get_performance_summary()
        assert summary["total_queries"] == 0
        assert summary["avg_query_time_ms"] == 0.0

    def test_reset(self, monitor):
        monitor.record("q", 1)
        monitor.reset()
        assert monitor.get_all_stats() == {}
