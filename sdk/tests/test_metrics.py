"""Tests for metrics utility."""

from __future__ import annotations

from runflow.utils.metrics import (
    MetricsCollector,
    get_metrics_summary,
    metrics,
    record_human_decision,
    record_poll,
    record_reconciliation,
    record_session_finished,
    record_step_emitted,
)


class TestMetricsCollector:
    """Test the MetricsCollector class directly."""

    def test_increment_counter(self):
        mc = MetricsCollector()
        mc.increment_counter("polls")
        mc.increment_counter("polls", value=4)
        assert mc.get_counter("polls") == 5
        assert mc.get_counter("never_touched") == 0

    def test_counter_labels_are_order_independent(self):
        mc = MetricsCollector()
        mc.increment_counter("calls", labels={"b": "2", "a": "1"})
        assert mc.get_counter("calls", labels={"a": "1", "b": "2"}) == 1
        assert "calls{a=1,b=2}" in mc.counters

    def test_histogram_stats(self):
        mc = MetricsCollector()
        for value in (0.5, 1.5, 4.0):
            mc.observe_histogram("latency", value)

        stats = mc.get_histogram_stats("latency")
        assert stats["count"] == 3
        assert stats["sum"] == 6.0
        assert stats["min"] == 0.5
        assert stats["max"] == 4.0
        assert stats["avg"] == 2.0

    def test_empty_histogram(self):
        assert MetricsCollector().get_histogram_stats("nothing")["count"] == 0

    def test_reset(self):
        mc = MetricsCollector()
        mc.increment_counter("a")
        mc.observe_histogram("b", 1.0)
        mc.reset()
        assert mc.counters == {}
        assert mc.histograms == {}


class TestRecorders:
    """The helpers feed the process-wide collector."""

    def test_poll_and_steps(self):
        record_poll("running")
        record_poll("running")
        record_poll("completed")
        record_step_emitted()

        assert metrics.get_counter("status_polls_total", labels={"status": "running"}) == 2
        assert metrics.get_counter("status_polls_total", labels={"status": "completed"}) == 1
        assert metrics.get_counter("steps_emitted_total") == 1

    def test_session_finished(self):
        record_session_finished("completed", 1.25)

        assert metrics.get_counter("poll_sessions_total", labels={"outcome": "completed"}) == 1
        stats = metrics.get_histogram_stats("poll_session_seconds", labels={"outcome": "completed"})
        assert stats["sum"] == 1.25

    def test_human_decisions(self):
        record_human_decision(True)
        record_human_decision(False)
        record_human_decision(None)

        for decision in ("approved", "rejected", "input"):
            assert metrics.get_counter("human_decisions_total", labels={"decision": decision}) == 1

    def test_summary(self):
        record_reconciliation("applied")
        record_session_finished("timeout", 3.0)

        summary = get_metrics_summary()
        assert summary["counters"]["reconciliation_reads_total{outcome=applied}"] == 1
        assert summary["histograms"]["poll_session_seconds{outcome=timeout}"]["count"] == 1
