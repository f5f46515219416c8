"""
In-memory counters for poll-session observability.

Tracked series:
- status_polls_total{status}: status reads merged by an engine
- steps_emitted_total: step events handed to callers
- poll_sessions_total{outcome} / poll_session_seconds{outcome}
- human_decisions_total{decision}
- reconciliation_reads_total{outcome}
"""
from collections import defaultdict
from typing import Any
import logging

logger = logging.getLogger("runflow.metrics")


class MetricsCollector:
    """Counters and raw histogram samples keyed by name + labels."""

    def __init__(self):
        self.counters: dict[str, int] = defaultdict(int)
        self.histograms: dict[str, list[float]] = defaultdict(list)

    def increment_counter(self, name: str, value: int = 1, labels: dict[str, str] | None = None):
        self.counters[self._build_key(name, labels)] += value

    def observe_histogram(self, name: str, value: float, labels: dict[str, str] | None = None):
        self.histograms[self._build_key(name, labels)].append(value)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        return self.counters.get(self._build_key(name, labels), 0)

    def get_histogram_stats(self, name: str, labels: dict[str, str] | None = None) -> dict[str, Any]:
        """count / sum / min / max / avg of one histogram."""
        values = self.histograms.get(self._build_key(name, labels), [])
        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0}
        total = sum(values)
        return {
            "count": len(values),
            "sum": total,
            "min": min(values),
            "max": max(values),
            "avg": total / len(values),
        }

    def reset(self):
        self.counters.clear()
        self.histograms.clear()

    @staticmethod
    def _build_key(name: str, labels: dict[str, str] | None) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


# Process-wide collector shared by every engine
metrics = MetricsCollector()


def record_poll(status: str):
    metrics.increment_counter("status_polls_total", labels={"status": status})


def record_step_emitted():
    metrics.increment_counter("steps_emitted_total")


def record_session_finished(outcome: str, duration_seconds: float):
    """
    Record the end of one poll session.

    Args:
        outcome: completed, awaiting_human, failed, timeout, cancelled or error
        duration_seconds: wall time from session start to its end
    """
    metrics.increment_counter("poll_sessions_total", labels={"outcome": outcome})
    metrics.observe_histogram("poll_session_seconds", duration_seconds, labels={"outcome": outcome})


def record_human_decision(approved: bool | None):
    if approved is None:
        decision = "input"
    else:
        decision = "approved" if approved else "rejected"
    metrics.increment_counter("human_decisions_total", labels={"decision": decision})


def record_reconciliation(outcome: str):
    """outcome: applied (run moved on) or pending (still waiting on the task)."""
    metrics.increment_counter("reconciliation_reads_total", labels={"outcome": outcome})


def get_metrics_summary() -> dict[str, Any]:
    return {
        "counters": dict(metrics.counters),
        "histograms": {key: _stats_for_key(key) for key in metrics.histograms},
    }


def _stats_for_key(key: str) -> dict[str, Any]:
    values = metrics.histograms.get(key, [])
    if not values:
        return {"count": 0}
    return {"count": len(values), "sum": sum(values), "max": max(values)}
