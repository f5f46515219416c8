"""Shared fixtures for SDK tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from runflow.runtime.engine import PollingEngine
from runflow.schemas.runs import StatusSnapshot
from runflow.utils import run_cancel
from runflow.utils.metrics import metrics


# ── Snapshot builders ───────────────────────────────────────────


def step(step_id: str | None, number: int = 1, status: str = "completed", **extra: Any) -> dict:
    data = {"step_number": number, "name": f"step-{number}", "status": status, **extra}
    if step_id is not None:
        data["id"] = step_id
    return data


def snap(status: str, *steps: dict, **extra: Any) -> dict:
    """Wire-shaped status payload for run ``run-1``."""
    return {"id": "run-1", "status": status, "step_records": list(steps), **extra}


def task(task_id: str = "task-1", **extra: Any) -> dict:
    return {
        "id": task_id,
        "description": "Approve the draft?",
        "step_name": "review",
        "input_schema": {"approved": "bool", "feedback": "string"},
        **extra,
    }


# ── Scripted status provider ────────────────────────────────────


class ScriptedProvider:
    """In-memory StatusProvider replaying a fixed list of snapshots.

    Each fetch returns the next snapshot; the last one repeats forever.
    Errors queued in ``fetch_errors`` / ``resolve_errors`` /
    ``continue_errors`` are raised (in order) by the matching call.
    """

    def __init__(self, snapshots: list[dict], continue_response: dict | None = None):
        self.snapshots = list(snapshots)
        self.continue_response = continue_response or {"id": "run-1", "status": "running"}
        self.fetch_count = 0
        self.calls: list[tuple] = []
        self.fetch_errors: list[Exception] = []
        self.resolve_errors: list[Exception] = []
        self.continue_errors: list[Exception] = []
        self.fetch_delay: float = 0.0
        self.fetch_cancelled = False

    async def fetch_status(self, run_id: str) -> StatusSnapshot:
        self.calls.append(("fetch", run_id))
        index = min(self.fetch_count, len(self.snapshots) - 1)
        self.fetch_count += 1
        if self.fetch_delay:
            try:
                await asyncio.sleep(self.fetch_delay)
            except asyncio.CancelledError:
                self.fetch_cancelled = True
                raise
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        return StatusSnapshot.model_validate(self.snapshots[index])

    async def resolve_human_task(self, task_id: str, decision: dict) -> None:
        self.calls.append(("resolve", task_id, decision))
        if self.resolve_errors:
            raise self.resolve_errors.pop(0)

    async def continue_run(self, run_id: str, decision: dict) -> StatusSnapshot:
        self.calls.append(("continue", run_id, decision))
        if self.continue_errors:
            raise self.continue_errors.pop(0)
        return StatusSnapshot.model_validate(self.continue_response)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


@pytest.fixture
def make_engine():
    """Factory: engine over a ScriptedProvider with fast polling defaults."""

    def _make(snapshots: list[dict], **kwargs: Any) -> tuple[PollingEngine, ScriptedProvider]:
        provider = ScriptedProvider(snapshots, continue_response=kwargs.pop("continue_response", None))
        kwargs.setdefault("poll_interval_ms", 1)
        kwargs.setdefault("max_polling_duration_s", 5)
        return PollingEngine("run-1", provider, **kwargs), provider

    return _make


@pytest.fixture(autouse=True)
def _reset_process_state():
    metrics.reset()
    yield
    metrics.reset()
    for run_id in run_cancel.registered_runs():
        run_cancel.deregister(run_id)


async def drain(engine: PollingEngine) -> list:
    return [event async for event in engine.produce_steps()]
