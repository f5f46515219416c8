"""Client-side view of a workflow run, rebuilt from polled snapshots."""

from __future__ import annotations

from typing import Any

from runflow.schemas.runs import (
    AWAITING_HUMAN,
    COMPLETED,
    FAILURE_STATUSES,
    PENDING,
    RUNNING,
    TERMINAL_STATUSES,
    HumanTask,
    StatusSnapshot,
    StepRecord,
)


class RunState:
    """Mutable aggregate owned by exactly one PollingEngine.

    Attributes are exposed read-only.  The only writers are the merge
    methods, which the engine calls with freshly fetched snapshots.
    """

    def __init__(self, run_id: str, initial: StatusSnapshot | None = None):
        self._run_id = run_id
        self._status: str = PENDING
        self._progress: int = 0
        self._current_step: str | None = None
        self._step_records: list[StepRecord] = []
        self._result: Any | None = None
        self._pending_task: HumanTask | None = None
        self._error: str | None = None
        self._workflow_id: int | None = None
        self._agent_id: int | None = None
        self._context: dict[str, Any] = {}
        # Gates this client already answered; lagging reads may still show them
        self._settled_task_ids: set[str] = set()

        # The initiating response may be sparse (often just id + status)
        if initial is not None:
            self.merge_continuation(initial)

    # ── Read accessors ──────────────────────────────────────────

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def status(self) -> str:
        return self._status

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def current_step(self) -> str | None:
        return self._current_step

    @property
    def step_records(self) -> tuple[StepRecord, ...]:
        return tuple(self._step_records)

    @property
    def result(self) -> Any | None:
        return self._result

    @property
    def pending_task(self) -> HumanTask | None:
        return self._pending_task

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def workflow_id(self) -> int | None:
        return self._workflow_id

    @property
    def agent_id(self) -> int | None:
        return self._agent_id

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def is_active(self) -> bool:
        """Still worth polling: not terminal and not parked on a human gate.

        Unknown statuses count as active.
        """
        return self._status not in TERMINAL_STATUSES and self._status != AWAITING_HUMAN

    def is_completed(self) -> bool:
        return self._status == COMPLETED

    def is_failed(self) -> bool:
        return self._status in FAILURE_STATUSES

    def needs_human_input(self) -> bool:
        return self._status == AWAITING_HUMAN and self._pending_task is not None

    # ── Merges ──────────────────────────────────────────────────

    def merge_snapshot(self, snapshot: StatusSnapshot) -> None:
        """Overwrite state from a full status read."""
        self._status = snapshot.status
        self._progress = snapshot.progress
        self._current_step = snapshot.current_step
        self._step_records = list(snapshot.step_records)
        self._result = snapshot.result
        self._error = snapshot.error
        self._context = dict(snapshot.context)
        if snapshot.workflow_id is not None:
            self._workflow_id = snapshot.workflow_id
        if snapshot.agent_id is not None:
            self._agent_id = snapshot.agent_id

        task = snapshot.human_task
        if task is not None and task.id in self._settled_task_ids:
            task = None
            if self._status == AWAITING_HUMAN:
                self._status = RUNNING

        if task is not None:
            self._pending_task = task
        elif self._status != AWAITING_HUMAN:
            self._pending_task = None

    def merge_continuation(self, snapshot: StatusSnapshot) -> None:
        """Merge a sparse response: only keys the server actually sent are applied."""
        sent = snapshot.model_fields_set
        if "status" in sent:
            self._status = snapshot.status
        if "progress" in sent:
            self._progress = snapshot.progress
        if "current_step" in sent:
            self._current_step = snapshot.current_step
        if "step_records" in sent:
            self._step_records = list(snapshot.step_records)
        if "result" in sent:
            self._result = snapshot.result
        if "error" in sent:
            self._error = snapshot.error
        if "context" in sent:
            self._context = dict(snapshot.context)
        if "workflow_id" in sent:
            self._workflow_id = snapshot.workflow_id
        if "agent_id" in sent:
            self._agent_id = snapshot.agent_id
        if "human_task" in sent:
            self._pending_task = snapshot.human_task

    def settle_human_task(self, task_id: str) -> None:
        """Drop the gate *task_id* once the run has been told to continue past it.

        A run left at ``awaiting_human`` with no gate is moved back to
        ``running`` so the next poll session fetches again.
        """
        self._settled_task_ids.add(task_id)
        if self._pending_task is not None and self._pending_task.id == task_id:
            self._pending_task = None
        if self._status == AWAITING_HUMAN and self._pending_task is None:
            self._status = RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self._run_id,
            "status": self._status,
            "progress": self._progress,
            "current_step": self._current_step,
            "step_records": [record.model_dump() for record in self._step_records],
            "result": self._result,
            "human_task": self._pending_task.model_dump() if self._pending_task else None,
            "error": self._error,
            "workflow_id": self._workflow_id,
            "agent_id": self._agent_id,
        }
