"""Pydantic models for workflow runs, steps and approval gates.

Every model normalises the wire payload in a ``mode="before"`` validator:
the remote API is not consistent about key names (``id`` vs ``run_id``,
``human_task`` vs ``pending_task``…) and sends ``null`` for absent values.
Keys that are missing or ``null`` are dropped, so the field default applies
and ``model_fields_set`` reflects what the server actually sent.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

# Run statuses
PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"
AWAITING_HUMAN = "awaiting_human"

TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, CANCELLED})
FAILURE_STATUSES = frozenset({FAILED, CANCELLED})


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _normalise(data: Any, aliases: dict[str, tuple[str, ...]]) -> Any:
    """Map wire keys onto field names, dropping ``None`` values."""
    if not isinstance(data, dict):
        return data
    out: dict[str, Any] = {}
    for field, keys in aliases.items():
        value = _first(data, *keys)
        if value is not None:
            out[field] = value
    return out


def _as_id(value: Any) -> Any:
    # Ids arrive as ints from some endpoints and as strings from others
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    return value


def _as_mapping(value: Any) -> Any:
    # PHP encodes an empty associative array as []
    if isinstance(value, (list, tuple)) and not value:
        return {}
    return value


def _as_percent(value: Any) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, number))


class StepRecord(BaseModel):
    """One step of a run as reported by the server."""

    id: str | None = None
    number: int = 0
    name: str = ""
    description: str = ""
    status: str = PENDING
    progress: int = 0
    params: dict[str, Any] = Field(default_factory=dict)
    result: Any | None = None
    error: str | None = None
    requires_approval: bool = False
    duration: int | None = None
    started_at: str | None = None
    completed_at: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        out = _normalise(
            data,
            {
                "id": ("id",),
                "number": ("step_number", "number"),
                "name": ("name", "tool", "step_name"),
                "description": ("description",),
                "status": ("status",),
                "progress": ("progress",),
                "params": ("params", "parameters"),
                "result": ("result",),
                "error": ("error",),
                "requires_approval": ("requires_approval",),
                "duration": ("duration",),
                "started_at": ("started_at",),
                "completed_at": ("completed_at",),
            },
        )
        if isinstance(out, dict) and "id" in out:
            out["id"] = _as_id(out["id"])
        return out

    @field_validator("params", mode="before")
    @classmethod
    def _params_mapping(cls, value: Any) -> Any:
        return _as_mapping(value)

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> int:
        return _as_percent(value)

    @property
    def identity_key(self) -> str:
        """Stable dedup key: the server id, or ``"<number>_<status>"`` without one."""
        if self.id:
            return self.id
        return f"{self.number}_{self.status}"

    def is_completed(self) -> bool:
        return self.status == COMPLETED

    def is_failed(self) -> bool:
        return self.status == FAILED

    def is_executing(self) -> bool:
        return self.status == "executing"

    def is_pending(self) -> bool:
        return self.status == PENDING

    def has_result(self) -> bool:
        return self.result is not None

    def result_text(self) -> str:
        if self.result is None:
            return ""
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, indent=2, default=str)

    def __str__(self) -> str:
        return f"[Step {self.number}] {self.name}: {self.description} ({self.status})"


class StepEvent(BaseModel):
    """A step surfaced to the caller by the polling engine, exactly once."""

    run_id: str
    sequence: int
    key: str
    step: StepRecord

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return str(self.step)


class HumanTask(BaseModel):
    """An approval gate the run is waiting on."""

    id: str = ""
    task_type: str = "approval"
    prompt: str = ""
    step_name: str = ""
    step_index: int = 0
    step_params: dict[str, Any] = Field(default_factory=dict)
    status: str = PENDING
    workflow_run_id: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        out = _normalise(
            data,
            {
                "id": ("id",),
                "task_type": ("task_type", "type"),
                "prompt": ("description", "message", "prompt"),
                "step_name": ("step_name",),
                "step_index": ("step_index",),
                "step_params": ("step_params", "params"),
                "status": ("status",),
                "workflow_run_id": ("workflow_run_id",),
                "input_schema": ("input_schema",),
                "created_at": ("created_at",),
            },
        )
        if isinstance(out, dict):
            for key in ("id", "workflow_run_id"):
                if key in out:
                    out[key] = _as_id(out[key])
        return out

    @field_validator("step_params", "input_schema", mode="before")
    @classmethod
    def _empty_mapping(cls, value: Any) -> Any:
        return _as_mapping(value)

    def is_pending(self) -> bool:
        return self.status == PENDING

    def is_approved(self) -> bool:
        return self.status == "approved"

    def is_rejected(self) -> bool:
        return self.status == "rejected"

    def context(self) -> dict[str, Any]:
        return {
            "step_name": self.step_name,
            "step_index": self.step_index,
            "params": self.step_params,
            "description": self.prompt,
        }


class StatusSnapshot(BaseModel):
    """One point-in-time read of a run."""

    id: str = ""
    status: str = PENDING
    progress: int = 0
    current_step: str | None = None
    total_steps: int | None = None
    current_step_index: int = 0
    step_records: list[StepRecord] = Field(default_factory=list)
    result: Any | None = None
    human_task: HumanTask | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    workflow_id: int | None = None
    agent_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        out = _normalise(
            data,
            {
                "id": ("id", "run_id"),
                "status": ("status",),
                "progress": ("progress",),
                "current_step": ("current_step",),
                "total_steps": ("total_steps",),
                "current_step_index": ("current_step_index",),
                "step_records": ("step_records",),
                "result": ("result", "results"),
                "human_task": ("human_task", "pending_task"),
                "context": ("context",),
                "error": ("error", "error_message"),
                "workflow_id": ("workflow_id",),
                "agent_id": ("agent_id",),
                "created_at": ("created_at",),
                "updated_at": ("updated_at",),
            },
        )
        if isinstance(out, dict) and "id" in out:
            out["id"] = _as_id(out["id"])
        return out

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> int:
        return _as_percent(value)

    @field_validator("context", mode="before")
    @classmethod
    def _context_mapping(cls, value: Any) -> Any:
        return _as_mapping(value)

    def step_count(self) -> int:
        if self.total_steps is not None:
            return self.total_steps
        return len(self.step_records)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def needs_human_input(self) -> bool:
        return self.status == AWAITING_HUMAN and self.human_task is not None

    def completed_steps_count(self) -> int:
        return sum(1 for step in self.step_records if step.is_completed())

    def current_step_record(self) -> StepRecord | None:
        for step in self.step_records:
            if step.is_executing():
                return step
        return None


class WorkflowRunResult(BaseModel):
    """Final payload of a completed run."""

    content: str = ""
    files: list[Any] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)
    execution_time: int | None = None
    token_usage: dict[str, Any] = Field(default_factory=dict)
    step_results: list[Any] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if data is None:
            data = {}
        elif isinstance(data, str):
            data = {"content": data}
        elif isinstance(data, list):
            data = {"step_results": data}
        if not isinstance(data, dict):
            return data
        out = _normalise(
            data,
            {
                "content": ("content", "response", "message"),
                "files": ("files", "file_urls"),
                "summary": ("summary",),
                "execution_time": ("execution_time", "duration"),
                "token_usage": ("token_usage", "usage"),
                "step_results": ("step_results",),
                "metadata": ("metadata",),
            },
        )
        out["raw"] = dict(data)
        return out

    @field_validator("summary", "token_usage", "metadata", mode="before")
    @classmethod
    def _empty_mapping(cls, value: Any) -> Any:
        return _as_mapping(value)

    def __str__(self) -> str:
        return self.content

    def has_content(self) -> bool:
        return bool(self.content.strip())

    def has_files(self) -> bool:
        return bool(self.files)

    def file_urls(self) -> list[str]:
        return [f.get("url", "") if isinstance(f, dict) else str(f) for f in self.files]

    def total_tokens(self) -> int:
        return int(self.token_usage.get("total_tokens", 0) or 0)

    def execution_time_seconds(self) -> float:
        if self.execution_time is None:
            return 0.0
        return self.execution_time / 1000

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)
