"""Human-in-the-loop helpers: decision payloads and reconciliation checks."""

from __future__ import annotations

from typing import Any

from runflow.schemas.runs import AWAITING_HUMAN, StatusSnapshot


def build_decision(approved: bool, feedback: str | None = None) -> dict[str, Any]:
    """Payload sent both to the task-complete and the run-continue endpoints."""
    return {"approved": approved, "feedback": feedback}


def decision_verdict(decision: dict[str, Any]) -> bool | None:
    """True/False for approve/reject payloads, None for free-form input."""
    approved = decision.get("approved")
    if isinstance(approved, bool):
        return approved
    return None


def is_task_settled(snapshot: StatusSnapshot, task_id: str) -> bool:
    """Whether a fresh status read shows the run has moved past gate *task_id*.

    Used after a failed continue call: the task is already resolved remotely,
    so the run either picked the decision up (settled) or is still parked on
    the same gate (not settled; only the continue call must be retried).
    """
    if snapshot.status != AWAITING_HUMAN:
        return True
    task = snapshot.human_task
    return task is not None and task.id != task_id
