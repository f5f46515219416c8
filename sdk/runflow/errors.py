"""Exception hierarchy for the runflow SDK.

Two families hang off :class:`RunflowError`:

* :class:`WorkflowError`: raised by the polling engine about the run itself
  (timeouts, cancellation, server-reported failure, approval-gate misuse).
* :class:`APIError`: raised by the HTTP transport.  These already went
  through the transport's own retries and are never retried by the engine.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from runflow.schemas.runs import HumanTask


class RunflowError(Exception):
    """Base class for every error raised by the SDK."""

    def __init__(self, message: str, run_id: str | None = None):
        self.run_id = run_id
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def context(self) -> dict[str, Any]:
        return {"run_id": self.run_id, "message": self.message}

    def format_message(self) -> str:
        return self.message


class RunflowConfigError(RunflowError):
    """Raised when a required setting (API key, user id) is missing."""


# ─────────────────────────────────────────────────────────────────────────────
# Run-level errors
# ─────────────────────────────────────────────────────────────────────────────


class WorkflowError(RunflowError):
    """Base class for errors about a workflow run."""


class PollingTimeout(WorkflowError):
    """The poll session exceeded its wall-clock budget.

    The remote run is untouched; start a new session to keep waiting.
    """

    def __init__(self, run_id: str, max_duration_s: float):
        self.max_duration_s = max_duration_s
        super().__init__(
            f"Workflow polling timeout after {max_duration_s:g} seconds", run_id
        )

    def context(self) -> dict[str, Any]:
        return {**super().context(), "max_duration_s": self.max_duration_s}


class PollingCancelled(WorkflowError):
    """The poll session was abandoned through its cancellation signal."""

    def __init__(self, run_id: str):
        super().__init__("Workflow polling cancelled", run_id)


class WorkflowFailed(WorkflowError):
    """The server reported the run as failed.  Not retryable."""

    def __init__(self, message: str | None, run_id: str, status: str = "failed"):
        self.status = status
        super().__init__(message or "Workflow execution failed", run_id)

    def context(self) -> dict[str, Any]:
        return {**super().context(), "status": self.status}


class NoPendingApproval(WorkflowError):
    """A decision was submitted while no approval gate is open."""

    def __init__(self, run_id: str):
        super().__init__("No human input required at this time", run_id)


class HumanInputRequired(WorkflowError):
    """The run is paused on an approval gate; resolve it before asking for a result."""

    def __init__(self, run_id: str, task: "HumanTask | None" = None):
        self.task = task
        super().__init__("Workflow requires human input before completing", run_id)

    def context(self) -> dict[str, Any]:
        ctx = super().context()
        if self.task is not None:
            ctx["task_id"] = self.task.id
            ctx["prompt"] = self.task.prompt
        return ctx


# ─────────────────────────────────────────────────────────────────────────────
# Transport errors
# ─────────────────────────────────────────────────────────────────────────────


class APIError(RunflowError):
    """An HTTP call to the remote API failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        request_id: str | None = None,
        errors: Any | None = None,
    ):
        self.status_code = status_code
        self.request_id = request_id
        self.errors = errors
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {
            **super().context(),
            "status_code": self.status_code,
            "request_id": self.request_id,
        }

    def format_message(self) -> str:
        message = self.message
        if self.request_id:
            message += f" (Request ID: {self.request_id})"
        if self.errors:
            message += "\nErrors: " + json.dumps(self.errors, indent=2, default=str)
        return message


class AuthenticationError(APIError):
    pass


class NotFoundError(APIError):
    pass


class ValidationError(APIError):
    """422 from the API; ``errors`` maps field names to messages."""

    def field_errors(self, field: str) -> list[str]:
        if isinstance(self.errors, dict):
            value = self.errors.get(field) or []
            return list(value) if isinstance(value, (list, tuple)) else [str(value)]
        return []


class RateLimitError(APIError):
    def __init__(self, message: str, retry_after: int = 60, **kwargs: Any):
        self.retry_after = retry_after
        super().__init__(message, status_code=429, **kwargs)


class ServerError(APIError):
    pass


class TransportError(APIError):
    """The request never produced an HTTP response (DNS, connect, read timeout…)."""
