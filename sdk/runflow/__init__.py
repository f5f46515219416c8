"""Client-side driver for remote workflow runs.

Typical use::

    async with WorkflowClient() as client:
        workflows = WorkflowsResource(client)
        run = await workflows.execute("Draft the weekly newsletter", require_approval=True)

        async for event in run.produce_steps():
            print(event)

        if run.needs_human_input():
            await run.approve("Looks good")

        result = await run.result()

Settings come from the environment (``RUNFLOW_*``, ``POLL_INTERVAL_MS``,
``MAX_POLLING_DURATION_SECONDS`` …), see :mod:`runflow.config`.
"""

from runflow.connectors.workflow_client import WorkflowClient
from runflow.errors import (
    APIError,
    HumanInputRequired,
    NoPendingApproval,
    PollingCancelled,
    PollingTimeout,
    RunflowError,
    WorkflowError,
    WorkflowFailed,
)
from runflow.resources.workflows import WorkflowsResource
from runflow.runtime.engine import PollingEngine, StatusProvider
from runflow.runtime.state import RunState
from runflow.schemas.runs import (
    HumanTask,
    StatusSnapshot,
    StepEvent,
    StepRecord,
    WorkflowRunResult,
)

__version__ = "0.1.0"

__all__ = [
    "APIError",
    "HumanInputRequired",
    "HumanTask",
    "NoPendingApproval",
    "PollingCancelled",
    "PollingEngine",
    "PollingTimeout",
    "RunState",
    "RunflowError",
    "StatusProvider",
    "StatusSnapshot",
    "StepEvent",
    "StepRecord",
    "WorkflowClient",
    "WorkflowError",
    "WorkflowFailed",
    "WorkflowRunResult",
    "WorkflowsResource",
]
