"""Workflow-run resource: the entry point callers use to start or follow runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from runflow.connectors.workflow_client import WorkflowClient
from runflow.errors import APIError
from runflow.runtime.engine import PollingEngine
from runflow.schemas.runs import HumanTask, StatusSnapshot

logger = logging.getLogger("runflow.resources.workflows")


class WorkflowsResource:
    """Starts runs and wraps them in PollingEngines.

    Polling overrides given here apply to every engine the resource creates;
    ``None`` falls back to settings.
    """

    def __init__(
        self,
        client: WorkflowClient,
        *,
        poll_interval_ms: int | None = None,
        max_polling_duration_s: float | None = None,
    ):
        self._client = client
        self.poll_interval_ms = poll_interval_ms
        self.max_polling_duration_s = max_polling_duration_s

    async def execute(
        self,
        query: str,
        *,
        agent_id: int | None = None,
        workflow_id: int | None = None,
        bloq_id: int | None = None,
        conversation_history: list[dict[str, Any]] | None = None,
        require_approval: bool = False,
        variables: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> PollingEngine:
        """Start a run and return an engine seeded with the creation response."""
        if not query:
            raise ValueError("query is required")
        snapshot = await self._client.start_run(
            {
                "agent_id": agent_id,
                "workflow_id": workflow_id,
                "query": query,
                "bloq_id": bloq_id,
                "conversation_history": conversation_history or [],
                "require_approval": require_approval,
                "variables": variables or {},
                "metadata": metadata or {},
            }
        )
        if not snapshot.id:
            raise APIError("Run creation response did not include a run id")
        logger.info("Started run %s (status=%s)", snapshot.id, snapshot.status)
        return self._engine(snapshot.id, initial=snapshot, cancel_event=cancel_event)

    def attach(self, run_id: str, cancel_event: asyncio.Event | None = None) -> PollingEngine:
        """Follow a run started elsewhere.  State is filled in by the first poll."""
        return self._engine(run_id, initial=None, cancel_event=cancel_event)

    async def continue_run(
        self, run_id: str, decision: dict[str, Any] | None = None
    ) -> PollingEngine:
        """Low-level continue without resolving a task; returns a fresh engine."""
        snapshot = await self._client.continue_run(run_id, decision or {})
        return self._engine(run_id, initial=snapshot, cancel_event=None)

    async def get_status(self, run_id: str) -> StatusSnapshot:
        return await self._client.fetch_status(run_id)

    async def complete_task(self, task_id: str, decision: dict[str, Any]) -> bool:
        await self._client.resolve_human_task(task_id, decision)
        return True

    async def get_task(self, task_id: str) -> HumanTask:
        return await self._client.get_task(task_id)

    async def get_logs(self, run_id: str) -> list[dict[str, Any]]:
        return await self._client.get_logs(run_id)

    async def runs(self, **filters: Any) -> list[StatusSnapshot]:
        return await self._client.list_runs(**filters)

    def _engine(
        self,
        run_id: str,
        initial: StatusSnapshot | None,
        cancel_event: asyncio.Event | None,
    ) -> PollingEngine:
        return PollingEngine(
            run_id,
            self._client,
            initial=initial,
            poll_interval_ms=self.poll_interval_ms,
            max_polling_duration_s=self.max_polling_duration_s,
            cancel_event=cancel_event,
        )
