"""Polling engine: turns repeated status reads into a stream of step events.

The remote system has no push channel, so a run is observed by polling:

    fetch snapshot → merge into RunState → yield unseen steps → wait → repeat

until the run completes, parks on a human approval gate, fails, or the
session's wall-clock budget runs out.

Guarantees (per engine instance):
  * at-most-once: every step identity key is yielded at most once, even
    though unchanged snapshots repeat the same records indefinitely;
  * first-seen order: keys are yielded in the order they first appear;
  * one-shot: once the run is completed/failed/awaiting_human, further
    calls to produce_steps() neither fetch nor yield.

Both suspension points (the in-flight fetch and the inter-tick sleep) race
the session deadline and the cancellation event, so abandoning a session
never leaves a request running in the background.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Protocol, TypeVar

from runflow.config import settings
from runflow.errors import (
    HumanInputRequired,
    NoPendingApproval,
    PollingCancelled,
    PollingTimeout,
    WorkflowFailed,
)
from runflow.runtime import hil
from runflow.runtime.state import RunState
from runflow.schemas.runs import (
    AWAITING_HUMAN,
    COMPLETED,
    FAILURE_STATUSES,
    HumanTask,
    StatusSnapshot,
    StepEvent,
    WorkflowRunResult,
)
from runflow.utils import run_cancel
from runflow.utils.logger import bind_run_context
from runflow.utils.metrics import (
    record_human_decision,
    record_poll,
    record_reconciliation,
    record_session_finished,
    record_step_emitted,
)

logger = logging.getLogger("runflow.runtime.engine")

T = TypeVar("T")


class StatusProvider(Protocol):
    """Remote operations the engine depends on (see WorkflowClient)."""

    async def fetch_status(self, run_id: str) -> StatusSnapshot: ...

    async def resolve_human_task(self, task_id: str, decision: dict[str, Any]) -> None: ...

    async def continue_run(self, run_id: str, decision: dict[str, Any]) -> StatusSnapshot: ...


class PollingEngine:
    """Drives one remote workflow run from the client side."""

    def __init__(
        self,
        run_id: str,
        provider: StatusProvider,
        *,
        initial: StatusSnapshot | None = None,
        poll_interval_ms: int | None = None,
        max_polling_duration_s: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        if not run_id:
            raise ValueError("run_id is required")
        self.poll_interval_ms = (
            settings.POLL_INTERVAL_MS if poll_interval_ms is None else poll_interval_ms
        )
        self.max_polling_duration_s = (
            settings.MAX_POLLING_DURATION_SECONDS
            if max_polling_duration_s is None
            else max_polling_duration_s
        )
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be positive")
        if self.max_polling_duration_s <= 0:
            raise ValueError("max_polling_duration_s must be positive")

        self._run_id = run_id
        self._provider = provider
        self._state = RunState(run_id, initial)
        self._cancel_event = cancel_event

        self._seen_keys: set[str] = set()
        self._emitted = 0
        # Gate already resolved remotely whose continue call has not gone through
        self._resolved_task_id: str | None = None
        self._result: WorkflowRunResult | None = None
        self._log_extra = {"run_id": run_id}

    # ── Read accessors ──────────────────────────────────────────

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def progress(self) -> int:
        return self._state.progress

    @property
    def current_step(self) -> str | None:
        return self._state.current_step

    @property
    def pending_task(self) -> HumanTask | None:
        return self._state.pending_task

    def is_running(self) -> bool:
        return self._state.is_active()

    def is_completed(self) -> bool:
        return self._state.is_completed()

    def is_failed(self) -> bool:
        return self._state.is_failed()

    def to_dict(self) -> dict[str, Any]:
        return self._state.to_dict()

    # ── Step streaming ──────────────────────────────────────────

    async def produce_steps(self) -> AsyncIterator[StepEvent]:
        """Run one poll session, yielding each newly seen step.

        Ends normally when the run completes or waits for a human decision.
        Raises WorkflowFailed, PollingTimeout or PollingCancelled otherwise;
        transport errors propagate unchanged.  After a timeout or
        cancellation, calling again starts a new session with a fresh budget.
        """
        if not self._state.is_active():
            return

        cancel_event, registered = self._session_cancel_event()
        started = time.monotonic()
        deadline = started + self.max_polling_duration_s
        outcome = "abandoned"
        logger.info(
            "Poll session started for run %s (interval=%dms, budget=%gs)",
            self._run_id,
            self.poll_interval_ms,
            self.max_polling_duration_s,
            extra=self._log_extra,
        )

        try:
            while True:
                if cancel_event.is_set():
                    raise PollingCancelled(self._run_id)
                if time.monotonic() >= deadline:
                    raise PollingTimeout(self._run_id, self.max_polling_duration_s)

                snapshot = await self._interruptible(
                    self._fetch_in_run_context(), deadline, cancel_event
                )
                self._state.merge_snapshot(snapshot)
                record_poll(snapshot.status)

                for record in snapshot.step_records:
                    key = record.identity_key
                    if key in self._seen_keys:
                        continue
                    self._seen_keys.add(key)
                    event = StepEvent(
                        run_id=self._run_id, sequence=self._emitted, key=key, step=record
                    )
                    self._emitted += 1
                    record_step_emitted()
                    yield event

                status = self._state.status
                if status in (COMPLETED, AWAITING_HUMAN):
                    outcome = status
                    return
                if status in FAILURE_STATUSES:
                    raise WorkflowFailed(self._state.error, self._run_id, status)

                await self._pause(deadline, cancel_event)
        except PollingTimeout:
            outcome = "timeout"
            logger.warning(
                "Poll session for run %s timed out after %gs",
                self._run_id,
                self.max_polling_duration_s,
                extra=self._log_extra,
            )
            raise
        except PollingCancelled:
            outcome = "cancelled"
            logger.info("Poll session for run %s cancelled", self._run_id, extra=self._log_extra)
            raise
        except WorkflowFailed as exc:
            outcome = "failed"
            logger.warning(
                "Run %s reported %s: %s",
                self._run_id,
                exc.status,
                exc.message,
                extra=self._log_extra,
            )
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            if registered:
                run_cancel.deregister(self._run_id, cancel_event)
            elapsed = time.monotonic() - started
            record_session_finished(outcome, elapsed)
            logger.info(
                "Poll session for run %s ended: %s after %.2fs (%d steps seen)",
                self._run_id,
                outcome,
                elapsed,
                len(self._seen_keys),
                extra=self._log_extra,
            )

    async def _fetch_in_run_context(self) -> StatusSnapshot:
        # Wrapped in its own task by _interruptible, so the ids stay in that task
        with bind_run_context(self._run_id):
            return await self._provider.fetch_status(self._run_id)

    async def refresh(self) -> "PollingEngine":
        """Single fetch + merge.  Records a failure instead of raising it."""
        snapshot = await self._provider.fetch_status(self._run_id)
        self._state.merge_snapshot(snapshot)
        record_poll(snapshot.status)
        return self

    async def get_status(self) -> StatusSnapshot:
        """Fetch a snapshot without touching the engine state."""
        return await self._provider.fetch_status(self._run_id)

    # ── Result ──────────────────────────────────────────────────

    async def result(self) -> WorkflowRunResult:
        """Poll until the run settles and return its result."""
        async for _ in self.produce_steps():
            pass

        status = self._state.status
        if status == AWAITING_HUMAN:
            raise HumanInputRequired(self._run_id, self._state.pending_task)
        if status in FAILURE_STATUSES:
            raise WorkflowFailed(self._state.error, self._run_id, status)
        if self._result is None:
            self._result = WorkflowRunResult.model_validate(self._state.result)
        return self._result

    # ── Human-in-the-loop ───────────────────────────────────────

    def needs_human_input(self) -> bool:
        return self._state.needs_human_input()

    async def approve(self, feedback: str | None = None) -> "PollingEngine":
        return await self.provide_input(hil.build_decision(True, feedback))

    async def reject(self, feedback: str | None = None) -> "PollingEngine":
        return await self.provide_input(hil.build_decision(False, feedback))

    async def provide_input(self, decision: dict[str, Any]) -> "PollingEngine":
        """Resolve the pending gate, then tell the run to continue.

        The two remote calls are not atomic.  If resolving succeeds but
        continuing fails for any reason (including an unreadable response
        to a call the server may have applied), the run status is re-read: when the run already
        moved on the call succeeds, otherwise the continue error is raised
        and a retry skips the (already done) resolve step.
        """
        if not self.needs_human_input():
            raise NoPendingApproval(self._run_id)

        task = self._state.pending_task
        with bind_run_context(self._run_id, task.id):
            if self._resolved_task_id == task.id:
                logger.info(
                    "Task %s of run %s already resolved; retrying continue only",
                    task.id,
                    self._run_id,
                )
            else:
                await self._provider.resolve_human_task(task.id, decision)
                self._resolved_task_id = task.id
                logger.info("Resolved task %s of run %s", task.id, self._run_id)

            try:
                snapshot = await self._provider.continue_run(self._run_id, decision)
            except Exception as exc:
                logger.warning(
                    "Continue failed for run %s after resolving task %s: %s; reconciling",
                    self._run_id,
                    task.id,
                    exc,
                )
                await self._reconcile(task, exc)
            else:
                self._state.merge_continuation(snapshot)
                self._state.settle_human_task(task.id)

            self._resolved_task_id = None
            record_human_decision(hil.decision_verdict(decision))
            logger.info("Run %s resumed; status now %s", self._run_id, self._state.status)
        return self

    async def _reconcile(self, task: HumanTask, error: Exception) -> None:
        snapshot = await self._provider.fetch_status(self._run_id)
        self._state.merge_snapshot(snapshot)
        if hil.is_task_settled(snapshot, task.id):
            record_reconciliation("applied")
            self._state.settle_human_task(task.id)
            logger.info(
                "Run %s moved past task %s despite the failed continue call",
                self._run_id,
                task.id,
            )
            return
        record_reconciliation("pending")
        raise error

    # ── Suspension points ───────────────────────────────────────

    def _session_cancel_event(self) -> tuple[asyncio.Event, bool]:
        if self._cancel_event is not None:
            return self._cancel_event, False
        return run_cancel.register(self._run_id), True

    async def _interruptible(
        self, awaitable: Awaitable[T], deadline: float, cancel_event: asyncio.Event
    ) -> T:
        """Await *awaitable* unless the deadline or the cancel signal comes first."""
        work = asyncio.ensure_future(awaitable)
        stopper = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, stopper},
                timeout=max(deadline - time.monotonic(), 0),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stopper.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            return work.result()
        if stopper in done:
            raise PollingCancelled(self._run_id)
        raise PollingTimeout(self._run_id, self.max_polling_duration_s)

    async def _pause(self, deadline: float, cancel_event: asyncio.Event) -> None:
        """Sleep one poll interval, or raise if the budget ends first."""
        interval = self.poll_interval_ms / 1000.0
        remaining = deadline - time.monotonic()
        budget_exhausted = remaining <= interval
        delay = max(remaining, 0) if budget_exhausted else interval

        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            if budget_exhausted:
                raise PollingTimeout(self._run_id, self.max_polling_duration_s) from None
            return
        raise PollingCancelled(self._run_id)
