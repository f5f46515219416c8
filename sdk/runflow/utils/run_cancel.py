"""Poll-session cancellation: in-process registry of ``asyncio.Event``s.

A :class:`~runflow.runtime.engine.PollingEngine` that is not handed an
explicit cancellation event registers one here under its run id for the
lifetime of each poll session.  Any other coroutine in the same process can
then abandon the session:

    run_cancel.mark_cancelled(run_id)

The engine notices the signal at its next suspension point (inter-tick
sleep or in-flight status fetch) and raises ``PollingCancelled``.

Cancellation is local only: the remote run keeps executing.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger("runflow.run_cancel")

_events: dict[str, asyncio.Event] = {}


def register(run_id: str) -> asyncio.Event:
    """Create and return a fresh (unset) cancellation event for *run_id*."""
    event = asyncio.Event()
    _events[run_id] = event
    logger.debug("Cancel registry: registered run %s", run_id)
    return event


def mark_cancelled(run_id: str) -> bool:
    """Signal cancellation for *run_id*.  Returns False if no session is registered."""
    event = _events.get(run_id)
    if event is None:
        logger.debug("Cancel registry: run %s not in registry (session finished?)", run_id)
        return False
    event.set()
    logger.info("Cancel registry: signalled run %s", run_id)
    return True


def is_cancelled(run_id: str) -> bool:
    event = _events.get(run_id)
    return event is not None and event.is_set()


def deregister(run_id: str, event: asyncio.Event | None = None) -> None:
    """Remove the event for *run_id*.

    When *event* is given, only remove the entry if it is still that event,
    so a finishing session cannot drop the registration of a newer one.
    """
    if event is not None and _events.get(run_id) is not event:
        return
    _events.pop(run_id, None)
    logger.debug("Cancel registry: deregistered run %s", run_id)


def registered_runs() -> list[str]:
    return sorted(_events)
