"""Fire-and-forget scheduling for work the request path must never wait on."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)
_PENDING_TASKS: set[asyncio.Task[Any]] = set()


def fire_and_forget(
    coro: Coroutine[Any, Any, Any], *, task_name: str | None = None
) -> asyncio.Task[Any] | None:
    """Schedule a coroutine detached from the caller and log its failures.

    The caller only gets the task handle back; exceptions raised inside the
    coroutine are logged here and never re-raised into the caller's flow.
    A strong reference is held until the task finishes so it is not
    garbage collected mid-flight.
    """
    try:
        task = asyncio.create_task(coro, name=task_name)
    except RuntimeError:
        # No running loop (e.g. during shutdown); drop the work.
        coro.close()
        logger.warning("No running event loop; skipped background task %s", task_name or "unnamed task")
        return None
    _PENDING_TASKS.add(task)

    def _on_done(done_task: asyncio.Task[Any]) -> None:
        _PENDING_TASKS.discard(done_task)
        try:
            done_task.result()
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("Background task failed: %s", task_name or "unnamed task")

    task.add_done_callback(_on_done)
    return task


def pending_task_count() -> int:
    return sum(1 for task in _PENDING_TASKS if not task.done())


async def drain_background_tasks(timeout_seconds: float = 1.0) -> None:
    """Wait for in-flight fire-and-forget tasks to finish.

    Called at shutdown, and by tests that need background matching to have
    completed before asserting on its side effects. Tasks still running
    after the timeout are cancelled.
    """
    if not _PENDING_TASKS:
        return

    pending = {task for task in _PENDING_TASKS if not task.done()}
    if not pending:
        return

    _, still_pending = await asyncio.wait(pending, timeout=timeout_seconds)
    for task in still_pending:
        task.cancel()

    if still_pending:
        await asyncio.gather(*still_pending, return_exceptions=True)
