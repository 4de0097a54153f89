"""
Scoped timer and background-task registry.

Responsibilities:
- Own every periodic timer and background task of one instance by id
- Replace, cancel and tear down tasks deterministically
- Keep a failing callback from killing its interval

Non-responsibilities:
- NO decisions about what a timer does
- NO knowledge of session, presence or stats semantics

Every task acquired at state entry must be released on every exit path
from that state; clear_all()/shutdown() are the abrupt-teardown path.
"""

from __future__ import annotations

import asyncio
from asyncio import Task
from typing import Any, Callable, Coroutine

from observability.logger import log_event, now_ms


TimerCallback = Callable[[], None]


class TaskRegistry:
    """
    Named asyncio tasks for a single instance.

    Lifecycle:
    1. Owner calls start_interval(timer_id, ...) or spawn(task_id, coro)
    2. A second start with the same id replaces the first
    3. Owner calls cancel(id) on state exit
    4. Owner calls shutdown() on teardown
    """

    def __init__(self, *, owner: str | None = None) -> None:
        self._owner = owner
        self._tasks: dict[str, Task[Any]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_interval(self, timer_id: str, interval_ms: int, callback: TimerCallback) -> None:
        """
        Start or replace a periodic timer.

        The callback runs every `interval_ms` on the event loop, first
        run one interval after start. Must be called with a running loop.
        """
        self.cancel(timer_id)

        async def _interval_task() -> None:
            try:
                while True:
                    await asyncio.sleep(interval_ms / 1000.0)
                    self._run_callback(timer_id, callback)
            except asyncio.CancelledError:
                # Timer was cancelled - this is normal
                return

        self._tasks[timer_id] = asyncio.create_task(_interval_task())

    def spawn(self, task_id: str, coro: Coroutine[Any, Any, Any]) -> None:
        """
        Run a one-shot background coroutine under `task_id`.

        The entry is dropped from the registry when the task finishes.
        """
        self.cancel(task_id)
        task = asyncio.create_task(coro)
        self._tasks[task_id] = task

        def _cleanup(done: Task[Any]) -> None:
            if self._tasks.get(task_id) is done:
                self._tasks.pop(task_id, None)

        task.add_done_callback(_cleanup)

    def cancel(self, task_id: str) -> None:
        """
        Cancel a task if it exists.

        Idempotent: safe to call even if the task doesn't exist.
        """
        task = self._tasks.pop(task_id, None)
        if task is not None and not task.done():
            task.cancel()

    def is_active(self, task_id: str) -> bool:
        """True if a task with this id is registered and still running."""
        task = self._tasks.get(task_id)
        return task is not None and not task.done()

    def active_ids(self) -> tuple[str, ...]:
        """Ids of all running tasks."""
        return tuple(k for k, t in self._tasks.items() if not t.done())

    def clear_all(self) -> None:
        """Cancel and forget every task."""
        for task_id in list(self._tasks.keys()):
            self.cancel(task_id)

    async def shutdown(self) -> None:
        """
        Cancel every task and wait for all of them to acknowledge.

        Called on instance teardown.
        """
        tasks = [t for t in self._tasks.values() if not t.done()]
        self.clear_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run_callback(self, timer_id: str, callback: TimerCallback) -> None:
        try:
            callback()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "timer_callback_error",
                "instance_id": self._owner,
                "timer_id": timer_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
