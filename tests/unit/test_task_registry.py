# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio

import pytest

from observability import logger
from orchestrator.timers import TaskRegistry


def test_interval_runs_until_cancelled() -> None:
    async def _run() -> int:
        timers = TaskRegistry(owner="a")
        calls: list[int] = []
        timers.start_interval("t", 5, lambda: calls.append(1))
        await asyncio.sleep(0.06)
        timers.cancel("t")
        seen = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == seen
        assert not timers.is_active("t")
        return seen

    assert asyncio.run(_run()) >= 2


def test_restarting_a_timer_replaces_it() -> None:
    async def _run() -> None:
        timers = TaskRegistry()
        first: list[int] = []
        second: list[int] = []
        timers.start_interval("t", 5, lambda: first.append(1))
        timers.start_interval("t", 5, lambda: second.append(1))
        await asyncio.sleep(0.03)
        await timers.shutdown()
        assert not first
        assert second
        assert timers.active_ids() == ()

    asyncio.run(_run())


def test_failing_callback_keeps_interval_alive(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    async def _run() -> int:
        timers = TaskRegistry(owner="a")
        calls: list[int] = []

        def flaky() -> None:
            calls.append(1)
            raise RuntimeError("nope")

        timers.start_interval("t", 5, flaky)
        await asyncio.sleep(0.05)
        await timers.shutdown()
        return len(calls)

    assert asyncio.run(_run()) >= 2
    assert any("timer_callback_error" in line for line in captured)


def test_spawned_task_is_forgotten_when_done() -> None:
    async def _run() -> None:
        timers = TaskRegistry()
        done = asyncio.Event()

        async def work() -> None:
            done.set()

        timers.spawn("job", work())
        await done.wait()
        await asyncio.sleep(0)
        assert "job" not in timers.active_ids()

    asyncio.run(_run())


def test_shutdown_cancels_pending_tasks() -> None:
    async def _run() -> None:
        timers = TaskRegistry()
        cancelled = asyncio.Event()

        async def forever() -> None:
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        timers.spawn("job", forever())
        timers.start_interval("t", 1_000, lambda: None)
        await asyncio.sleep(0)
        assert set(timers.active_ids()) == {"job", "t"}

        await timers.shutdown()

        assert cancelled.is_set()
        assert timers.active_ids() == ()

    asyncio.run(_run())


def test_cancel_unknown_id_is_noop() -> None:
    TaskRegistry().cancel("missing")
