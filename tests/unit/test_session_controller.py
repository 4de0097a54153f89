# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import json
from typing import Any, Callable, Coroutine

import pytest

from adapters.llm.base import AssistantAdapter
from broadcast.local import LocalBroadcastHub
from observability import logger
from orchestrator.enums.state import State
from orchestrator.reducer import TIMER_SESSION_COUNTDOWN
from session.controller import SessionController
from spec import ASSISTANT_EMPTY_GREETING, MAX_SIPS, STATS_STORAGE_KEY
from stats.categories import Category
from stats.store import MemoryKeyValueStore


class FakeTimers:
    """Records intervals instead of scheduling them; fire() runs one."""

    def __init__(self) -> None:
        self.intervals: dict[str, tuple[int, Callable[[], None]]] = {}
        self.spawned: list[str] = []
        self.shut_down = False

    def start_interval(self, timer_id: str, interval_ms: int, callback: Callable[[], None]) -> None:
        self.intervals[timer_id] = (interval_ms, callback)

    def spawn(self, task_id: str, coro: Coroutine[Any, Any, Any]) -> None:
        self.spawned.append(task_id)
        coro.close()

    def cancel(self, timer_id: str) -> None:
        self.intervals.pop(timer_id, None)

    def clear_all(self) -> None:
        self.intervals.clear()

    async def shutdown(self) -> None:
        self.shut_down = True
        self.clear_all()

    def fire(self, timer_id: str) -> None:
        self.intervals[timer_id][1]()


class FakeAssistant(AssistantAdapter):
    def __init__(self, replies: list[str | None], gate: asyncio.Event | None = None) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict[str, str]]] = []
        self.gate = gate

    async def reply(
        self,
        *,
        messages: list[dict[str, str]],
        fallback: str | None,
        empty_fallback: str,
    ) -> str | None:
        self.calls.append(messages)
        if self.gate is not None:
            await self.gate.wait()
        # None stands for a failed request, "" for an empty answer
        text = self.replies.pop(0) if self.replies else None
        if text is None:
            return fallback
        return text or empty_fallback


@pytest.fixture(autouse=True)
def _captured(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    captured: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: captured.append(json.loads(line)))
    monkeypatch.setattr(logger, "_json_lines", True)
    return captured


def _controller(
    hub: LocalBroadcastHub,
    instance_id: str,
    store: MemoryKeyValueStore | None = None,
) -> tuple[SessionController, FakeTimers]:
    timers = FakeTimers()
    controller = SessionController(
        link=hub.link("g"),
        store=store if store is not None else MemoryKeyValueStore(),
        instance_id=instance_id,
        timers=timers,  # type: ignore[arg-type]
    )
    asyncio.run(controller.open())
    return controller, timers


def test_open_starts_presence_timers() -> None:
    controller, timers = _controller(LocalBroadcastHub(), "a")
    assert controller.peer_count() == 1
    assert "presence:heartbeat" in timers.intervals
    assert "presence:sweep" in timers.intervals


def test_finishing_the_drink_counts_once_and_replicates() -> None:
    hub = LocalBroadcastHub()
    store = MemoryKeyValueStore()
    a, a_timers = _controller(hub, "a", store)
    b, _ = _controller(hub, "b")

    a.start(Category.CAPPUCCINO, 120)
    assert TIMER_SESSION_COUNTDOWN in a_timers.intervals

    for _ in range(MAX_SIPS):
        a.sip()

    assert a.state.status is State.COMPLETED
    assert a.state.completed_naturally
    assert TIMER_SESSION_COUNTDOWN not in a_timers.intervals
    assert a.snapshot().counts[Category.CAPPUCCINO] == 1
    assert json.loads(store.get(STATS_STORAGE_KEY) or "{}")["cappuccino"] == 1
    assert b.snapshot().counts[Category.CAPPUCCINO] == 1

    a.sip()
    assert a.snapshot().counts[Category.CAPPUCCINO] == 1


def test_countdown_timeout_does_not_count() -> None:
    hub = LocalBroadcastHub()
    a, timers = _controller(hub, "a")
    a.start(Category.ICED, 60)

    for _ in range(59):
        timers.fire(TIMER_SESSION_COUNTDOWN)
    assert a.state.status is State.ACTIVE
    assert a.state.remaining_s == 1

    timers.fire(TIMER_SESSION_COUNTDOWN)

    assert a.state.status is State.COMPLETED
    assert not a.state.completed_naturally
    assert TIMER_SESSION_COUNTDOWN not in timers.intervals
    assert a.snapshot().total == 0


def test_manual_finish_does_not_count() -> None:
    a, timers = _controller(LocalBroadcastHub(), "a")
    a.start(Category.DOUBLE, 180)
    a.sip()
    a.finish()

    assert a.state.status is State.COMPLETED
    assert a.snapshot().total == 0
    assert TIMER_SESSION_COUNTDOWN not in timers.intervals


def test_restart_returns_to_menu() -> None:
    a, _ = _controller(LocalBroadcastHub(), "a")
    a.start(Category.DOUBLE, 180)
    a.finish()
    a.restart()

    assert a.state.status is State.IDLE
    assert a.state.category is None


def test_view_merges_stats_session_and_chat() -> None:
    hub = LocalBroadcastHub()
    a, _ = _controller(hub, "a")
    _controller(hub, "b")

    view = a.view()

    assert view["instance_id"] == "a"
    assert view["stats"] == {"iced": 0, "double": 0, "cappuccino": 0, "peer_count": 2}
    assert view["session"] == a.session_view()
    assert view["session"]["status"] == "IDLE"
    assert view["chat"] == []


def test_reducer_decisions_are_logged_with_instance_id(_captured: list[dict[str, Any]]) -> None:
    a, _ = _controller(LocalBroadcastHub(), "a")
    a.sip()

    decisions = [e for e in _captured if e.get("event_type") == "SESSION_DECISION"]
    assert decisions[-1]["decision"] == "ignore"
    assert decisions[-1]["instance_id"] == "a"


def test_close_releases_everything(_captured: list[dict[str, Any]]) -> None:
    hub = LocalBroadcastHub()
    a, timers = _controller(hub, "a")
    b, _ = _controller(hub, "b")
    a.start(Category.ICED, 180)

    asyncio.run(a.close())
    asyncio.run(a.close())

    assert timers.shut_down
    assert not timers.intervals
    assert hub.members("g") == (b._link,)  # pylint: disable=protected-access

    a.sip()
    assert a.state.status is State.ACTIVE
    assert any(e.get("event_type") == "INTENT_AFTER_CLOSE" for e in _captured)

    # Peers can still count; the closed instance hears nothing
    b.start(Category.ICED, 180)
    for _ in range(MAX_SIPS):
        b.sip()
    assert a.snapshot().counts[Category.ICED] == 0


def test_send_chat_without_assistant_returns_none() -> None:
    a, _ = _controller(LocalBroadcastHub(), "a")
    a.start(Category.ICED, 180)

    assert asyncio.run(a.send_chat("hello?")) is None
    assert a.chat_history() == [{"role": "user", "content": "hello?"}]


def test_greeting_and_chat_with_assistant() -> None:
    async def _run() -> None:
        store = MemoryKeyValueStore({STATS_STORAGE_KEY: json.dumps({"iced": 2})})
        assistant = FakeAssistant(["One iced coffee, extra chill.", "Sip slower."])
        controller = SessionController(
            link=LocalBroadcastHub().link("g"),
            store=store,
            assistant=assistant,
            instance_id="a",
        )
        await controller.open()
        try:
            controller.start(Category.ICED, 180)
            for _ in range(10):
                await asyncio.sleep(0)

            assert controller.chat_history() == [
                {"role": "assistant", "content": "One iced coffee, extra chill."},
            ]
            system_prompt = assistant.calls[0][0]["content"]
            assert "cup #3" in system_prompt
            assert "Iced Coffee" in system_prompt
            assert "3:00" in system_prompt

            reply = await controller.send_chat("Is it strong?")
            assert reply == "Sip slower."
            assert assistant.calls[1][-1] == {"role": "user", "content": "Is it strong?"}
            assert [m["role"] for m in controller.chat_history()] == ["assistant", "user", "assistant"]
        finally:
            await controller.close()

    asyncio.run(_run())


def test_restart_discards_pending_greeting() -> None:
    async def _run() -> None:
        gate = asyncio.Event()
        assistant = FakeAssistant(["late greeting"], gate=gate)
        controller = SessionController(
            link=LocalBroadcastHub().link("g"),
            store=MemoryKeyValueStore(),
            assistant=assistant,
            instance_id="a",
        )
        await controller.open()
        try:
            controller.start(Category.DOUBLE, 180)
            await asyncio.sleep(0)
            controller.finish()
            controller.restart()
            gate.set()
            for _ in range(5):
                await asyncio.sleep(0)

            assert controller.chat_history() == []
        finally:
            await controller.close()

    asyncio.run(_run())


def _with_assistant(assistant: FakeAssistant) -> SessionController:
    return SessionController(
        link=LocalBroadcastHub().link("g"),
        store=MemoryKeyValueStore(),
        assistant=assistant,
        instance_id="a",
    )


def test_empty_greeting_becomes_stock_line() -> None:
    async def _run() -> None:
        controller = _with_assistant(FakeAssistant([""]))
        await controller.open()
        try:
            controller.start(Category.ICED, 120)
            for _ in range(10):
                await asyncio.sleep(0)

            assert controller.chat_history() == [
                {"role": "assistant", "content": ASSISTANT_EMPTY_GREETING},
            ]
        finally:
            await controller.close()

    asyncio.run(_run())


def test_failed_chat_reply_adds_no_assistant_turn() -> None:
    async def _run() -> None:
        assistant = FakeAssistant(["Hello there.", None])
        controller = _with_assistant(assistant)
        await controller.open()
        try:
            controller.start(Category.DOUBLE, 120)
            for _ in range(10):
                await asyncio.sleep(0)

            assert await controller.send_chat("Still there?") is None
            assert controller.chat_history() == [
                {"role": "assistant", "content": "Hello there."},
                {"role": "user", "content": "Still there?"},
            ]
            assert assistant.calls[0][-1]["role"] == "user"
            assert assistant.calls[1][1] == {"role": "assistant", "content": "Hello there."}
        finally:
            await controller.close()

    asyncio.run(_run())


def test_unknown_category_start_is_ignored(_captured: list[dict[str, Any]]) -> None:
    controller, timers = _controller(LocalBroadcastHub(), "a")
    controller.start("latte", 180)

    assert controller.state.status is State.IDLE
    assert TIMER_SESSION_COUNTDOWN not in timers.intervals
    decisions = [e for e in _captured if e["event_type"] == "SESSION_DECISION"]
    assert decisions[-1]["details"] == {"reason": "unknown_category"}
    assert decisions[-1]["instance_id"] == "a"
