"""
Session controller (one per instance).

Responsibilities:
- Own the instance identity and the lifecycles of every per-instance
  resource: broadcast link, presence tracker, stat replicator, timers,
  in-flight assistant requests
- Own the authoritative session state
- Act as the single entry point for intents (renderer and timers)
- Invoke the pure reducer and execute the commands it emits
- Expose the merged read-only view (counters + peer count + session)

Non-responsibilities:
- No transition logic (reducer.py)
- No liveness or counter semantics (presence/, stats/)
- No transport concerns (broadcast/)

Guarantees:
- Reducer is called exactly once per intent
- Side effects run after the new state is in place
- close() cancels every timer and subscription; nothing fires into a
  torn-down controller
"""

from __future__ import annotations

from typing import Any, Callable
from uuid import uuid4

from adapters.llm.base import AssistantAdapter
from adapters.llm.prompts import build_barista_prompt, greeting_request
from broadcast.base import BroadcastLink
from context.conversation import ConversationContext
from observability.logger import log_event, now_ms
from orchestrator import events
from orchestrator.commands import (
    CancelAssistant,
    CancelTimer,
    Command,
    IncrementCounter,
    LogEvent,
    StartAssistant,
    StartTimer,
)
from orchestrator.events import Intent
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState
from orchestrator.timers import TaskRegistry
from presence.tracker import PresenceTracker, monotonic_ms
from spec import (
    ASSISTANT_EMPTY_GREETING,
    ASSISTANT_EMPTY_REPLY,
    ASSISTANT_FALLBACK_GREETING,
)
from stats.categories import Category
from stats.replicator import StatReplicator, StatsSnapshot
from stats.store import KeyValueStore


TASK_ASSISTANT = "assistant:reply"


def new_instance_id() -> str:
    return f"inst_{uuid4().hex[:12]}"


class SessionController:
    """
    One controller == one instance of the application.

    Construct, then `await open()`. `await close()` on every exit path.
    """

    def __init__(
        self,
        *,
        link: BroadcastLink,
        store: KeyValueStore,
        assistant: AssistantAdapter | None = None,
        instance_id: str | None = None,
        timers: TaskRegistry | None = None,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self.instance_id = instance_id or new_instance_id()

        self._link = link
        self._timers = timers if timers is not None else TaskRegistry(owner=self.instance_id)
        self._assistant = assistant

        self._presence = PresenceTracker(
            link=link,
            instance_id=self.instance_id,
            timers=self._timers,
            clock=clock,
        )
        self._stats = StatReplicator(
            link=link,
            store=store,
            instance_id=self.instance_id,
            peer_count=self._presence.peer_count,
        )

        self._state = SessionState()

        # Chat is scoped to one break; the epoch invalidates late replies
        self._chat = ConversationContext(instance_id=self.instance_id)
        self._chat_epoch = 0
        self._system_prompt: str | None = None

        self._opened = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Join the group: link, counters, then presence."""
        if self._opened or self._closed:
            return
        self._opened = True

        await self._link.open()
        self._stats.open()
        self._presence.start()

        log_event({
            "ts_ms": now_ms(),
            "event_type": "instance_opened",
            "instance_id": self.instance_id,
            "group": self._link.group_name,
            "counts": self._stats.snapshot().as_dict(),
        })

    async def close(self) -> None:
        """
        Tear down deterministically.

        No farewell heartbeat: peers expire this instance by TTL.
        Idempotent.
        """
        if self._closed:
            return
        self._closed = True

        self._presence.stop()
        self._stats.close()
        await self._timers.shutdown()
        await self._link.close()

        log_event({
            "ts_ms": now_ms(),
            "event_type": "instance_closed",
            "instance_id": self.instance_id,
            "state": self._state.status.value,
        })

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def start(self, category: Category | str, duration_s: int) -> None:
        self._dispatch(events.start(category, duration_s, ts_ms=now_ms()))

    def record_progress(self) -> None:
        self._dispatch(events.sip(ts_ms=now_ms()))

    # The renderer calls a qualifying user action a sip
    sip = record_progress

    def finish(self) -> None:
        """Manual early exit. Never counts a drink."""
        self._dispatch(events.finish(ts_ms=now_ms()))

    def restart(self) -> None:
        self._dispatch(events.restart(ts_ms=now_ms()))

    def tick(self) -> None:
        """One countdown second. Driven by the session timer."""
        self._dispatch(events.tick(ts_ms=now_ms()))

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current immutable session state. Treat as read-only."""
        return self._state

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    @property
    def stats(self) -> StatReplicator:
        return self._stats

    def peer_count(self) -> int:
        return self._presence.peer_count()

    def snapshot(self) -> StatsSnapshot:
        """Counters merged with the live peer count. Recomputed per call."""
        return self._stats.snapshot()

    def session_view(self) -> dict[str, Any]:
        """Session record for the renderer."""
        return self._state.as_dict()

    def chat_history(self) -> list[dict[str, str]]:
        return self._chat.serialize()

    def view(self) -> dict[str, Any]:
        """Everything the renderer needs, JSON-ready."""
        return {
            "instance_id": self.instance_id,
            "stats": self.snapshot().as_dict(),
            "session": self.session_view(),
            "chat": self.chat_history(),
        }

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def send_chat(self, text: str) -> str | None:
        """
        Send a user chat line to the barista.

        Returns the reply, or None if no barista is serving right now
        (no assistant configured, no break started, the break was reset
        while waiting, or the request failed). A None result adds no
        assistant turn.
        """
        if self._assistant is None or self._system_prompt is None or self._closed:
            self._chat.add_user_turn(text)
            return None

        messages = self._chat.to_llm_messages(self._system_prompt, text)
        self._chat.add_user_turn(text)

        epoch = self._chat_epoch
        reply = await self._assistant.reply(
            messages=messages,
            fallback=None,
            empty_fallback=ASSISTANT_EMPTY_REPLY,
        )
        if reply is None or epoch != self._chat_epoch or self._closed:
            return None

        self._chat.add_assistant_turn(reply)
        return reply

    # ------------------------------------------------------------------
    # Reducer dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, intent: Intent) -> None:
        if self._closed:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "INTENT_AFTER_CLOSE",
                "instance_id": self.instance_id,
                "dropped_intent": intent.intent_type.value,
            })
            return

        new_state, commands = reduce(self._state, intent)
        self._state = new_state

        for cmd in commands:
            self._execute_command(cmd)

    def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""
        if isinstance(cmd, LogEvent):
            log_event({**cmd.event, "instance_id": self.instance_id})

        elif isinstance(cmd, StartTimer):
            self._timers.start_interval(cmd.timer_id, cmd.interval_ms, self.tick)

        elif isinstance(cmd, CancelTimer):
            self._timers.cancel(cmd.timer_id)

        elif isinstance(cmd, IncrementCounter):
            self._stats.increment(cmd.category)

        elif isinstance(cmd, StartAssistant):
            self._begin_chat(cmd.category, cmd.duration_s)

        elif isinstance(cmd, CancelAssistant):
            self._timers.cancel(TASK_ASSISTANT)
            self._chat_epoch += 1
            self._system_prompt = None

        else:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "UNKNOWN_COMMAND",
                "instance_id": self.instance_id,
                "command_type": getattr(cmd, "command_type", None),
            })

    # ------------------------------------------------------------------
    # Assistant
    # ------------------------------------------------------------------

    def _begin_chat(self, category: Category, duration_s: int) -> None:
        self._chat.clear()
        self._chat_epoch += 1

        cups_so_far = sum(self._stats.counts().values())
        self._system_prompt = build_barista_prompt(
            category=category,
            duration_s=duration_s,
            cups_so_far=cups_so_far,
        )

        if self._assistant is None:
            return

        messages = self._chat.to_llm_messages(self._system_prompt, greeting_request(category))
        self._timers.spawn(TASK_ASSISTANT, self._greet(messages, self._chat_epoch))

    async def _greet(self, messages: list[dict[str, str]], epoch: int) -> None:
        assert self._assistant is not None
        text = await self._assistant.reply(
            messages=messages,
            fallback=ASSISTANT_FALLBACK_GREETING,
            empty_fallback=ASSISTANT_EMPTY_GREETING,
        )
        if text is not None and epoch == self._chat_epoch and not self._closed:
            self._chat.add_assistant_turn(text)
