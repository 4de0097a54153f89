"""
Pure session reducer.

(state, intent) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, intent) pair is handled or explicitly ignored (logged).

Counting invariant:
- IncrementCounter is emitted only by _complete(by_timeout=False), which
  is only reachable from ACTIVE and always leaves ACTIVE. A session can
  therefore produce at most one increment, and none when it times out
  or is exited manually.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from orchestrator.commands import (
    CancelAssistant,
    CancelTimer,
    Command,
    IncrementCounter,
    LogEvent,
    StartAssistant,
    StartTimer,
)
from orchestrator.enums.state import State
from orchestrator.events import Finish, Intent, Restart, Sip, Start, Tick
from orchestrator.state_dataclass import SessionState
from spec import MAX_SIPS, SESSION_TICK_MS, is_valid_duration
from stats.categories import parse_category


TIMER_SESSION_COUNTDOWN = "session:countdown"


# =============================================================================
# Helpers
# =============================================================================

def _log(
    state: SessionState,
    intent: Intent,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": intent.ts_ms,
            "event_type": "SESSION_DECISION",
            "intent": intent.intent_type.value,
            "state": state.status.value,
            "category": state.category.value if state.category else None,
            "decision": decision,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    """Side effects first, then logs, then the state_changed log."""
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _state_changed(
    old: SessionState, new: SessionState, intent: Intent, source: str
) -> LogEvent:
    return _log(
        new,
        intent,
        "state_changed",
        {
            "from_state": old.status.value,
            "to_state": new.status.value,
            "source": source,
        },
    )


def _ignore(
    state: SessionState, intent: Intent, reason: str
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (_log(state, intent, "ignore", {"reason": reason}),)


def _complete(
    state: SessionState, intent: Intent, *, by_timeout: bool, source: str
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    ACTIVE -> COMPLETED.

    Increments the category counter iff the break reached MAX_SIPS.
    """
    new_state = replace(
        state,
        status=State.COMPLETED,
        completed_naturally=not by_timeout,
    )

    cmds: list[Command] = [CancelTimer(timer_id=TIMER_SESSION_COUNTDOWN)]
    if not by_timeout and state.category is not None:
        cmds.append(IncrementCounter(category=state.category))

    cmds.append(
        _log(
            new_state,
            intent,
            "complete",
            {
                "by_timeout": by_timeout,
                "sips": state.sips,
                "remaining_s": state.remaining_s,
            },
        )
    )
    cmds.append(_state_changed(state, new_state, intent, source))
    return new_state, _logs_last(tuple(cmds))


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: SessionState, intent: Intent
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Pure reducer for the break session state machine.

    Given the current session state and a single intent, returns:
    - the next state
    - a tuple of commands describing required side effects
    """
    if isinstance(intent, Start):
        if state.status is not State.IDLE:
            return _ignore(state, intent, f"start_while_{state.status.value.lower()}")
        category = parse_category(intent.category)
        if category is None:
            return _ignore(state, intent, "unknown_category")
        if not is_valid_duration(intent.duration_s):
            return _ignore(state, intent, "duration_out_of_range")

        new_state = SessionState(
            status=State.ACTIVE,
            category=category,
            duration_s=intent.duration_s,
            remaining_s=intent.duration_s,
            sips=0,
            completed_naturally=False,
        )
        return new_state, _logs_last((
            StartTimer(timer_id=TIMER_SESSION_COUNTDOWN, interval_ms=SESSION_TICK_MS),
            StartAssistant(category=category, duration_s=intent.duration_s),
            _state_changed(state, new_state, intent, "start"),
        ))

    if isinstance(intent, Tick):
        if state.status is not State.ACTIVE:
            return _ignore(state, intent, "tick_outside_active")

        remaining = state.remaining_s - 1
        if remaining <= 0:
            return _complete(
                replace(state, remaining_s=0), intent, by_timeout=True, source="timeout"
            )
        # Per-second ticks are not logged
        return replace(state, remaining_s=remaining), ()

    if isinstance(intent, Sip):
        if state.status is not State.ACTIVE:
            return _ignore(state, intent, "sip_outside_active")

        new_state = replace(state, sips=state.sips + 1)
        if new_state.sips >= MAX_SIPS:
            return _complete(new_state, intent, by_timeout=False, source="finished_drink")
        return new_state, (_log(new_state, intent, "sip", {"sips": new_state.sips}),)

    if isinstance(intent, Finish):
        if state.status is not State.ACTIVE:
            return _ignore(state, intent, "finish_outside_active")
        return _complete(state, intent, by_timeout=True, source="manual_exit")

    if isinstance(intent, Restart):
        if state.status is not State.COMPLETED:
            return _ignore(state, intent, "restart_outside_completed")

        new_state = SessionState()
        return new_state, _logs_last((
            CancelAssistant(),
            _state_changed(state, new_state, intent, "restart"),
        ))

    return _ignore(state, intent, "unhandled_intent")
