"""
Side-effect command definitions for the session reducer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the controller.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from stats.categories import Category


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    Stable discriminants used for logging and controller dispatch.
    """

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Stats
    INCREMENT_COUNTER = "INCREMENT_COUNTER"

    # Assistant
    START_ASSISTANT = "START_ASSISTANT"
    CANCEL_ASSISTANT = "CANCEL_ASSISTANT"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Timers
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """Start (or replace) a periodic timer that emits Tick intents."""
    timer_id: str
    interval_ms: int
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Stats
# =============================================================================

@dataclass(frozen=True)
class IncrementCounter(Command):
    """
    Apply and broadcast one completed drink.

    Emitted at most once per session, only on natural completion.
    """
    category: Category
    command_type: CommandType = CommandType.INCREMENT_COUNTER


# =============================================================================
# Assistant
# =============================================================================

@dataclass(frozen=True)
class StartAssistant(Command):
    """Reset chat and request a greeting for a freshly started break."""
    category: Category
    duration_s: int
    command_type: CommandType = CommandType.START_ASSISTANT


@dataclass(frozen=True)
class CancelAssistant(Command):
    """Drop any in-flight assistant request for the current break."""
    command_type: CommandType = CommandType.CANCEL_ASSISTANT


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
