"""
Intent definitions for the session reducer.

Rules:
- Intents describe things the user or a timer asked for.
- Intents carry data only (no behavior).
- All reducer decisions are based on these intents.
- No clocks, no timers, no async, no side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from stats.categories import Category


# =============================================================================
# Intent Type Enumeration
# =============================================================================

class IntentType(str, Enum):
    """
    Canonical intent types understood by the reducer.

    Every (state, intent_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Rendering layer
    # ------------------------------------------------------------------
    START = "START"
    SIP = "SIP"
    FINISH = "FINISH"
    RESTART = "RESTART"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    TICK = "TICK"


# =============================================================================
# Base Intent
# =============================================================================

@dataclass(frozen=True)
class Intent:
    """Base intent. intent_type is an explicit discriminant."""
    intent_type: IntentType
    ts_ms: int


# =============================================================================
# Concrete Intents
# =============================================================================

@dataclass(frozen=True)
class Start(Intent):
    """
    Begin a break with `category` lasting `duration_s` seconds.

    `category` may arrive raw from the renderer; the reducer parses it.
    """
    category: Category | str
    duration_s: int


@dataclass(frozen=True)
class Sip(Intent):
    """One qualifying user action toward the completion threshold."""


@dataclass(frozen=True)
class Finish(Intent):
    """Manual early exit. Never counts as a completed drink."""


@dataclass(frozen=True)
class Restart(Intent):
    """Return from the completed screen to the menu."""


@dataclass(frozen=True)
class Tick(Intent):
    """One countdown unit elapsed. Emitted by the session timer."""


# =============================================================================
# Constructors (mirror controller construction)
# =============================================================================

def start(category: Category | str, duration_s: int, ts_ms: int = 0) -> Start:
    return Start(
        intent_type=IntentType.START,
        ts_ms=ts_ms,
        category=category,
        duration_s=duration_s,
    )


def sip(ts_ms: int = 0) -> Sip:
    return Sip(intent_type=IntentType.SIP, ts_ms=ts_ms)


def finish(ts_ms: int = 0) -> Finish:
    return Finish(intent_type=IntentType.FINISH, ts_ms=ts_ms)


def restart(ts_ms: int = 0) -> Restart:
    return Restart(intent_type=IntentType.RESTART, ts_ms=ts_ms)


def tick(ts_ms: int = 0) -> Tick:
    return Tick(intent_type=IntentType.TICK, ts_ms=ts_ms)
