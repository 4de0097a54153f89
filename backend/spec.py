"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Broadcast Medium
# =============================================================================

BROADCAST_CHANNEL_NAME: Final[str] = "coffee_break_channel"

# Redis transport: bounded outbound queue, drop newest when full
REDIS_OUTBOX_MAX: Final[int] = 256
REDIS_POLL_TIMEOUT_S: Final[float] = 1.0
REDIS_RESUBSCRIBE_DELAY_MS: Final[int] = 1_000

# Wire discriminants (tagged union)
MSG_TYPE_HEARTBEAT: Final[str] = "HEARTBEAT"
MSG_TYPE_COUNTER_INCREMENT: Final[str] = "COUNTER_INCREMENT"

# =============================================================================
# Presence
# =============================================================================

HEARTBEAT_INTERVAL_MS: Final[int] = 1_000

# Sweep must run at the same or finer grain than the heartbeat
PRESENCE_SWEEP_INTERVAL_MS: Final[int] = 1_000

# Five missed heartbeats of slack before a peer is dropped
PEER_TTL_MS: Final[int] = 5_000

# =============================================================================
# Stats Persistence
# =============================================================================

STATS_STORAGE_KEY: Final[str] = "coffee_break_stats_v1"

# =============================================================================
# Session
# =============================================================================

SESSION_TICK_MS: Final[int] = 1_000

MAX_SIPS: Final[int] = 5

MIN_DURATION_S: Final[int] = 60
MAX_DURATION_S: Final[int] = 300
DURATION_STEP_S: Final[int] = 30
DEFAULT_DURATION_S: Final[int] = 180

# =============================================================================
# Assistant (barista)
# =============================================================================

ASSISTANT_INIT_RETRY_COUNT: Final[int] = 1
ASSISTANT_RETRY_DELAY_MS: Final[int] = 200
ASSISTANT_REQUEST_TIMEOUT_S: Final[float] = 10.0

# Failed request vs. provider answered with no text
ASSISTANT_FALLBACK_GREETING: Final[str] = "Coffee's ready. (AI Connection Issue)"
ASSISTANT_EMPTY_GREETING: Final[str] = "Here's your fuel. Enjoy."
ASSISTANT_EMPTY_REPLY: Final[str] = "..."
ASSISTANT_NO_KEY_MESSAGE: Final[str] = "An API key is required for the barista to talk."

# Jitters remark kicks in above this many cups in a day
ASSISTANT_JITTERS_CUP_THRESHOLD: Final[int] = 3

MAX_CONTEXT_TURNS: Final[int] = 8
MAX_CONTEXT_CHARS: Final[int] = 6_000

# =============================================================================
# Rendering surface
# =============================================================================

SNAPSHOT_PUSH_INTERVAL_MS: Final[int] = 1_000

ALLOWED_WS_INTENTS: Final[Tuple[str, ...]] = ("START", "SIP", "FINISH", "RESTART")

# =============================================================================
# Helper Functions
# =============================================================================

def format_duration(seconds: int) -> str:
    """
    Format a duration as m:ss.

    Non-positive input is rendered as 0:00.
    """
    if seconds <= 0:
        return "0:00"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def is_valid_duration(seconds: int) -> bool:
    """Return True if `seconds` is a selectable break length (range and step)."""
    if not MIN_DURATION_S <= seconds <= MAX_DURATION_S:
        return False
    return (seconds - MIN_DURATION_S) % DURATION_STEP_S == 0
