"""
Authoritative session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from orchestrator.enums.state import State
from stats.categories import Category


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of the single break session of one instance."""

    status: State = State.IDLE

    # Selected drink; None outside a break
    category: Category | None = None

    # Configured length of the break, seconds
    duration_s: int = 0

    # Countdown, seconds
    remaining_s: int = 0

    # Progress toward MAX_SIPS
    sips: int = 0

    # True iff the last break reached MAX_SIPS (vs. timed out / exited)
    completed_naturally: bool = False

    def as_dict(self) -> dict[str, Any]:
        """JSON-ready view for the renderer."""
        return {
            "status": self.status.value,
            "category": self.category.value if self.category else None,
            "duration_s": self.duration_s,
            "remaining_s": self.remaining_s,
            "sips": self.sips,
            "completed_naturally": self.completed_naturally,
        }
