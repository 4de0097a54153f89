"""
Barista chat context.

Responsibilities:
- Store ordered user/assistant turns for the current break
- Enforce truncation rules:
  - Max MAX_CONTEXT_TURNS turns OR MAX_CONTEXT_CHARS characters
  - Drop oldest turns until constraints are satisfied
  - Allow a single oversized turn (with warning)
- Provide a serializable representation for LLM consumption

Non-responsibilities:
- No prompt wording
- No session decisions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from observability.logger import log_event, now_ms
from spec import MAX_CONTEXT_CHARS, MAX_CONTEXT_TURNS


Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Turn:
    """Single chat turn."""
    role: Role
    text: str
    turn_id: int


class ConversationContext:
    """
    Mutable chat context owned by the session controller.

    Invariants:
    - Turns are stored in chronological order
    - turn_id is monotonic for the lifetime of the context
    """

    def __init__(self, instance_id: str | None = None) -> None:
        self._instance_id = instance_id
        self._turns: list[Turn] = []
        self._next_turn_id = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_user_turn(self, text: str) -> None:
        """Add a user turn and enforce truncation rules."""
        self._append("user", text)

    def add_assistant_turn(self, text: str) -> None:
        """Add an assistant turn and enforce truncation rules."""
        self._append("assistant", text)

    def clear(self) -> None:
        """Forget every turn. Called when a new break starts."""
        self._turns.clear()

    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def serialize(self) -> list[dict[str, str]]:
        """
        Serialize turns into a role/content structure.

        Output format:
        [
          {"role": "user", "content": "..."},
          {"role": "assistant", "content": "..."},
        ]
        """
        return [
            {"role": t.role, "content": t.text}
            for t in self._turns
        ]

    def to_llm_messages(self, system_prompt: str, user_text: str) -> list[dict[str, str]]:
        """
        Build the message list for one assistant request.

        Order: system prompt, stored turns, then `user_text`. The new
        user text is NOT stored; the caller adds it as a turn.
        """
        return [
            {"role": "system", "content": system_prompt},
            *self.serialize(),
            {"role": "user", "content": user_text},
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, role: Role, text: str) -> None:
        self._turns.append(Turn(role=role, text=text, turn_id=self._next_turn_id))
        self._next_turn_id += 1
        self._truncate()

    def _truncate(self) -> None:
        while self._violates_limits():
            # If only one turn remains, allow it even if oversized
            if len(self._turns) == 1:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "context_single_turn_oversized",
                    "instance_id": self._instance_id,
                    "turn_id": self._turns[0].turn_id,
                    "char_count": len(self._turns[0].text),
                })
                break

            dropped = self._turns.pop(0)
            log_event({
                "ts_ms": now_ms(),
                "event_type": "context_turn_dropped",
                "instance_id": self._instance_id,
                "turn_id": dropped.turn_id,
                "role": dropped.role,
                "char_count": len(dropped.text),
            })

    def _violates_limits(self) -> bool:
        """Return True if turn or character limits are exceeded."""
        if len(self._turns) > MAX_CONTEXT_TURNS:
            return True

        total_chars = sum(len(t.text) for t in self._turns)
        return total_chars > MAX_CONTEXT_CHARS
