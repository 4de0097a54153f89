"""
Assistant adapter contract.

Purpose:
- Define the interface to the conversational assistant service.
- Keep all session, presence and stats semantics OUT of the adapter.

Rules:
- This file contains NO logic.
- The adapter never raises to its caller; failures become fallback text.
- No knowledge of counters, peers or the session state machine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AssistantAdapter(ABC):
    """
    Abstract base class for assistant adapters.

    The adapter is a *dumb pipe*:
    messages -> vendor -> one line of text.

    Controller responsibilities (NOT here):
    - When to ask
    - Prompt and context construction
    - What to do with the reply
    """

    @abstractmethod
    async def reply(
        self,
        *,
        messages: list[dict[str, str]],
        fallback: str | None,
        empty_fallback: str,
    ) -> str | None:
        """
        Produce one assistant reply.

        Contract:
        - Returns the reply text.
        - Returns `empty_fallback` if the service answered with no text.
        - Returns `fallback` (possibly None) if the service failed after
          its own retries.
        - Must NOT raise (cancellation excepted).
        - Must NOT block the event loop indefinitely.

        Args:
            messages:
                Serialized chat, system prompt first.
            fallback:
                Result when no reply can be produced.
            empty_fallback:
                Text standing in for an empty reply.
        """
        raise NotImplementedError
