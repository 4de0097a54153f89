"""
BroadcastLink contract.

Purpose:
- Define the interface to the best-effort publish/subscribe medium
  shared by every instance in one logical group.
- Keep ALL reliability, deduplication and protocol semantics OUT of
  the link.

Rules:
- send() is fire-and-forget: never blocks, never raises.
- Delivery is at most once per send, unordered across senders.
- Self-delivery may or may not happen depending on the transport;
  consumers must tolerate both.
- No retries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping

from observability.logger import log_event, now_ms


MessageCallback = Callable[[Mapping[str, Any]], None]


class Subscription:
    """
    Handle returned by BroadcastLink.subscribe().

    Cancelling is idempotent and stops any further delivery to the
    callback, including messages already queued by the transport.
    """

    def __init__(self, link: BroadcastLink, callback: MessageCallback) -> None:
        self._link = link
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        """Stop delivery to this subscriber."""
        if not self.active:
            return
        self.active = False
        self._link.unsubscribe(self)


class BroadcastLink(ABC):
    """
    Abstract base class for broadcast transports.

    The link is a *dumb pipe*:
    dict -> medium -> dict, for every subscriber in the group.

    Consumer responsibilities (NOT here):
    - Decoding and validating messages
    - Ignoring own echoes
    - Liveness, expiry, counters
    """

    def __init__(self, group_name: str) -> None:
        self.group_name = group_name
        self._subscriptions: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def open(self) -> None:
        """
        Join the group.

        Contract:
        - Must not raise on transport unavailability; log and continue
          in a degraded (send-drops) mode instead.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """
        Release resources.

        After close, no subscriber callback is invoked and send() is a
        silent drop. Idempotent.
        """
        self._closed = True
        for sub in list(self._subscriptions):
            sub.active = False
        self._subscriptions.clear()

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    @abstractmethod
    def send(self, message: Mapping[str, Any]) -> None:
        """
        Publish a message to the group.

        Contract:
        - Must return immediately.
        - Must NOT raise for any transport failure.
        - Messages that cannot be serialized are dropped (logged).
        """
        raise NotImplementedError

    def subscribe(self, callback: MessageCallback) -> Subscription:
        """Register a callback for every message delivered to this instance."""
        sub = Subscription(self, callback)
        if self._closed:
            sub.active = False
            return sub
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Remove a subscription. Silent if it is unknown."""
        sub.active = False
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    @property
    def subscriber_count(self) -> int:
        """Number of active local subscribers."""
        return len(self._subscriptions)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _deliver(self, message: Mapping[str, Any]) -> None:
        """
        Fan a received message out to local subscribers.

        A subscriber raising never affects the others or the transport.
        """
        if self._closed:
            return

        for sub in list(self._subscriptions):
            if not sub.active:
                continue
            try:
                sub.callback(message)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "broadcast_subscriber_error",
                    "group": self.group_name,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
