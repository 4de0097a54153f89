"""
In-process broadcast medium.

One LocalBroadcastHub plays the role of the machine-local medium; every
LocalBroadcastLink opened from it with the same group name sees the
others' messages. Used for single-process deployments and as the
synchronous delivery harness in tests.

Semantics:
- Delivery happens synchronously inside send(), in link-open order.
- Each receiver gets its own JSON round-tripped copy; no object is
  shared between instances.
- By default the sender does not receive its own message (like a
  browser BroadcastChannel). deliver_to_sender=True models transports
  that echo.
- A drop filter can discard individual deliveries to simulate loss
  and partitions.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping

from broadcast.base import BroadcastLink
from observability.logger import log_event, now_ms


# (sender, receiver, message) -> True to drop this delivery
DropFilter = Callable[["LocalBroadcastLink", "LocalBroadcastLink", Mapping[str, Any]], bool]


class LocalBroadcastHub:
    """Registry of open local links, grouped by name."""

    def __init__(self) -> None:
        self._groups: dict[str, list[LocalBroadcastLink]] = {}
        self._drop_filter: DropFilter | None = None
        self.sent_count = 0
        self.delivered_count = 0

    def link(self, group_name: str, *, deliver_to_sender: bool = False) -> LocalBroadcastLink:
        """Create a link bound to this hub. Call open() before use."""
        return LocalBroadcastLink(
            hub=self,
            group_name=group_name,
            deliver_to_sender=deliver_to_sender,
        )

    def set_drop_filter(self, drop_filter: DropFilter | None) -> None:
        """Install (or clear, with None) a per-delivery drop filter."""
        self._drop_filter = drop_filter

    def members(self, group_name: str) -> tuple[LocalBroadcastLink, ...]:
        """Links currently joined to `group_name`."""
        return tuple(self._groups.get(group_name, ()))

    # ------------------------------------------------------------------
    # Link-facing API
    # ------------------------------------------------------------------

    def _join(self, link: LocalBroadcastLink) -> None:
        members = self._groups.setdefault(link.group_name, [])
        if link not in members:
            members.append(link)

    def _leave(self, link: LocalBroadcastLink) -> None:
        members = self._groups.get(link.group_name)
        if not members:
            return
        if link in members:
            members.remove(link)
        if not members:
            self._groups.pop(link.group_name, None)

    def _publish(self, sender: LocalBroadcastLink, wire: str) -> None:
        self.sent_count += 1
        for receiver in list(self._groups.get(sender.group_name, ())):
            if receiver is sender and not sender.deliver_to_sender:
                continue
            message = json.loads(wire)
            if self._drop_filter is not None and self._drop_filter(sender, receiver, message):
                continue
            self.delivered_count += 1
            receiver._deliver(message)  # pylint: disable=protected-access


class LocalBroadcastLink(BroadcastLink):
    """BroadcastLink backed by a LocalBroadcastHub."""

    def __init__(
        self,
        *,
        hub: LocalBroadcastHub,
        group_name: str,
        deliver_to_sender: bool = False,
    ) -> None:
        super().__init__(group_name)
        self._hub = hub
        self.deliver_to_sender = deliver_to_sender
        self._joined = False

    async def open(self) -> None:
        if self._closed or self._joined:
            return
        self._hub._join(self)  # pylint: disable=protected-access
        self._joined = True

    async def close(self) -> None:
        self._hub._leave(self)  # pylint: disable=protected-access
        self._joined = False
        await super().close()

    def send(self, message: Mapping[str, Any]) -> None:
        if self._closed or not self._joined:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "broadcast_send_after_close",
                "group": self.group_name,
            })
            return

        try:
            wire = json.dumps(message, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "broadcast_send_failed",
                "group": self.group_name,
                "error": str(e),
            })
            return

        self._hub._publish(self, wire)  # pylint: disable=protected-access
