"""
Presence tracking (which instances are alive) per broadcast group.

WHY:
- Instances share no memory and there is no server to ask.
- The broadcast medium cannot list its members.
- Each instance therefore keeps its own belief, fed by heartbeats.

Design:
- Peer table: instance_id -> last_seen_ms (local monotonic clock,
  stamped at receive time, never taken from the sender).
- Heartbeat sent once on start, then every HEARTBEAT_INTERVAL_MS.
- Sweep every PRESENCE_SWEEP_INTERVAL_MS drops entries older than
  PEER_TTL_MS and refreshes our own entry.
- Our own entry is always present and always reads as "now", so a
  stalled heartbeat timer can never evict ourselves.

Failure semantics: none are visible to callers. A dead transport
degrades to peer_count() == 1 within one TTL plus one sweep period.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping, TYPE_CHECKING

from broadcast.base import BroadcastLink, Subscription
from observability.logger import log_event, now_ms
from protocol.messages import Heartbeat, ProtocolError, decode_message, encode_message
from spec import (
    HEARTBEAT_INTERVAL_MS,
    PEER_TTL_MS,
    PRESENCE_SWEEP_INTERVAL_MS,
)

if TYPE_CHECKING:
    from orchestrator.timers import TaskRegistry


TIMER_HEARTBEAT = "presence:heartbeat"
TIMER_SWEEP = "presence:sweep"


def monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class PresenceTracker:
    """Local belief about the live instances of one group."""

    def __init__(
        self,
        *,
        link: BroadcastLink,
        instance_id: str,
        timers: TaskRegistry,
        clock: Callable[[], int] = monotonic_ms,
        heartbeat_interval_ms: int = HEARTBEAT_INTERVAL_MS,
        sweep_interval_ms: int = PRESENCE_SWEEP_INTERVAL_MS,
        ttl_ms: int = PEER_TTL_MS,
    ) -> None:
        if sweep_interval_ms > heartbeat_interval_ms:
            raise ValueError("sweep interval must not be coarser than the heartbeat interval")

        self._link = link
        self._instance_id = instance_id
        self._timers = timers
        self._clock = clock
        self._heartbeat_interval_ms = heartbeat_interval_ms
        self._sweep_interval_ms = sweep_interval_ms
        self._ttl_ms = ttl_ms

        self._peers: dict[str, int] = {instance_id: clock()}
        self._subscription: Subscription | None = None

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def running(self) -> bool:
        return self._subscription is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Join presence: subscribe, announce immediately, start timers.

        Idempotent.
        """
        if self._subscription is not None:
            return

        self._subscription = self._link.subscribe(self._on_message)
        self._peers[self._instance_id] = self._clock()

        # Immediate announcement so newly joined instances converge fast
        self.beat()

        self._timers.start_interval(TIMER_HEARTBEAT, self._heartbeat_interval_ms, self.beat)
        self._timers.start_interval(TIMER_SWEEP, self._sweep_interval_ms, self.sweep)

    def stop(self) -> None:
        """
        Leave presence: cancel timers and unsubscribe.

        No farewell message is sent; peers expire us by TTL.
        Idempotent.
        """
        self._timers.cancel(TIMER_HEARTBEAT)
        self._timers.cancel(TIMER_SWEEP)
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    def beat(self) -> None:
        """Send one heartbeat. A dropped heartbeat is retried by the next tick."""
        self._link.send(encode_message(Heartbeat(instance_id=self._instance_id)))

    def sweep(self) -> None:
        """Refresh our own entry and drop every peer past the TTL."""
        now = self._clock()
        self._peers[self._instance_id] = now

        expired = [
            peer_id
            for peer_id, last_seen in self._peers.items()
            if peer_id != self._instance_id and now - last_seen > self._ttl_ms
        ]
        for peer_id in expired:
            last_seen = self._peers.pop(peer_id)
            log_event({
                "ts_ms": now_ms(),
                "event_type": "peer_expired",
                "instance_id": self._instance_id,
                "peer_id": peer_id,
                "silent_ms": now - last_seen,
                "peer_count": len(self._peers),
            })

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def peer_count(self) -> int:
        """Number of live instances, self included (always >= 1)."""
        self._peers[self._instance_id] = self._clock()
        return len(self._peers)

    def peers(self) -> dict[str, int]:
        """Copy of the peer table with our own entry stamped now."""
        self._peers[self._instance_id] = self._clock()
        return dict(self._peers)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _on_message(self, raw: Mapping[str, Any]) -> None:
        try:
            msg = decode_message(raw)
        except ProtocolError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "broadcast_message_malformed",
                "instance_id": self._instance_id,
                "component": "presence",
                "error": str(e),
            })
            return

        if not isinstance(msg, Heartbeat):
            return

        is_new = msg.instance_id not in self._peers
        # Upsert; our own echoed heartbeat just refreshes self
        self._peers[msg.instance_id] = self._clock()

        if is_new:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "peer_joined",
                "instance_id": self._instance_id,
                "peer_id": msg.instance_id,
                "peer_count": len(self._peers),
            })
