"""
Replicated drink counters.

Responsibilities:
- Own the in-memory counter set for this instance
- Be the sole writer of the stats record in the durable store
- Apply local increments: memory -> store -> broadcast (in that order)
- Mirror peer increments: memory -> store, never re-broadcast
- Merge counters with the live peer count on every snapshot read

Non-responsibilities:
- No deduplication beyond ignoring our own echoes
- No reconciliation between peers (mirror, don't reconcile)
- No retries of dropped broadcasts

Guarantees:
- Counters never decrease
- A local increment is durable before it is propagated
- One inbound increment changes exactly one counter by exactly one
- The stats record never contains the peer count

Under message loss peers under-count; they never over-count from a
single logical event.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from broadcast.base import BroadcastLink, Subscription
from observability.logger import log_event, now_ms
from observability.metrics import timed
from protocol.messages import CounterIncrement, ProtocolError, decode_message, encode_message
from spec import STATS_STORAGE_KEY
from stats.categories import Category, zero_counts
from stats.store import KeyValueStore, StoreError


@dataclass(frozen=True)
class StatsSnapshot:
    """Read-only merged view for the renderer. Recomputed on every read."""

    counts: Mapping[Category, int]
    peer_count: int

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_dict(self) -> dict[str, int]:
        out = {c.value: self.counts.get(c, 0) for c in Category}
        out["peer_count"] = self.peer_count
        return out


class StatReplicator:
    """Counter set replicated over a BroadcastLink."""

    def __init__(
        self,
        *,
        link: BroadcastLink,
        store: KeyValueStore,
        instance_id: str,
        peer_count: Callable[[], int],
        storage_key: str = STATS_STORAGE_KEY,
    ) -> None:
        self._link = link
        self._store = store
        self._instance_id = instance_id
        self._peer_count = peer_count
        self._storage_key = storage_key

        self._counts: dict[Category, int] = zero_counts()
        self._subscription: Subscription | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Load persisted counters, then start mirroring peers. Idempotent."""
        if self._subscription is not None:
            return
        self._counts = self._load()
        self._subscription = self._link.subscribe(self._on_message)

    def close(self) -> None:
        """Stop mirroring. Counters stay readable. Idempotent."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def increment(self, category: Category) -> None:
        """
        Record one local completion of `category`.

        Persists synchronously before broadcasting, so a fresh load
        observes the increment even if no peer ever hears about it.
        """
        self._counts[category] += 1
        self._persist(reason="local")
        self._link.send(
            encode_message(CounterIncrement(category=category, origin=self._instance_id))
        )
        log_event({
            "ts_ms": now_ms(),
            "event_type": "counter_incremented",
            "instance_id": self._instance_id,
            "category": category.value,
            "value": self._counts[category],
            "source": "local",
        })

    def counts(self) -> dict[Category, int]:
        """Copy of the in-memory counter set."""
        return dict(self._counts)

    def snapshot(self) -> StatsSnapshot:
        """Counters merged with the live peer count. Never cached."""
        return StatsSnapshot(counts=dict(self._counts), peer_count=self._peer_count())

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
                "component": "stats",
                "error": str(e),
            })
            return

        if not isinstance(msg, CounterIncrement):
            return

        if msg.origin == self._instance_id:
            # Transport echoed our own broadcast; already counted locally
            return

        self._counts[msg.category] += 1
        self._persist(reason="mirror")
        log_event({
            "ts_ms": now_ms(),
            "event_type": "counter_incremented",
            "instance_id": self._instance_id,
            "category": msg.category.value,
            "value": self._counts[msg.category],
            "source": "mirror",
            "origin": msg.origin,
        })

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, *, reason: str) -> None:
        blob = json.dumps({c.value: n for c, n in self._counts.items()})
        try:
            with timed("stats_persist", instance_id=self._instance_id, details={"reason": reason}):
                self._store.set(self._storage_key, blob)
        except (StoreError, OSError) as exc:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "stats_persist_failed",
                "instance_id": self._instance_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _load(self) -> dict[Category, int]:
        """
        Read the stats record.

        Absent or unparseable record -> all zero.
        Individually invalid fields -> 0 for that field.
        Unknown keys (e.g. a stored peer count) are ignored.
        """
        counts = zero_counts()

        try:
            blob = self._store.get(self._storage_key)
        except (StoreError, OSError) as exc:
            self._log_load_failure(f"{type(exc).__name__}: {exc}")
            return counts

        if blob is None:
            return counts

        try:
            data = json.loads(blob)
        except ValueError as e:
            self._log_load_failure(f"invalid json: {e}")
            return counts

        if not isinstance(data, dict):
            self._log_load_failure("record is not an object")
            return counts

        for category in Category:
            value = data.get(category.value, 0)
            # bool is an int subclass; reject it explicitly
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                self._log_load_failure(f"invalid value for {category.value}: {value!r}")
                continue
            counts[category] = value

        return counts

    def _log_load_failure(self, reason: str) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "stats_load_failed",
            "instance_id": self._instance_id,
            "reason": reason,
        })
