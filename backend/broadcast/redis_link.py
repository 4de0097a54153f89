"""
Redis pub/sub broadcast medium.

WHY:
- Instances running as separate OS processes share no memory.
- Redis pub/sub is fire-and-forget: no persistence, no acknowledgement,
  which is exactly the contract of BroadcastLink.

Design:
- One Redis channel per group name.
- send() encodes JSON and enqueues it on a bounded outbox; a single
  writer task publishes in order, so per-sender order is preserved.
- A listener task polls the pubsub connection and fans messages out.
- Redis delivers to the publisher's own subscription too; consumers
  are expected to handle their own echoes.
- Transport failures are logged, never raised.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping

import redis.asyncio as redis
from redis.exceptions import RedisError

from broadcast.base import BroadcastLink
from observability.logger import log_event, now_ms
from spec import (
    REDIS_OUTBOX_MAX,
    REDIS_POLL_TIMEOUT_S,
    REDIS_RESUBSCRIBE_DELAY_MS,
)


class RedisBroadcastLink(BroadcastLink):
    """BroadcastLink backed by a Redis pub/sub channel."""

    def __init__(
        self,
        *,
        group_name: str,
        redis_url: str = "redis://127.0.0.1:6379/0",
        client: redis.Redis | None = None,
    ) -> None:
        super().__init__(group_name)
        self._client = client or redis.from_url(
            redis_url,
            decode_responses=True,
            health_check_interval=30,
        )
        self._pubsub: Any = None
        self._outbox: asyncio.Queue[str] | None = None
        self._listener_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        if self._closed or self._listener_task is not None:
            return

        self._outbox = asyncio.Queue(maxsize=REDIS_OUTBOX_MAX)
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)

        try:
            await self._pubsub.subscribe(self.group_name)
        except (RedisError, OSError) as exc:
            # Listener keeps retrying the subscription in the background
            self._log_failure("broadcast_subscribe_failed", exc)

        self._listener_task = asyncio.create_task(self._listen())
        self._writer_task = asyncio.create_task(self._write())

    async def close(self) -> None:
        if self._closed:
            return
        await super().close()

        tasks = [t for t in (self._listener_task, self._writer_task) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listener_task = None
        self._writer_task = None

        try:
            if self._pubsub is not None:
                await self._pubsub.unsubscribe(self.group_name)
                await self._pubsub.aclose()
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            self._log_failure("broadcast_close_failed", exc)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def send(self, message: Mapping[str, Any]) -> None:
        if self._closed or self._outbox is None:
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

        try:
            self._outbox.put_nowait(wire)
        except asyncio.QueueFull:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "broadcast_outbox_full",
                "group": self.group_name,
                "outbox_max": REDIS_OUTBOX_MAX,
            })

    # ------------------------------------------------------------------
    # Internal tasks
    # ------------------------------------------------------------------

    async def _write(self) -> None:
        assert self._outbox is not None
        while True:
            wire = await self._outbox.get()
            try:
                await self._client.publish(self.group_name, wire)
            except (RedisError, OSError) as exc:
                self._log_failure("broadcast_send_failed", exc)

    async def _listen(self) -> None:
        while not self._closed:
            try:
                if not self._pubsub.subscribed:
                    await self._pubsub.subscribe(self.group_name)
                item = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=REDIS_POLL_TIMEOUT_S,
                )
            except (RedisError, OSError) as exc:
                self._log_failure("broadcast_listener_failed", exc)
                await asyncio.sleep(REDIS_RESUBSCRIBE_DELAY_MS / 1000.0)
                continue

            if item is None or item.get("type") != "message":
                continue

            self._handle_wire(item.get("data"))

    def _handle_wire(self, data: Any) -> None:
        try:
            message = json.loads(data)
        except (TypeError, ValueError) as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "broadcast_message_malformed",
                "group": self.group_name,
                "error": str(e),
            })
            return

        self._deliver(message)

    def _log_failure(self, event_type: str, exc: BaseException) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": event_type,
            "group": self.group_name,
            "exception": type(exc).__name__,
            "message": str(exc),
        })
