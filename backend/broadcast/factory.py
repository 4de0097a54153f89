"""Broadcast link construction from AppConfig."""

from __future__ import annotations

from typing import TYPE_CHECKING

from broadcast.base import BroadcastLink
from broadcast.local import LocalBroadcastHub

if TYPE_CHECKING:
    from config import AppConfig


def build_link(config: AppConfig, *, hub: LocalBroadcastHub | None = None) -> BroadcastLink:
    """
    Build the BroadcastLink selected by config.broadcast_backend.

    - "local": link on `hub` (a fresh hub if none is given)
    - "redis": Redis pub/sub on config.redis_url
    """
    if config.broadcast_backend == "redis":
        # Local deployments never import redis
        from broadcast.redis_link import RedisBroadcastLink  # pylint: disable=import-outside-toplevel

        return RedisBroadcastLink(
            group_name=config.broadcast_channel,
            redis_url=config.redis_url,
        )

    if config.broadcast_backend == "local":
        return (hub or LocalBroadcastHub()).link(config.broadcast_channel)

    raise ValueError(f"Unknown broadcast backend: {config.broadcast_backend}")
