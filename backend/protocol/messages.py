"""
Wire messages for the broadcast medium.

Tagged union, one JSON object per message:

    {"type": "HEARTBEAT", "payload": {"id": "<instance_id>"}}

    {"type": "COUNTER_INCREMENT",
     "payload": {"category": "iced", "origin": "<instance_id>"}}

Rules:
- No versioning field; a schema change needs a coordinated deploy.
- Decoding is strict: anything that does not match exactly is
  rejected with MalformedMessage and must be dropped by the consumer.
- `origin` tags an increment with its sender so a replicator can
  recognise its own broadcast echoed back by the transport.

Usage example:

    try:
        msg = decode_message(raw)
    except ProtocolError as e:
        log_event({"event_type": "broadcast_message_malformed", "error": str(e)})
        return

    if isinstance(msg, Heartbeat):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from spec import MSG_TYPE_COUNTER_INCREMENT, MSG_TYPE_HEARTBEAT
from stats.categories import Category, parse_category


# -------------------------
# Exceptions
# -------------------------

class ProtocolError(Exception):
    """Base class for broadcast protocol errors."""


class MalformedMessage(ProtocolError):
    """
    Raised when an inbound message does not match the tagged union.

    Covers non-object payloads, unknown or missing type tags, and
    payload fields that are missing or of the wrong type. The message
    is unsafe to process and must be dropped.
    """


class UnknownCategory(MalformedMessage):
    """Raised when a COUNTER_INCREMENT names a category we do not track."""


# -------------------------
# Message types
# -------------------------

@dataclass(frozen=True)
class Heartbeat:
    """Liveness announcement."""
    instance_id: str


@dataclass(frozen=True)
class CounterIncrement:
    """One locally confirmed completion of `category` at `origin`."""
    category: Category
    origin: str


Message = Union[Heartbeat, CounterIncrement]


# -------------------------
# Encoding
# -------------------------

def encode_message(msg: Message) -> dict[str, Any]:
    """Encode a message into its JSON-ready wire form."""
    if isinstance(msg, Heartbeat):
        return {
            "type": MSG_TYPE_HEARTBEAT,
            "payload": {"id": msg.instance_id},
        }
    return {
        "type": MSG_TYPE_COUNTER_INCREMENT,
        "payload": {"category": msg.category.value, "origin": msg.origin},
    }


# -------------------------
# Decoding
# -------------------------

def decode_message(raw: Any) -> Message:
    """
    Decode a wire message.

    Raises:
        MalformedMessage if `raw` is not a well-formed message.
        UnknownCategory if an increment names an untracked category.
    """
    if not isinstance(raw, Mapping):
        raise MalformedMessage(f"message is not an object: {type(raw).__name__}")

    msg_type = raw.get("type")
    payload = raw.get("payload")
    if not isinstance(payload, Mapping):
        raise MalformedMessage(f"missing payload for type {msg_type!r}")

    if msg_type == MSG_TYPE_HEARTBEAT:
        return Heartbeat(instance_id=_require_str(payload, "id"))

    if msg_type == MSG_TYPE_COUNTER_INCREMENT:
        raw_category = payload.get("category")
        category = parse_category(raw_category)
        if category is None:
            raise UnknownCategory(f"unknown category: {raw_category!r}")
        return CounterIncrement(
            category=category,
            origin=_require_str(payload, "origin"),
        )

    raise MalformedMessage(f"unknown message type: {msg_type!r}")


def _require_str(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise MalformedMessage(f"field {field!r} must be a non-empty string")
    return value
