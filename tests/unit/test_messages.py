# pylint: disable=missing-module-docstring,missing-function-docstring
import pytest

from protocol.messages import (
    CounterIncrement,
    Heartbeat,
    MalformedMessage,
    ProtocolError,
    UnknownCategory,
    decode_message,
    encode_message,
)
from stats.categories import Category


def test_heartbeat_wire_shape() -> None:
    assert encode_message(Heartbeat(instance_id="a")) == {
        "type": "HEARTBEAT",
        "payload": {"id": "a"},
    }


def test_counter_increment_wire_shape() -> None:
    wire = encode_message(CounterIncrement(category=Category.DOUBLE, origin="a"))
    assert wire == {
        "type": "COUNTER_INCREMENT",
        "payload": {"category": "double", "origin": "a"},
    }


def test_decode_accepts_well_formed_messages() -> None:
    assert decode_message({"type": "HEARTBEAT", "payload": {"id": "b"}}) == Heartbeat("b")
    assert decode_message(
        {"type": "COUNTER_INCREMENT", "payload": {"category": "iced", "origin": "b"}}
    ) == CounterIncrement(Category.ICED, "b")


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "HEARTBEAT",
        ["HEARTBEAT"],
        {"type": "HEARTBEAT"},
        {"type": "HEARTBEAT", "payload": "b"},
        {"type": "HEARTBEAT", "payload": {}},
        {"type": "HEARTBEAT", "payload": {"id": ""}},
        {"type": "HEARTBEAT", "payload": {"id": 7}},
        {"type": "GOODBYE", "payload": {"id": "b"}},
        {"type": "COUNTER_INCREMENT", "payload": {"category": "iced"}},
    ],
)
def test_decode_rejects_malformed(raw: object) -> None:
    with pytest.raises(MalformedMessage):
        decode_message(raw)


def test_unknown_category_is_a_protocol_error() -> None:
    raw = {"type": "COUNTER_INCREMENT", "payload": {"category": "latte", "origin": "b"}}
    with pytest.raises(UnknownCategory):
        decode_message(raw)
    with pytest.raises(ProtocolError):
        decode_message(raw)
