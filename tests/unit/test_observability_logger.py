# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger
from observability.metrics import timed


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    monkeypatch.setattr(logger, "_json_lines", True)
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    payload: dict[str, Any] = {
        "event_type": "peer_joined",
        "instance_id": "a",
        "peer_count": 2,
    }

    logger.log_event(payload)

    assert len(captured) == 1
    assert json.loads(captured[0]) == payload


def test_unserializable_event_never_raises(captured: list[str]) -> None:
    logger.log_event({"ts_ms": 1, "event_type": "X", "bad": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 1


def test_text_format(captured: list[str]) -> None:
    logger.configure(json_lines=False)
    try:
        logger.log_event({"event_type": "peer_expired", "peer_id": "b"})
    finally:
        logger.configure(json_lines=True)

    assert captured == ["peer_expired peer_id='b'"]


def test_timed_emits_one_metric_even_on_error(captured: list[str]) -> None:
    with pytest.raises(RuntimeError):
        with timed("stats_persist", instance_id="a", details={"reason": "local"}):
            raise RuntimeError("fail")

    assert len(captured) == 1
    metric = json.loads(captured[0])
    assert metric["event_type"] == "METRIC_TIMER"
    assert metric["metric"] == "stats_persist"
    assert metric["instance_id"] == "a"
    assert metric["details"] == {"reason": "local"}
    assert metric["value_ms"] >= 0
