# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger, metrics


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    monkeypatch.setattr(logger, "_min_level", 20)
    monkeypatch.setattr(logger, "_json_lines", True)
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Payload must be preserved exactly
    assert json.loads(captured[0]) == payload


def test_log_event_drops_below_min_level(captured: list[str]) -> None:
    logger.log_event({"event_type": "NOISE", "level": "debug"})
    logger.log_event({"event_type": "KEEP", "level": "warning"})

    assert [json.loads(line)["event_type"] for line in captured] == ["KEEP"]


def test_log_event_never_raises_on_unserializable(captured: list[str]) -> None:
    logger.log_event({"ts_ms": 1, "event_type": "BAD", "obj": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 1


def test_configure_plain_lines(captured: list[str]) -> None:
    logger.configure(level="debug", json_lines=False)

    logger.log_event({"event_type": "SESSION_STARTED", "session_id": "s1"})

    assert captured == ["SESSION_STARTED session_id=s1"]


def test_timed_emits_one_metric_and_cleans_up(captured: list[str]) -> None:
    logger.configure(level="debug")

    with pytest.raises(ValueError):
        with metrics.timed("snapshot_encode", session_id="s1"):
            raise ValueError("boom")

    events = [json.loads(line) for line in captured]
    assert len(events) == 1
    assert events[0]["event_type"] == "METRIC_TIMER"
    assert events[0]["metric"] == "snapshot_encode"
    assert events[0]["value_ms"] >= 0
    assert metrics.active_timer_count() == 0


def test_stop_unknown_timer_returns_none(captured: list[str]) -> None:
    assert metrics.stop_timer("timer_missing") is None
    assert captured == []
