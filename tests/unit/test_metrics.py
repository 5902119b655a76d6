# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest

from observability import metrics


def _capture(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(metrics, "log_event", emitted.append)
    return emitted


def test_timed_emits_one_metric(monkeypatch: pytest.MonkeyPatch):
    emitted = _capture(monkeypatch)

    with metrics.timed("live.connect", session_id="sess_1", details={"model": "m"}):
        pass

    (event,) = emitted
    assert event["event_type"] == "METRIC_TIMER"
    assert event["metric"] == "live.connect"
    assert event["session_id"] == "sess_1"
    assert event["details"] == {"model": "m"}
    assert event["value_ms"] >= 0


def test_timed_emits_when_block_raises(monkeypatch: pytest.MonkeyPatch):
    emitted = _capture(monkeypatch)

    with pytest.raises(RuntimeError):
        with metrics.timed("capture.acquire"):
            raise RuntimeError("no mic")

    assert [e["metric"] for e in emitted] == ["capture.acquire"]


def test_stop_timer_twice(monkeypatch: pytest.MonkeyPatch):
    emitted = _capture(monkeypatch)

    timer_id = metrics.start_timer("x")

    assert metrics.stop_timer(timer_id) is not None
    assert metrics.stop_timer(timer_id) is None
    assert metrics.stop_timer("timer_unknown") is None
    assert len(emitted) == 1
