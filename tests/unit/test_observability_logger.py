# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
import logging
from typing import Any

import pytest

from observability import logger


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Must be valid JSON, payload preserved exactly
    assert json.loads(captured[0]) == payload


def test_unserializable_event_falls_back(captured: list[str]) -> None:
    logger.log_event({"ts_ms": 5, "event_type": "BAD", "value": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 5


# -------------------------
# Scoped suppression
# -------------------------

def test_matching_warnings_are_dropped_inside_scope(captured: list[str]) -> None:
    with logger.suppressed_warnings("AbortError"):
        logger.log_event({"event_type": "W", "level": "warning", "message": "AbortError: aborted"})
        logger.log_event({"event_type": "E", "level": "error", "message": "AbortError: aborted"})
        logger.log_event({"event_type": "W", "level": "warning", "message": "other"})

    logger.log_event({"event_type": "W", "level": "warning", "message": "AbortError after"})

    messages = [json.loads(line)["message"] for line in captured]
    assert messages == ["AbortError: aborted", "other", "AbortError after"]


def test_stdlib_logger_filter_is_scoped(caplog: pytest.LogCaptureFixture) -> None:
    noisy = logging.getLogger("websockets.client")

    with caplog.at_level(logging.DEBUG):
        with logger.suppressed_warnings("NotSupportedError", loggers=("websockets.client",)):
            noisy.warning("NotSupportedError: setSinkId")
            noisy.info("NotSupportedError at info level")
            noisy.warning("unrelated warning")
        noisy.warning("NotSupportedError later")

    messages = [r.getMessage() for r in caplog.records]
    assert messages == [
        "NotSupportedError at info level",
        "unrelated warning",
        "NotSupportedError later",
    ]
    assert noisy.filters == []


def test_scope_does_not_leak_to_other_tasks(captured: list[str]) -> None:
    async def outside() -> None:
        logger.log_event({"event_type": "W", "level": "warning", "message": "AbortError elsewhere"})

    async def scenario() -> None:
        other = asyncio.create_task(outside())
        with logger.suppressed_warnings("AbortError"):
            await other

    asyncio.run(scenario())

    assert len(captured) == 1
