# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from types import ModuleType
from typing import Any

import pytest

from observability import logger


@pytest.fixture
def emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Every log_event payload, decoded, in emission order."""
    captured: list[dict[str, Any]] = []

    def fake_print(line: str) -> None:
        captured.append(json.loads(line))

    monkeypatch.setattr(logger, "_print", fake_print)
    return captured


@pytest.fixture
def sd() -> ModuleType:
    """The real sounddevice module; skipped where PortAudio is not installed."""
    try:
        import sounddevice  # pylint: disable=import-outside-toplevel
    except OSError as exc:
        pytest.skip(f"PortAudio not available: {exc}")
    return sounddevice
