"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging

Also provides ``suppressed_warnings()``, a scoped filter for known-noisy
warnings raised while a session initializes.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, Sequence


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


# ------------------------------------------------------------------
# Scoped warning suppression
# ------------------------------------------------------------------

class _SuppressionScope:
    __slots__ = ("substrings", "active")

    def __init__(self, substrings: Sequence[str]) -> None:
        self.substrings = tuple(substrings)
        self.active = True

    def matches(self, text: str) -> bool:
        return self.active and any(s in text for s in self.substrings)


# Tasks spawned inside a scope inherit the variable; ``active`` is cleared
# on exit so those copies stop suppressing too.
_suppression: contextvars.ContextVar[tuple[_SuppressionScope, ...]] = (
    contextvars.ContextVar("suppressed_warnings", default=())
)


class _SubstringFilter(logging.Filter):
    def __init__(self, scope: _SuppressionScope) -> None:
        super().__init__()
        self.scope = scope

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno < logging.WARNING:
            return True
        return not self.scope.matches(record.getMessage())


def _is_warning(event: Mapping[str, Any]) -> bool:
    return str(event.get("level", "")).lower() in ("warning", "warn")


def _is_suppressed(event: Mapping[str, Any], line: str) -> bool:
    scopes = _suppression.get()
    if not scopes or not _is_warning(event):
        return False
    return any(scope.matches(line) for scope in scopes)


@contextmanager
def suppressed_warnings(
    *substrings: str,
    loggers: Sequence[str] = (),
) -> Iterator[None]:
    """
    Drop warnings containing any of ``substrings`` while the block runs.

    Applies to:
    - log_event() calls carrying ``"level": "warning"``
    - stdlib logging records at WARNING or above on the named loggers

    Nothing outside the block is affected.
    """
    scope = _SuppressionScope(substrings)
    token = _suppression.set(_suppression.get() + (scope,))

    log_filter = _SubstringFilter(scope)
    attached = [logging.getLogger(name) for name in loggers]
    for lg in attached:
        lg.addFilter(log_filter)

    try:
        yield
    finally:
        scope.active = False
        for lg in attached:
            lg.removeFilter(log_filter)
        _suppression.reset(token)


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------

def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies a fully-formed event dict.

    This function:
    - Serializes to JSON
    - Writes at most one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    if _is_suppressed(event, line):
        return

    _print(line)
