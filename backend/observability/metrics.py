"""
Timing helpers.

- Durations use monotonic time
- Each measurement is emitted as one METRIC_TIMER event
- No aggregation

Prefer ``timed()``; it cannot leak a timer.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# timer_id -> (metric_name, start_time_ns)
_active_timers: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """
    Start a monotonic timer.

    Returns an opaque id for stop_timer(). Callers not using ``timed()``
    must stop the timer in a finally block.
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Stop a timer and emit its metric.

    Returns duration_ms, or None for an unknown / already stopped timer.
    """
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    log_event({
        # wall clock for correlation only
        "ts_ms": int(time.time() * 1000),
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "session_id": session_id,
        "details": details or {},
    })

    return duration_ms


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Measure the enclosed block.

    The metric is emitted exactly once, also when the block raises.

        with timed("live.connect", session_id=state.session_id):
            await adapter.connect(...)
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, session_id=session_id, details=details)
