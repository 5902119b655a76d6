"""
Resource release.

Every exit path (explicit end, transport error, remote close, context-manager
exit) funnels through one Teardown. Steps run in registration order; a
failing step is logged and the remaining steps still run. Nothing is raised.
"""

from __future__ import annotations

from typing import Any, Callable

from observability.logger import log_event

ReleaseStep = Callable[[], Any]


class Teardown:
    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id
        self._steps: list[tuple[str, ReleaseStep]] = []
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def add(self, name: str, step: ReleaseStep) -> None:
        self._steps.append((name, step))

    def run(self, *, reason: str) -> list[str]:
        """
        Run every step once.

        Returns the names of the steps that failed. A second call is a no-op
        and returns an empty list.
        """
        if self._done:
            return []
        self._done = True

        failed: list[str] = []
        for name, step in self._steps:
            try:
                step()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                failed.append(name)
                log_event({
                    "event_type": "TEARDOWN_STEP_FAILED",
                    "session_id": self.session_id,
                    "step": name,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

        log_event({
            "event_type": "TEARDOWN_COMPLETE",
            "session_id": self.session_id,
            "reason": reason,
            "steps": [name for name, _ in self._steps],
            "failed": failed,
        })
        return failed
