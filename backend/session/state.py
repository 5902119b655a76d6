"""
Session state for a single interview attempt.

Rules:
- One SessionState per interview attempt; never shared across attempts.
- Written from three places: the event loop (remote messages, UI ops), the
  capture thread (reads only) and the playback thread (source completion).
- Every write happens inside ``mutate()``, which holds one re-entrant lock.
- Readers may read a single attribute without the lock; attribute reads are
  atomic, so the capture callback always sees the latest ``recording`` value.
- Listeners are notified after the lock is released, with a snapshot.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator

from observability.logger import log_event

if TYPE_CHECKING:
    from audio.playback import PlaybackSource


class SessionPhase(str, Enum):
    """
    Lifecycle of the remote streaming connection.

    IDLE -> CONNECTING -> OPEN -> CLOSED. CLOSED is terminal.
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


StateListener = Callable[[dict[str, Any]], None]


class SessionState:
    """
    Mutable, lock-guarded record shared by the orchestrator, capture
    pipeline and playback scheduler.

    Invariants (maintained by the writers):
    - speaking is True iff active_sources is non-empty
    - next_start_time only decreases on an interruption reset to 0
    - recording implies a live capture stream
    """

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id

        self._lock = threading.RLock()
        self._depth = 0
        self._listeners: list[StateListener] = []

        self.phase: SessionPhase = SessionPhase.IDLE
        self.connected: bool = False
        self.recording: bool = False
        self.speaking: bool = False

        self.next_start_time: float = 0.0
        self.active_sources: set[PlaybackSource] = set()

        self.message_log: list[dict[str, Any]] = []
        self.current_turn: list[dict[str, Any]] = []
        self.transcript: list[str] = []

        self.error: str | None = None
        self.notice: str | None = None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    @contextmanager
    def mutate(self) -> Iterator[SessionState]:
        """
        Hold the state lock for a compound update.

        Nested use is allowed; only the outermost block notifies listeners.
        """
        snapshot: dict[str, Any] | None = None
        with self._lock:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0:
                    snapshot = self._snapshot_locked()
        if snapshot is not None:
            self._notify(snapshot)

    def set_phase(self, phase: SessionPhase) -> None:
        with self.mutate() as st:
            st.phase = phase

    def append_message(self, message: dict[str, Any]) -> None:
        """Record an inbound message in both the full log and the current turn."""
        with self.mutate() as st:
            st.message_log.append(message)
            st.current_turn.append(message)

    def clear_current_turn(self) -> None:
        """Drop the current-turn buffer. The full log is kept."""
        with self.mutate() as st:
            st.current_turn = []

    def append_transcript(self, line: str) -> None:
        with self.mutate() as st:
            st.transcript.append(line)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns an unsubscribe callable.
        """
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def snapshot(self) -> dict[str, Any]:
        """Consistent, JSON-safe view for the UI collaborator."""
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "connected": self.connected,
            "recording": self.recording,
            "speaking": self.speaking,
            "next_start_time": self.next_start_time,
            "active_sources": len(self.active_sources),
            "messages": len(self.message_log),
            "current_turn": len(self.current_turn),
            "error": self.error,
            "notice": self.notice,
        }

    def _notify(self, snapshot: dict[str, Any]) -> None:
        with self._lock:
            listeners = tuple(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "STATE_LISTENER_ERROR",
                    "session_id": self.session_id,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
