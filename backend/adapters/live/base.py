"""
Live session adapter contract.

This module defines the interface only. No audio handling, no session
state, no retries.

Key invariants:
- The adapter reports lifecycle through LiveCallbacks; it never touches
  SessionState or the playback scheduler.
- on_open fires at most once, after the remote side accepted the setup.
- on_close fires at most once per connection, after on_open or on_error.
- close() is idempotent.
- No reconnect. A closed adapter stays closed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from adapters.live.config import LiveSessionConfig


class TransportError(Exception):
    """
    Remote channel failure (connect, send or receive).

    The message is matched against known-benign substrings by the
    orchestrator before being surfaced.
    """


@dataclass(frozen=True)
class LiveCallbacks:
    """
    Sinks for remote lifecycle events.

    on_message receives each decoded JSON message as a dict.
    on_close receives (code, reason).
    """
    on_open: Callable[[], None]
    on_message: Callable[[dict[str, Any]], None]
    on_error: Callable[[TransportError], None]
    on_close: Callable[[Optional[int], str], None]


class LiveSessionAdapter(ABC):
    """
    Abstract duplex channel to a Live (speech-to-speech) model session.

    Implementations are responsible for:
    - Opening the connection with an immutable LiveSessionConfig
    - Delivering inbound messages in arrival order
    - Sending realtime audio input and client text turns

    Non-responsibilities:
    - No decoding of audio payloads
    - No interruption or turn policy
    """

    @abstractmethod
    async def connect(self, config: LiveSessionConfig, callbacks: LiveCallbacks) -> None:
        """
        Open the connection and send the session setup.

        Returns once the remote side confirmed the setup (on_open has fired).

        Raises:
            TransportError if the connection or setup fails.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_realtime_input(self, message: dict[str, Any]) -> None:
        """
        Send one realtime input message, e.g. ``{"media": {...}}``.

        Raises:
            TransportError if the channel is not open.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_client_turn(self, text: str, *, turn_complete: bool = True) -> None:
        """Send a synthetic user text turn."""
        raise NotImplementedError

    @abstractmethod
    async def close(self, reason: str) -> None:
        """
        Close the connection with ``reason``.

        Idempotent; a no-op when never connected.
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def is_open(self) -> bool:
        raise NotImplementedError
