"""
Gemini Live adapter over a raw WebSocket (BidiGenerateContent).

Connection model:
- One websocket per interview attempt; never reconnected.
- connect() sends ``setup`` and waits for ``setupComplete`` under a
  handshake timeout. on_open fires after that.
- A receive task decodes text or binary JSON frames and hands each message
  to on_message in arrival order. A faulty handler is logged, the loop
  keeps going.
- on_close fires exactly once when the socket closes, with the local
  reason if this side initiated the close.

The adapter never touches session state; it only reports.
"""

from __future__ import annotations

import asyncio
import json
import urllib.parse
from typing import Any, Callable, Optional

from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from adapters.live.base import LiveCallbacks, LiveSessionAdapter, TransportError
from adapters.live.config import LiveSessionConfig
from adapters.live.messages import client_turn_frame, is_setup_complete, realtime_input_frame
from constants import (
    LIVE_CONNECT_TIMEOUT_S,
    LIVE_WS_URL_CONSTRAINED,
    LIVE_WS_URL_DEFAULT,
    NORMAL_CLOSE_CODE,
)
from observability.logger import log_event
from observability.metrics import timed

# Inbound audio chunks can be large; the default 1 MiB cap is too tight.
_MAX_FRAME_BYTES = 2**24


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """
    Decode one websocket frame into a JSON object.

    Raises:
        ValueError if the frame is not a JSON object.
    """
    text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
    message = json.loads(text)
    if not isinstance(message, dict):
        raise ValueError(f"expected a JSON object, got {type(message).__name__}")
    return message


class GeminiLiveAdapter(LiveSessionAdapter):
    """
    LiveSessionAdapter for the Gemini Live API.

    Credentials:
    - api_key: sent as ``?key=`` on the default endpoint
    - ephemeral_token: sent as ``?access_token=`` on the constrained endpoint
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        ephemeral_token: Optional[str] = None,
        url: Optional[str] = None,
        connect_timeout_s: float = LIVE_CONNECT_TIMEOUT_S,
        session_id: Optional[str] = None,
        connect: Callable[..., Any] = ws_connect,
    ) -> None:
        if not api_key and not ephemeral_token:
            raise ValueError("GeminiLiveAdapter requires an api_key or an ephemeral_token")

        self._api_key = api_key
        self._ephemeral_token = ephemeral_token
        self._url = url
        self._connect_timeout_s = connect_timeout_s
        self._session_id = session_id
        self._connect = connect

        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._callbacks: LiveCallbacks | None = None

        self._open = False
        self._closing = False
        self._close_reported = False
        self._local_close_reason: str | None = None

    @property
    def is_open(self) -> bool:
        return self._open and not self._closing

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def build_url(self) -> str:
        if self._ephemeral_token:
            base = self._url or LIVE_WS_URL_CONSTRAINED
            query = {"access_token": self._ephemeral_token}
        else:
            base = self._url or LIVE_WS_URL_DEFAULT
            query = {"key": self._api_key or ""}
        return f"{base}?{urllib.parse.urlencode(query)}"

    async def connect(self, config: LiveSessionConfig, callbacks: LiveCallbacks) -> None:
        if self._ws is not None or self._closing:
            raise TransportError("Live adapter already used")

        self._callbacks = callbacks

        try:
            with timed("live.connect", session_id=self._session_id, details={"model": config.model}):
                await asyncio.wait_for(self._handshake(config), timeout=self._connect_timeout_s)
        except asyncio.TimeoutError as exc:
            await self._abort()
            raise TransportError(
                f"Live handshake timed out after {self._connect_timeout_s:.1f}s"
            ) from exc
        except ConnectionClosed as exc:
            await self._abort()
            reason = exc.rcvd.reason if exc.rcvd is not None else ""
            raise TransportError(f"Live connection closed during setup: {reason or exc}") from exc
        except (OSError, WebSocketException, ValueError) as exc:
            await self._abort()
            raise TransportError(f"Live connection failed: {exc}") from exc

        if self._closing:
            # close() ran while the handshake was in flight.
            await self._abort()
            raise TransportError("Live connection closed during setup")

        self._open = True
        log_event({
            "event_type": "LIVE_OPENED",
            "session_id": self._session_id,
            "model": config.model,
        })
        callbacks.on_open()
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def _handshake(self, config: LiveSessionConfig) -> None:
        self._ws = await self._connect(self.build_url(), max_size=_MAX_FRAME_BYTES)
        await self._ws.send(json.dumps(config.to_setup_message()))

        while True:
            message = decode_frame(await self._ws.recv())
            if is_setup_complete(message):
                return
            log_event({
                "event_type": "LIVE_PRESETUP_MESSAGE_IGNORED",
                "session_id": self._session_id,
                "keys": sorted(message.keys()),
            })

    async def _abort(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "LIVE_ABORT_CLOSE_FAILED",
                    "session_id": self._session_id,
                    "message": str(exc),
                })

    async def close(self, reason: str) -> None:
        if self._closing:
            return
        self._closing = True
        self._local_close_reason = reason

        ws = self._ws
        if ws is None:
            return

        try:
            await ws.close(code=NORMAL_CLOSE_CODE, reason=reason)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "LIVE_CLOSE_FAILED",
                "session_id": self._session_id,
                "message": str(exc),
            })

        task = self._recv_task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self._connect_timeout_s)
            except asyncio.TimeoutError:
                task.cancel()

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def send_realtime_input(self, message: dict[str, Any]) -> None:
        await self._send(realtime_input_frame(message))

    async def send_client_turn(self, text: str, *, turn_complete: bool = True) -> None:
        await self._send(client_turn_frame(text, turn_complete=turn_complete))

    async def _send(self, frame: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or not self.is_open:
            raise TransportError("Live connection is not open")
        try:
            await ws.send(json.dumps(frame))
        except ConnectionClosed as exc:
            raise TransportError(f"Live send failed: {exc}") from exc

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self) -> None:
        ws = self._ws
        callbacks = self._callbacks
        if ws is None or callbacks is None:
            return

        try:
            async for raw in ws:
                try:
                    message = decode_frame(raw)
                except ValueError as exc:
                    log_event({
                        "event_type": "LIVE_FRAME_DECODE_FAILED",
                        "session_id": self._session_id,
                        "message": str(exc),
                    })
                    continue

                try:
                    callbacks.on_message(message)
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    log_event({
                        "event_type": "LIVE_MESSAGE_HANDLER_FAULT",
                        "session_id": self._session_id,
                        "exception": type(exc).__name__,
                        "message": str(exc),
                    })
        except ConnectionClosedError as exc:
            if not self._closing:
                callbacks.on_error(TransportError(f"Live connection lost: {exc}"))
        finally:
            self._open = False
            self._report_close(ws.close_code, ws.close_reason or "")

    def _report_close(self, code: Optional[int], remote_reason: str) -> None:
        if self._close_reported or self._callbacks is None:
            return
        self._close_reported = True

        reason = self._local_close_reason if self._local_close_reason is not None else remote_reason
        log_event({
            "event_type": "LIVE_CLOSED",
            "session_id": self._session_id,
            "code": code,
            "reason": reason,
        })
        self._callbacks.on_close(code, reason)
