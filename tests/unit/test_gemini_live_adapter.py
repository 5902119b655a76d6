# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any, Optional

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from adapters.live.base import LiveCallbacks, TransportError
from adapters.live.config import LiveSessionConfig
from adapters.live.gemini_ws import GeminiLiveAdapter, decode_frame
from constants import LIVE_WS_URL_CONSTRAINED, LIVE_WS_URL_DEFAULT
from fakes import event_types, settle

_END = object()


class FakeWebSocket:
    """Scripted server side of a websocket."""

    def __init__(self, inbound: Optional[list[Any]] = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.closed = False
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()
        for item in inbound or []:
            self.feed(item)

    def feed(self, item: Any) -> None:
        if isinstance(item, dict):
            item = json.dumps(item)
        self._inbound.put_nowait(item)

    def drop(self, code: int, reason: str) -> None:
        """Abnormal closure from the server."""
        self.close_code = code
        self.close_reason = reason
        self._inbound.put_nowait(ConnectionClosedError(Close(code, reason), None))

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def recv(self) -> Any:
        item = await self._inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbound.put_nowait(_END)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._inbound.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class Recorder:
    def __init__(self) -> None:
        self.opened = 0
        self.messages: list[dict[str, Any]] = []
        self.errors: list[TransportError] = []
        self.closes: list[tuple[Optional[int], str]] = []

    def callbacks(self) -> LiveCallbacks:
        return LiveCallbacks(
            on_open=self._on_open,
            on_message=self.messages.append,
            on_error=self.errors.append,
            on_close=lambda code, reason: self.closes.append((code, reason)),
        )

    def _on_open(self) -> None:
        self.opened += 1


def _adapter(ws: FakeWebSocket, **kwargs: Any) -> tuple[GeminiLiveAdapter, list[tuple[str, dict]]]:
    calls: list[tuple[str, dict]] = []

    async def fake_connect(url: str, **options: Any) -> FakeWebSocket:
        calls.append((url, options))
        return ws

    kwargs.setdefault("api_key", "k123")
    adapter = GeminiLiveAdapter(connect=fake_connect, session_id="sess_test", **kwargs)
    return adapter, calls


# -------------------------
# Construction
# -------------------------

def test_requires_a_credential():
    with pytest.raises(ValueError):
        GeminiLiveAdapter()


def test_url_for_api_key():
    adapter = GeminiLiveAdapter(api_key="abc")
    assert adapter.build_url() == f"{LIVE_WS_URL_DEFAULT}?key=abc"


def test_url_for_ephemeral_token():
    adapter = GeminiLiveAdapter(ephemeral_token="tok/1")
    assert adapter.build_url() == f"{LIVE_WS_URL_CONSTRAINED}?access_token=tok%2F1"


def test_decode_frame():
    assert decode_frame(b'{"setupComplete": {}}') == {"setupComplete": {}}
    with pytest.raises(ValueError):
        decode_frame("[1, 2]")
    with pytest.raises(ValueError):
        decode_frame("not json")


# -------------------------
# Handshake
# -------------------------

def test_connect_sends_setup_and_opens(emitted):
    recorder = Recorder()

    async def scenario() -> tuple[GeminiLiveAdapter, FakeWebSocket, list]:
        ws = FakeWebSocket([{"setupComplete": {}}])
        adapter, calls = _adapter(ws)
        await adapter.connect(LiveSessionConfig(voice_name="Puck"), recorder.callbacks())
        await adapter.close("user_initiated")
        return adapter, ws, calls

    adapter, ws, calls = asyncio.run(scenario())

    url, options = calls[0]
    assert url.endswith("?key=k123")
    assert options["max_size"] == 2**24
    voice = ws.sent[0]["setup"]["generationConfig"]["speechConfig"]["voiceConfig"]
    assert voice == {"prebuiltVoiceConfig": {"voiceName": "Puck"}}
    assert recorder.opened == 1
    assert adapter.is_open is False
    assert "LIVE_OPENED" in event_types(emitted)


def test_messages_before_setup_complete_are_skipped():
    recorder = Recorder()

    async def scenario() -> None:
        ws = FakeWebSocket([{"usageMetadata": {}}, {"setupComplete": {}}])
        adapter, _ = _adapter(ws)
        await adapter.connect(LiveSessionConfig(), recorder.callbacks())
        await adapter.close("user_initiated")

    asyncio.run(scenario())

    assert recorder.opened == 1
    assert recorder.messages == []


def test_handshake_timeout_is_a_transport_error():
    recorder = Recorder()
    ws_holder: list[FakeWebSocket] = []

    async def scenario() -> None:
        ws = FakeWebSocket()
        ws_holder.append(ws)
        adapter, _ = _adapter(ws, connect_timeout_s=0.05)
        await adapter.connect(LiveSessionConfig(), recorder.callbacks())

    with pytest.raises(TransportError, match="timed out"):
        asyncio.run(scenario())

    assert ws_holder[0].closed is True
    assert recorder.opened == 0
    assert recorder.closes == []


def test_connect_refused_is_a_transport_error():
    async def refused(url: str, **options: Any) -> FakeWebSocket:
        raise OSError("connection refused")

    adapter = GeminiLiveAdapter(api_key="k", connect=refused)

    with pytest.raises(TransportError, match="refused"):
        asyncio.run(adapter.connect(LiveSessionConfig(), Recorder().callbacks()))


# -------------------------
# Streaming
# -------------------------

def test_messages_are_delivered_in_order_and_sends_are_framed():
    recorder = Recorder()

    async def scenario() -> FakeWebSocket:
        ws = FakeWebSocket([{"setupComplete": {}}])
        adapter, _ = _adapter(ws)
        await adapter.connect(LiveSessionConfig(), recorder.callbacks())

        ws.feed({"serverContent": {"modelTurn": {"parts": [{"text": "one"}]}}})
        ws.feed(b'{"serverContent": {"turnComplete": true}}')
        await settle()

        await adapter.send_realtime_input({"media": {"data": "AAAA", "mimeType": "audio/pcm;rate=16000"}})
        await adapter.send_client_turn("hello")
        await adapter.close("user_initiated")
        return ws

    ws = asyncio.run(scenario())

    assert [m.get("serverContent") for m in recorder.messages] == [
        {"modelTurn": {"parts": [{"text": "one"}]}},
        {"turnComplete": True},
    ]
    assert ws.sent[1] == {
        "realtimeInput": {"mediaChunks": [{"data": "AAAA", "mimeType": "audio/pcm;rate=16000"}]},
    }
    assert ws.sent[2]["clientContent"]["turns"][0]["parts"] == [{"text": "hello"}]


def test_bad_frames_and_handler_faults_do_not_stop_the_loop(emitted):
    recorder = Recorder()
    seen: list[dict] = []

    def flaky(message: dict) -> None:
        seen.append(message)
        if len(seen) == 1:
            raise RuntimeError("handler bug")

    async def scenario() -> None:
        ws = FakeWebSocket([{"setupComplete": {}}])
        adapter, _ = _adapter(ws)
        callbacks = recorder.callbacks()
        await adapter.connect(
            LiveSessionConfig(),
            LiveCallbacks(callbacks.on_open, flaky, callbacks.on_error, callbacks.on_close),
        )
        ws.feed({"a": 1})
        ws.feed("{broken")
        ws.feed({"b": 2})
        await settle()
        await adapter.close("user_initiated")

    asyncio.run(scenario())

    assert seen == [{"a": 1}, {"b": 2}]
    assert "LIVE_MESSAGE_HANDLER_FAULT" in event_types(emitted)
    assert "LIVE_FRAME_DECODE_FAILED" in event_types(emitted)


def test_send_when_not_open_is_a_transport_error():
    adapter = GeminiLiveAdapter(api_key="k")

    with pytest.raises(TransportError):
        asyncio.run(adapter.send_client_turn("hi"))


# -------------------------
# Closing
# -------------------------

def test_local_close_reports_local_reason_once():
    recorder = Recorder()

    async def scenario() -> FakeWebSocket:
        ws = FakeWebSocket([{"setupComplete": {}}])
        adapter, _ = _adapter(ws)
        await adapter.connect(LiveSessionConfig(), recorder.callbacks())
        await adapter.close("user_initiated")
        await adapter.close("user_initiated")
        return ws

    ws = asyncio.run(scenario())

    assert ws.close_code == 1000
    assert ws.close_reason == "user_initiated"
    assert recorder.closes == [(1000, "user_initiated")]
    assert recorder.errors == []


def test_abnormal_remote_close_reports_error_then_close():
    recorder = Recorder()

    async def scenario() -> None:
        ws = FakeWebSocket([{"setupComplete": {}}])
        adapter, _ = _adapter(ws)
        await adapter.connect(LiveSessionConfig(), recorder.callbacks())
        ws.drop(1011, "internal error")
        await settle()
        assert adapter.is_open is False
        await adapter.close("user_initiated")

    asyncio.run(scenario())

    assert len(recorder.errors) == 1
    assert recorder.closes == [(1011, "internal error")]


def test_close_before_connect_is_a_noop():
    adapter = GeminiLiveAdapter(api_key="k")

    asyncio.run(adapter.close("user_initiated"))

    assert adapter.is_open is False
