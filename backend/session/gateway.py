"""
Interview gateway.

One websocket connection == one interview attempt.

Responsibilities:
- Translate UI control messages into InterviewSession operations
- Push session state changes to the UI (STATE, ERROR, NOTICE)
- Return feedback on END_INTERVIEW and run the optional model analysis
  afterwards (FEEDBACK_ANALYSIS)
- Release the session when the websocket goes away

Inbound (JSON):
    START_INTERVIEW  {job_role, settings?}
    TOGGLE_RECORDING
    AUDIO_CHECK
    END_INTERVIEW

Immediate replies come back in GatewayResult. Anything produced later
(state changes from the audio thread, analysis results) goes through
``outbox``, which the route drains onto the socket.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional
from uuid import uuid4

from adapters.live.base import TransportError
from adapters.live.config import LiveSessionConfig
from adapters.live.gemini_ws import GeminiLiveAdapter
from audio.capture import CapturePipeline
from audio.errors import AudioError, CaptureError
from audio.graph import SoundDeviceOutput
from feedback.analyzer import FeedbackAnalysisError, TranscriptFeedbackAnalyzer
from observability.logger import log_event
from session.interview_session import InterviewSession

if TYPE_CHECKING:
    from config import AppConfig


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def _setting(settings: Mapping[str, Any], snake: str, camel: str) -> Any:
    return settings.get(snake, settings.get(camel))


@dataclass(frozen=True)
class InterviewSettings:
    voice_name: Optional[str] = None
    language_code: Optional[str] = None
    enable_audio: bool = True

    @staticmethod
    def from_payload(raw: Any) -> InterviewSettings:
        settings = raw if isinstance(raw, Mapping) else {}
        enable_audio = _setting(settings, "enable_audio", "enableAudio")
        return InterviewSettings(
            voice_name=_setting(settings, "voice_name", "voiceName") or None,
            language_code=_setting(settings, "language_code", "languageCode") or None,
            enable_audio=True if enable_audio is None else bool(enable_audio),
        )


@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to the client right away.
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


SessionFactory = Callable[[str, str, InterviewSettings], InterviewSession]


def build_interview_session(
    config: AppConfig,
    session_id: str,
    job_role: str,
    settings: InterviewSettings,
) -> InterviewSession:
    """Wire a real session: Gemini Live, PortAudio speaker and microphone."""
    adapter = GeminiLiveAdapter(
        api_key=config.gemini_api_key,
        ephemeral_token=config.gemini_ephemeral_token,
        url=config.live_ws_url,
        connect_timeout_s=config.live_connect_timeout_s,
        session_id=session_id,
    )
    live_config = LiveSessionConfig(
        model=config.live_model,
        voice_name=config.default_voice_name,
        language_code=config.default_language_code,
    ).with_settings(voice_name=settings.voice_name, language_code=settings.language_code)

    return InterviewSession(
        job_role=job_role,
        adapter=adapter,
        output=SoundDeviceOutput(device=config.audio_output_device),
        live_config=live_config,
        capture_factory=partial(CapturePipeline, device=config.audio_input_device),
        enable_audio=settings.enable_audio,
        session_id=session_id,
    )


# ------------------------------------------------------------------
# InterviewGateway
# ------------------------------------------------------------------

class InterviewGateway:
    def __init__(
        self,
        *,
        config: AppConfig,
        openai_client: Any | None = None,  # Type: openai.AsyncOpenAI
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._config = config
        self._openai_client = openai_client
        self._session_factory = session_factory or partial(build_interview_session, config)

        self.session_id = _new_session_id()
        self.session: InterviewSession | None = None
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._last_error: str | None = None
        self._last_notice: str | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._start_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Websocket lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> GatewayResult:
        self._loop = asyncio.get_running_loop()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_CONNECTED",
            "session_id": self.session_id,
        })
        return GatewayResult(outbound_json=({
            "type": "SESSION_READY",
            "session_id": self.session_id,
            "live_configured": self._config.has_live_credentials,
            "feedback_analysis": self._openai_client is not None,
        },))

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Unmount path: release everything, no feedback."""
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "session_id": self.session_id,
            "reason": reason,
        })

        session = self.session
        if session is not None:
            session.close()
            await session.wait_closed()

        # A pending start() is left to finish: it sees the closed session and
        # releases whatever it acquired late.
        for task in tuple(self._tasks):
            if task is not self._start_task:
                task.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        return GatewayResult()

    # ------------------------------------------------------------------
    # Control messages
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> GatewayResult:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return self._error("Malformed message")

        if not isinstance(data, dict):
            return self._error("Malformed message")

        msg_type = data.get("type")
        if msg_type == "START_INTERVIEW":
            return await self._start_interview(data)
        if msg_type == "TOGGLE_RECORDING":
            return await self._toggle_recording()
        if msg_type == "AUDIO_CHECK":
            return await self._audio_check()
        if msg_type == "END_INTERVIEW":
            return self._end_interview()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            "msg_type": msg_type,
            "session_id": self.session_id,
        })
        return self._error(f"Unknown message type: {msg_type}")

    async def _start_interview(self, data: Mapping[str, Any]) -> GatewayResult:
        if self.session is not None:
            return self._error("Interview already started")

        job_role = str(data.get("job_role") or data.get("jobRole") or "").strip()
        if not job_role:
            return self._error("job_role is required")

        settings = InterviewSettings.from_payload(data.get("settings"))
        try:
            session = self._session_factory(self.session_id, job_role, settings)
        except ValueError as exc:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_BUILD_FAILED",
                "session_id": self.session_id,
                "message": str(exc),
            })
            return self._error(f"Interview could not be configured: {exc}")

        self.session = session
        self._unsubscribe = session.state.subscribe(self._on_state_change)
        self._start_task = self._spawn(self._run_start(session))
        return GatewayResult(outbound_json=(self._state_message(session.state.snapshot()),))

    async def _run_start(self, session: InterviewSession) -> None:
        try:
            await session.start()
        except (CaptureError, TransportError, AudioError) as exc:
            # The session already recorded a user-facing error; STATE/ERROR follow.
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INTERVIEW_START_FAILED",
                "session_id": self.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    async def _toggle_recording(self) -> GatewayResult:
        if self.session is None:
            return self._error("No interview in progress")
        await self.session.toggle_recording()
        return GatewayResult(outbound_json=(self._state_message(self.session.state.snapshot()),))

    async def _audio_check(self) -> GatewayResult:
        if self.session is None:
            return self._error("No interview in progress")
        try:
            sent = await self.session.send_audio_check()
        except TransportError as exc:
            return self._error(f"Audio check failed: {exc}")
        if not sent:
            return self._error("Not connected")
        return GatewayResult()

    def _end_interview(self) -> GatewayResult:
        session = self.session
        if session is None:
            return self._error("No interview in progress")

        feedback = session.end()
        request = session.last_feedback_request
        if self._openai_client is not None and request is not None:
            analyzer = TranscriptFeedbackAnalyzer(
                client=self._openai_client,
                model=self._config.feedback_model,
                session_id=self.session_id,
            )
            self._spawn(self._run_analysis(analyzer, request))

        return GatewayResult(outbound_json=({
            "type": "INTERVIEW_COMPLETE",
            "session_id": self.session_id,
            "feedback": feedback.to_dict(),
        },))

    async def _run_analysis(self, analyzer: TranscriptFeedbackAnalyzer, request: Any) -> None:
        try:
            feedback = await analyzer.analyze(request)
        except FeedbackAnalysisError as exc:
            self.outbox.put_nowait({
                "type": "FEEDBACK_ANALYSIS",
                "session_id": self.session_id,
                "status": "failed",
                "message": str(exc),
            })
            return
        self.outbox.put_nowait({
            "type": "FEEDBACK_ANALYSIS",
            "session_id": self.session_id,
            "status": "ok",
            "feedback": feedback.to_dict(),
        })

    # ------------------------------------------------------------------
    # State push
    # ------------------------------------------------------------------

    def _on_state_change(self, snapshot: dict[str, Any]) -> None:
        """May run on the audio thread; hop onto the loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._publish_state(snapshot)
        else:
            loop.call_soon_threadsafe(self._publish_state, snapshot)

    def _publish_state(self, snapshot: dict[str, Any]) -> None:
        self.outbox.put_nowait(self._state_message(snapshot))

        error = snapshot.get("error")
        if error and error != self._last_error:
            self.outbox.put_nowait({"type": "ERROR", "session_id": self.session_id, "message": error})
        self._last_error = error

        notice = snapshot.get("notice")
        if notice and notice != self._last_notice:
            self.outbox.put_nowait({"type": "NOTICE", "session_id": self.session_id, "message": notice})
        self._last_notice = notice

    def _state_message(self, snapshot: Mapping[str, Any]) -> dict[str, Any]:
        return {"type": "STATE", "session_id": self.session_id, "state": dict(snapshot)}

    def _error(self, message: str) -> GatewayResult:
        return GatewayResult(outbound_json=({
            "type": "ERROR",
            "session_id": self.session_id,
            "message": message,
        },))

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for background start / analysis tasks."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)
