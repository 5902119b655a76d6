"""
Interview session orchestrator.

One InterviewSession == one interview attempt.

Lifecycle:
    IDLE -> CONNECTING   start(): capture, playback, remote connect
    CONNECTING -> OPEN   remote opened; bootstrap turn after 500 ms
    OPEN -> CLOSED       remote close, end(), fatal transport error

Per inbound message, in order:
    (a) append to message log + current turn
    (b) locate audio via the ordered extractors
    (c) decode -> enqueue on the playback scheduler
    (d) interrupted -> interrupt playback
    (e) turnComplete -> clear the current turn (log is kept)

Threads:
- Remote callbacks and UI operations run on the event loop.
- Capture packets arrive on the PortAudio thread and hop onto the loop via
  call_soon_threadsafe; a sender task forwards them in order.
- Playback completion arrives on the output thread (see PlaybackScheduler).

No reconnect. Once CLOSED the session stays closed.
"""

from __future__ import annotations

import asyncio
import time
from types import TracebackType
from typing import Any, Callable, Optional

from adapters.live.base import LiveCallbacks, LiveSessionAdapter, TransportError
from adapters.live.config import LiveSessionConfig
from adapters.live.messages import (
    extract_audio,
    extract_go_away,
    extract_output_transcription,
    extract_text,
    is_interrupted,
    is_turn_complete,
    media_message,
)
from audio.capture import CaptureConstraints, CapturePipeline
from audio.decoder import decode_inbound_audio
from audio.errors import AudioError, CaptureError, DecodeError, InvalidAudioDataError
from audio.frames import PCMPacket
from audio.graph import AudioContextState, AudioOutput
from audio.playback import PlaybackScheduler
from constants import (
    AUDIO_CHECK_PROMPT,
    BENIGN_TRANSPORT_ERROR_SUBSTRINGS,
    BOOTSTRAP_DELAY_MS,
    BOOTSTRAP_PROMPT_TEMPLATE,
    INIT_SUPPRESSED_LOGGERS,
    INIT_SUPPRESSED_WARNING_SUBSTRINGS,
    UNEXPECTED_CLOSE_NOTICE,
    USER_INITIATED_CLOSE_REASON,
)
from feedback.generator import FeedbackGenerator, PlaceholderFeedbackGenerator
from feedback.models import FeedbackRequest, InterviewFeedback
from observability.logger import log_event, suppressed_warnings
from session.state import SessionPhase, SessionState
from session.teardown import Teardown

CaptureFactory = Callable[..., CapturePipeline]


def is_benign_transport_error(message: str) -> bool:
    return any(s in message for s in BENIGN_TRANSPORT_ERROR_SUBSTRINGS)


class InterviewSession:
    """
    Orchestrates capture, the remote Live session and playback.

    Collaborators are injected so tests can substitute fakes:
    - adapter: LiveSessionAdapter (remote channel)
    - output: AudioOutput (speaker clock + sink)
    - capture_factory: builds the CapturePipeline; called as
      ``capture_factory(state, send_packet, is_channel_live=...)``
    - feedback_generator: produces the record returned by end()
    """

    def __init__(
        self,
        *,
        job_role: str,
        adapter: LiveSessionAdapter,
        output: AudioOutput,
        live_config: LiveSessionConfig | None = None,
        capture_factory: CaptureFactory = CapturePipeline,
        capture_constraints: CaptureConstraints = CaptureConstraints(),
        feedback_generator: FeedbackGenerator | None = None,
        enable_audio: bool = True,
        session_id: str | None = None,
        bootstrap_delay_s: float = BOOTSTRAP_DELAY_MS / 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.job_role = job_role
        self.adapter = adapter
        self.output = output
        self.live_config = live_config or LiveSessionConfig()
        self.feedback_generator = feedback_generator or PlaceholderFeedbackGenerator()

        self.state = SessionState(session_id=session_id)
        self.scheduler = PlaybackScheduler(output, self.state)
        self.capture: CapturePipeline | None = None
        if enable_audio:
            self.capture = capture_factory(
                self.state,
                self._send_packet_threadsafe,
                is_channel_live=self._is_channel_live,
            )

        self._capture_constraints = capture_constraints
        self._bootstrap_delay_s = bootstrap_delay_s
        self._clock = clock

        self._loop: asyncio.AbstractEventLoop | None = None
        self._outbound: asyncio.Queue[dict[str, Any]] | None = None
        self._sender_task: asyncio.Task[None] | None = None
        self._bootstrap_handle: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task[Any]] = set()

        self._teardown = self._build_teardown()
        self._opened_at: float | None = None
        self._closed_at: float | None = None
        self._close_reason = USER_INITIATED_CLOSE_REASON
        self._feedback: InterviewFeedback | None = None
        self.last_feedback_request: FeedbackRequest | None = None

    @property
    def session_id(self) -> str | None:
        return self.state.session_id

    @property
    def closed(self) -> bool:
        return self._teardown.done

    @property
    def duration_seconds(self) -> int:
        """Whole seconds from OPEN to teardown (or now)."""
        if self._opened_at is None:
            return 0
        end = self._closed_at if self._closed_at is not None else self._clock()
        return max(0, int(end - self._opened_at))

    def log_context(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "phase": self.state.phase.value,
            "job_role": self.job_role,
        }

    # ------------------------------------------------------------------
    # UI operations
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Acquire the microphone, open playback and connect.

        Returns quietly if the session was closed before or during start.

        Raises:
            CaptureError with a user-facing message.
            TransportError if the remote connection fails.
            AudioError if the output cannot be opened.
        """
        if self.closed:
            return
        if self.state.phase != SessionPhase.IDLE:
            raise RuntimeError(f"session already started (phase={self.state.phase.value})")

        self._loop = asyncio.get_running_loop()
        self.state.set_phase(SessionPhase.CONNECTING)
        log_event({"event_type": "SESSION_STARTING", **self.log_context()})

        with suppressed_warnings(*INIT_SUPPRESSED_WARNING_SUBSTRINGS, loggers=INIT_SUPPRESSED_LOGGERS):
            try:
                if self.capture is not None:
                    await self.capture.start(self._capture_constraints)
                    if self.closed:
                        return

                self.output.resume()

                self._outbound = asyncio.Queue()
                self._sender_task = asyncio.create_task(self._sender_loop())

                await self.adapter.connect(
                    self.live_config,
                    LiveCallbacks(
                        on_open=self._on_open,
                        on_message=self._on_message,
                        on_error=self._on_error,
                        on_close=self._on_close,
                    ),
                )
            except CaptureError as exc:
                self._fail(exc.user_message, reason="capture_failed")
                raise
            except TransportError as exc:
                if self.closed:
                    return
                self._fail(f"Session initialization failed: {exc}", reason="connect_failed")
                raise
            except AudioError as exc:
                self._fail(f"Audio output unavailable: {exc}", reason="output_failed")
                raise

    async def toggle_recording(self) -> bool:
        """
        Flip the recording flag.

        No-op unless OPEN and connected with a live microphone. A suspended
        output clock is resumed first; if that fails the flag is unchanged.

        Returns the resulting recording state.
        """
        st = self.state
        if st.phase != SessionPhase.OPEN or not st.connected:
            return st.recording
        if self.capture is None or not self.capture.active:
            return st.recording

        if self.output.state == AudioContextState.SUSPENDED:
            try:
                self.output.resume()
            except AudioError as exc:
                with st.mutate():
                    st.error = "Audio context activation failed"
                log_event({
                    "event_type": "OUTPUT_RESUME_FAILED",
                    **self.log_context(),
                    "message": str(exc),
                })
                return st.recording

        with st.mutate():
            st.recording = not st.recording
            recording = st.recording

        log_event({
            "event_type": "RECORDING_STARTED" if recording else "RECORDING_STOPPED",
            **self.log_context(),
        })
        return recording

    async def send_audio_check(self) -> bool:
        """Ask the interviewer to speak a fixed line. Returns False when not connected."""
        if self.state.phase != SessionPhase.OPEN or not self.state.connected:
            return False
        await self.adapter.send_client_turn(AUDIO_CHECK_PROMPT)
        return True

    def end(self) -> InterviewFeedback:
        """
        Tear everything down and return feedback.

        Synchronous for the caller; closing the websocket may still be in
        flight. Calling end() again returns the same feedback and releases
        nothing twice.
        """
        if self._feedback is not None:
            return self._feedback

        self._release(USER_INITIATED_CLOSE_REASON)

        with self.state.mutate() as st:
            request = FeedbackRequest(
                job_role=self.job_role,
                message_log=tuple(st.message_log),
                transcript=tuple(st.transcript),
                duration_seconds=self.duration_seconds,
            )

        self.last_feedback_request = request
        self._feedback = self.feedback_generator.generate(request)
        log_event({
            "event_type": "INTERVIEW_ENDED",
            **self.log_context(),
            "duration_s": request.duration_seconds,
            "messages": request.message_count,
            "overall_rating": self._feedback.overall_rating.value,
        })
        return self._feedback

    def close(self) -> None:
        """Release everything without producing feedback (unmount path)."""
        self._release(USER_INITIATED_CLOSE_REASON)

    async def wait_closed(self) -> None:
        """Wait for in-flight asynchronous teardown (websocket close)."""
        while self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)

    async def __aenter__(self) -> InterviewSession:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()
        await self.wait_closed()

    # ------------------------------------------------------------------
    # Remote callbacks
    # ------------------------------------------------------------------

    def _on_open(self) -> None:
        if self.closed:
            return

        with self.state.mutate() as st:
            st.phase = SessionPhase.OPEN
            st.connected = True
        self._opened_at = self._clock()
        log_event({"event_type": "SESSION_OPEN", **self.log_context()})

        loop = self._loop or asyncio.get_running_loop()
        self._bootstrap_handle = loop.call_later(self._bootstrap_delay_s, self._send_bootstrap)

    def _on_message(self, message: dict[str, Any]) -> None:
        if self.closed:
            return

        # (a)
        self.state.append_message(message)

        # (b) + (c)
        audio = extract_audio(message)
        if audio is not None:
            self._play_segment(audio.data, audio.mime_type)

        text = extract_output_transcription(message) or extract_text(message)
        if text:
            self.state.append_transcript(text)

        # (d)
        if is_interrupted(message):
            self.scheduler.interrupt()

        # (e)
        if is_turn_complete(message):
            self.state.clear_current_turn()

        time_left = extract_go_away(message)
        if time_left is not None:
            log_event({"event_type": "LIVE_GO_AWAY", **self.log_context(), "time_left": time_left})

    def _on_error(self, error: TransportError) -> None:
        message = str(error)
        if is_benign_transport_error(message):
            log_event({
                "event_type": "LIVE_ERROR_IGNORED",
                "level": "warning",
                **self.log_context(),
                "message": message,
            })
            return

        log_event({"event_type": "LIVE_ERROR", **self.log_context(), "message": message})
        if self.closed:
            return
        with self.state.mutate() as st:
            st.error = f"Session error: {message}"
        self._release("transport_error")

    def _on_close(self, code: Optional[int], reason: str) -> None:
        with self.state.mutate() as st:
            st.connected = False
            st.recording = False
            st.phase = SessionPhase.CLOSED
            if reason != USER_INITIATED_CLOSE_REASON:
                st.notice = UNEXPECTED_CLOSE_NOTICE

        log_event({
            "event_type": "SESSION_REMOTE_CLOSED",
            **self.log_context(),
            "code": code,
            "reason": reason,
        })
        self._release("remote_close")

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    def _play_segment(self, data: str, mime_type: str) -> None:
        try:
            buffer = decode_inbound_audio(data, mime_type)
        except (DecodeError, InvalidAudioDataError) as exc:
            log_event({
                "event_type": "AUDIO_SEGMENT_DROPPED",
                **self.log_context(),
                "error": type(exc).__name__,
                "message": str(exc),
            })
            return

        try:
            self.scheduler.enqueue(buffer)
        except AudioError as exc:
            log_event({
                "event_type": "PLAYBACK_ENQUEUE_FAILED",
                **self.log_context(),
                "message": str(exc),
            })

    def _is_channel_live(self) -> bool:
        return self.state.connected and not self.closed

    def _send_packet_threadsafe(self, packet: PCMPacket) -> None:
        """Capture thread -> event loop."""
        loop = self._loop
        if loop is None or self.closed:
            return
        loop.call_soon_threadsafe(self._enqueue_outbound, media_message(packet))

    def _enqueue_outbound(self, message: dict[str, Any]) -> None:
        if self._outbound is None or self.closed or not self.state.connected:
            return
        self._outbound.put_nowait(message)

    async def _sender_loop(self) -> None:
        queue = self._outbound
        if queue is None:
            return
        while True:
            message = await queue.get()
            try:
                await self.adapter.send_realtime_input(message)
            except TransportError as exc:
                # Close/error callbacks carry the consequences.
                log_event({
                    "event_type": "LIVE_SEND_FAILED",
                    **self.log_context(),
                    "message": str(exc),
                })

    def _send_bootstrap(self) -> None:
        self._bootstrap_handle = None
        if self.closed or not self.state.connected:
            return
        prompt = BOOTSTRAP_PROMPT_TEMPLATE.format(job_role=self.job_role)
        self._spawn(self._send_turn(prompt, kind="bootstrap"))

    async def _send_turn(self, text: str, *, kind: str) -> None:
        try:
            await self.adapter.send_client_turn(text)
        except TransportError as exc:
            log_event({
                "event_type": "LIVE_TURN_SEND_FAILED",
                **self.log_context(),
                "kind": kind,
                "message": str(exc),
            })
            return
        log_event({"event_type": "LIVE_TURN_SENT", **self.log_context(), "kind": kind})

    def _spawn(self, coro: Any) -> None:
        loop = self._loop
        if loop is None:
            coro.close()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            task = loop.create_task(coro)
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        else:
            asyncio.run_coroutine_threadsafe(coro, loop)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _fail(self, message: str, *, reason: str) -> None:
        with self.state.mutate() as st:
            st.error = message
        log_event({"event_type": "SESSION_START_FAILED", **self.log_context(), "message": message})
        self._release(reason)

    def _release(self, reason: str) -> None:
        if self._teardown.done:
            return
        self._close_reason = reason
        if self._opened_at is not None and self._closed_at is None:
            self._closed_at = self._clock()
        self._teardown.run(reason=reason)

    def _build_teardown(self) -> Teardown:
        teardown = Teardown(session_id=self.session_id)
        teardown.add("bootstrap.cancel", self._cancel_bootstrap)
        teardown.add("live.close", self._close_remote)
        teardown.add("playback.interrupt", self.scheduler.interrupt)
        if self.capture is not None:
            teardown.add("capture.stop", self.capture.stop)
        teardown.add("output.close", self.output.close)
        teardown.add("sender.cancel", self._cancel_sender)
        teardown.add("state.reset", self._reset_state)
        return teardown

    def _cancel_bootstrap(self) -> None:
        handle, self._bootstrap_handle = self._bootstrap_handle, None
        if handle is not None:
            handle.cancel()

    def _close_remote(self) -> None:
        if self._loop is None:
            return
        # Any local shutdown other than a transport fault is user-initiated.
        reason = self._close_reason
        if reason != "transport_error":
            reason = USER_INITIATED_CLOSE_REASON
        self._spawn(self.adapter.close(reason))

    def _cancel_sender(self) -> None:
        task, self._sender_task = self._sender_task, None
        if task is not None and not task.done():
            task.cancel()

    def _reset_state(self) -> None:
        with self.state.mutate() as st:
            st.connected = False
            st.recording = False
            st.speaking = False
            st.next_start_time = 0.0
            st.phase = SessionPhase.CLOSED
