"""
Capture pipeline.

Microphone -> float32 block -> PCM16 packet -> outbound send.

Rules:
- The stream is input-only; captured audio never reaches the speaker.
- The callback runs on the PortAudio thread. It reads ``state.recording`` on
  every block and never raises.
- Blocks are resampled to the target rate when the device refuses it.
- stop() is idempotent and also releases a stream that finished opening
  after stop() was requested.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

import numpy as np

from audio import portaudio
from audio.errors import (
    CaptureError,
    CaptureInitError,
    DeviceBusyError,
    DeviceNotFoundError,
    PermissionDeniedError,
)
from audio.frames import PCMPacket
from audio.pcm import encode_packet, resample
from constants import (
    CAPTURE_AUTO_GAIN_CONTROL,
    CAPTURE_BLOCK_SIZE,
    CAPTURE_CHANNELS,
    CAPTURE_ECHO_CANCELLATION,
    CAPTURE_NOISE_SUPPRESSION,
    CAPTURE_SAMPLE_RATE_HZ,
)
from observability.logger import log_event
from observability.metrics import timed
from session.state import SessionState

_PERMISSION_HINTS = ("permission", "denied", "not allowed")
_BUSY_HINTS = ("unavailable", "busy", "in use")
_NOT_FOUND_HINTS = ("no input device", "invalid device", "querying device -1", "no default")


@dataclass(frozen=True)
class CaptureConstraints:
    """
    Requested microphone settings.

    The processing flags are forwarded as preferences; PortAudio itself
    applies none of them, so they are recorded with the start event.
    """
    sample_rate: int = CAPTURE_SAMPLE_RATE_HZ
    channel_count: int = CAPTURE_CHANNELS
    echo_cancellation: bool = CAPTURE_ECHO_CANCELLATION
    noise_suppression: bool = CAPTURE_NOISE_SUPPRESSION
    auto_gain_control: bool = CAPTURE_AUTO_GAIN_CONTROL


def map_capture_error(exc: BaseException) -> CaptureError:
    """Translate a platform failure into a CaptureError with a user message."""
    if isinstance(exc, CaptureError):
        return exc
    if isinstance(exc, PermissionError):
        return PermissionDeniedError()

    message = str(exc.args[0] if exc.args else exc).lower()
    if any(hint in message for hint in _PERMISSION_HINTS):
        return PermissionDeniedError()

    if portaudio.is_portaudio_error(exc):
        code = portaudio.error_code(exc)
        if code == portaudio.PA_DEVICE_UNAVAILABLE or any(h in message for h in _BUSY_HINTS):
            return DeviceBusyError()
        if code == portaudio.PA_INVALID_DEVICE or any(h in message for h in _NOT_FOUND_HINTS):
            return DeviceNotFoundError()
        return CaptureInitError()

    if isinstance(exc, ValueError) and any(h in message for h in _NOT_FOUND_HINTS):
        return DeviceNotFoundError()

    return CaptureInitError()


class CapturePipeline:
    """
    Owns the microphone stream for one interview attempt.

    send_packet:
        Called from the audio thread with each encoded block. Must be
        thread-safe (the orchestrator hops onto its event loop).

    is_channel_live:
        Polled per block; packets are only produced while it returns True.
    """

    def __init__(
        self,
        state: SessionState,
        send_packet: Callable[[PCMPacket], None],
        *,
        is_channel_live: Callable[[], bool] = lambda: True,
        block_size: int = CAPTURE_BLOCK_SIZE,
        device: Any = None,
        stream_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.state = state
        self.block_size = block_size
        self.device = device
        self.target_rate = CAPTURE_SAMPLE_RATE_HZ

        self._send_packet = send_packet
        self._is_channel_live = is_channel_live
        self._stream_factory = stream_factory
        self._stream: Any = None
        self._device_rate = CAPTURE_SAMPLE_RATE_HZ
        self._stopped = False

    @property
    def active(self) -> bool:
        return self._stream is not None and not self._stopped

    @property
    def device_rate(self) -> int:
        return self._device_rate

    async def start(self, constraints: CaptureConstraints = CaptureConstraints()) -> None:
        """
        Acquire the microphone.

        Raises:
            CaptureError subclass carrying a user-facing message.
        """
        if self._stream is not None:
            return

        self.target_rate = constraints.sample_rate
        loop = asyncio.get_running_loop()

        with timed("capture.acquire", session_id=self.state.session_id):
            try:
                stream = await loop.run_in_executor(None, self._open_stream, constraints)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                error = map_capture_error(exc)
                log_event({
                    "event_type": "CAPTURE_START_FAILED",
                    "session_id": self.state.session_id,
                    "error": type(error).__name__,
                    "cause": type(exc).__name__,
                    "message": str(exc),
                })
                raise error from exc

        if self._stopped:
            # stop() ran while the device was opening.
            self._release(stream)
            return

        self._stream = stream
        log_event({
            "event_type": "CAPTURE_STARTED",
            "session_id": self.state.session_id,
            "device": self.device,
            "device_rate": self._device_rate,
            "target_rate": self.target_rate,
            "block_size": self.block_size,
            "constraints": asdict(constraints),
        })

    def stop(self) -> None:
        """Stop and release the microphone. Idempotent."""
        with self.state.mutate() as st:
            st.recording = False
        self._stopped = True

        stream, self._stream = self._stream, None
        if stream is None:
            return
        self._release(stream)
        log_event({"event_type": "CAPTURE_STOPPED", "session_id": self.state.session_id})

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    def _open_stream(self, constraints: CaptureConstraints) -> Any:
        try:
            stream = self._create_stream(constraints.sample_rate, constraints.channel_count)
            self._device_rate = constraints.sample_rate
        except Exception as exc:  # pylint: disable=broad-exception-caught
            rate_rejected = (
                portaudio.is_portaudio_error(exc)
                and portaudio.error_code(exc) == portaudio.PA_INVALID_SAMPLE_RATE
            )
            if not rate_rejected:
                raise
            # Device rejects the rate; open at its default and resample.
            stream = self._create_stream(None, constraints.channel_count)
            self._device_rate = int(stream.samplerate)
            log_event({
                "event_type": "CAPTURE_RATE_FALLBACK",
                "session_id": self.state.session_id,
                "requested": constraints.sample_rate,
                "device_rate": self._device_rate,
            })

        stream.start()
        return stream

    def _create_stream(self, sample_rate: Optional[int], channels: int) -> Any:
        factory = self._stream_factory or portaudio.load().InputStream
        return factory(
            samplerate=sample_rate,
            channels=channels,
            dtype="float32",
            blocksize=self.block_size,
            device=self.device,
            callback=self._callback,
        )

    @staticmethod
    def _release(stream: Any) -> None:
        try:
            stream.stop()
        finally:
            stream.close()

    # ------------------------------------------------------------------
    # Audio thread
    # ------------------------------------------------------------------

    def _callback(self, indata: np.ndarray, frames: int, _time_info: Any, status: Any) -> None:
        try:
            if status:
                log_event({
                    "event_type": "CAPTURE_STATUS",
                    "session_id": self.state.session_id,
                    "status": str(status),
                })
            if self._stopped or not self.state.recording or not self._is_channel_live():
                return

            block = np.asarray(indata, dtype=np.float32)
            mono = block[:, 0] if block.ndim == 2 else block.reshape(-1)
            mono = resample(mono, self._device_rate, self.target_rate)

            self._send_packet(encode_packet(mono, sample_rate_hz=self.target_rate))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "CAPTURE_CALLBACK_FAULT",
                "session_id": self.state.session_id,
                "frames": frames,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
