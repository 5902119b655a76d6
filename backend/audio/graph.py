"""
Output device graph.

A clocked speaker sink that plays DecodedAudioBuffers at absolute times on
its own clock, the way the playback scheduler expects:

- ``current_time`` is seconds of audio rendered since the stream opened.
  It does not advance while the output is suspended.
- ``play(buffer, when, on_ended)`` starts a buffer at ``when`` (or as soon
  as possible if ``when`` is already past) and returns a stoppable handle.
- ``on_ended`` fires on the audio thread after the last sample is rendered.
  Stopping a handle never fires it.

Mixing happens inside the sounddevice callback. The callback holds the
device lock only while mixing and invokes completion callbacks after it
has released it.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import numpy as np

from audio import portaudio
from audio.errors import AudioError
from audio.frames import DecodedAudioBuffer
from audio.pcm import resample
from constants import (
    PLAYBACK_BLOCK_SIZE,
    PLAYBACK_CHANNELS,
    PLAYBACK_OUTPUT_GAIN,
    PLAYBACK_SAMPLE_RATE_HZ,
)
from observability.logger import log_event


class AudioContextState(str, Enum):
    SUSPENDED = "suspended"
    RUNNING = "running"
    CLOSED = "closed"


EndedCallback = Callable[[], None]


class PlaybackHandle(Protocol):
    def stop(self) -> None: ...


class AudioOutput(Protocol):
    """What the playback scheduler and orchestrator need from a speaker sink."""

    @property
    def current_time(self) -> float: ...

    @property
    def state(self) -> AudioContextState: ...

    def play(
        self,
        buffer: DecodedAudioBuffer,
        when: float,
        on_ended: Optional[EndedCallback] = None,
    ) -> PlaybackHandle: ...

    def resume(self) -> None: ...

    def suspend(self) -> None: ...

    def close(self) -> None: ...


class _Voice:
    """One scheduled buffer inside the mixer."""

    __slots__ = ("output", "frames", "start_frame", "cursor", "on_ended", "stopped")

    def __init__(
        self,
        output: SoundDeviceOutput,
        frames: np.ndarray,
        start_frame: int,
        on_ended: Optional[EndedCallback],
    ) -> None:
        self.output = output
        self.frames = frames
        self.start_frame = start_frame
        self.cursor = 0
        self.on_ended = on_ended
        self.stopped = False

    def stop(self) -> None:
        """Stop this voice. No-op if it already finished or was stopped."""
        self.output._cancel(self)  # pylint: disable=protected-access


class SoundDeviceOutput:
    """
    Speaker sink backed by a ``sounddevice.OutputStream`` mixing callback.

    The stream is created by ``open()``; the output starts RUNNING.
    """

    def __init__(
        self,
        *,
        sample_rate: int = PLAYBACK_SAMPLE_RATE_HZ,
        channels: int = PLAYBACK_CHANNELS,
        block_size: int = PLAYBACK_BLOCK_SIZE,
        device: Any = None,
        gain: float = PLAYBACK_OUTPUT_GAIN,
        stream_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self.device = device
        self.gain = gain

        self._stream_factory = stream_factory
        self._stream: Any = None
        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        self._frames_rendered = 0
        self._state = AudioContextState.SUSPENDED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        if self._stream is not None:
            return
        if self._state == AudioContextState.CLOSED:
            raise AudioError("Audio output is closed")

        try:
            factory = self._stream_factory or portaudio.load().OutputStream
            stream = factory(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.block_size,
                device=self.device,
                callback=self._callback,
            )
            stream.start()
        except AudioError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            if not (portaudio.is_portaudio_error(exc) or isinstance(exc, ValueError)):
                raise
            raise AudioError(f"Failed to open audio output: {exc}") from exc

        self._stream = stream
        self._state = AudioContextState.RUNNING
        log_event({
            "event_type": "AUDIO_OUTPUT_OPENED",
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "device": self.device,
        })

    def resume(self) -> None:
        if self._state == AudioContextState.CLOSED:
            raise AudioError("Cannot resume a closed audio output")
        if self._stream is None:
            self.open()
            return
        self._state = AudioContextState.RUNNING

    def suspend(self) -> None:
        if self._state == AudioContextState.RUNNING:
            self._state = AudioContextState.SUSPENDED

    def close(self) -> None:
        """Stop the stream and drop every scheduled voice. Idempotent."""
        if self._state == AudioContextState.CLOSED:
            return
        self._state = AudioContextState.CLOSED

        with self._lock:
            for voice in self._voices:
                voice.stopped = True
            self._voices.clear()

        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()

    # ------------------------------------------------------------------
    # Clock + scheduling
    # ------------------------------------------------------------------

    @property
    def state(self) -> AudioContextState:
        return self._state

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_rendered / self.sample_rate

    def play(
        self,
        buffer: DecodedAudioBuffer,
        when: float,
        on_ended: Optional[EndedCallback] = None,
    ) -> _Voice:
        if self._state == AudioContextState.CLOSED:
            raise AudioError("Audio output is closed")

        voice = _Voice(
            output=self,
            frames=self._conform(buffer),
            start_frame=int(round(max(0.0, when) * self.sample_rate)),
            on_ended=on_ended,
        )
        with self._lock:
            self._voices.append(voice)
        return voice

    def _cancel(self, voice: _Voice) -> None:
        with self._lock:
            voice.stopped = True
            if voice in self._voices:
                self._voices.remove(voice)

    def _conform(self, buffer: DecodedAudioBuffer) -> np.ndarray:
        """Resample and map channels to the device layout: (frames, channels)."""
        channels = [
            resample(np.asarray(ch, dtype=np.float32), buffer.sample_rate, self.sample_rate)
            for ch in buffer.samples
        ]

        if len(channels) == self.channels:
            mapped = channels
        elif len(channels) == 1:
            mapped = channels * self.channels
        elif self.channels == 1:
            mapped = [np.mean(np.stack(channels), axis=0).astype(np.float32)]
        else:
            mapped = [channels[i % len(channels)] for i in range(self.channels)]

        return np.stack(mapped, axis=1)

    # ------------------------------------------------------------------
    # Audio thread
    # ------------------------------------------------------------------

    def _callback(self, outdata: np.ndarray, frames: int, _time_info: Any, status: Any) -> None:
        if status:
            log_event({"event_type": "AUDIO_OUTPUT_STATUS", "status": str(status)})

        outdata.fill(0)
        if self._state != AudioContextState.RUNNING:
            return

        finished: list[_Voice] = []
        with self._lock:
            try:
                finished = self._mix_locked(outdata, frames)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                outdata.fill(0)
                log_event({
                    "event_type": "AUDIO_OUTPUT_MIX_FAULT",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            self._frames_rendered += frames

        np.clip(outdata, -1.0, 1.0, out=outdata)

        for voice in finished:
            if voice.on_ended is None:
                continue
            try:
                voice.on_ended()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "PLAYBACK_ENDED_CALLBACK_FAULT",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

    def _mix_locked(self, outdata: np.ndarray, frames: int) -> list[_Voice]:
        block_start = self._frames_rendered
        finished: list[_Voice] = []

        for voice in self._voices:
            # A voice scheduled in the past starts at the head of this block.
            if voice.cursor == 0 and voice.start_frame < block_start:
                voice.start_frame = block_start

            # Where the next unrendered sample of this voice lands in the block.
            offset = max(0, voice.start_frame + voice.cursor - block_start)
            if offset >= frames:
                continue

            remaining = len(voice.frames) - voice.cursor
            count = min(frames - offset, remaining)
            if count > 0:
                chunk = voice.frames[voice.cursor:voice.cursor + count]
                outdata[offset:offset + count] += chunk * self.gain
                voice.cursor += count

            if voice.cursor >= len(voice.frames):
                finished.append(voice)

        for voice in finished:
            self._voices.remove(voice)
        return finished
