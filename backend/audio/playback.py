"""
Playback scheduler.

Gapless, sample-accurate queueing of decoded buffers on the output clock,
plus immediate interruption.

Rules:
- enqueue: next_start_time = max(next_start_time, device time); the buffer
  starts there and next_start_time advances by its duration.
- speaking is True iff active_sources is non-empty.
- interrupt: stop everything, clear the set, reset next_start_time to 0.
  The clamp in enqueue keeps the reset safe.
- A natural-end callback that arrives after an interrupt changes nothing.

Device handles are started and stopped outside the state lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from audio.frames import DecodedAudioBuffer
from audio.graph import AudioOutput
from observability.logger import log_event
from session.state import SessionState


@dataclass(eq=False)
class PlaybackSource:
    """
    One buffer scheduled on the output device.

    Hashed by identity; the active set cares about membership only.
    """
    buffer: DecodedAudioBuffer
    scheduled_start_time: float
    handle: Any = field(default=None, repr=False)

    @property
    def end_time(self) -> float:
        return self.scheduled_start_time + self.buffer.duration_seconds

    def stop(self) -> None:
        if self.handle is not None:
            self.handle.stop()


class PlaybackScheduler:
    def __init__(self, output: AudioOutput, state: SessionState) -> None:
        self.output = output
        self.state = state

    def enqueue(self, buffer: DecodedAudioBuffer) -> PlaybackSource:
        """Schedule ``buffer`` right after whatever is already queued."""
        with self.state.mutate() as st:
            previous = st.next_start_time
            start = max(previous, self.output.current_time)
            source = PlaybackSource(buffer=buffer, scheduled_start_time=start)
            st.next_start_time = source.end_time
            st.active_sources.add(source)
            st.speaking = True

        try:
            source.handle = self.output.play(
                buffer,
                when=start,
                on_ended=lambda: self._on_source_ended(source),
            )
        except Exception:
            with self.state.mutate() as st:
                st.active_sources.discard(source)
                # Only undo the timeline if nothing was queued after us.
                if st.next_start_time == source.end_time:
                    st.next_start_time = previous
                st.speaking = bool(st.active_sources)
            raise

        log_event({
            "event_type": "PLAYBACK_ENQUEUED",
            "session_id": self.state.session_id,
            "start": round(start, 6),
            "duration": round(buffer.duration_seconds, 6),
            "sample_rate": buffer.sample_rate,
        })
        return source

    def interrupt(self) -> int:
        """
        Stop every active source and reset the timeline.

        Returns the number of sources that were stopped.
        """
        with self.state.mutate() as st:
            sources = list(st.active_sources)
            st.active_sources.clear()
            st.next_start_time = 0.0
            st.speaking = False

        for source in sources:
            try:
                source.stop()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "PLAYBACK_STOP_FAILED",
                    "session_id": self.state.session_id,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

        log_event({
            "event_type": "PLAYBACK_INTERRUPTED",
            "session_id": self.state.session_id,
            "stopped": len(sources),
        })
        return len(sources)

    def _on_source_ended(self, source: PlaybackSource) -> None:
        """Natural end; runs on the audio thread."""
        with self.state.mutate() as st:
            if source not in st.active_sources:
                return
            st.active_sources.discard(source)
            if not st.active_sources:
                st.speaking = False
