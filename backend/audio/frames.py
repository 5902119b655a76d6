"""
Audio value types.

Pure data containers only.
No behavior beyond derived properties, no queues, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from constants import samples_to_seconds


@dataclass(frozen=True)
class PCMPacket:
    """
    One encoded capture block, sent once over the outbound channel.

    data:
        Base64 text of little-endian PCM16 bytes.

    mime_type:
        Codec + sample rate tag, e.g. ``audio/pcm;rate=16000``.
    """
    data: str
    mime_type: str

    def to_media(self) -> dict[str, str]:
        """Render as the ``media`` blob of a realtime input message."""
        return {"data": self.data, "mimeType": self.mime_type}


@dataclass(frozen=True)
class DecodedAudioBuffer:
    """
    Playable multi-channel audio reconstructed from inbound PCM bytes.

    samples:
        One read-only float32 array per channel, all the same length.

    Owned by the playback scheduler until consumed into a playback source.
    """
    channel_count: int
    sample_rate: int
    samples: tuple[np.ndarray, ...]

    @property
    def samples_per_channel(self) -> int:
        """Number of frames (samples in each channel)."""
        return len(self.samples[0]) if self.samples else 0

    @property
    def duration_seconds(self) -> float:
        """Playback duration at the buffer's own sample rate."""
        return samples_to_seconds(self.samples_per_channel, self.sample_rate)

    def interleaved(self) -> np.ndarray:
        """Return a (frames, channels) float32 array for device output."""
        return np.stack(self.samples, axis=1)
