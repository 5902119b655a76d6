"""
Audio buffer decoder.

Reconstructs a playable DecodedAudioBuffer from raw PCM16 bytes at a declared
sample rate and channel count.

Rules:
- samples_per_channel = floor(len(bytes) / 2 / channel_count)
- samples_per_channel <= 0 is an error, never an empty buffer
- Interleaved input is split round-robin by channel index
"""

from __future__ import annotations

import numpy as np

from audio.errors import InvalidAudioDataError
from audio.frames import DecodedAudioBuffer
from audio.pcm import decode_base64, parse_sample_rate, pcm16le_to_float32
from constants import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    PLAYBACK_CHANNELS,
    PLAYBACK_SAMPLE_RATE_HZ,
)


def decode_audio_buffer(
    pcm_bytes: bytes,
    sample_rate: int = PLAYBACK_SAMPLE_RATE_HZ,
    channel_count: int = PLAYBACK_CHANNELS,
) -> DecodedAudioBuffer:
    """
    Decode PCM16 little-endian bytes into a DecodedAudioBuffer.

    Raises:
        InvalidAudioDataError if the bytes hold less than one sample per
        channel, or if the format parameters are not positive.
    """
    if sample_rate <= 0:
        raise InvalidAudioDataError(f"Invalid sample rate: {sample_rate}")
    if channel_count <= 0:
        raise InvalidAudioDataError(f"Invalid channel count: {channel_count}")

    samples_per_channel = len(pcm_bytes) // AUDIO_SAMPLE_WIDTH_BYTES // channel_count
    if samples_per_channel <= 0:
        raise InvalidAudioDataError(
            f"Invalid audio data length: {len(pcm_bytes)} bytes "
            f"for {channel_count} channel(s)"
        )

    usable = samples_per_channel * channel_count * AUDIO_SAMPLE_WIDTH_BYTES
    flat = pcm16le_to_float32(pcm_bytes[:usable])

    if channel_count == 1:
        channels = (flat,)
    else:
        frames = flat.reshape(samples_per_channel, channel_count)
        channels = tuple(
            np.ascontiguousarray(frames[:, ch]) for ch in range(channel_count)
        )

    for ch_data in channels:
        ch_data.setflags(write=False)

    return DecodedAudioBuffer(
        channel_count=channel_count,
        sample_rate=sample_rate,
        samples=channels,
    )


def decode_inbound_audio(
    data: str,
    mime_type: str | None,
    *,
    channel_count: int = PLAYBACK_CHANNELS,
    default_sample_rate: int = PLAYBACK_SAMPLE_RATE_HZ,
) -> DecodedAudioBuffer:
    """
    Decode a base64 inbound payload using the rate declared in its mime type.

    Raises:
        DecodeError for invalid base64.
        InvalidAudioDataError for payloads too short to play.
    """
    sample_rate = parse_sample_rate(mime_type, default_sample_rate)
    return decode_audio_buffer(
        decode_base64(data),
        sample_rate=sample_rate,
        channel_count=channel_count,
    )
