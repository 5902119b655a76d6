"""
PCM codec.

Float samples <-> PCM16 little-endian bytes <-> base64 text.

Conventions:
- Encode clamps to [-1.0, 1.0], multiplies by PCM16_SCALE (32768), truncates
  toward zero and clips to [-32768, 32767].
- Decode divides by the same PCM16_SCALE, so the round trip is off by at
  most one quantization step (1/32768) and never biased away from zero.

Pure functions only. No IO, no state.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Sequence

import numpy as np
from scipy import signal

from audio.errors import DecodeError
from audio.frames import PCMPacket
from constants import (
    CAPTURE_SAMPLE_RATE_HZ,
    PCM16_MAX,
    PCM16_MIN,
    PCM16_SCALE,
    pcm_mime_type,
)

_RATE_RE = re.compile(r"rate=(\d+)")


# -------------------------
# Sample conversion
# -------------------------

def float32_to_pcm16le(samples: Sequence[float] | np.ndarray) -> bytes:
    """
    Convert float samples to PCM16 little-endian bytes.

    Non-finite samples are treated as silence.
    """
    audio = np.asarray(samples, dtype=np.float64).reshape(-1)
    audio = np.nan_to_num(audio, nan=0.0, posinf=1.0, neginf=-1.0)
    audio = np.clip(audio, -1.0, 1.0)

    scaled = np.trunc(audio * PCM16_SCALE)
    scaled = np.clip(scaled, PCM16_MIN, PCM16_MAX)
    return scaled.astype("<i2").tobytes()


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian bytes to float32 in [-1.0, 1.0).

    No resampling. No channel handling.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; drop the dangling byte.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")
    return audio_i16.astype(np.float32) / np.float32(PCM16_SCALE)


# -------------------------
# Base64
# -------------------------

def encode_base64(pcm_bytes: bytes) -> str:
    """Base64-encode raw bytes as ASCII text."""
    return base64.b64encode(pcm_bytes).decode("ascii")


def decode_base64(data: str | bytes) -> bytes:
    """
    Decode base64 text to raw bytes.

    Raises:
        DecodeError if the input is not valid base64.
    """
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise DecodeError(f"Invalid audio data format: {exc}") from exc


# -------------------------
# Packets
# -------------------------

def encode_packet(
    samples: Sequence[float] | np.ndarray,
    *,
    sample_rate_hz: int = CAPTURE_SAMPLE_RATE_HZ,
) -> PCMPacket:
    """Encode one capture block into a PCMPacket tagged with its rate."""
    return PCMPacket(
        data=encode_base64(float32_to_pcm16le(samples)),
        mime_type=pcm_mime_type(sample_rate_hz),
    )


def parse_sample_rate(mime_type: str | None, default: int) -> int:
    """
    Read the ``rate=`` parameter of a PCM mime type.

    Falls back to ``default`` when missing or unparsable.
    """
    if not mime_type:
        return default
    match = _RATE_RE.search(mime_type)
    if match is None:
        return default
    rate = int(match.group(1))
    return rate if rate > 0 else default


# -------------------------
# Sample-rate conversion
# -------------------------

def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """
    Polyphase resample a 1-D float block.

    Identity when rates match.
    """
    if from_rate == to_rate or samples.size == 0:
        return samples.astype(np.float32, copy=False)

    g = np.gcd(int(from_rate), int(to_rate))
    up = int(to_rate) // g
    down = int(from_rate) // g
    out = signal.resample_poly(samples, up, down)
    return np.clip(out, -1.0, 1.0).astype(np.float32)
