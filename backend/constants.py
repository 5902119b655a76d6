"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for all behavioral numbers of the live interview engine.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# PCM16 format
# =============================================================================

AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit, little-endian)
PCM16_MIN: Final[int] = -32768
PCM16_MAX: Final[int] = 32767

# Encode multiplies by this and truncates toward zero; decode divides by it.
# Using the same value both ways keeps the round trip within one step.
PCM16_SCALE: Final[float] = 32768.0

PCM_MIME_PREFIX: Final[str] = "audio/pcm"

# =============================================================================
# Capture (microphone -> remote)
# =============================================================================

CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000
CAPTURE_CHANNELS: Final[int] = 1
CAPTURE_BLOCK_SIZE: Final[int] = 1024  # samples per callback

CAPTURE_ECHO_CANCELLATION: Final[bool] = True
CAPTURE_NOISE_SUPPRESSION: Final[bool] = True
CAPTURE_AUTO_GAIN_CONTROL: Final[bool] = True

# =============================================================================
# Playback (remote -> speaker)
# =============================================================================

PLAYBACK_SAMPLE_RATE_HZ: Final[int] = 24_000
PLAYBACK_CHANNELS: Final[int] = 1
PLAYBACK_OUTPUT_GAIN: Final[float] = 1.0
PLAYBACK_BLOCK_SIZE: Final[int] = 480  # 20ms @ 24kHz

DEFAULT_PLAYBACK_MIME: Final[str] = f"{PCM_MIME_PREFIX};rate={PLAYBACK_SAMPLE_RATE_HZ}"

# =============================================================================
# Session lifecycle
# =============================================================================

BOOTSTRAP_DELAY_MS: Final[int] = 500
LIVE_CONNECT_TIMEOUT_S: Final[float] = 15.0

USER_INITIATED_CLOSE_REASON: Final[str] = "user_initiated"
NORMAL_CLOSE_CODE: Final[int] = 1000

UNEXPECTED_CLOSE_NOTICE: Final[str] = "Interview session ended unexpectedly"

BOOTSTRAP_PROMPT_TEMPLATE: Final[str] = (
    "You are conducting an interview for a {job_role} position. "
    "Please greet the candidate and start the interview with your first question."
)

# Manual "can you hear me" check the candidate can trigger once connected.
AUDIO_CHECK_PROMPT: Final[str] = (
    "Please say 'Hello, I am your AI interviewer. Can you hear me clearly?'"
)

# Transport errors containing these are logged but never shown to the user.
BENIGN_TRANSPORT_ERROR_SUBSTRINGS: Final[Tuple[str, ...]] = (
    "non-text parts",
    "AbortError",
)

# Warnings silenced while a session is initializing (scoped, not global).
INIT_SUPPRESSED_WARNING_SUBSTRINGS: Final[Tuple[str, ...]] = (
    "non-text parts inlineData",
    "AbortError",
    "NotSupportedError",
)

INIT_SUPPRESSED_LOGGERS: Final[Tuple[str, ...]] = (
    "websockets",
    "websockets.client",
)

# =============================================================================
# Live session defaults
# =============================================================================

LIVE_MODEL_DEFAULT: Final[str] = "gemini-2.5-flash-preview-native-audio-dialog"
LIVE_WS_URL_DEFAULT: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)
LIVE_WS_URL_CONSTRAINED: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContentConstrained"
)

LIVE_VOICE_DEFAULT: Final[str] = "Zephyr"
LIVE_LANGUAGE_DEFAULT: Final[str] = "en-US"
LIVE_RESPONSE_MODALITIES: Final[Tuple[str, ...]] = ("AUDIO",)
LIVE_MEDIA_RESOLUTION: Final[str] = "MEDIA_RESOLUTION_MEDIUM"

LIVE_START_SENSITIVITY: Final[str] = "START_SENSITIVITY_LOW"
LIVE_END_SENSITIVITY: Final[str] = "END_SENSITIVITY_LOW"
LIVE_PREFIX_PADDING_MS: Final[int] = 20
LIVE_SILENCE_DURATION_MS: Final[int] = 100

LIVE_COMPRESSION_TRIGGER_TOKENS: Final[int] = 25_600
LIVE_COMPRESSION_TARGET_TOKENS: Final[int] = 12_800

# =============================================================================
# Feedback
# =============================================================================

FEEDBACK_MODEL_DEFAULT: Final[str] = "gpt-4o-mini"
FEEDBACK_MAX_TRANSCRIPT_CHARS: Final[int] = 12_000

# =============================================================================
# Helper Functions
# =============================================================================

def samples_to_seconds(num_samples: int, sample_rate_hz: int) -> float:
    """
    Convert a per-channel sample count to a duration in seconds.

    Non-positive input returns 0.0.
    """
    if num_samples <= 0 or sample_rate_hz <= 0:
        return 0.0
    return num_samples / sample_rate_hz


def pcm_mime_type(sample_rate_hz: int) -> str:
    """Return the PCM mime tag for a sample rate (e.g. ``audio/pcm;rate=16000``)."""
    return f"{PCM_MIME_PREFIX};rate={sample_rate_hz}"
