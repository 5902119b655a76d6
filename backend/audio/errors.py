"""
Audio error taxonomy.

Two families:
- Per-message data errors (DecodeError, InvalidAudioDataError): recovered
  locally by dropping the offending segment.
- Capture acquisition errors (CaptureError and subclasses): fatal to session
  start; each carries a message that can be shown to the user as-is.
"""

from __future__ import annotations


class AudioError(Exception):
    """Base class for audio pipeline errors."""


# -------------------------
# Data errors
# -------------------------

class DecodeError(AudioError):
    """Raised when an inbound payload is not valid base64."""


class InvalidAudioDataError(AudioError):
    """
    Raised when PCM bytes cannot form a playable buffer.

    Typically fewer bytes than one sample per channel.
    """


# -------------------------
# Capture errors
# -------------------------

class CaptureError(AudioError):
    """
    Microphone acquisition failed.

    user_message:
        Human-readable remediation text for the UI.
    """

    default_message = "Failed to access microphone"

    def __init__(self, user_message: str | None = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class PermissionDeniedError(CaptureError):
    """Microphone permission was denied."""

    default_message = "Microphone permission denied. Please allow microphone access."


class DeviceNotFoundError(CaptureError):
    """No usable input device exists."""

    default_message = "No microphone found. Please check your microphone."


class DeviceBusyError(CaptureError):
    """The input device is held by another application."""

    default_message = "Microphone is already in use by another application."


class CaptureInitError(CaptureError):
    """Any other acquisition failure."""
