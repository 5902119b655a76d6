"""
sounddevice access.

PortAudio is loaded on first use, not at import, so the session, gateway and
feedback layers import on hosts without a sound stack. Opening a device on
such a host raises AudioError.
"""

from __future__ import annotations

import sys
from types import ModuleType
from typing import Optional

from audio.errors import AudioError

# PortAudio error codes (portaudio.h PaErrorCode)
PA_INVALID_SAMPLE_RATE = -9997
PA_INVALID_DEVICE = -9996
PA_DEVICE_UNAVAILABLE = -9985


def load() -> ModuleType:
    """
    Import sounddevice.

    Raises:
        AudioError if the PortAudio library cannot be loaded.
    """
    try:
        import sounddevice  # pylint: disable=import-outside-toplevel
    except OSError as exc:
        raise AudioError(f"PortAudio library not available: {exc}") from exc
    return sounddevice


def is_portaudio_error(exc: BaseException) -> bool:
    # Only a loaded sounddevice can have raised one.
    sd = sys.modules.get("sounddevice")
    return sd is not None and isinstance(exc, sd.PortAudioError)


def error_code(exc: BaseException) -> Optional[int]:
    """PortAudioError args are (message, code, hostapi_info); code is optional."""
    if len(exc.args) > 1 and isinstance(exc.args[1], int):
        return exc.args[1]
    return None
