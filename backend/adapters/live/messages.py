"""
Live protocol message helpers.

Inbound:
- Audio is located by an explicit, ordered list of extractors; the first
  one that finds a payload wins.
- Control flags (interrupted, turnComplete) live under ``serverContent``.

Outbound:
- Builders for the wire frames the Live endpoint accepts.

All functions are pure. Missing or oddly-typed fields read as absent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from audio.frames import PCMPacket
from constants import DEFAULT_PLAYBACK_MIME


@dataclass(frozen=True)
class InboundAudio:
    data: str
    mime_type: str


AudioExtractor = Callable[[Mapping[str, Any]], Optional[InboundAudio]]


# -------------------------
# Inbound navigation
# -------------------------

def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def server_content(message: Mapping[str, Any]) -> Mapping[str, Any]:
    return _mapping(message.get("serverContent"))


def first_part(message: Mapping[str, Any]) -> Mapping[str, Any]:
    """``serverContent.modelTurn.parts[0]``, or an empty mapping."""
    parts = _mapping(server_content(message).get("modelTurn")).get("parts")
    if isinstance(parts, Sequence) and not isinstance(parts, (str, bytes)) and parts:
        return _mapping(parts[0])
    return {}


def _blob(value: Any) -> Optional[InboundAudio]:
    blob = _mapping(value)
    data = blob.get("data")
    if not isinstance(data, str) or not data:
        return None
    mime_type = blob.get("mimeType")
    return InboundAudio(
        data=data,
        mime_type=mime_type if isinstance(mime_type, str) and mime_type else DEFAULT_PLAYBACK_MIME,
    )


# -------------------------
# Audio extractors (priority order)
# -------------------------

def extract_inline_data(message: Mapping[str, Any]) -> Optional[InboundAudio]:
    return _blob(first_part(message).get("inlineData"))


def extract_part_audio(message: Mapping[str, Any]) -> Optional[InboundAudio]:
    return _blob(first_part(message).get("audio"))


def extract_top_level_data(message: Mapping[str, Any]) -> Optional[InboundAudio]:
    data = message.get("data")
    if isinstance(data, str) and data:
        return InboundAudio(data=data, mime_type=DEFAULT_PLAYBACK_MIME)
    return None


AUDIO_EXTRACTORS: tuple[AudioExtractor, ...] = (
    extract_inline_data,
    extract_part_audio,
    extract_top_level_data,
)


def extract_audio(
    message: Mapping[str, Any],
    extractors: Sequence[AudioExtractor] = AUDIO_EXTRACTORS,
) -> Optional[InboundAudio]:
    """Return the first audio payload found, trying extractors in order."""
    for extractor in extractors:
        audio = extractor(message)
        if audio is not None:
            return audio
    return None


# -------------------------
# Control + text
# -------------------------

def is_setup_complete(message: Mapping[str, Any]) -> bool:
    return "setupComplete" in message


def is_interrupted(message: Mapping[str, Any]) -> bool:
    return server_content(message).get("interrupted") is True


def is_turn_complete(message: Mapping[str, Any]) -> bool:
    return server_content(message).get("turnComplete") is True


def extract_text(message: Mapping[str, Any]) -> Optional[str]:
    text = first_part(message).get("text")
    return text if isinstance(text, str) and text else None


def extract_output_transcription(message: Mapping[str, Any]) -> Optional[str]:
    text = _mapping(server_content(message).get("outputTranscription")).get("text")
    return text if isinstance(text, str) and text else None


def extract_go_away(message: Mapping[str, Any]) -> Optional[str]:
    """``goAway.timeLeft`` when the server announces a disconnect."""
    if "goAway" not in message:
        return None
    time_left = _mapping(message.get("goAway")).get("timeLeft")
    return str(time_left) if time_left is not None else ""


# -------------------------
# Outbound builders
# -------------------------

def media_message(packet: PCMPacket) -> dict[str, Any]:
    """Orchestrator-level realtime input: ``{"media": {data, mimeType}}``."""
    return {"media": packet.to_media()}


def realtime_input_frame(message: Mapping[str, Any]) -> dict[str, Any]:
    """Wrap a ``{"media": ...}`` message as a wire ``realtimeInput`` frame."""
    media = message.get("media")
    if not isinstance(media, Mapping):
        raise ValueError("realtime input requires a 'media' blob")
    return {"realtimeInput": {"mediaChunks": [dict(media)]}}


def client_turn_frame(text: str, *, turn_complete: bool = True) -> dict[str, Any]:
    return {
        "clientContent": {
            "turns": [{"role": "user", "parts": [{"text": text}]}],
            "turnComplete": turn_complete,
        }
    }
