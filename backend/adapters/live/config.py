"""
Live session configuration.

Immutable for the lifetime of a connection. Values are passed through to
the remote setup message as-is; presence is the only validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from constants import (
    LIVE_COMPRESSION_TARGET_TOKENS,
    LIVE_COMPRESSION_TRIGGER_TOKENS,
    LIVE_END_SENSITIVITY,
    LIVE_LANGUAGE_DEFAULT,
    LIVE_MEDIA_RESOLUTION,
    LIVE_MODEL_DEFAULT,
    LIVE_PREFIX_PADDING_MS,
    LIVE_RESPONSE_MODALITIES,
    LIVE_SILENCE_DURATION_MS,
    LIVE_START_SENSITIVITY,
    LIVE_VOICE_DEFAULT,
)


@dataclass(frozen=True)
class LiveSessionConfig:
    model: str = LIVE_MODEL_DEFAULT
    voice_name: str = LIVE_VOICE_DEFAULT
    language_code: str = LIVE_LANGUAGE_DEFAULT
    response_modalities: tuple[str, ...] = LIVE_RESPONSE_MODALITIES
    media_resolution: str = LIVE_MEDIA_RESOLUTION

    start_of_speech_sensitivity: str = LIVE_START_SENSITIVITY
    end_of_speech_sensitivity: str = LIVE_END_SENSITIVITY
    prefix_padding_ms: int = LIVE_PREFIX_PADDING_MS
    silence_duration_ms: int = LIVE_SILENCE_DURATION_MS

    compression_trigger_tokens: int = LIVE_COMPRESSION_TRIGGER_TOKENS
    compression_target_tokens: int = LIVE_COMPRESSION_TARGET_TOKENS

    output_audio_transcription: bool = False
    system_instruction: Optional[str] = None

    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        for name in ("model", "voice_name", "language_code"):
            if not getattr(self, name):
                raise ValueError(f"LiveSessionConfig.{name} is required")
        if not self.response_modalities:
            raise ValueError("LiveSessionConfig.response_modalities is required")

    def with_settings(
        self,
        *,
        voice_name: Optional[str] = None,
        language_code: Optional[str] = None,
    ) -> LiveSessionConfig:
        """Copy with user-selected voice / language (empty values keep the current ones)."""
        return replace(
            self,
            voice_name=voice_name or self.voice_name,
            language_code=language_code or self.language_code,
        )

    def to_setup_message(self) -> dict[str, Any]:
        """Render the wire ``setup`` message for BidiGenerateContent."""
        model = self.model if self.model.startswith("models/") else f"models/{self.model}"

        setup: dict[str, Any] = {
            "model": model,
            "generationConfig": {
                "responseModalities": list(self.response_modalities),
                "mediaResolution": self.media_resolution,
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": self.voice_name},
                    },
                    "languageCode": self.language_code,
                },
            },
            "contextWindowCompression": {
                "triggerTokens": str(self.compression_trigger_tokens),
                "slidingWindow": {"targetTokens": str(self.compression_target_tokens)},
            },
            "realtimeInputConfig": {
                "automaticActivityDetection": {
                    "disabled": False,
                    "startOfSpeechSensitivity": self.start_of_speech_sensitivity,
                    "endOfSpeechSensitivity": self.end_of_speech_sensitivity,
                    "prefixPaddingMs": self.prefix_padding_ms,
                    "silenceDurationMs": self.silence_duration_ms,
                },
            },
        }

        if self.output_audio_transcription:
            setup["outputAudioTranscription"] = {}
        if self.system_instruction:
            setup["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}
        if self.extra:
            setup.update(self.extra)

        return {"setup": setup}
