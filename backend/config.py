"""
Application configuration.

Responsibilities:
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Union

from constants import (
    FEEDBACK_MODEL_DEFAULT,
    LIVE_CONNECT_TIMEOUT_S,
    LIVE_LANGUAGE_DEFAULT,
    LIVE_MODEL_DEFAULT,
    LIVE_VOICE_DEFAULT,
    LIVE_WS_URL_DEFAULT,
)

DeviceSpec = Union[int, str, None]


def _device_from_env(name: str) -> DeviceSpec:
    """PortAudio device: index if numeric, name substring otherwise."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    return int(raw) if raw.lstrip("-").isdigit() else raw


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and handed to the gateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Live session
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    gemini_ephemeral_token: str | None
    live_model: str
    live_ws_url: str
    live_connect_timeout_s: float
    default_voice_name: str
    default_language_code: str

    # ------------------------------------------------------------------
    # Audio devices
    # ------------------------------------------------------------------

    audio_input_device: DeviceSpec
    audio_output_device: DeviceSpec

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    openai_api_key: str | None
    feedback_model: str

    @property
    def has_live_credentials(self) -> bool:
        return bool(self.gemini_api_key or self.gemini_ephemeral_token)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            gemini_ephemeral_token=os.environ.get("GEMINI_EPHEMERAL_TOKEN"),
            live_model=os.environ.get("LIVE_MODEL", LIVE_MODEL_DEFAULT),
            live_ws_url=os.environ.get("LIVE_WS_URL", LIVE_WS_URL_DEFAULT),
            live_connect_timeout_s=float(
                os.environ.get("LIVE_CONNECT_TIMEOUT_S", LIVE_CONNECT_TIMEOUT_S)
            ),
            default_voice_name=os.environ.get("DEFAULT_VOICE_NAME", LIVE_VOICE_DEFAULT),
            default_language_code=os.environ.get("DEFAULT_LANGUAGE_CODE", LIVE_LANGUAGE_DEFAULT),

            audio_input_device=_device_from_env("AUDIO_INPUT_DEVICE"),
            audio_output_device=_device_from_env("AUDIO_OUTPUT_DEVICE"),

            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            feedback_model=os.environ.get("FEEDBACK_MODEL", FEEDBACK_MODEL_DEFAULT),
        )
