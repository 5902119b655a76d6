# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from config import AppConfig
from constants import LIVE_MODEL_DEFAULT, LIVE_WS_URL_DEFAULT

_VARS = (
    "ENV", "LOG_LEVEL", "GEMINI_API_KEY", "GEMINI_EPHEMERAL_TOKEN", "LIVE_MODEL",
    "LIVE_WS_URL", "LIVE_CONNECT_TIMEOUT_S", "AUDIO_INPUT_DEVICE", "AUDIO_OUTPUT_DEVICE",
    "OPENAI_API_KEY", "FEEDBACK_MODEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = AppConfig.load_from_env()

    assert config.env == "dev"
    assert config.live_model == LIVE_MODEL_DEFAULT
    assert config.live_ws_url == LIVE_WS_URL_DEFAULT
    assert config.live_connect_timeout_s == 15.0
    assert config.audio_input_device is None
    assert config.has_live_credentials is False
    assert config.openai_api_key is None


def test_values_from_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("GEMINI_EPHEMERAL_TOKEN", "tok")
    monkeypatch.setenv("LIVE_CONNECT_TIMEOUT_S", "2.5")
    monkeypatch.setenv("AUDIO_INPUT_DEVICE", "3")
    monkeypatch.setenv("AUDIO_OUTPUT_DEVICE", "USB Audio")

    config = AppConfig.load_from_env()

    assert config.has_live_credentials is True
    assert config.live_connect_timeout_s == 2.5
    assert config.audio_input_device == 3
    assert config.audio_output_device == "USB Audio"


def test_bad_number_raises(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LIVE_CONNECT_TIMEOUT_S", "soon")

    with pytest.raises(ValueError):
        AppConfig.load_from_env()
