# pylint: disable=missing-module-docstring,missing-function-docstring

import dataclasses

import pytest

from adapters.live.config import LiveSessionConfig


def test_defaults_render_the_setup_message():
    setup = LiveSessionConfig().to_setup_message()["setup"]

    assert setup["model"].startswith("models/")
    assert setup["generationConfig"]["responseModalities"] == ["AUDIO"]
    assert setup["generationConfig"]["mediaResolution"] == "MEDIA_RESOLUTION_MEDIUM"
    assert setup["generationConfig"]["speechConfig"] == {
        "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": "Zephyr"}},
        "languageCode": "en-US",
    }
    assert setup["contextWindowCompression"] == {
        "triggerTokens": "25600",
        "slidingWindow": {"targetTokens": "12800"},
    }
    assert setup["realtimeInputConfig"]["automaticActivityDetection"] == {
        "disabled": False,
        "startOfSpeechSensitivity": "START_SENSITIVITY_LOW",
        "endOfSpeechSensitivity": "END_SENSITIVITY_LOW",
        "prefixPaddingMs": 20,
        "silenceDurationMs": 100,
    }
    assert "outputAudioTranscription" not in setup
    assert "systemInstruction" not in setup


def test_model_prefix_is_not_doubled():
    setup = LiveSessionConfig(model="models/custom").to_setup_message()["setup"]
    assert setup["model"] == "models/custom"


def test_optional_sections():
    config = LiveSessionConfig(
        output_audio_transcription=True,
        system_instruction="You are a friendly interviewer.",
    )

    setup = config.to_setup_message()["setup"]

    assert setup["outputAudioTranscription"] == {}
    assert setup["systemInstruction"] == {"parts": [{"text": "You are a friendly interviewer."}]}


def test_with_settings_overrides_only_given_values():
    base = LiveSessionConfig(voice_name="Puck", language_code="en-GB")

    assert base.with_settings(voice_name="Kore").voice_name == "Kore"
    assert base.with_settings(voice_name="Kore").language_code == "en-GB"
    assert base.with_settings(language_code="").language_code == "en-GB"


def test_config_is_immutable():
    config = LiveSessionConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.voice_name = "Other"  # type: ignore[misc]


@pytest.mark.parametrize("field", ["model", "voice_name", "language_code"])
def test_required_fields(field):
    with pytest.raises(ValueError):
        LiveSessionConfig(**{field: ""})


def test_response_modalities_required():
    with pytest.raises(ValueError):
        LiveSessionConfig(response_modalities=())
