# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import numpy as np
import pytest

from audio.decoder import decode_audio_buffer
from audio.errors import AudioError
from audio.graph import AudioContextState, SoundDeviceOutput
from fakes import event_types


class FakeOutputStream:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.started = False
        self.stop_calls = 0
        self.close_calls = 0

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stop_calls += 1

    def close(self) -> None:
        self.close_calls += 1


class FakeOutputStreamFactory:
    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error
        self.streams: list[FakeOutputStream] = []

    def __call__(self, **kwargs: Any) -> FakeOutputStream:
        if self.error is not None:
            raise self.error
        stream = FakeOutputStream(**kwargs)
        self.streams.append(stream)
        return stream


def _pcm(values: list[int]) -> bytes:
    return np.array(values, dtype="<i2").tobytes()


def _constant(n: int, value: int = 8192, rate: int = 24000):
    return decode_audio_buffer(_pcm([value] * n), sample_rate=rate)


def _output(block_size: int = 480) -> tuple[SoundDeviceOutput, FakeOutputStreamFactory]:
    factory = FakeOutputStreamFactory()
    output = SoundDeviceOutput(block_size=block_size, stream_factory=factory)
    output.open()
    return output, factory


def _render(output: SoundDeviceOutput, frames: int = 480) -> np.ndarray:
    outdata = np.full((frames, output.channels), 9.0, dtype=np.float32)
    output._callback(outdata, frames, None, None)  # pylint: disable=protected-access
    return outdata


# -------------------------
# Lifecycle
# -------------------------

def test_open_starts_stream_and_runs(emitted):
    output, factory = _output()

    stream = factory.streams[0]
    assert stream.started is True
    assert stream.kwargs["samplerate"] == 24000
    assert stream.kwargs["dtype"] == "float32"
    assert output.state == AudioContextState.RUNNING
    assert "AUDIO_OUTPUT_OPENED" in event_types(emitted)


def test_resume_opens_lazily():
    factory = FakeOutputStreamFactory()
    output = SoundDeviceOutput(stream_factory=factory)
    assert output.state == AudioContextState.SUSPENDED

    output.resume()

    assert output.state == AudioContextState.RUNNING
    assert len(factory.streams) == 1


def test_open_failure_is_an_audio_error():
    output = SoundDeviceOutput(stream_factory=FakeOutputStreamFactory(ValueError("No output device")))

    with pytest.raises(AudioError):
        output.open()


def test_open_failure_from_portaudio_is_an_audio_error(sd):
    output = SoundDeviceOutput(
        stream_factory=FakeOutputStreamFactory(sd.PortAudioError("Device unavailable", -9985)),
    )

    with pytest.raises(AudioError):
        output.open()


def test_close_is_idempotent_and_final():
    output, factory = _output()

    output.close()
    output.close()

    assert factory.streams[0].stop_calls == 1
    assert factory.streams[0].close_calls == 1
    assert output.state == AudioContextState.CLOSED
    with pytest.raises(AudioError):
        output.resume()
    with pytest.raises(AudioError):
        output.play(_constant(10), when=0.0)


# -------------------------
# Clock + mixing
# -------------------------

def test_buffer_is_rendered_and_end_is_reported():
    output, _ = _output()
    ended: list[bool] = []

    output.play(_constant(480), when=0.0, on_ended=lambda: ended.append(True))
    outdata = _render(output)

    assert np.allclose(outdata[:, 0], 0.25)
    assert ended == [True]
    assert output.current_time == pytest.approx(0.02)


def test_back_to_back_buffers_leave_no_gap():
    output, _ = _output()

    output.play(_constant(240, 8192), when=0.0)
    output.play(_constant(240, -8192), when=0.01)
    outdata = _render(output)

    assert np.allclose(outdata[:240, 0], 0.25)
    assert np.allclose(outdata[240:, 0], -0.25)


def test_future_start_waits_for_its_frame():
    output, _ = _output()

    output.play(_constant(100), when=0.03)
    first = _render(output)
    second = _render(output)

    assert np.allclose(first, 0.0)
    assert np.allclose(second[:240, 0], 0.0)
    assert np.allclose(second[240:340, 0], 0.25)


def test_past_start_plays_at_the_next_block():
    output, _ = _output()
    _render(output)

    output.play(_constant(100), when=0.0)
    outdata = _render(output)

    assert np.allclose(outdata[:100, 0], 0.25)


def test_suspended_output_is_silent_and_frozen():
    output, _ = _output()
    output.play(_constant(480), when=0.0)
    output.suspend()

    outdata = _render(output)

    assert np.allclose(outdata, 0.0)
    assert output.current_time == 0.0

    output.resume()
    assert np.allclose(_render(output)[:, 0], 0.25)


def test_stopped_voice_is_silent_and_never_reports_end():
    output, _ = _output()
    ended: list[bool] = []

    voice = output.play(_constant(480), when=0.0, on_ended=lambda: ended.append(True))
    voice.stop()
    outdata = _render(output)

    assert np.allclose(outdata, 0.0)
    assert ended == []


def test_mix_is_clipped():
    output, _ = _output()

    output.play(_constant(480, 24576), when=0.0)
    output.play(_constant(480, 24576), when=0.0)
    outdata = _render(output)

    assert np.allclose(outdata[:, 0], 1.0)


def test_other_rates_are_resampled_to_the_device():
    output, _ = _output()
    ended: list[bool] = []

    output.play(_constant(320, rate=16000), when=0.0, on_ended=lambda: ended.append(True))
    _render(output)

    assert ended == [True]


def test_faulty_end_callback_is_logged(emitted):
    output, _ = _output()

    def boom() -> None:
        raise RuntimeError("listener exploded")

    output.play(_constant(10), when=0.0, on_ended=boom)
    _render(output)

    assert "PLAYBACK_ENDED_CALLBACK_FAULT" in event_types(emitted)


# -------------------------
# Voices spanning blocks
# -------------------------

def test_long_buffer_plays_continuously_across_blocks():
    output, _ = _output()
    ended: list[bool] = []

    output.play(_constant(1200), when=0.0, on_ended=lambda: ended.append(True))
    blocks = [_render(output) for _ in range(3)]

    assert np.allclose(blocks[0][:, 0], 0.25)
    assert np.allclose(blocks[1][:, 0], 0.25)
    assert np.allclose(blocks[2][:240, 0], 0.25)
    assert np.allclose(blocks[2][240:, 0], 0.0)
    assert ended == [True]


def test_mid_block_start_carries_into_following_blocks():
    output, _ = _output()
    ended: list[bool] = []

    output.play(_constant(1000), when=100 / 24000, on_ended=lambda: ended.append(True))
    first = _render(output)
    second = _render(output)
    assert ended == []
    third = _render(output)

    assert np.allclose(first[:100, 0], 0.0)
    assert np.allclose(first[100:, 0], 0.25)
    assert np.allclose(second[:, 0], 0.25)
    assert np.allclose(third[:140, 0], 0.25)
    assert np.allclose(third[140:, 0], 0.0)
    assert ended == [True]


def test_gapless_boundary_inside_a_later_block():
    output, _ = _output()

    output.play(_constant(700, 8192), when=0.0)
    output.play(_constant(500, -8192), when=700 / 24000)
    _render(output)
    second = _render(output)
    third = _render(output)

    assert np.allclose(second[:220, 0], 0.25)
    assert np.allclose(second[220:, 0], -0.25)
    assert np.allclose(third[:240, 0], -0.25)
    assert np.allclose(third[240:, 0], 0.0)


def test_mixing_fault_is_logged_and_silenced(emitted, monkeypatch):
    output, _ = _output()

    def broken_mix(outdata: np.ndarray, frames: int) -> list:
        outdata += 0.5
        raise ValueError("operands could not be broadcast together")

    monkeypatch.setattr(output, "_mix_locked", broken_mix)
    outdata = _render(output)

    assert np.allclose(outdata, 0.0)
    assert output.current_time == pytest.approx(0.02)
    assert "AUDIO_OUTPUT_MIX_FAULT" in event_types(emitted)
