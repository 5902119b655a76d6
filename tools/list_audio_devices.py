"""
Print PortAudio devices usable for AUDIO_INPUT_DEVICE / AUDIO_OUTPUT_DEVICE.

    python tools/list_audio_devices.py
"""

import sounddevice as sd


def list_audio_devices() -> list[dict]:
    devices = []
    for idx, d in enumerate(sd.query_devices()):
        devices.append({
            "index": idx,
            "name": d.get("name", f"Device {idx}"),
            "max_input_channels": int(d.get("max_input_channels", 0)),
            "max_output_channels": int(d.get("max_output_channels", 0)),
            "default_samplerate": int(d.get("default_samplerate", 0) or 0),
        })
    return devices


def main() -> None:
    try:
        default_in, default_out = sd.default.device
        devices = list_audio_devices()
    except sd.PortAudioError as e:
        print(f"PortAudio unavailable: {e}")
        return

    for d in devices:
        kinds = []
        if d["max_input_channels"] > 0:
            kinds.append("in*" if d["index"] == default_in else "in")
        if d["max_output_channels"] > 0:
            kinds.append("out*" if d["index"] == default_out else "out")
        print(f"{d['index']:>3}  {'/'.join(kinds):<8} {d['default_samplerate']:>6} Hz  {d['name']}")

    print("\n* = system default")


if __name__ == "__main__":
    main()
