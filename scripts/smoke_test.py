#!/usr/bin/env python3
"""Headless smoke test for the on-device capture tier.

Tests each layer without Piper, a browser, or a network:
  1. PCMStream            → write/drain correctness
  2. WavRecorder          → header + PCM fragments, idempotent stop
  3. AudioCapturePipeline → tone "speech" captured to a data URL
  4. SynthesisController  → unreachable remotes degrade to capture
  5. WAV output           → saves to logs/smoke_test.wav

Usage:
    python3 scripts/smoke_test.py
"""

import asyncio
import math
import os
import struct
import sys
import wave

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from voice_engine.capabilities import SpeechSynthesis, SpeechVoice  # noqa: E402

SAMPLE_RATE = 48000
TONE_HZ = 440.0

passed = 0
failed = 0


def report(name: str, ok: bool, detail: str = ""):
    global passed, failed
    tag = "PASS" if ok else "FAIL"
    msg = f"  [{tag}] {name}"
    if detail:
        msg += f"  ({detail})"
    print(msg)
    if ok:
        passed += 1
    else:
        failed += 1


def tone_pcm(seconds: float, amplitude: float = 0.3) -> bytes:
    """A sine tone as 48kHz mono int16 PCM."""
    n = int(SAMPLE_RATE * seconds)
    phase_inc = 2.0 * math.pi * TONE_HZ / SAMPLE_RATE
    samples = [int(amplitude * 32767 * math.sin(i * phase_inc)) for i in range(n)]
    return struct.pack(f"<{n}h", *samples)


class ToneSynthesis(SpeechSynthesis):
    """Speaks 50ms of tone per character, then fires on_end."""

    def get_voices(self):
        return [SpeechVoice(name="Tone Female", lang="en-US")]

    def speak(self, utterance):
        utterance.output.write(tone_pcm(0.05 * len(utterance.text)))
        asyncio.get_running_loop().call_later(0.05, utterance.on_end)


def test_pcm_stream():
    print("\n--- Test 1: PCMStream ---")
    try:
        from voice_engine.pcm_stream import PCMStream

        stream = PCMStream()
        written = stream.write(b"\x01\x02" * 100)
        report("write returns byte count", written == 200, f"wrote {written}")
        report("available matches written", stream.available == 200)
        report("drain returns everything", stream.drain() == b"\x01\x02" * 100)
        report("stream empty after drain", stream.available == 0)
        stream.close()
        report("writes after close are dropped", stream.write(b"\x00\x00") == 0)
    except Exception as e:
        report("PCMStream tests complete", False, str(e))


async def test_recorder():
    print("\n--- Test 2: WavRecorder ---")
    try:
        from voice_engine.host import WavRecorder, wav_header
        from voice_engine.pcm_stream import PCMStream

        stream = PCMStream()
        recorder = WavRecorder(stream)
        fragments = []
        stops = []
        recorder.on_data_available = fragments.append
        recorder.on_stop = lambda: stops.append(True)

        recorder.start(20)
        report("state is recording", recorder.state == "recording")
        report("first fragment is the WAV header", fragments[0] == wav_header())
        stream.write(b"\x42\x00" * 960)
        await asyncio.sleep(0.05)
        recorder.stop()
        recorder.stop()
        report("state is inactive", recorder.state == "inactive")
        report("on_stop fired exactly once", len(stops) == 1, f"{len(stops)} calls")
        report("PCM arrived in fragments", b"".join(fragments[1:]) == b"\x42\x00" * 960)
    except Exception as e:
        report("WavRecorder tests complete", False, str(e))


async def test_capture():
    print("\n--- Test 3: AudioCapturePipeline ---")
    try:
        from voice_engine.capture import AudioCapturePipeline
        from voice_engine.config import Settings
        from voice_engine.host import LocalHost

        pipeline = AudioCapturePipeline(LocalHost(synthesis=ToneSynthesis()), Settings())
        result = await pipeline.capture("Hello smoke test")
        report("result is a WAV data URL", result.data_url.startswith("data:audio/wav;base64,"))
        audio = result.audio_bytes()
        report("audio starts with RIFF", audio[:4] == b"RIFF")
        report("audio carries the spoken tone", len(audio) > 44, f"{len(audio)} bytes")
        return audio
    except Exception as e:
        report("capture executes without error", False, str(e))
        return None


async def test_controller():
    print("\n--- Test 4: SynthesisController fallback ---")
    try:
        from voice_engine.config import Settings
        from voice_engine.controller import SynthesisController
        from voice_engine.host import LocalHost

        settings = Settings(api_base_url="http://127.0.0.1:9", request_timeout=1.0,
                            secondary_url=None, secondary_key=None)
        async with SynthesisController(LocalHost(synthesis=ToneSynthesis()), settings) as controller:
            result = await controller.synthesize_text("Fallback")
        report("unreachable remotes degrade to capture", result.source == "capture")
    except Exception as e:
        report("controller falls back without error", False, str(e))


def test_wav_output(audio: bytes):
    print("\n--- Test 5: WAV output ---")
    try:
        log_dir = os.path.join(
            os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs"
        )
        os.makedirs(log_dir, exist_ok=True)
        wav_path = os.path.join(log_dir, "smoke_test.wav")
        with open(wav_path, "wb") as f:
            f.write(audio)

        report("WAV file created", os.path.exists(wav_path), wav_path)
        with wave.open(wav_path, "rb") as wf:
            report("WAV channels = 1", wf.getnchannels() == 1)
            report("WAV sample width = 2", wf.getsampwidth() == 2)
            report("WAV frame rate = 48000", wf.getframerate() == SAMPLE_RATE)
    except Exception as e:
        report("WAV output", False, str(e))


async def run_all():
    test_pcm_stream()
    await test_recorder()
    audio = await test_capture()
    await test_controller()
    if audio:
        test_wav_output(audio)
    else:
        print("\n--- Test 5: WAV output ---")
        report("WAV output (skipped, no captured audio)", False, "capture failed")


def main():
    print("=" * 50)
    print("  Smoke Test: on-device capture tier")
    print("=" * 50)

    asyncio.run(run_all())

    total = passed + failed
    print("\n" + "=" * 50)
    print(f"  Results: {passed}/{total} passed, {failed} failed")
    print("=" * 50)

    sys.exit(0 if failed == 0 else 1)


if __name__ == "__main__":
    main()
