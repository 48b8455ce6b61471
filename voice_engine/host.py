"""Local host environment: Piper speaks, a WAV recorder listens, Whisper transcribes.

Lets the capture tier and the recognition bridge run in-process instead of
inside a browser:

  Utterance -> Piper (22050Hz) -> resample -> 48kHz PCM -> PCMStream -> WavRecorder
  audio source -> 16kHz float32 -> faster-whisper -> transcript

Piper and faster-whisper are imported lazily; when either is missing the
host simply reports the capability as absent.
"""

import asyncio
import importlib.util
import logging
import struct
import threading
import urllib.request
import wave
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

import numpy as np
from scipy.signal import resample

from .capabilities import (
    RECORDER_INACTIVE,
    RECORDER_RECORDING,
    AudioContext,
    HostEnvironment,
    MediaRecorder,
    MediaStreamDestination,
    RecognitionAlternative,
    RecognitionSession,
    SpeechSynthesis,
    SpeechVoice,
    Utterance,
)
from .capture import select_voice
from .pcm_stream import PCMStream

log = logging.getLogger("host")

TARGET_RATE = 48000
WHISPER_RATE = 16000
WHISPER_MODEL_SIZE = "base"  # ~75MB, good accuracy for short utterances

MODEL_DIR = Path(__file__).resolve().parent.parent / "models"

# Unknown-length WAV sizes, as written by streaming encoders
_STREAMING_SIZE = 0xFFFFFFFF

# ── Piper voice catalog ───────────────────────────────────────

HF_VOICES = "https://huggingface.co/rhasspy/piper-voices/resolve/main"

VOICE_CATALOG = [
    {"id": "en_US-lessac-medium",     "name": "Lessac (US)",         "lang": "en", "locale": "en_US", "voice_name": "lessac",     "quality": "medium"},
    {"id": "en_US-hfc_female-medium", "name": "HFC Female (US)",     "lang": "en", "locale": "en_US", "voice_name": "hfc_female", "quality": "medium"},
    {"id": "en_US-hfc_male-medium",   "name": "HFC Male (US)",       "lang": "en", "locale": "en_US", "voice_name": "hfc_male",   "quality": "medium"},
    {"id": "en_GB-alba-medium",       "name": "Alba (UK)",           "lang": "en", "locale": "en_GB", "voice_name": "alba",       "quality": "medium"},
    {"id": "de_DE-thorsten-medium",   "name": "Thorsten (German)",   "lang": "de", "locale": "de_DE", "voice_name": "thorsten",   "quality": "medium"},
    {"id": "fr_FR-siwis-medium",      "name": "Siwis (French)",      "lang": "fr", "locale": "fr_FR", "voice_name": "siwis",      "quality": "medium"},
    {"id": "es_ES-davefx-medium",     "name": "DaveFX (Spanish)",    "lang": "es", "locale": "es_ES", "voice_name": "davefx",     "quality": "medium"},
]

DEFAULT_VOICE = "en_US-lessac-medium"

_CATALOG_BY_ID = {v["id"]: v for v in VOICE_CATALOG}
_CATALOG_BY_NAME = {v["name"]: v for v in VOICE_CATALOG}


def wav_header(sample_rate: int = TARGET_RATE, channels: int = 1,
               data_size: int = _STREAMING_SIZE) -> bytes:
    """RIFF/WAVE header for int16 PCM. Default sizes mean "until end of file"."""
    byte_rate = sample_rate * channels * 2
    riff_size = _STREAMING_SIZE if data_size == _STREAMING_SIZE else 36 + data_size
    return (
        b"RIFF" + struct.pack("<I", riff_size) + b"WAVE"
        + b"fmt " + struct.pack("<IHHIIHH", 16, 1, channels, sample_rate, byte_rate, channels * 2, 16)
        + b"data" + struct.pack("<I", data_size)
    )


# ── Piper synthesis ───────────────────────────────────────────

ChunkSynthesizer = Callable[[str, str], Iterable[bytes]]


def to_target_rate(raw_pcm: bytes, native_rate: int, target_rate: int = TARGET_RATE) -> bytes:
    """Resample int16 mono PCM, clipping back into int16 range."""
    if not raw_pcm or native_rate == target_rate:
        return raw_pcm
    samples = np.frombuffer(raw_pcm, dtype=np.int16).astype(np.float64)
    resampled = resample(samples, int(len(samples) * target_rate / native_rate))
    return np.clip(resampled, -32768, 32767).astype(np.int16).tobytes()


class PiperSpeechSynthesis(SpeechSynthesis):
    """Speaks utterances into their output stream using Piper in a worker thread.

    Audio is written chunk by chunk as Piper produces it, so a capture
    deadline that fires mid-utterance still keeps what was spoken so far.
    Call load() ahead of time to keep model download and load off the
    first utterance.

    `synthesize(text, voice_id)` may be replaced by any callable yielding
    48kHz int16 PCM chunks.
    """

    def __init__(self, synthesize: Optional[ChunkSynthesizer] = None,
                 model_dir: Path = MODEL_DIR):
        self._synthesize = synthesize or self._piper_chunks
        self._model_dir = model_dir
        self._models: dict = {}  # voice_id -> PiperVoice
        self._generation = 0

    def get_voices(self) -> List[SpeechVoice]:
        return [SpeechVoice(name=v["name"], lang=v["locale"].replace("_", "-")) for v in VOICE_CATALOG]

    @staticmethod
    def voice_id_for(voice: Optional[SpeechVoice]) -> str:
        entry = _CATALOG_BY_NAME.get(voice.name) if voice else None
        return entry["id"] if entry else DEFAULT_VOICE

    def _fetch(self, voice_id: str) -> Path:
        """Download the .onnx model and its .json config into the model dir."""
        entry = _CATALOG_BY_ID[voice_id]
        url = (f"{HF_VOICES}/{entry['lang']}/{entry['locale']}/"
               f"{entry['voice_name']}/{entry['quality']}/{voice_id}")
        self._model_dir.mkdir(parents=True, exist_ok=True)
        onnx_path = self._model_dir / f"{voice_id}.onnx"
        for suffix in (".onnx", ".onnx.json"):
            target = self._model_dir / f"{voice_id}{suffix}"
            if not target.exists():
                log.info("Fetching Piper %s for %s", suffix, voice_id)
                urllib.request.urlretrieve(url + suffix, target)
        return onnx_path

    def _load_model(self, voice_id: str):
        from piper import PiperVoice

        return PiperVoice.load(str(self._fetch(voice_id)))

    def load(self, voice_id: str = DEFAULT_VOICE):
        """Return the Piper voice for voice_id, fetching and loading it once (blocking)."""
        if voice_id not in _CATALOG_BY_ID:
            log.warning("Unknown voice %r, using %s", voice_id, DEFAULT_VOICE)
            voice_id = DEFAULT_VOICE
        model = self._models.get(voice_id)
        if model is None:
            model = self._load_model(voice_id)
            log.info("Piper voice ready: %s (%d Hz)", voice_id, model.config.sample_rate)
            self._models[voice_id] = model
        return model

    def _piper_chunks(self, text: str, voice_id: str) -> Iterator[bytes]:
        model = self.load(voice_id)
        native_rate = model.config.sample_rate
        for chunk in model.synthesize(text):
            pcm = to_target_rate(chunk.audio_int16_bytes, native_rate)
            if pcm:
                yield pcm

    def speak(self, utterance: Utterance) -> None:
        loop = asyncio.get_running_loop()
        voice_id = self.voice_id_for(utterance.voice)
        generation = self._generation
        output = utterance.output if isinstance(utterance.output, PCMStream) else None

        def _render() -> int:
            written = 0
            for pcm in self._synthesize(utterance.text, voice_id):
                if generation != self._generation:
                    break
                written += len(pcm)
                if output is not None:
                    loop.call_soon_threadsafe(output.write, pcm)
            return written

        future = loop.run_in_executor(None, _render)

        def _done(fut):
            if generation != self._generation:
                return  # cancelled while synthesizing
            exc = fut.exception()
            if exc is not None:
                log.warning("Piper synthesis failed: %s", exc)
                if utterance.on_error:
                    utterance.on_error("synthesis-failed")
                return
            log.debug("Piper [%s]: %d chars -> %.2fs", voice_id, len(utterance.text),
                      fut.result() / 2 / TARGET_RATE)
            if utterance.on_end:
                utterance.on_end()

        future.add_done_callback(_done)

    def cancel(self) -> None:
        self._generation += 1


# ── Audio graph and recorder ──────────────────────────────────


class LocalDestination(MediaStreamDestination):
    def __init__(self, sample_rate: int = TARGET_RATE):
        self._stream = PCMStream(sample_rate=sample_rate)

    @property
    def stream(self) -> PCMStream:
        return self._stream


class LocalAudioContext(AudioContext):
    """Owns the destinations it creates and closes their streams with it."""

    def __init__(self, sample_rate: int = TARGET_RATE):
        self.sample_rate = sample_rate
        self._destinations: List[LocalDestination] = []
        self._closed = False

    def create_media_stream_destination(self) -> LocalDestination:
        dest = LocalDestination(self.sample_rate)
        self._destinations.append(dest)
        return dest

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for dest in self._destinations:
            dest.stream.close()

    @property
    def closed(self) -> bool:
        return self._closed


class WavRecorder(MediaRecorder):
    """Records a PCMStream as WAV, one fragment per timeslice.

    The first fragment is a streaming WAV header; every later fragment is
    raw PCM, so the fragments concatenate into one playable file.
    """

    mime_type = "audio/wav"

    def __init__(self, stream: PCMStream):
        super().__init__()
        self._stream = stream
        self._state = RECORDER_INACTIVE
        self._handle: Optional[asyncio.TimerHandle] = None
        self._timeslice = 0.1

    @property
    def state(self) -> str:
        return self._state

    def _emit(self, data: bytes) -> None:
        if data and self.on_data_available:
            self.on_data_available(data)

    def _tick(self) -> None:
        if self._state != RECORDER_RECORDING:
            return
        self._emit(self._stream.drain())
        self._handle = asyncio.get_running_loop().call_later(self._timeslice, self._tick)

    def start(self, timeslice_ms: Optional[int] = None) -> None:
        if self._state == RECORDER_RECORDING:
            return
        if timeslice_ms:
            self._timeslice = timeslice_ms / 1000.0
        self._state = RECORDER_RECORDING
        self._emit(wav_header(self._stream.sample_rate, self._stream.channels))
        self._handle = asyncio.get_running_loop().call_later(self._timeslice, self._tick)

    def stop(self) -> None:
        if self._state != RECORDER_RECORDING:
            return
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._emit(self._stream.drain())
        self._state = RECORDER_INACTIVE
        if self.on_stop:
            self.on_stop()


# ── Whisper recognition ───────────────────────────────────────

AudioSource = Callable[[], Tuple[bytes, int]]


class WhisperTranscriber:
    """Blocking faster-whisper transcription; the model loads on first call."""

    def __init__(self, model_size: str = WHISPER_MODEL_SIZE):
        self.model_size = model_size
        self._model = None
        self._lock = threading.Lock()

    def _ensure_model(self):
        with self._lock:
            if self._model is None:
                from faster_whisper import WhisperModel

                log.info("Loading faster-whisper %s model", self.model_size)
                self._model = WhisperModel(self.model_size, device="cpu", compute_type="int8")
            return self._model

    def __call__(self, audio_bytes: bytes, sample_rate: int = TARGET_RATE,
                 language: str = "en") -> str:
        """Int16 mono PCM in, transcript out. Empty string when nothing was heard."""
        if not audio_bytes:
            return ""
        samples = np.frombuffer(audio_bytes, dtype=np.int16).astype(np.float32) / 32768.0
        if sample_rate != WHISPER_RATE:
            samples = resample(samples, int(len(samples) * WHISPER_RATE / sample_rate)).astype(np.float32)

        segments, _info = self._ensure_model().transcribe(samples, beam_size=5, language=language)
        text = " ".join(s.text.strip() for s in segments).strip()
        log.info("Transcription: %r", text[:100])
        return text


_shared_transcriber = WhisperTranscriber()


def wav_file_source(path) -> AudioSource:
    """An audio source reading the first channel of an int16 WAV file."""
    def _read() -> Tuple[bytes, int]:
        with wave.open(str(path), "rb") as wf:
            rate = wf.getframerate()
            channels = wf.getnchannels()
            frames = wf.readframes(wf.getnframes())
        if channels > 1:
            frames = np.frombuffer(frames, dtype=np.int16)[::channels].tobytes()
        return frames, rate
    return _read


class WhisperRecognition(RecognitionSession):
    """Transcribes one clip from an audio source, reporting via callbacks."""

    def __init__(self, audio_source: AudioSource,
                 transcriber: Optional[Callable[[bytes, int, str], str]] = None):
        super().__init__()
        self._audio_source = audio_source
        self._transcriber = transcriber or _shared_transcriber
        self._aborted = False

    def _run(self) -> str:
        pcm, rate = self._audio_source()
        return self._transcriber(pcm, rate, self.lang.split("-", 1)[0])

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._run)

        def _done(fut):
            if self._aborted:
                return
            exc = fut.exception()
            if exc is not None:
                log.warning("Whisper recognition failed: %s", exc)
                if self.on_error:
                    self.on_error("audio-capture")
                return
            text = fut.result()
            if not text:
                if self.on_error:
                    self.on_error("no-speech")
                return
            if self.on_result:
                self.on_result([[RecognitionAlternative(transcript=text)]])

        future.add_done_callback(_done)

    def abort(self) -> None:
        self._aborted = True


# ── Host bundle ───────────────────────────────────────────────


def _module_available(name: str) -> bool:
    return importlib.util.find_spec(name) is not None


class LocalHost(HostEnvironment):
    """In-process host: Piper for speech, WAV recorder, Whisper for recognition.

    With preload_lang set, the Piper voice that capture would pick for that
    language is loaded up front, so the first capture deadline is not spent
    on model download.
    """

    def __init__(self, audio_source: Optional[AudioSource] = None,
                 synthesis: Optional[SpeechSynthesis] = None,
                 sample_rate: int = TARGET_RATE,
                 preload_lang: Optional[str] = None):
        self._audio_source = audio_source
        self._sample_rate = sample_rate
        if synthesis is None and _module_available("piper"):
            synthesis = PiperSpeechSynthesis()
        self._synthesis = synthesis
        if preload_lang and isinstance(synthesis, PiperSpeechSynthesis):
            self._preload(synthesis, preload_lang)

    @staticmethod
    def _preload(synthesis: PiperSpeechSynthesis, lang_prefix: str) -> None:
        voice_id = synthesis.voice_id_for(select_voice(synthesis.get_voices(), lang_prefix))
        try:
            synthesis.load(voice_id)
        except Exception as e:
            log.warning("Failed to preload Piper voice %s: %s", voice_id, e)

    @property
    def speech_synthesis(self) -> Optional[SpeechSynthesis]:
        return self._synthesis

    @property
    def supports_recognition(self) -> bool:
        return self._audio_source is not None and _module_available("faster_whisper")

    def create_recognition(self) -> Optional[RecognitionSession]:
        if not self.supports_recognition:
            return None
        return WhisperRecognition(self._audio_source)

    def create_audio_context(self) -> LocalAudioContext:
        return LocalAudioContext(self._sample_rate)

    def create_recorder(self, stream) -> WavRecorder:
        return WavRecorder(stream)
