"""Host capability interface and capability detection.

The capture pipeline and recognition bridge never reach for ambient
globals. Everything they need from the host (speech synthesis, an audio
graph with a recordable output route, a recorder, a recognizer) comes
through a HostEnvironment injected at construction.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

RECORDER_INACTIVE = "inactive"
RECORDER_RECORDING = "recording"


@dataclass(frozen=True)
class SpeechVoice:
    """An on-device synthesis voice."""
    name: str
    lang: str


@dataclass(frozen=True)
class RecognitionAlternative:
    transcript: str
    confidence: float = 1.0


class Utterance:
    """One piece of text for the on-device synthesizer to speak.

    `output` is the stream the synthesized audio is routed to; hosts that
    can only play to the system output may ignore it.
    """

    def __init__(self, text: str):
        self.text = text
        self.voice: Optional[SpeechVoice] = None
        self.rate = 1.0
        self.pitch = 1.0
        self.output = None
        self.on_end: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None


class SpeechSynthesis(ABC):
    """On-device text-to-speech."""

    @abstractmethod
    def get_voices(self) -> List[SpeechVoice]:
        """Voices installed on the host."""

    @abstractmethod
    def speak(self, utterance: Utterance) -> None:
        """Queue the utterance. Completion is signalled via its callbacks."""

    def cancel(self) -> None:
        """Drop any queued or in-progress speech."""


class MediaStreamDestination(ABC):
    """A virtual output node whose audio can be recorded."""

    @property
    @abstractmethod
    def stream(self):
        """The recordable stream carrying this destination's audio."""


class AudioContext(ABC):
    """An audio-processing graph. Must be closed to release the device."""

    @abstractmethod
    def create_media_stream_destination(self) -> MediaStreamDestination:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...


class MediaRecorder(ABC):
    """Records a stream into encoded fragments.

    Fragments arrive through `on_data_available` while recording; `on_stop`
    fires once after the final fragment has been delivered.
    """

    mime_type = "audio/wav"

    def __init__(self):
        self.on_data_available: Optional[Callable[[bytes], None]] = None
        self.on_stop: Optional[Callable[[], None]] = None

    @property
    @abstractmethod
    def state(self) -> str:
        """RECORDER_RECORDING or RECORDER_INACTIVE."""

    @abstractmethod
    def start(self, timeslice_ms: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...


class RecognitionSession(ABC):
    """A single-shot speech-to-text session."""

    def __init__(self):
        self.lang = "en-US"
        self.interim_results = False
        self.max_alternatives = 1
        self.on_result: Optional[Callable[[List[List[RecognitionAlternative]]], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    @abstractmethod
    def start(self) -> None:
        ...

    def abort(self) -> None:
        """Stop listening without delivering a result."""


class HostEnvironment(ABC):
    """Everything the engine needs from the environment it runs in."""

    @property
    @abstractmethod
    def speech_synthesis(self) -> Optional[SpeechSynthesis]:
        """The host synthesizer, or None when the host cannot speak."""

    @abstractmethod
    def create_recognition(self) -> Optional[RecognitionSession]:
        """A fresh recognition session, or None when unsupported."""

    @property
    def supports_recognition(self) -> bool:
        return False

    @abstractmethod
    def create_audio_context(self) -> AudioContext:
        ...

    @abstractmethod
    def create_recorder(self, stream) -> MediaRecorder:
        ...


# ── Capability detection ──────────────────────────────────────


@dataclass(frozen=True)
class Capabilities:
    speech_synthesis: bool
    speech_recognition: bool


def is_speech_synthesis_supported(host: Optional[HostEnvironment]) -> bool:
    return host is not None and host.speech_synthesis is not None


def is_speech_recognition_supported(host: Optional[HostEnvironment]) -> bool:
    return host is not None and bool(host.supports_recognition)


def detect_capabilities(host: Optional[HostEnvironment]) -> Capabilities:
    return Capabilities(
        speech_synthesis=is_speech_synthesis_supported(host),
        speech_recognition=is_speech_recognition_supported(host),
    )
