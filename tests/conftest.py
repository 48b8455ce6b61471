"""
Shared fakes for the voice engine tests.

FakeHost stands in for a browser-like environment: a synthesizer that can
be told to fire (or never fire) its end event, and a recorder that raises
if it is stopped twice, like a real MediaRecorder.
"""

import asyncio
from typing import List, Optional

import pytest

from voice_engine.capabilities import (
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
)
from voice_engine.config import Settings


class FakeSynthesis(SpeechSynthesis):
    def __init__(self, fire_end: bool = True, end_delay: float = 0.0,
                 voices: Optional[List[SpeechVoice]] = None):
        self.fire_end = fire_end
        self.end_delay = end_delay
        self.voices = voices if voices is not None else [
            SpeechVoice(name="Daniel", lang="en-GB"),
            SpeechVoice(name="Samantha Female", lang="en-US"),
            SpeechVoice(name="Amelie", lang="fr-FR"),
        ]
        self.spoken = []
        self.cancelled = 0

    def get_voices(self):
        return list(self.voices)

    def speak(self, utterance):
        self.spoken.append(utterance)
        if self.fire_end:
            asyncio.get_running_loop().call_later(self.end_delay, utterance.on_end)

    def cancel(self):
        self.cancelled += 1


class FakeDestination(MediaStreamDestination):
    def __init__(self):
        self._stream = object()

    @property
    def stream(self):
        return self._stream


class FakeContext(AudioContext):
    def __init__(self):
        self.close_calls = 0
        self.destinations = []

    def create_media_stream_destination(self):
        dest = FakeDestination()
        self.destinations.append(dest)
        return dest

    def close(self):
        self.close_calls += 1

    @property
    def closed(self):
        return self.close_calls > 0


class FakeRecorder(MediaRecorder):
    mime_type = "audio/webm"

    def __init__(self, stream, fragments=(b"one", b"two"), confirm_stop: bool = True):
        super().__init__()
        self.stream = stream
        self._state = RECORDER_INACTIVE
        self._fragments = list(fragments)
        self.confirm_stop = confirm_stop
        self.stop_calls = 0
        self.timeslice = None

    @property
    def state(self):
        return self._state

    def start(self, timeslice_ms=None):
        self.timeslice = timeslice_ms
        self._state = RECORDER_RECORDING
        if self._fragments:
            self.on_data_available(self._fragments[0])

    def stop(self):
        if self._state != RECORDER_RECORDING:
            raise RuntimeError("InvalidStateError: recorder is not recording")
        self.stop_calls += 1
        self._state = RECORDER_INACTIVE
        self.on_data_available(b"")
        for fragment in self._fragments[1:]:
            self.on_data_available(fragment)
        if self.confirm_stop:
            self.on_stop()


class FakeRecognition(RecognitionSession):
    def __init__(self, transcript: Optional[str] = "hello world", error: Optional[str] = None):
        super().__init__()
        self.transcript = transcript
        self.error = error
        self.started = False
        self.aborted = False

    def start(self):
        self.started = True
        loop = asyncio.get_running_loop()
        if self.error:
            loop.call_soon(self.on_error, self.error)
        elif self.transcript is not None:
            loop.call_soon(self.on_result, [[RecognitionAlternative(self.transcript)]])

    def abort(self):
        self.aborted = True


class FakeHost(HostEnvironment):
    def __init__(self, synthesis: Optional[SpeechSynthesis] = None,
                 recognition: Optional[FakeRecognition] = None,
                 recorder_kwargs: Optional[dict] = None):
        self._synthesis = synthesis
        self._recognition = recognition
        self._recorder_kwargs = recorder_kwargs or {}
        self.contexts: List[FakeContext] = []
        self.recorders: List[FakeRecorder] = []
        self.recognitions_created = 0

    @property
    def speech_synthesis(self):
        return self._synthesis

    @property
    def supports_recognition(self):
        return self._recognition is not None

    def create_recognition(self):
        self.recognitions_created += 1
        return self._recognition

    def create_audio_context(self):
        ctx = FakeContext()
        self.contexts.append(ctx)
        return ctx

    def create_recorder(self, stream):
        recorder = FakeRecorder(stream, **self._recorder_kwargs)
        self.recorders.append(recorder)
        return recorder


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url="http://primary.test",
        secondary_url=None,
        secondary_key=None,
        request_timeout=5.0,
        capture_ms_per_char=10.0,
        capture_max_wait_seconds=0.5,
        recorder_timeslice_ms=20,
    )


@pytest.fixture
def settings_with_secondary(settings) -> Settings:
    return settings.model_copy(update={
        "secondary_url": "http://edge.test",
        "secondary_key": "anon-key",
    })
