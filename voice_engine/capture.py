"""On-device synthesis captured into an encoded audio artifact.

The last synthesis tier. The host synthesizer speaks into a virtual
destination of an audio graph while a recorder attached to that
destination's stream collects encoded fragments:

  text -> Utterance -> destination.stream -> MediaRecorder -> fragments -> data URL

Two independent signals can end a capture session: the utterance's end
event and a timeout proportional to the text length (some hosts never fire
the end event). Both feed one settlement gate, so whichever arrives first
stops the recorder and closes the context; the other is a no-op.
"""

import asyncio
import logging
from typing import List, Optional

from .capabilities import (
    RECORDER_RECORDING,
    AudioContext,
    HostEnvironment,
    MediaRecorder,
    SpeechVoice,
    Utterance,
)
from .config import Settings, settings as default_settings
from .errors import UnsupportedEnvironment
from .types import SynthesisResult

log = logging.getLogger("capture")


def select_voice(voices: List[SpeechVoice], lang_prefix: str = "en-") -> Optional[SpeechVoice]:
    """Prefer a female-labelled voice among those matching the language."""
    matching = [v for v in voices if lang_prefix in v.lang]
    if not matching:
        return None
    for voice in matching:
        if "female" in voice.name.lower():
            return voice
    return matching[0]


def estimate_duration(text: str, ms_per_char: float) -> float:
    """Seconds to let speech run before forcing the recorder to stop."""
    return len(text) * ms_per_char / 1000.0


class CaptureSession:
    """One utterance bound to one recorder for the length of a capture.

    All callbacks are marshalled onto the owning event loop, so the
    `settled` check-and-set below never races.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, context: AudioContext,
                 recorder: MediaRecorder):
        self.loop = loop
        self.context = context
        self.recorder = recorder
        self.fragments: List[bytes] = []
        self.settled = False
        self.stop_reason = ""
        self._settled_event = asyncio.Event()
        self._stopped: asyncio.Future = loop.create_future()
        self._timer: Optional[asyncio.TimerHandle] = None

        recorder.on_data_available = self._on_data
        recorder.on_stop = self._on_recorder_stop

    def _on_data(self, fragment: bytes) -> None:
        if fragment:
            self.fragments.append(fragment)

    def _on_recorder_stop(self) -> None:
        if not self._stopped.done():
            self._stopped.set_result(None)
        # A recorder that stops on its own also ends the session
        self.finish("recorder-stopped")

    def signal(self, reason: str) -> None:
        """Thread-safe entry point for host callbacks."""
        self.loop.call_soon_threadsafe(self.finish, reason)

    def arm_timeout(self, seconds: float) -> None:
        self._timer = self.loop.call_later(seconds, self.finish, "timeout")

    def finish(self, reason: str) -> None:
        """Stop recording and release the context, at most once."""
        if self.settled:
            log.debug("Capture already settled (%s), ignoring %s", self.stop_reason, reason)
            return
        self.settled = True
        self.stop_reason = reason
        if self._timer is not None:
            self._timer.cancel()

        try:
            if self.recorder.state == RECORDER_RECORDING:
                self.recorder.stop()
            elif not self._stopped.done():
                self._stopped.set_result(None)
        finally:
            if not self.context.closed:
                self.context.close()
            self._settled_event.set()
        log.info("Capture stopped by %s (%d fragments)", reason, len(self.fragments))

    async def wait(self, max_wait: float) -> bytes:
        """Block until settled, then until the recorder has flushed."""
        await self._settled_event.wait()
        try:
            await asyncio.wait_for(asyncio.shield(self._stopped), timeout=max_wait)
        except asyncio.TimeoutError:
            log.warning("Recorder did not confirm stop within %.1fs, using %d fragments",
                        max_wait, len(self.fragments))
        return b"".join(self.fragments)


class AudioCapturePipeline:
    """Speaks text on the host and returns the recorded audio as a data URL."""

    def __init__(self, host: Optional[HostEnvironment], settings: Optional[Settings] = None):
        self._host = host
        self._settings = settings or default_settings

    async def capture(self, text: str) -> SynthesisResult:
        synthesis = self._host.speech_synthesis if self._host is not None else None
        if synthesis is None:
            raise UnsupportedEnvironment("speech synthesis")

        loop = asyncio.get_running_loop()
        context = self._host.create_audio_context()
        try:
            destination = context.create_media_stream_destination()
            recorder = self._host.create_recorder(destination.stream)
        except Exception as e:
            context.close()
            raise UnsupportedEnvironment("audio capture") from e

        session = CaptureSession(loop, context, recorder)
        try:
            utterance = Utterance(text)
            utterance.voice = select_voice(synthesis.get_voices(), self._settings.preferred_voice_lang)
            utterance.rate = 1.0
            utterance.pitch = 1.0
            utterance.output = destination.stream
            utterance.on_end = lambda: session.signal("end")
            utterance.on_error = lambda code: session.signal(f"error:{code}")

            timeout = estimate_duration(text, self._settings.capture_ms_per_char)
            log.info("Capturing on-device speech: %d chars, voice=%s, timeout=%.1fs",
                     len(text), utterance.voice.name if utterance.voice else None, timeout)

            recorder.start(self._settings.recorder_timeslice_ms)
            session.arm_timeout(timeout)
            synthesis.speak(utterance)
            blob = await session.wait(self._settings.capture_max_wait_seconds)
        finally:
            if not session.settled:
                synthesis.cancel()
                session.finish("cancelled")

        log.info("Captured %d bytes of %s", len(blob), recorder.mime_type)
        return SynthesisResult.from_bytes(blob, recorder.mime_type, source="capture")
