"""Single-shot speech recognition as an awaitable."""

import asyncio
import logging
from typing import Optional

from .capabilities import HostEnvironment, is_speech_recognition_supported
from .config import Settings, settings as default_settings
from .errors import RecognitionError, UnsupportedEnvironment

log = logging.getLogger("recognition")


class RecognitionBridge:
    """Wraps one host recognition session per call.

    No interim results, one alternative, no retry. Cancelling the awaiting
    task aborts the session.
    """

    def __init__(self, host: Optional[HostEnvironment],
                 settings: Optional[Settings] = None):
        self._host = host
        self._settings = settings or default_settings

    def recognize(self) -> "asyncio.Future[str]":
        """Start listening and return a future for the first final transcript.

        Raises UnsupportedEnvironment immediately, before any session
        exists, when the host cannot recognize speech.
        """
        if not is_speech_recognition_supported(self._host):
            raise UnsupportedEnvironment("speech recognition")
        return asyncio.ensure_future(self._run())

    async def _run(self) -> str:
        session = self._host.create_recognition()
        if session is None:
            raise UnsupportedEnvironment("speech recognition")

        session.lang = self._settings.recognition_lang
        session.interim_results = False
        session.max_alternatives = 1

        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()

        def on_result(results):
            if done.done():
                return
            try:
                transcript = results[0][0].transcript
            except (IndexError, AttributeError):
                done.set_exception(RecognitionError("no-speech"))
                return
            log.info("Speech recognized: %r", transcript[:100])
            done.set_result(transcript)

        def on_error(code):
            if done.done():
                return
            log.warning("Recognition session error: %s", code)
            done.set_exception(RecognitionError(str(code)))

        session.on_result = on_result
        session.on_error = on_error
        try:
            session.start()
        except Exception as e:
            log.warning("Recognition session failed to start: %s", e)
            raise RecognitionError("start-failed") from e

        try:
            return await done
        except asyncio.CancelledError:
            session.abort()
            raise
