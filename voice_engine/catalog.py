"""Remote voice catalog with a built-in fallback list."""

import logging
from typing import List, Optional

import httpx

from .config import Settings, settings as default_settings
from .types import VoiceIdentity

log = logging.getLogger("catalog")

VOICES_PATH = "/agent/voice/voices"

# ── Built-in catalog ──────────────────────────────────────────
# Served whenever the remote list is unreachable or empty.

FALLBACK_VOICES: List[VoiceIdentity] = [
    VoiceIdentity(
        id="21m00Tcm4TlvDq8ikWAM", display_name="Rachel",
        preview_url="https://example.com/voice-preview.mp3", category="premade",
        description="A friendly and professional female voice",
    ),
    VoiceIdentity(
        id="AZnzlk1XvdvUeBnXmlld", display_name="Domi",
        preview_url="https://example.com/voice-preview.mp3", category="premade",
        description="An authoritative and clear male voice",
    ),
    VoiceIdentity(
        id="EXAVITQu4vr4xnSDxMaL", display_name="Bella",
        preview_url="https://example.com/voice-preview.mp3", category="premade",
        description="A warm and engaging female voice",
    ),
    VoiceIdentity(
        id="ErXwobaYiN019PkySvjV", display_name="Antoni",
        preview_url="https://example.com/voice-preview.mp3", category="premade",
        description="A confident and articulate male voice",
    ),
]


def fallback_voices() -> List[VoiceIdentity]:
    return list(FALLBACK_VOICES)


class VoiceCatalog:
    """Lists voices from the primary backend. Never raises, never empty."""

    def __init__(self, settings: Optional[Settings] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self._settings = settings or default_settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def list_voices(self) -> List[VoiceIdentity]:
        try:
            client = self._get_client()
            resp = await client.get(f"{self._settings.api_base_url.rstrip('/')}{VOICES_PATH}")
            resp.raise_for_status()
            entries = resp.json().get("voices") or []
        except Exception as e:
            log.warning("Failed to list voices via API, using fallback: %s", e)
            return fallback_voices()

        voices = []
        for entry in entries:
            try:
                voices.append(VoiceIdentity.from_wire(entry))
            except (KeyError, TypeError, AttributeError) as e:
                log.debug("Skipping malformed voice entry %r: %s", entry, e)

        if not voices:
            log.info("Remote voice list empty, using fallback catalog")
            return fallback_voices()

        log.info("Voice catalog: %d remote voices", len(voices))
        return voices
