"""Cascading synthesis: primary API -> secondary edge function -> on-device capture.

Each tier runs only after the previous one is conclusively exhausted.
A tier that raises or returns no usable audio is logged and skipped; the
caller always gets audio back unless the host cannot synthesize at all.
"""

import logging
from typing import Optional

import httpx

from .capabilities import HostEnvironment
from .capture import AudioCapturePipeline
from .config import Settings, settings as default_settings
from .errors import UnsupportedEnvironment
from .providers import RemoteSynthesisProvider, primary_provider, secondary_provider
from .types import ShapingParams, SynthesisRequest, SynthesisResult

log = logging.getLogger("controller")


class SynthesisController:
    """Owns the provider chain and the HTTP client shared by its remote tiers."""

    def __init__(
        self,
        host: Optional[HostEnvironment],
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        capture: Optional[AudioCapturePipeline] = None,
    ):
        self._settings = settings or default_settings
        self._client = client
        self._primary = primary_provider(self._settings.api_base_url)
        self._secondary = secondary_provider(self._settings.secondary_provider)
        self._capture = capture or AudioCapturePipeline(host, self._settings)

    @property
    def secondary_configured(self) -> bool:
        return self._secondary is not None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SynthesisController":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ── Tiers ─────────────────────────────────────────────────

    async def _try_remote(self, provider: RemoteSynthesisProvider,
                          request: SynthesisRequest) -> Optional[SynthesisResult]:
        try:
            return await provider.synthesize(self._get_client(), request)
        except Exception as e:
            log.warning("Failed to synthesize speech via %s, falling back: %s", provider.name, e)
            return None

    async def _capture_on_device(self, text: str) -> SynthesisResult:
        try:
            return await self._capture.capture(text)
        except UnsupportedEnvironment:
            log.error("No synthesis tier available: on-device speech is unsupported")
            raise
        except Exception as e:
            log.error("On-device capture failed: %s", e)
            raise UnsupportedEnvironment("audio capture") from e

    # ── Public API ────────────────────────────────────────────

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        """Return playable audio for the request, degrading tier by tier.

        Raises:
            UnsupportedEnvironment: both remote tiers failed and the host
                cannot synthesize speech on-device.
        """
        result = await self._try_remote(self._primary, request)
        if result is not None:
            return result

        if self._secondary is not None:
            result = await self._try_remote(self._secondary, request)
            if result is not None:
                return result
        else:
            log.debug("Secondary provider not configured, skipping")

        # Voice and shaping are provider-specific; the host voice is chosen locally
        return await self._capture_on_device(request.text)

    async def synthesize_text(self, text: str, voice_id: Optional[str] = None,
                              **shaping) -> SynthesisResult:
        """Convenience wrapper: synthesize_text("hi", stability=0.5)."""
        params = ShapingParams(**shaping) if shaping else None
        return await self.synthesize(SynthesisRequest(text=text, voice_id=voice_id, shaping=params))
