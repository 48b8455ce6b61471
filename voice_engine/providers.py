"""Remote synthesis providers: primary API and secondary edge function.

Both speak the same wire format:
  request  {text, voice_id, stability, similarity_boost, style, use_speaker_boost}
  response {success: bool, audio: str}

`audio` is either a ready data URL or raw base64 that still needs a MIME
prefix. Anything short of success=true with non-empty audio is an error.
"""

import logging
from typing import Optional

import httpx

from .config import ProviderEndpoint
from .errors import ProviderEmptyResponse, ProviderUnavailable
from .types import SynthesisRequest, SynthesisResult

log = logging.getLogger("providers")

PRIMARY_SYNTHESIZE_PATH = "/agent/voice/synthesize"
SECONDARY_SYNTHESIZE_PATH = "/functions/v1/voice-synthesis"


class RemoteSynthesisProvider:
    """POSTs a synthesis request to one backend and normalizes the answer."""

    def __init__(self, name: str, url: str, api_key: Optional[str] = None):
        self.name = name
        self.url = url
        self._api_key = api_key

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def synthesize(self, client: httpx.AsyncClient,
                         request: SynthesisRequest) -> SynthesisResult:
        try:
            resp = await client.post(self.url, json=request.to_payload(), headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderUnavailable(self.name, str(e) or type(e).__name__) from e

        if not isinstance(data, dict) or not data.get("success"):
            raise ProviderEmptyResponse(self.name, "success flag not set")
        audio = data.get("audio")
        if not audio or not isinstance(audio, str):
            raise ProviderEmptyResponse(self.name, "response carried no audio")

        result = SynthesisResult.from_payload(audio, source=self.name)
        log.info("%s: %d chars -> %s (%d b64 chars)",
                 self.name, len(request.text), result.mime_type, len(audio))
        return result


def primary_provider(api_base_url: str) -> RemoteSynthesisProvider:
    return RemoteSynthesisProvider(
        "primary", f"{api_base_url.rstrip('/')}{PRIMARY_SYNTHESIZE_PATH}",
    )


def secondary_provider(endpoint: Optional[ProviderEndpoint]) -> Optional[RemoteSynthesisProvider]:
    """The edge-function provider, or None when it is not configured."""
    if endpoint is None:
        return None
    return RemoteSynthesisProvider(
        "secondary", f"{endpoint.url}{SECONDARY_SYNTHESIZE_PATH}", api_key=endpoint.key,
    )
