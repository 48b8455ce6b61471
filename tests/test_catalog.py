"""
Tests for the voice catalog and its built-in fallback.
"""

import httpx
import pytest

from voice_engine.catalog import FALLBACK_VOICES, VoiceCatalog


def _catalog(settings, handler) -> VoiceCatalog:
    return VoiceCatalog(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_fallback_catalog_has_four_named_voices() -> None:
    assert [v.display_name for v in FALLBACK_VOICES] == ["Rachel", "Domi", "Bella", "Antoni"]
    assert len({v.id for v in FALLBACK_VOICES}) == 4


class TestVoiceCatalog:
    @pytest.mark.asyncio
    async def test_remote_voices(self, settings) -> None:
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={"voices": [
                {"voice_id": "v1", "name": "Remote One", "category": "cloned"},
                {"voice_id": "v2", "name": "Remote Two"},
            ]})

        voices = await _catalog(settings, handler).list_voices()

        assert seen == ["/agent/voice/voices"]
        assert [v.id for v in voices] == ["v1", "v2"]
        assert voices[0].category == "cloned"

    @pytest.mark.asyncio
    async def test_empty_list_uses_fallback(self, settings) -> None:
        voices = await _catalog(settings, lambda r: httpx.Response(200, json={"voices": []})).list_voices()
        assert voices == FALLBACK_VOICES

    @pytest.mark.asyncio
    async def test_missing_key_uses_fallback(self, settings) -> None:
        voices = await _catalog(settings, lambda r: httpx.Response(200, json={})).list_voices()
        assert voices == FALLBACK_VOICES

    @pytest.mark.asyncio
    async def test_http_error_uses_fallback(self, settings) -> None:
        voices = await _catalog(settings, lambda r: httpx.Response(502)).list_voices()
        assert len(voices) == 4

    @pytest.mark.asyncio
    async def test_network_error_uses_fallback(self, settings) -> None:
        def handler(request):
            raise httpx.ConnectTimeout("timed out")

        voices = await _catalog(settings, handler).list_voices()
        assert voices == FALLBACK_VOICES

    @pytest.mark.asyncio
    async def test_malformed_entries_skipped(self, settings) -> None:
        def handler(request):
            return httpx.Response(200, json={"voices": [{"name": "no id"}, {"voice_id": "ok", "name": "Ok"}]})

        voices = await _catalog(settings, handler).list_voices()
        assert [v.id for v in voices] == ["ok"]

    @pytest.mark.asyncio
    async def test_fallback_is_a_copy(self, settings) -> None:
        voices = await _catalog(settings, lambda r: httpx.Response(500)).list_voices()
        voices.clear()
        assert len(FALLBACK_VOICES) == 4
