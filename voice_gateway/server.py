"""Gateway server: HTTP synthesis API + WebSocket control channel."""

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from aiohttp import web
from dotenv import load_dotenv

load_dotenv()  # Must be before engine imports so settings see .env vars

from voice_engine.capabilities import HostEnvironment, detect_capabilities
from voice_engine.catalog import VoiceCatalog
from voice_engine.config import Settings, settings as default_settings
from voice_engine.controller import SynthesisController
from voice_engine.errors import RecognitionError, UnsupportedEnvironment
from voice_engine.recognition import RecognitionBridge
from voice_engine.types import ShapingParams, SynthesisRequest

log = logging.getLogger("gateway")

CONTROLLER_KEY = web.AppKey("controller", SynthesisController)
CATALOG_KEY = web.AppKey("catalog", VoiceCatalog)
RECOGNIZER_KEY = web.AppKey("recognizer", RecognitionBridge)
HOST_KEY = web.AppKey("host", object)
SETTINGS_KEY = web.AppKey("settings", Settings)


def request_from_body(body: dict) -> SynthesisRequest:
    """Build a SynthesisRequest from wire field names. Raises ValueError."""
    shaping_fields = {
        "stability": body.get("stability"),
        "similarity_boost": body.get("similarity_boost"),
        "style": body.get("style"),
        "speaker_boost": body.get("use_speaker_boost"),
    }
    shaping = ShapingParams(**shaping_fields) if any(v is not None for v in shaping_fields.values()) else None
    return SynthesisRequest(
        text=str(body.get("text") or "").strip(),
        voice_id=body.get("voice_id") or None,
        shaping=shaping,
    )


# ── HTTP routes ───────────────────────────────────────────────

async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def handle_capabilities(request: web.Request) -> web.Response:
    return web.json_response(asdict(detect_capabilities(request.app[HOST_KEY])))


async def handle_voices(request: web.Request) -> web.Response:
    voices = await request.app[CATALOG_KEY].list_voices()
    return web.json_response({"voices": [v.to_wire() for v in voices]})


async def handle_synthesize(request: web.Request) -> web.Response:
    try:
        body = await request.json()
        synth_request = request_from_body(body if isinstance(body, dict) else {})
    except (json.JSONDecodeError, ValueError, TypeError) as e:
        return web.json_response({"success": False, "error": str(e)}, status=400)

    try:
        result = await request.app[CONTROLLER_KEY].synthesize(synth_request)
    except UnsupportedEnvironment as e:
        return web.json_response({"success": False, "error": str(e)}, status=503)

    return web.json_response({"success": True, "audio": result.data_url, "source": result.source})


# ── WebSocket handler ─────────────────────────────────────────

async def _ws_synthesize(ws: web.WebSocketResponse, app: web.Application,
                         synth_request: SynthesisRequest) -> None:
    log.info("Synthesize: %r", synth_request.text[:80])
    try:
        result = await app[CONTROLLER_KEY].synthesize(synth_request)
    except UnsupportedEnvironment as e:
        await ws.send_json({"type": "error", "message": str(e)})
        return
    await ws.send_json({"type": "audio", "audio": result.data_url, "source": result.source})


async def _ws_recognize(ws: web.WebSocketResponse, app: web.Application) -> None:
    try:
        text = await app[RECOGNIZER_KEY].recognize()
    except (UnsupportedEnvironment, RecognitionError) as e:
        await ws.send_json({"type": "error", "message": str(e)})
        return
    await ws.send_json({"type": "transcription", "text": text})


async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    """Control channel. Synthesis and recognition run as tasks so pings
    are answered while they are in flight; replies arrive in completion order.
    """
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    log.info("WebSocket connected from %s", request.remote)

    app = request.app
    authed = False
    pending: set = set()

    def _spawn(coro) -> None:
        task = asyncio.ensure_future(coro)
        pending.add(task)
        task.add_done_callback(pending.discard)

    try:
        async for raw in ws:
            if raw.type != web.WSMsgType.TEXT:
                continue
            try:
                msg = json.loads(raw.data)
            except json.JSONDecodeError:
                await ws.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            msg_type = msg.get("type")
            log.debug("WS recv: %s", msg_type)

            if msg_type == "hello":
                if msg.get("token", "") != app[SETTINGS_KEY].auth_token:
                    await ws.send_json({"type": "error", "message": "Bad token"})
                    await ws.close()
                    break
                authed = True
                voices = await app[CATALOG_KEY].list_voices()
                await ws.send_json({
                    "type": "hello_ack",
                    "voices": [v.to_wire() for v in voices],
                    "capabilities": asdict(detect_capabilities(app[HOST_KEY])),
                })

            elif msg_type == "ping":
                await ws.send_json({"type": "pong"})

            elif not authed:
                await ws.send_json({"type": "error", "message": "Say hello first"})

            elif msg_type == "synthesize":
                try:
                    synth_request = request_from_body(msg)
                except (ValueError, TypeError) as e:
                    await ws.send_json({"type": "error", "message": str(e)})
                    continue
                _spawn(_ws_synthesize(ws, app, synth_request))

            elif msg_type == "recognize":
                _spawn(_ws_recognize(ws, app))

            else:
                await ws.send_json({"type": "error", "message": f"Unknown type: {msg_type}"})
    finally:
        for task in list(pending):
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    log.info("WebSocket disconnected")
    return ws


# ── App setup ─────────────────────────────────────────────────

async def _close_clients(app: web.Application) -> None:
    await app[CONTROLLER_KEY].close()
    await app[CATALOG_KEY].close()


def create_app(host: Optional[HostEnvironment] = None,
               settings: Optional[Settings] = None,
               controller: Optional[SynthesisController] = None,
               catalog: Optional[VoiceCatalog] = None) -> web.Application:
    settings = settings or default_settings
    if host is None:
        from voice_engine.host import LocalHost
        host = LocalHost(preload_lang=settings.preferred_voice_lang)

    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[HOST_KEY] = host
    app[CONTROLLER_KEY] = controller or SynthesisController(host, settings)
    app[CATALOG_KEY] = catalog or VoiceCatalog(settings)
    app[RECOGNIZER_KEY] = RecognitionBridge(host, settings)
    app.on_cleanup.append(_close_clients)

    app.router.add_get("/health", handle_health)
    app.router.add_get("/capabilities", handle_capabilities)
    app.router.add_get("/voices", handle_voices)
    app.router.add_post("/synthesize", handle_synthesize)
    app.router.add_get("/ws", handle_ws)
    return app


LOG_DIR = Path(__file__).resolve().parent.parent / "logs"


if __name__ == "__main__":
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / "server.log"

    fmt = logging.Formatter("%(asctime)s %(name)-12s %(levelname)-8s %(message)s")

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(fmt)

    filelog = logging.FileHandler(log_file)
    filelog.setLevel(logging.INFO)
    filelog.setFormatter(fmt)

    logging.basicConfig(level=logging.INFO, handlers=[console, filelog])

    # Silence per-request HTTP client logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    log.info("Logging to %s", log_file)

    port = default_settings.gateway_port
    log.info("Serving on http://0.0.0.0:%d", port)
    web.run_app(create_app(), host="0.0.0.0", port=port)
