"""Voice REPL: type text, get an audio file back from whichever tier answered.

Run with: python -m voice_cli.main [--debug] [--out DIR] [--input WAV]

Features:
  - Rich colored output (green=user, blue=result, cyan=voices)
  - Spinner while synthesizing
  - Commands: voices, caps, listen, quit/exit/q
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console

load_dotenv()

from voice_engine.capabilities import detect_capabilities
from voice_engine.catalog import VoiceCatalog
from voice_engine.config import settings
from voice_engine.controller import SynthesisController
from voice_engine.errors import RecognitionError, UnsupportedEnvironment
from voice_engine.host import LocalHost, wav_file_source
from voice_engine.recognition import RecognitionBridge

console = Console()

_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
}


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)-14s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )
    # Suppress noisy HTTP-level debug logs, keep engine logs
    if debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "bin")


async def _show_voices(catalog: VoiceCatalog) -> None:
    for voice in await catalog.list_voices():
        desc = f" [dim]- {voice.description}[/]" if voice.description else ""
        console.print(f"  [cyan]{voice.id}[/] {voice.display_name}{desc}")


async def _listen(recognizer: RecognitionBridge) -> None:
    try:
        with console.status("[dim]Listening...[/]", spinner="dots"):
            text = await recognizer.recognize()
    except UnsupportedEnvironment:
        console.print("[red]Recognition needs --input WAV and faster-whisper installed.[/]\n")
        return
    except RecognitionError as e:
        console.print(f"[red]{e}[/]\n")
        return
    console.print(f"[bold green]Heard:[/] {text}\n")


async def _run_repl(out_dir: Path, input_wav: str | None) -> None:
    host = LocalHost(
        audio_source=wav_file_source(input_wav) if input_wav else None,
        preload_lang=settings.preferred_voice_lang,
    )
    controller = SynthesisController(host, settings)
    catalog = VoiceCatalog(settings)
    recognizer = RecognitionBridge(host, settings)
    out_dir.mkdir(parents=True, exist_ok=True)
    count = 0

    try:
        caps = detect_capabilities(host)
        console.print("[bold]Voice REPL[/] "
                      f"[dim](secondary={'on' if controller.secondary_configured else 'off'}, "
                      f"local speech={'yes' if caps.speech_synthesis else 'no'})[/]")
        console.print("[dim]Type text to synthesize; 'voices', 'caps', 'listen', or 'quit'.[/]\n")

        while True:
            try:
                user_input = console.input("[bold green]Text:[/] ").strip()
            except (EOFError, KeyboardInterrupt):
                console.print("\n[dim]Goodbye![/]")
                break

            if not user_input:
                continue
            command = user_input.lower()
            if command in ("quit", "exit", "q"):
                console.print("[dim]Goodbye![/]")
                break
            if command == "voices":
                await _show_voices(catalog)
                continue
            if command == "caps":
                caps = detect_capabilities(host)
                console.print(f"  synthesis={caps.speech_synthesis} recognition={caps.speech_recognition}\n")
                continue
            if command == "listen":
                await _listen(recognizer)
                continue

            with console.status("[dim]Synthesizing...[/]", spinner="dots"):
                try:
                    result = await controller.synthesize_text(user_input)
                except UnsupportedEnvironment as e:
                    console.print(f"[red]No synthesis available: {e}[/]\n")
                    continue

            count += 1
            path = out_dir / f"utterance-{count}.{extension_for(result.mime_type)}"
            path.write_bytes(result.audio_bytes())
            console.print(f"[bold blue]Saved:[/] {path} [dim]({result.source}, {result.mime_type})[/]\n")

    finally:
        await controller.close()
        await catalog.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Voice synthesis REPL")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--out", default="out", help="Directory for synthesized audio")
    parser.add_argument("--input", default=None, help="WAV file to use for 'listen'")
    args = parser.parse_args()

    _setup_logging(args.debug)
    asyncio.run(_run_repl(Path(args.out), args.input))


if __name__ == "__main__":
    main()
