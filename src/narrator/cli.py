"""
Command-Line Interface for narrator.

Generates speech without running the HTTP server, previews how text would
be chunked, and inspects WAV files.

Usage Examples:
    # Generate speech
    narrator --text "Once upon a time..." --out story.wav

    # Positional text (same as above)
    narrator "Once upon a time..." --out story.wav

    # Whole file as one text
    narrator --file chapter1.txt --out chapter1.wav

    # Dry-run mode (no remote calls, shows chunking info)
    narrator --file chapter1.txt --dry-run --json

    # Smaller chunks for this run only
    narrator --file chapter1.txt --max-chunk-size 400

    # Show a WAV file's header fields
    narrator --inspect story.wav

Environment Variables:
    GEMINI_API_KEY: Remote model key (required unless --dry-run/--inspect)
    NARRATOR_SETTINGS: Settings file (default config/settings.yaml)
    NARRATOR_MODEL, NARRATOR_MAX_CHUNK_SIZE, NARRATOR_REQUEST_DELAY_MS,
    NARRATOR_MAX_RETRIES: Settings overrides
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from narrator.core.config import ConfigValidationError, Settings, default_settings, load_settings
from narrator.core.logging import configure_logging, get_logger, info, set_request_id
from narrator.services.speech_service import SpeechService
from narrator.services.validators import ValidationError
from narrator.tts.chunker import chunk_text
from narrator.tts.errors import SpeechError
from narrator.tts.pipeline import ProgressEvent
from narrator.utils.wav import parse_wav


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="narrator CLI (serverless long-form speech)")

    # Input options
    parser.add_argument("text_pos", nargs="?", help="Text to speak (positional)")
    parser.add_argument("--text", help="Text to speak")
    parser.add_argument("--file", help="Read the whole file as one text")

    # Output options
    parser.add_argument("--out", default="out.wav", help="Output WAV path (default: out.wav)")

    # Configuration
    parser.add_argument("--settings", help="Settings YAML (default: $NARRATOR_SETTINGS or config/settings.yaml)")
    parser.add_argument("--max-chunk-size", type=int, help="Override pipeline.max_chunk_size")

    # Execution modes
    parser.add_argument("--dry-run", action="store_true",
                        help="Chunk and summarize without contacting the model")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")
    parser.add_argument("--inspect", metavar="WAV",
                        help="Print the header fields of a WAV file and exit")

    return parser.parse_args(argv)


def _load_text(args: argparse.Namespace) -> str:
    """
    Load the input text from arguments or file.

    Raises:
        SystemExit: If no input provided or conflicting options used.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        return Path(args.file).read_text(encoding="utf-8")

    if not text:
        raise SystemExit("Provide --text, --file or a positional text.")
    return text


def _load_settings(args: argparse.Namespace) -> Settings:
    path = args.settings or os.getenv("NARRATOR_SETTINGS", "config/settings.yaml")
    try:
        settings = load_settings(path)
    except FileNotFoundError:
        if args.settings:
            raise SystemExit(f"Settings file not found: {path}")
        settings = default_settings()

    if args.max_chunk_size is not None:
        raw = dict(settings.raw)
        raw["pipeline"] = {**(raw.get("pipeline") or {}), "max_chunk_size": args.max_chunk_size}
        settings = Settings(raw=raw)
    return settings


def _emit(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def _inspect(path: str, as_json: bool) -> int:
    try:
        wav = parse_wav(Path(path).read_bytes())
    except (OSError, ValueError) as e:
        _emit({"ok": False, "error": str(e)}, as_json)
        return 1

    _emit({
        "ok": True,
        "path": path,
        "sample_rate": wav.sample_rate,
        "channels": wav.channels,
        "bits_per_sample": wav.bits_per_sample,
        "data_bytes": len(wav.pcm),
        "duration_s": round(wav.duration_s, 3),
    }, as_json)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code: 0 success, 1 generation/configuration failure,
        2 invalid input.
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("narrator.cli")
    set_request_id(str(uuid4())[:12])

    if args.inspect:
        return _inspect(args.inspect, args.json)

    text = _load_text(args)

    try:
        settings = _load_settings(args)
        service = SpeechService(settings)
        text = service.validate(text)
    except ConfigValidationError as e:
        _emit({"ok": False, "error": "CONFIG_INVALID", "message": str(e)}, args.json)
        return 2
    except ValidationError as e:
        _emit({"ok": False, "error": e.code, "message": e.message}, args.json)
        return 2

    max_size = service.config.pipeline.max_chunk_size

    # Dry-run mode: show the chunk plan without remote calls
    if args.dry_run:
        result = chunk_text(text, max_size)
        payload = {
            "ok": True,
            "dry_run": True,
            "text_len": len(text),
            "max_chunk_size": max_size,
            "chunks": [
                {"index": c.index, "chars": len(c.content), "is_final": c.is_final,
                 "preview": c.content[:60]}
                for c in result.chunks
            ],
        }
        if not args.json:
            info(log, "dry_run", chunks=len(result.chunks), max_size=max_size)
        _emit(payload, args.json)
        print("DRY_RUN_OK")
        return 0

    def on_progress(event: ProgressEvent) -> None:
        info(log, "progress", completed=event.completed, total=event.total)

    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    info(log, "generate_start", chars=len(text), out=str(out_path))

    try:
        result = asyncio.run(service.generate(text, on_progress=on_progress))
    except SpeechError as e:
        _emit(e.to_dict(), args.json)
        return 1

    out_path.write_bytes(result.wav_bytes)
    _emit({
        "ok": True,
        "dry_run": False,
        "out": str(out_path),
        "bytes": len(result.wav_bytes),
        "sample_rate": result.sample_rate,
        "chunks": result.chunks,
        "seconds": round(result.total_seconds, 3),
    }, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
