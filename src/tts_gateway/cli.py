"""
Command-Line Interface for tts-gateway.

Runs the utterance path (SSML, cache key, rate limit, two-tier cache,
backend dispatch) without the HTTP server.

Usage Examples:
    # Synthesize with the configured backends
    tts-gateway --text "Hello there" --voice openai-alloy --out hello.mp3

    # Also write speech marks
    tts-gateway --text "Hello there" --high-fidelity --out hello.mp3 --marks hello.json

    # Dry-run: show the SSML, cache key and storage paths only
    tts-gateway --text "Test" --dry-run --json

    # Restrict the backend order
    tts-gateway --text "Test" --backends azure,openai

Environment Variables:
    TTS_GATEWAY_SETTINGS: Settings file (default config/settings.yaml)
    OPENAI_API_KEY / AZURE_SPEECH_KEY / ELEVENLABS_API_KEY: Backend credentials
"""

from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from tts_gateway.core.config import Settings, load_settings
from tts_gateway.core.errors import TTSError
from tts_gateway.core.logging import configure_logging, fail, get_logger, info, set_request_id, warn
from tts_gateway.tts.keys import audio_path, derive_key, speech_marks_path
from tts_gateway.tts.models import Claim, SynthesisRequest, marks_to_json
from tts_gateway.tts.ssml import build_ssml


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tts-gateway CLI (serverless synth)")

    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")

    parser.add_argument("--voice", help="Voice override")
    parser.add_argument("--rate", help="Prosody rate override (e.g. 1.2)")
    parser.add_argument("--language", help="Language override (e.g. en-US)")
    parser.add_argument("--user", default="cli", help="User id charged for the characters")
    parser.add_argument("--high-fidelity", action="store_true",
                        help="Request an ultra-realistic voice")

    parser.add_argument("--out", default="out.mp3", help="Audio output path")
    parser.add_argument("--marks", help="Speech marks output path (JSON)")

    parser.add_argument("--dry-run", action="store_true",
                        help="Resolve SSML and cache key without synthesis")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")
    parser.add_argument("--backends", help="Comma separated backend order override")
    parser.add_argument("--config", help="Settings file path")

    return parser.parse_args(argv)


def _load(path: Optional[str], log) -> Settings:
    try:
        return load_settings(path)
    except FileNotFoundError as e:
        warn(log, "settings_missing", error=str(e))
        return Settings(raw={})


def _emit(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


async def _synthesize(settings: Settings, request: SynthesisRequest, args: argparse.Namespace, rid: str):
    from tts_gateway.services.synthesis_service import SynthesisService

    order = [b.strip().lower() for b in args.backends.split(",") if b.strip()] if args.backends else None
    service = SynthesisService.from_settings(settings, backend_order=order)
    feature = service.config.synthesis.high_fidelity_feature
    claim = Claim(uid=args.user)
    if args.high_fidelity:
        # the CLI operator holds every feature grant
        claim = Claim(uid=args.user, feature_name=feature, granted_at=datetime.now(timezone.utc).isoformat())
    try:
        return await service.synthesize_utterance(request, args.user, claim=claim, request_id=rid)
    finally:
        await service.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for synthesis errors).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("tts-gateway.cli")
    rid = str(uuid4())[:12]
    set_request_id(rid)

    text = args.text or args.text_pos
    if not text:
        raise SystemExit("Provide --text or a positional text.")

    settings = _load(args.config, log)
    request = SynthesisRequest(
        text=text,
        voice=args.voice,
        rate=args.rate,
        language=args.language,
        is_high_fidelity=args.high_fidelity,
    )

    if args.dry_run:
        config = settings.get_config()
        ssml = build_ssml(
            text,
            voice=args.voice or config.synthesis.default_voice,
            rate=args.rate or config.synthesis.default_rate,
            language=args.language or config.synthesis.default_language,
        )
        key = derive_key(ssml)
        payload = {
            "ok": True,
            "dry_run": True,
            "text_len": len(text),
            "ssml": ssml,
            "key": key,
            "audio_path": audio_path(key, config.storage.prefix),
            "speech_marks_path": speech_marks_path(key, config.storage.prefix),
        }
        info(log, "dry_run", key=key[:8], chars=len(text))
        _emit(payload, args.json)
        print("DRY_RUN_OK")
        return 0

    try:
        result = asyncio.run(_synthesize(settings, request, args, rid))
    except TTSError as e:
        fail(log, "cli_failed", code=e.code, error=e.message)
        _emit(e.to_dict(), args.json)
        return 1

    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(result.audio)
    payload = {
        "ok": True,
        "dry_run": False,
        "out": str(out_path),
        "bytes": len(result.audio),
        "cache": result.cache_status,
        "speech_marks": len(result.speech_marks),
    }
    if args.marks:
        marks_out = Path(args.marks)
        marks_out.parent.mkdir(parents=True, exist_ok=True)
        marks_out.write_bytes(marks_to_json(result.speech_marks))
        payload["marks"] = str(marks_out)

    _emit(payload, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
