"""ElevenLabs backend for high-fidelity voices, with word-level speech marks."""
from __future__ import annotations

import base64
import os
from typing import Any, Dict, List, Optional

import httpx

from tts_gateway.core.config import Defaults
from tts_gateway.tts.backends._http import HttpBackend
from tts_gateway.tts.models import SpeechMark, SynthesisRequest, SynthesisResult

DEFAULT_MODEL = "eleven_multilingual_v2"
DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"


def alignment_to_marks(alignment: Optional[Dict[str, Any]]) -> List[SpeechMark]:
    """
    Group ElevenLabs character alignment into word speech marks.

    The alignment lists every input character with its start time in
    seconds; a word runs between whitespace characters and is stamped
    with the start time of its first character.
    """
    if not alignment:
        return []
    chars = alignment.get("characters") or []
    starts = alignment.get("character_start_times_seconds") or []

    marks: List[SpeechMark] = []
    word_start: Optional[int] = None
    for idx, ch in enumerate(list(chars) + [" "]):
        if ch.isspace():
            if word_start is not None:
                marks.append(SpeechMark(
                    type="word",
                    time=int(round(float(starts[word_start]) * 1000)) if word_start < len(starts) else 0,
                    value="".join(chars[word_start:idx]),
                    start=word_start,
                    end=idx,
                ))
                word_start = None
        elif word_start is None:
            word_start = idx
    return marks


class ElevenLabsBackend(HttpBackend):
    """Accepts high-fidelity requests only."""

    name = "elevenlabs"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io",
        model_id: str = DEFAULT_MODEL,
        default_voice_id: str = DEFAULT_VOICE_ID,
        output_format: str = "mp3_44100_128",
        timeout_s: float = Defaults.BACKENDS_HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout_s=timeout_s, transport=transport)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_id = model_id
        self.default_voice_id = default_voice_id
        self.output_format = output_format

    @classmethod
    def from_options(cls, options: Dict[str, Any], timeout_s: float, transport=None) -> Optional["ElevenLabsBackend"]:
        api_key = os.getenv("ELEVENLABS_API_KEY") or options.get("api_key")
        if not api_key:
            return None
        return cls(
            api_key=api_key,
            base_url=options.get("base_url", "https://api.elevenlabs.io"),
            model_id=options.get("model_id", DEFAULT_MODEL),
            default_voice_id=options.get("default_voice_id", DEFAULT_VOICE_ID),
            output_format=options.get("output_format", "mp3_44100_128"),
            timeout_s=timeout_s,
            transport=transport,
        )

    def supports(self, request: SynthesisRequest) -> bool:
        return request.is_high_fidelity

    def _headers(self) -> Dict[str, Any]:
        return {"xi-api-key": self.api_key, "Accept": "application/json"}

    async def _synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        voice_id = request.voice or self.default_voice_id
        response = await self.client.post(
            f"{self.base_url}/v1/text-to-speech/{voice_id}/with-timestamps",
            params={"output_format": self.output_format},
            headers=self._headers(),
            json={"text": request.spoken_text, "model_id": self.model_id},
        )
        response.raise_for_status()
        body = response.json()
        audio = base64.b64decode(body.get("audio_base64") or "")
        return SynthesisResult(audio=audio, speech_marks=alignment_to_marks(body.get("alignment")))
