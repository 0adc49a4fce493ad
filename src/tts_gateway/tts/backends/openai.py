"""OpenAI speech backend (POST /audio/speech)."""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

import httpx

from tts_gateway.core.config import Defaults
from tts_gateway.tts.backend import AudioSink
from tts_gateway.tts.backends._http import HttpBackend, parse_speed
from tts_gateway.tts.models import SynthesisRequest, SynthesisResult

VOICE_PREFIX = "openai-"


class OpenAIBackend(HttpBackend):
    """
    Handles requests whose voice is prefixed with "openai-" (e.g. "openai-alloy").

    OpenAI does not read SSML, so the plain text is sent and the prosody rate
    becomes the `speed` parameter. No speech marks are returned.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "tts-1",
        response_format: str = "mp3",
        timeout_s: float = Defaults.BACKENDS_HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout_s=timeout_s, transport=transport)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.response_format = response_format

    @classmethod
    def from_options(cls, options: Dict[str, Any], timeout_s: float, transport=None) -> Optional["OpenAIBackend"]:
        api_key = os.getenv("OPENAI_API_KEY") or options.get("api_key")
        if not api_key:
            return None
        return cls(
            api_key=api_key,
            base_url=options.get("base_url", "https://api.openai.com/v1"),
            model=options.get("model", "tts-1"),
            response_format=options.get("response_format", "mp3"),
            timeout_s=timeout_s,
            transport=transport,
        )

    def supports(self, request: SynthesisRequest) -> bool:
        return bool(request.voice) and request.voice.startswith(VOICE_PREFIX)

    def _headers(self) -> Dict[str, Any]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _payload(self, request: SynthesisRequest) -> Dict[str, Any]:
        voice = (request.voice or "")[len(VOICE_PREFIX):] or "alloy"
        return {
            "model": self.model,
            "input": request.spoken_text,
            "voice": voice,
            "response_format": self.response_format,
            "speed": parse_speed(request.rate),
        }

    async def synthesize(self, request: SynthesisRequest, sink: Optional[AudioSink] = None) -> SynthesisResult:
        audio = await self._stream_post(f"{self.base_url}/audio/speech", sink, json=self._payload(request))
        return SynthesisResult(audio=audio, speech_marks=[])
