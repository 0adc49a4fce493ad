"""Azure Cognitive Services speech backend (SSML over REST)."""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

import httpx

from tts_gateway.core.config import Defaults
from tts_gateway.tts.backend import AudioSink
from tts_gateway.tts.backends._http import HttpBackend
from tts_gateway.tts.models import SynthesisRequest, SynthesisResult

DEFAULT_OUTPUT_FORMAT = "audio-24khz-48kbitrate-mono-mp3"


class AzureBackend(HttpBackend):
    """
    Standard voice backend. Accepts every request that is not high fidelity.

    The SSML envelope is posted as-is; Azure's REST endpoint returns audio
    only, so results carry no speech marks.
    """

    name = "azure"

    def __init__(
        self,
        api_key: str,
        region: str,
        output_format: str = DEFAULT_OUTPUT_FORMAT,
        endpoint: Optional[str] = None,
        timeout_s: float = Defaults.BACKENDS_HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout_s=timeout_s, transport=transport)
        self.api_key = api_key
        self.region = region
        self.output_format = output_format
        self.endpoint = endpoint or f"https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"

    @classmethod
    def from_options(cls, options: Dict[str, Any], timeout_s: float, transport=None) -> Optional["AzureBackend"]:
        api_key = os.getenv("AZURE_SPEECH_KEY") or options.get("api_key")
        region = os.getenv("AZURE_SPEECH_REGION") or options.get("region")
        if not api_key or not region:
            return None
        return cls(
            api_key=api_key,
            region=region,
            output_format=options.get("output_format", DEFAULT_OUTPUT_FORMAT),
            endpoint=options.get("endpoint"),
            timeout_s=timeout_s,
            transport=transport,
        )

    def supports(self, request: SynthesisRequest) -> bool:
        return not request.is_high_fidelity

    def _headers(self) -> Dict[str, Any]:
        return {
            "Ocp-Apim-Subscription-Key": self.api_key,
            "Content-Type": "application/ssml+xml",
            "X-Microsoft-OutputFormat": self.output_format,
            "User-Agent": "tts-gateway",
        }

    async def synthesize(self, request: SynthesisRequest, sink: Optional[AudioSink] = None) -> SynthesisResult:
        audio = await self._stream_post(self.endpoint, sink, content=request.text.encode("utf-8"))
        return SynthesisResult(audio=audio, speech_marks=[])
