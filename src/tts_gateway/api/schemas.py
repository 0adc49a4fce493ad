"""
API request/response schemas.

Example utterance request:
    {
        "text": "Hello <break time=\"200ms\"/> world",
        "idx": 3,
        "voice": "en-US-JennyNeural",
        "rate": "1.1",
        "language": "en-US",
        "is_ultra_realistic_voice": false
    }
"""
from __future__ import annotations

from typing import Any, Dict, List, Union

from pydantic import BaseModel, Field

from tts_gateway.tts.models import SynthesisRequest


class UtteranceRequest(BaseModel):
    """
    Body of POST /v1/utterance.

    `text` may be empty: the response is then empty audio and nothing is
    synthesized or counted. Length is bounded by the rate limiter, which
    answers 429 for text over the daily budget.
    """
    text: str = Field(
        default="",
        description="Utterance text; may contain inline SSML tags",
    )
    idx: Union[int, str, None] = Field(
        default=None,
        description="Client-side utterance index, echoed back",
    )
    voice: str | None = Field(default=None, description="Voice id; 'openai-*' selects OpenAI")
    rate: str | None = Field(default=None, description="Prosody rate, e.g. '1.0' or '+10%'")
    language: str | None = Field(default=None, description="BCP-47 language tag")
    is_ultra_realistic_voice: bool = Field(
        default=False,
        description="Use the high-fidelity backend (requires the feature grant)",
    )

    def to_synthesis_request(self) -> SynthesisRequest:
        return SynthesisRequest(
            text=self.text,
            voice=self.voice,
            rate=self.rate,
            language=self.language,
            is_high_fidelity=self.is_ultra_realistic_voice,
        )


class UtteranceResponse(BaseModel):
    idx: Union[int, str, None] = None
    audio_data: str = Field(..., description="Hex-encoded audio, empty for empty input")
    speech_marks: List[Dict[str, Any]] = Field(default_factory=list)
    cache: str = Field(..., description="ephemeral | durable | miss | empty | none")


class DocumentRequest(BaseModel):
    """Body of POST /v1/document. `id` names the job and its output files."""
    id: str = Field(..., min_length=1, max_length=200, pattern=r"^[A-Za-z0-9._-]+$")
    text: str = Field(..., description="Document HTML")
    voice: str | None = None
    rate: str | None = None
    language: str | None = None
    is_ultra_realistic_voice: bool = False

    def to_synthesis_request(self) -> SynthesisRequest:
        return SynthesisRequest(
            text=self.text,
            voice=self.voice,
            rate=self.rate,
            language=self.language,
            is_high_fidelity=self.is_ultra_realistic_voice,
        )


class DocumentResponse(BaseModel):
    ok: bool = True
    id: str
    audio_file: str
    speech_marks_file: str | None = None
    bytes: int = 0
