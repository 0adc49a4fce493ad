"""
Data types shared by the synthesis pipeline.

SpeechMark and CacheEntry serialize to the camelCase JSON objects that
clients and previously written cache entries use.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from tts_gateway.core.config import Defaults


class InputKind(str, Enum):
    """Markup carried by SynthesisRequest.text."""
    HTML = "html"
    SSML = "ssml"


@dataclass(frozen=True)
class SynthesisRequest:
    """
    One synthesis job as seen by the backends.

    Attributes:
        text: Input text (SSML for utterances, HTML for documents).
        voice: Backend voice identifier; None means the configured default.
        rate: Prosody rate, e.g. "1.0" or "+10%".
        language: BCP-47 language tag.
        is_high_fidelity: Request the premium voice backend.
        input_kind: Whether `text` is SSML or HTML.
    """
    text: str
    voice: Optional[str] = None
    rate: Optional[str] = None
    language: Optional[str] = None
    is_high_fidelity: bool = False
    input_kind: InputKind = InputKind.SSML
    # Plain text for backends that do not accept markup; falls back to `text`.
    plain_text: Optional[str] = None

    @property
    def spoken_text(self) -> str:
        return self.plain_text if self.plain_text is not None else self.text


@dataclass
class SpeechMark:
    """
    A time-aligned marker in the synthesized audio.

    `time` is the millisecond offset into the audio; `start`/`end` are
    character offsets into the input text.
    """
    type: str
    time: int
    value: str
    start: Optional[int] = None
    end: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type, "time": self.time, "value": self.value}
        if self.start is not None:
            d["start"] = self.start
        if self.end is not None:
            d["end"] = self.end
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpeechMark":
        return cls(
            type=str(data.get("type", "word")),
            time=int(data.get("time", 0)),
            value=str(data.get("value", "")),
            start=data.get("start"),
            end=data.get("end"),
        )


def marks_to_json(marks: List[SpeechMark]) -> bytes:
    return json.dumps([m.to_dict() for m in marks], ensure_ascii=False).encode("utf-8")


def marks_from_json(data: bytes) -> List[SpeechMark]:
    return [SpeechMark.from_dict(item) for item in json.loads(data.decode("utf-8"))]


@dataclass
class SynthesisResult:
    """Audio bytes plus speech marks, produced once per successful synthesis."""
    audio: bytes
    speech_marks: List[SpeechMark] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return len(self.audio) == 0


@dataclass
class CacheEntry:
    """
    Value stored in the ephemeral tier under the content key.

    Stored as {"audioHex": "...", "speechMarks": [...]}.
    """
    audio_hex: str
    speech_marks: List[SpeechMark] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "CacheEntry":
        return cls(audio_hex="", speech_marks=[])

    @classmethod
    def from_result(cls, result: SynthesisResult) -> "CacheEntry":
        return cls(audio_hex=result.audio.hex(), speech_marks=list(result.speech_marks))

    def to_json(self) -> bytes:
        payload = {
            "audioHex": self.audio_hex,
            "speechMarks": [m.to_dict() for m in self.speech_marks],
        }
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> "CacheEntry":
        payload = json.loads(data.decode("utf-8"))
        return cls(
            audio_hex=str(payload.get("audioHex", "")),
            speech_marks=[SpeechMark.from_dict(m) for m in payload.get("speechMarks") or []],
        )


@dataclass(frozen=True)
class Claim:
    """Pre-verified caller identity and feature grant."""
    uid: str
    feature_name: Optional[str] = None
    granted_at: Optional[str] = None

    def grants(self, feature: str = Defaults.HIGH_FIDELITY_FEATURE) -> bool:
        return self.feature_name == feature and bool(self.granted_at)
