"""
Content-addressed cache keys and durable object names.

The key is the SHA-256 hex digest of the assembled SSML, so every input that
changes the audio (text, voice, rate, language) changes the key.
"""
from __future__ import annotations

import hashlib

from tts_gateway.core.config import Defaults

AUDIO_EXTENSION = "mp3"
MARKS_EXTENSION = "json"


def derive_key(value: str) -> str:
    """64-char lowercase hex SHA-256 over the UTF-8 bytes of `value`."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def audio_path(name: str, prefix: str = Defaults.STORAGE_PREFIX) -> str:
    """speech/<name>.mp3"""
    return f"{prefix}/{name}.{AUDIO_EXTENSION}" if prefix else f"{name}.{AUDIO_EXTENSION}"


def speech_marks_path(name: str, prefix: str = Defaults.STORAGE_PREFIX) -> str:
    """speech/<name>.json"""
    return f"{prefix}/{name}.{MARKS_EXTENSION}" if prefix else f"{name}.{MARKS_EXTENSION}"
