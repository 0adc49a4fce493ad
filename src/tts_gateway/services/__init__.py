"""
Service layer: the synthesis orchestrator sitting between the API and the
tts package (backends, stores, cache coordinator, rate limiter).
"""
from .synthesis_service import (
    DocumentResult,
    SynthesisService,
    UtteranceResult,
    close_service,
    get_service,
    reset_service,
)

__all__ = [
    "SynthesisService",
    "UtteranceResult",
    "DocumentResult",
    "close_service",
    "get_service",
    "reset_service",
]
