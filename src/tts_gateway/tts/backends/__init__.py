"""
Vendor backends and the registry factory.

build_backends() instantiates the backends named in `backends.order`, in
that order. A backend without credentials is skipped with a warning, so a
deployment only needs keys for the vendors it actually uses.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

import httpx

from tts_gateway.core.config import GatewayConfig
from tts_gateway.core.errors import ConfigurationError
from tts_gateway.core.logging import get_logger, info, warn
from tts_gateway.tts.backend import SynthesisBackend

_LOG = get_logger("tts-gateway.backends")

KNOWN_BACKENDS = ("openai", "azure", "elevenlabs")


def _create_backend(name: str, config: GatewayConfig, transport=None) -> Optional[SynthesisBackend]:
    options = config.backends.for_backend(name)
    timeout_s = config.backends.http_timeout_s

    # Lazy imports keep each vendor module independent
    if name == "openai":
        from tts_gateway.tts.backends.openai import OpenAIBackend
        return OpenAIBackend.from_options(options, timeout_s, transport)
    if name == "azure":
        from tts_gateway.tts.backends.azure import AzureBackend
        return AzureBackend.from_options(options, timeout_s, transport)
    if name == "elevenlabs":
        from tts_gateway.tts.backends.elevenlabs import ElevenLabsBackend
        return ElevenLabsBackend.from_options(options, timeout_s, transport)

    raise ConfigurationError(
        f"Unknown backend: {name}",
        details={"known": list(KNOWN_BACKENDS)},
    )


def build_backends(
    config: GatewayConfig,
    order: Optional[Sequence[str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[SynthesisBackend]:
    """
    Build the priority-ordered backend list.

    Args:
        config: Validated gateway configuration.
        order: Override for config.backends.order.
        transport: httpx transport shared by all backends (tests).

    Raises:
        ConfigurationError: If `order` names an unknown backend.
    """
    backends: List[SynthesisBackend] = []
    for name in order or config.backends.order:
        backend = _create_backend(name, config, transport)
        if backend is None:
            warn(_LOG, "backend_skipped", backend=name, reason="missing credentials")
            continue
        backends.append(backend)

    info(_LOG, "backends_ready", order=",".join(b.name for b in backends) or "-")
    return backends


__all__ = ["KNOWN_BACKENDS", "build_backends"]
