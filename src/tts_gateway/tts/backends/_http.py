"""Shared httpx plumbing for the vendor backends."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from tts_gateway.core.config import Defaults
from tts_gateway.tts.backend import AudioSink, SynthesisBackend


def parse_speed(rate: Optional[str], default: float = 1.0) -> float:
    """
    Turn a prosody rate into a numeric speed multiplier.

    Accepts "1.25", "x-slow".."x-fast" and relative "+20%"/"-10%".
    """
    if rate is None:
        return default
    text = str(rate).strip().lower()
    named = {"x-slow": 0.5, "slow": 0.75, "medium": 1.0, "default": 1.0, "fast": 1.25, "x-fast": 1.5}
    if text in named:
        return named[text]
    try:
        if text.endswith("%"):
            return max(0.25, 1.0 + float(text[:-1]) / 100.0)
        return float(text)
    except ValueError:
        return default


class HttpBackend(SynthesisBackend):
    """
    SynthesisBackend talking to a vendor over HTTP.

    The AsyncClient is created lazily so constructing a backend never opens
    sockets; tests pass an httpx.MockTransport via `transport`.
    """

    def __init__(
        self,
        timeout_s: float = Defaults.BACKENDS_HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout_s = float(timeout_s)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport)
        return self._client

    def _headers(self) -> Dict[str, Any]:
        return {}

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _stream_post(self, url: str, sink: Optional[AudioSink] = None, **kwargs: Any) -> bytes:
        """POST and collect the response body, forwarding each chunk to `sink`."""
        chunks = []
        async with self.client.stream("POST", url, headers=self._headers(), **kwargs) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                if not chunk:
                    continue
                chunks.append(chunk)
                if sink is not None:
                    await sink.write(chunk)
        return b"".join(chunks)
