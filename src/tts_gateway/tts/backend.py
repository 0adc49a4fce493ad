"""
Synthesis backend base class and priority dispatcher.

A backend is an opaque capability provider: it declares which requests it
accepts (`supports`) and turns an accepted request into audio plus speech
marks (`synthesize`). The dispatcher holds backends in priority order and
hands each request to the first one that accepts it.

Failure policy:
    - no backend accepts the request  -> NoBackendAvailable (never retried)
    - the selected backend raises     -> SynthesisFailed (no retry, no failover)
    - the call exceeds timeout_s      -> SynthesisTimeout
    - asyncio.CancelledError          -> propagates untouched

Implementing a new backend:
    1. Create backends/<name>.py with a SynthesisBackend subclass
    2. Implement supports() and _synthesize()
    3. Register it in backends.build_backends()
"""
from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol, Sequence

from tts_gateway.core.config import Defaults
from tts_gateway.core.errors import NoBackendAvailable, SynthesisFailed, SynthesisTimeout, TTSError
from tts_gateway.core.logging import fail, get_logger, verbose
from tts_gateway.core.metrics import metrics
from tts_gateway.tts.models import SynthesisRequest, SynthesisResult
from tts_gateway.utils.timeit import timeit

_LOG = get_logger("tts-gateway.backend")


class AudioSink(Protocol):
    """Destination for streamed audio chunks (see storage.ObjectStore.writer)."""

    async def write(self, chunk: bytes) -> None:
        ...


class SynthesisBackend:
    """
    Base class for synthesis backends.

    Subclasses implement supports() and _synthesize(). Backends that can
    stream override synthesize() to push chunks into the sink as they
    arrive; the default writes the whole buffer once synthesis completes.

    The returned SynthesisResult always carries the complete audio.
    """

    name: str = "base"

    def supports(self, request: SynthesisRequest) -> bool:
        raise NotImplementedError

    async def _synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        raise NotImplementedError

    async def synthesize(self, request: SynthesisRequest, sink: Optional[AudioSink] = None) -> SynthesisResult:
        result = await self._synthesize(request)
        if sink is not None and result.audio:
            await sink.write(result.audio)
        return result

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class BackendDispatcher:
    """
    Ordered registry of backends. First match wins.

    Example:
        dispatcher = BackendDispatcher([openai, azure, elevenlabs], timeout_s=60)
        result = await dispatcher.dispatch(request)
    """

    def __init__(
        self,
        backends: Sequence[SynthesisBackend],
        timeout_s: float = Defaults.TTS_SYNTHESIS_TIMEOUT_S,
    ):
        self._backends: List[SynthesisBackend] = list(backends)
        self.timeout_s = float(timeout_s)

    @property
    def backends(self) -> List[SynthesisBackend]:
        return list(self._backends)

    def names(self) -> List[str]:
        return [b.name for b in self._backends]

    def select(self, request: SynthesisRequest) -> SynthesisBackend:
        """
        Return the first backend, in priority order, that accepts `request`.

        Raises:
            NoBackendAvailable: If none does.
        """
        for backend in self._backends:
            if backend.supports(request):
                return backend
        raise NoBackendAvailable(
            "No text to speech backend found",
            details={
                "voice": request.voice,
                "is_high_fidelity": request.is_high_fidelity,
                "registered": self.names(),
            },
        )

    async def dispatch(self, request: SynthesisRequest, sink: Optional[AudioSink] = None) -> SynthesisResult:
        """
        Synthesize `request` on the selected backend.

        Raises:
            NoBackendAvailable: No backend accepts the request.
            SynthesisTimeout: The backend exceeded timeout_s.
            SynthesisFailed: The backend raised.
        """
        backend = self.select(request)
        verbose(_LOG, "backend_selected", backend=backend.name, chars=len(request.text))

        with timeit("dispatch") as t:
            try:
                result = await asyncio.wait_for(backend.synthesize(request, sink), timeout=self.timeout_s)
            except asyncio.TimeoutError as e:
                metrics.record_dispatch(backend.name, "timeout")
                fail(_LOG, "backend_timeout", backend=backend.name, timeout_s=self.timeout_s)
                raise SynthesisTimeout(
                    f"Backend {backend.name} timed out after {self.timeout_s:.1f}s",
                    details={"backend": backend.name},
                ) from e
            except TTSError as e:
                metrics.record_dispatch(backend.name, "error")
                if isinstance(e, SynthesisFailed):
                    raise
                raise SynthesisFailed(e.message, details={"backend": backend.name, **e.details}) from e
            except Exception as e:
                metrics.record_dispatch(backend.name, "error")
                fail(_LOG, "backend_error", backend=backend.name, error=f"{type(e).__name__}: {e}")
                raise SynthesisFailed(
                    f"Backend {backend.name} failed: {e}",
                    details={"backend": backend.name},
                ) from e

        metrics.record_dispatch(backend.name, "success", characters=len(request.spoken_text))
        verbose(
            _LOG, "backend_done",
            backend=backend.name,
            bytes=len(result.audio),
            marks=len(result.speech_marks),
            seconds=round(t.elapsed, 4),
        )
        return result

    async def aclose(self) -> None:
        for backend in self._backends:
            await backend.aclose()
