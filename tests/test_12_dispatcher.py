"""
Tests for the backend dispatcher.

Tests cover:
- First backend (in priority order) that supports the request wins
- NoBackendAvailable when none does
- Timeouts become SynthesisTimeout
- Backend exceptions become SynthesisFailed, no failover
- Default synthesize() writes the buffer to a sink
"""
from __future__ import annotations

import asyncio
from typing import List

import pytest

from tts_gateway.core.errors import (
    ErrorCode,
    InvalidInput,
    NoBackendAvailable,
    SynthesisFailed,
    SynthesisTimeout,
)
from tts_gateway.tts.backend import BackendDispatcher, SynthesisBackend
from tts_gateway.tts.models import SynthesisRequest, SynthesisResult


class FakeBackend(SynthesisBackend):
    def __init__(self, name, accepts=lambda r: True, audio=b"audio", error=None, delay=0.0):
        self.name = name
        self._accepts = accepts
        self._audio = audio
        self._error = error
        self._delay = delay
        self.calls: List[SynthesisRequest] = []
        self.closed = False

    def supports(self, request):
        return self._accepts(request)

    async def _synthesize(self, request):
        self.calls.append(request)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return SynthesisResult(audio=self._audio)

    async def aclose(self):
        self.closed = True


class CollectingSink:
    def __init__(self):
        self.chunks = []

    async def write(self, chunk):
        self.chunks.append(chunk)


class TestSelection:
    def test_first_match_wins(self):
        premium = FakeBackend("premium", accepts=lambda r: r.is_high_fidelity)
        standard = FakeBackend("standard", accepts=lambda r: not r.is_high_fidelity)
        fallback = FakeBackend("fallback")
        dispatcher = BackendDispatcher([premium, standard, fallback])

        assert dispatcher.select(SynthesisRequest(text="x")) is standard
        assert dispatcher.select(SynthesisRequest(text="x", is_high_fidelity=True)) is premium

    def test_order_matters(self):
        a, b = FakeBackend("a"), FakeBackend("b")
        assert BackendDispatcher([b, a]).select(SynthesisRequest(text="x")) is b

    def test_no_backend(self):
        dispatcher = BackendDispatcher([FakeBackend("never", accepts=lambda r: False)])
        with pytest.raises(NoBackendAvailable) as exc_info:
            dispatcher.select(SynthesisRequest(text="x", voice="v"))
        assert exc_info.value.message == "No text to speech backend found"
        assert exc_info.value.details["registered"] == ["never"]

    def test_empty_registry(self):
        with pytest.raises(NoBackendAvailable):
            asyncio.run(BackendDispatcher([]).dispatch(SynthesisRequest(text="x")))

    def test_names(self):
        assert BackendDispatcher([FakeBackend("a"), FakeBackend("b")]).names() == ["a", "b"]


class TestDispatch:
    def test_success(self):
        backend = FakeBackend("a", audio=b"mp3")
        result = asyncio.run(BackendDispatcher([backend]).dispatch(SynthesisRequest(text="x")))
        assert result.audio == b"mp3"
        assert len(backend.calls) == 1

    def test_tie_goes_to_first_registered(self):
        first, second = FakeBackend("first", audio=b"1"), FakeBackend("second", audio=b"2")
        result = asyncio.run(BackendDispatcher([first, second]).dispatch(SynthesisRequest(text="x")))
        assert result.audio == b"1"
        assert len(first.calls) == 1
        assert second.calls == []

    def test_sink_receives_audio(self):
        sink = CollectingSink()
        asyncio.run(BackendDispatcher([FakeBackend("a", audio=b"mp3")]).dispatch(SynthesisRequest(text="x"), sink))
        assert sink.chunks == [b"mp3"]

    def test_failure_is_not_failed_over(self):
        broken = FakeBackend("broken", error=RuntimeError("vendor 500"))
        spare = FakeBackend("spare")
        with pytest.raises(SynthesisFailed) as exc_info:
            asyncio.run(BackendDispatcher([broken, spare]).dispatch(SynthesisRequest(text="x")))
        assert exc_info.value.code == ErrorCode.SYNTHESIS_FAILED
        assert exc_info.value.details["backend"] == "broken"
        assert spare.calls == []

    def test_tts_error_wrapped(self):
        backend = FakeBackend("a", error=InvalidInput("bad voice", details={"voice": "v"}))
        with pytest.raises(SynthesisFailed) as exc_info:
            asyncio.run(BackendDispatcher([backend]).dispatch(SynthesisRequest(text="x")))
        assert exc_info.value.details == {"backend": "a", "voice": "v"}

    def test_timeout(self):
        slow = FakeBackend("slow", delay=1.0)
        with pytest.raises(SynthesisTimeout) as exc_info:
            asyncio.run(BackendDispatcher([slow], timeout_s=0.05).dispatch(SynthesisRequest(text="x")))
        assert exc_info.value.code == ErrorCode.TIMEOUT

    def test_aclose_closes_backends(self):
        a, b = FakeBackend("a"), FakeBackend("b")
        asyncio.run(BackendDispatcher([a, b]).aclose())
        assert a.closed and b.closed
