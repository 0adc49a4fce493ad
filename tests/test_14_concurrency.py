"""Tests for concurrent duplicate and cancelled utterance requests."""
from __future__ import annotations

import asyncio

import pytest

from tts_gateway.services.synthesis_service import SynthesisService
from tts_gateway.tts.backend import SynthesisBackend
from tts_gateway.tts.cache import MemoryKVStore
from tts_gateway.tts.coordinator import CacheStatus
from tts_gateway.tts.models import CacheEntry, SynthesisRequest, SynthesisResult
from tts_gateway.tts.storage import LocalObjectStore


class SlowBackend(SynthesisBackend):
    name = "slow"

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.calls = 0

    def supports(self, request):
        return True

    async def _synthesize(self, request):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return SynthesisResult(audio=f"audio-{request.plain_text}".encode("utf-8"))


def test_duplicates_leave_one_entry(tmp_path):
    kv = MemoryKVStore(max_items=16)
    backend = SlowBackend()
    service = SynthesisService.from_components([backend], kv=kv, objects=LocalObjectStore(str(tmp_path)))
    request = SynthesisRequest(text="Same words")

    async def run():
        return await asyncio.gather(*[
            service.synthesize_utterance(request, f"user-{i}") for i in range(5)
        ])

    results = asyncio.run(run())

    assert all(r.audio == b"audio-Same words" for r in results)
    assert all(r.cache_status in (CacheStatus.MISS, CacheStatus.EPHEMERAL) for r in results)
    key = service.utterance_key(request)
    assert CacheEntry.from_json(asyncio.run(kv.get(key))).audio_hex == b"audio-Same words".hex()
    assert [p.name for p in (tmp_path / "speech").iterdir()] == [f"{key}.mp3"]
    assert kv.stats()["size"] == 1 + 5  # one cache entry plus five budget counters


def test_distinct_texts_do_not_interfere(tmp_path):
    kv = MemoryKVStore(max_items=16)
    service = SynthesisService.from_components([SlowBackend()], kv=kv, objects=LocalObjectStore(str(tmp_path)))
    texts = ["one", "two", "three"]

    async def run():
        return await asyncio.gather(*[
            service.synthesize_utterance(SynthesisRequest(text=t), "user-1") for t in texts
        ])

    results = asyncio.run(run())
    assert [r.audio for r in results] == [b"audio-one", b"audio-two", b"audio-three"]
    assert all(r.cache_status == CacheStatus.MISS for r in results)


def test_cancelled_request_leaves_no_trace(tmp_path):
    kv = MemoryKVStore(max_items=16)
    backend = SlowBackend(delay=5.0)
    service = SynthesisService.from_components([backend], kv=kv, objects=LocalObjectStore(str(tmp_path)))
    request = SynthesisRequest(text="Never finished")

    async def run():
        task = asyncio.ensure_future(service.synthesize_utterance(request, "user-1"))
        while backend.calls == 0:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())

    key = service.utterance_key(request)
    assert asyncio.run(kv.get(key)) is None
    assert asyncio.run(kv.get("ratelimit:user-1")) is None
    assert not (tmp_path / "speech" / f"{key}.mp3").exists()
