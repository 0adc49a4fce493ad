"""
Two-tier cache coordinator.

Lookup order for a content key K:

    1. ephemeral store   K -> {"audioHex", "speechMarks"}           status "ephemeral"
    2. durable store     speech/K.mp3 (+ speech/K.json if present)  status "durable"
       a durable hit is copied back into the ephemeral store
    3. synthesize        zero-length audio -> nothing written       status "empty"
                         otherwise persist to durable, then ephemeral status "miss"

Failure handling:
    - ephemeral read/write failures degrade to a miss / no-op
    - durable read failures degrade to a miss (the request re-synthesizes)
    - a durable write failure after synthesis raises InternalCacheError,
      since the audio would otherwise be served but never stored

Concurrent requests for the same uncached key may both synthesize; the
ephemeral create-if-absent write keeps exactly one entry and durable writes
of identical content are idempotent.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from tts_gateway.core.config import Defaults
from tts_gateway.core.errors import InternalCacheError, StoreUnavailable
from tts_gateway.core.logging import debug, get_logger, info, warn
from tts_gateway.core.metrics import metrics
from tts_gateway.tts.cache import KVStore
from tts_gateway.tts.keys import audio_path, speech_marks_path
from tts_gateway.tts.models import CacheEntry, SpeechMark, SynthesisResult, marks_from_json, marks_to_json
from tts_gateway.tts.storage import AUDIO_CONTENT_TYPE, MARKS_CONTENT_TYPE, ObjectStore
from tts_gateway.utils.timeit import timeit

_LOG = get_logger("tts-gateway.coordinator")


class CacheStatus:
    EPHEMERAL = "ephemeral"
    DURABLE = "durable"
    MISS = "miss"
    EMPTY = "empty"


@dataclass
class CacheOutcome:
    entry: CacheEntry
    status: str

    @property
    def synthesized(self) -> bool:
        """True when a backend produced non-empty audio for this request."""
        return self.status == CacheStatus.MISS


class TwoTierCache:
    """
    Get-or-synthesize over an ephemeral KVStore and a durable ObjectStore.

    Args:
        kv: Ephemeral store.
        objects: Durable store.
        ttl_seconds: Expiry for ephemeral entries.
        prefix: Durable path prefix ("speech").
    """

    def __init__(
        self,
        kv: KVStore,
        objects: ObjectStore,
        ttl_seconds: int = Defaults.CACHE_TTL_SECONDS,
        prefix: str = Defaults.STORAGE_PREFIX,
    ):
        self.kv = kv
        self.objects = objects
        self.ttl_seconds = int(ttl_seconds)
        self.prefix = prefix

    async def _ephemeral_get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self.kv.get(key)
        except StoreUnavailable as e:
            metrics.record_cache("ephemeral", "error")
            warn(_LOG, "ephemeral_read_failed", key=key[:16], error=e.message)
            return None
        if raw is None:
            metrics.record_cache("ephemeral", "miss")
            return None
        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, TypeError, AttributeError) as e:
            metrics.record_cache("ephemeral", "error")
            warn(_LOG, "ephemeral_entry_corrupt", key=key[:16], error=str(e))
            return None
        metrics.record_cache("ephemeral", "hit")
        return entry

    async def _durable_get(self, key: str) -> Optional[CacheEntry]:
        audio_name = audio_path(key, self.prefix)
        marks_name = speech_marks_path(key, self.prefix)
        try:
            if not await self.objects.exists(audio_name):
                metrics.record_cache("durable", "miss")
                return None
            audio = await self.objects.get(audio_name)
            marks: List[SpeechMark] = []
            if await self.objects.exists(marks_name):
                marks = self._decode_marks(key, await self.objects.get(marks_name))
        except StoreUnavailable as e:
            metrics.record_cache("durable", "error")
            warn(_LOG, "durable_read_failed", key=key[:16], error=e.message)
            return None
        metrics.record_cache("durable", "hit")
        return CacheEntry(audio_hex=audio.hex(), speech_marks=marks)

    @staticmethod
    def _decode_marks(key: str, data: bytes) -> List[SpeechMark]:
        try:
            return marks_from_json(data)
        except (ValueError, TypeError, AttributeError) as e:
            warn(_LOG, "speech_marks_corrupt", key=key[:16], error=str(e))
            return []

    async def lookup(self, key: str) -> Optional[Tuple[CacheEntry, str]]:
        """
        Check both tiers. A durable hit is written back to the ephemeral tier.

        Returns:
            (entry, status) on a hit, None on a miss in both tiers.
        """
        with timeit("lookup") as t:
            entry = await self._ephemeral_get(key)
            if entry is not None:
                info(_LOG, "cache_hit", tier=CacheStatus.EPHEMERAL, key=key[:8], seconds=round(t.elapsed, 5))
                return entry, CacheStatus.EPHEMERAL

            entry = await self._durable_get(key)
            if entry is not None:
                await self.populate(key, entry)
                info(_LOG, "cache_hit", tier=CacheStatus.DURABLE, key=key[:8], seconds=round(t.elapsed, 5))
                return entry, CacheStatus.DURABLE

        debug(_LOG, "cache_miss", key=key[:8])
        return None

    async def persist(self, key: str, result: SynthesisResult) -> None:
        """
        Write audio (and speech marks when there are any) to the durable store.

        Raises:
            InternalCacheError: If either write fails.
        """
        try:
            await self.objects.put(audio_path(key, self.prefix), result.audio, AUDIO_CONTENT_TYPE)
            if result.speech_marks:
                await self.objects.put(
                    speech_marks_path(key, self.prefix),
                    marks_to_json(result.speech_marks),
                    MARKS_CONTENT_TYPE,
                )
        except StoreUnavailable as e:
            raise InternalCacheError(
                "Failed to persist synthesized audio",
                details={"key": key, "cause": e.message},
            ) from e

    async def populate(self, key: str, entry: CacheEntry) -> bool:
        """
        Create the ephemeral entry if absent. Racing writers are dropped.

        Returns:
            True when this call created the entry.
        """
        try:
            created = await self.kv.set_if_absent(key, entry.to_json(), self.ttl_seconds)
        except StoreUnavailable as e:
            warn(_LOG, "ephemeral_write_failed", key=key[:16], error=e.message)
            return False
        debug(_LOG, "populate", key=key[:8], created=created)
        return created

    async def get_or_synthesize(
        self,
        key: str,
        synthesize: Callable[[], Awaitable[SynthesisResult]],
    ) -> CacheOutcome:
        """
        Return the cached entry for `key`, synthesizing and storing it on a miss.

        `synthesize` is only awaited when both tiers miss. Its exceptions
        propagate unchanged and nothing is written.
        """
        hit = await self.lookup(key)
        if hit is not None:
            entry, status = hit
            return CacheOutcome(entry=entry, status=status)

        result = await synthesize()
        if result.is_empty:
            info(_LOG, "synthesis_empty", key=key[:8])
            return CacheOutcome(entry=CacheEntry.empty(), status=CacheStatus.EMPTY)

        await self.persist(key, result)
        entry = CacheEntry.from_result(result)
        await self.populate(key, entry)
        return CacheOutcome(entry=entry, status=CacheStatus.MISS)
