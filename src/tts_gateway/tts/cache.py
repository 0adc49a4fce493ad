"""
Ephemeral key-value stores (the fast cache tier).

Two implementations of the same small protocol:
    - MemoryKVStore: in-process LRU with per-entry expiry, for single-process
      deployments, the CLI and tests
    - RedisKVStore: shared store via redis.asyncio

Both offer only get() and set_if_absent(). Entries are never updated in
place: the first writer wins and racing writers are dropped, which is the
only race resolution the pipeline relies on.

Example:
    >>> store = MemoryKVStore(max_items=1024)
    >>> await store.set_if_absent("k", b"v", ttl_seconds=60)
    True
    >>> await store.set_if_absent("k", b"other", ttl_seconds=60)
    False
"""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from tts_gateway.core.config import Defaults, GatewayConfig
from tts_gateway.core.errors import StoreUnavailable
from tts_gateway.core.logging import debug, get_logger, info, verbose

_LOG = get_logger("tts-gateway.cache")


class KVStore(Protocol):
    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set_if_absent(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        ...


@dataclass
class _Item:
    value: bytes
    expires_at: float


class MemoryKVStore:
    """
    Thread-safe in-process store with LRU eviction and per-entry TTL.

    Expired entries are dropped on access; when capacity is exceeded the
    least recently used entry is evicted.

    Statistics:
        stats() reports hits, misses, expirations, rejected writes and size.
    """

    def __init__(self, max_items: int = Defaults.CACHE_MAX_ITEMS):
        self.max_items = int(max_items)
        self._d: "OrderedDict[str, _Item]" = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._rejected = 0

    def _live(self, key: str, now: float) -> Optional[_Item]:
        # caller holds the lock
        item = self._d.get(key)
        if item is None:
            return None
        if item.expires_at <= now:
            del self._d[key]
            self._expirations += 1
            return None
        return item

    async def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            item = self._live(key, time.time())
            if item is None:
                self._misses += 1
                return None
            self._d.move_to_end(key)
            self._hits += 1
            return item.value

    async def set_if_absent(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        with self._lock:
            now = time.time()
            if self._live(key, now) is not None:
                self._rejected += 1
                debug(_LOG, "set_rejected", key=key[:16])
                return False

            self._d[key] = _Item(value=bytes(value), expires_at=now + int(ttl_seconds))
            self._d.move_to_end(key)
            while len(self._d) > self.max_items:
                evicted, _ = self._d.popitem(last=False)
                verbose(_LOG, "evicted", key=evicted[:16])
            return True

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until `key` expires, None if absent."""
        with self._lock:
            now = time.time()
            item = self._live(key, now)
            return None if item is None else item.expires_at - now

    def clear(self) -> int:
        with self._lock:
            count = len(self._d)
            self._d.clear()
            return count

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "expirations": self._expirations,
                "rejected": self._rejected,
                "size": len(self._d),
                "max_items": self.max_items,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._d)

    def __contains__(self, key: str) -> bool:
        """Does NOT check expiry; use get() for that."""
        with self._lock:
            return key in self._d


class RedisKVStore:
    """
    Redis-backed store.

    set_if_absent() maps to SET key value EX ttl NX. Redis errors surface
    as StoreUnavailable so callers can decide whether to degrade.
    """

    def __init__(self, client: "aioredis.Redis"):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKVStore":
        return cls(aioredis.Redis.from_url(url))

    async def get(self, key: str) -> Optional[bytes]:
        try:
            value = await self._client.get(key)
        except RedisError as e:
            raise StoreUnavailable(f"redis get failed: {e}", details={"op": "get"}) from e
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    async def set_if_absent(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        try:
            created = await self._client.set(key, value, ex=int(ttl_seconds), nx=True)
        except RedisError as e:
            raise StoreUnavailable(f"redis set failed: {e}", details={"op": "set"}) from e
        return bool(created)

    async def aclose(self) -> None:
        await self._client.aclose()


def create_kv_store(config: GatewayConfig) -> KVStore:
    """Build the ephemeral store named by cache.backend."""
    if config.cache.backend == "redis":
        info(_LOG, "kv_store", backend="redis")
        return RedisKVStore.from_url(config.cache.redis_url)
    info(_LOG, "kv_store", backend="memory", max_items=config.cache.max_items)
    return MemoryKVStore(max_items=config.cache.max_items)
