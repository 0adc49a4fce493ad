"""Tests for the per-user character budget."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from tts_gateway.core.config import RateLimitConfig
from tts_gateway.core.errors import StoreUnavailable
from tts_gateway.tts.cache import MemoryKVStore
from tts_gateway.tts.ratelimit import RateLimiter


def _limiter(store=None, **kwargs) -> RateLimiter:
    return RateLimiter(store if store is not None else MemoryKVStore(max_items=16), **kwargs)


class TestCheckAndReserve:
    def test_key_format(self):
        assert _limiter().key_for("user-1") == "ratelimit:user-1"

    def test_exactly_at_limit_allowed(self):
        decision = asyncio.run(_limiter().check_and_reserve("u", 50000))
        assert decision.allowed is True
        assert decision.new_total == 50000

    def test_one_over_limit_rejected(self):
        decision = asyncio.run(_limiter().check_and_reserve("u", 50001))
        assert decision.allowed is False

    def test_counts_existing_total(self):
        store = MemoryKVStore(max_items=16)
        limiter = _limiter(store, max_character_count=100)

        async def run():
            await limiter.commit("u", 90)
            return await limiter.check_and_reserve("u", 11)

        decision = asyncio.run(run())
        assert decision.current == 90
        assert decision.allowed is False

    def test_check_writes_nothing(self):
        store = MemoryKVStore(max_items=16)
        asyncio.run(_limiter(store).check_and_reserve("u", 10))
        assert len(store) == 0

    def test_disabled_always_allows(self):
        limiter = _limiter(enabled=False, max_character_count=1)
        assert asyncio.run(limiter.check_and_reserve("u", 1000)).allowed is True
        assert asyncio.run(limiter.commit("u", 1000)) is False


class TestCommit:
    def test_first_commit_written_with_ttl(self):
        store = MemoryKVStore(max_items=16)
        limiter = _limiter(store, ttl_seconds=86400)
        assert asyncio.run(limiter.commit("u", 12)) is True
        assert asyncio.run(store.get("ratelimit:u")) == b"12"
        assert store.ttl("ratelimit:u") > 86000

    def test_existing_counter_not_advanced(self):
        """Create-if-absent writes keep the first total in the window."""
        store = MemoryKVStore(max_items=16)
        limiter = _limiter(store)

        async def run():
            await limiter.commit("u", 10)
            decision = await limiter.check_and_reserve("u", 5)
            await limiter.commit("u", decision.new_total)
            return await limiter.current("u")

        assert asyncio.run(run()) == 10

    def test_store_failures_do_not_block(self):
        store = MagicMock()
        store.get = AsyncMock(side_effect=StoreUnavailable("down"))
        store.set_if_absent = AsyncMock(side_effect=StoreUnavailable("down"))
        limiter = _limiter(store)

        decision = asyncio.run(limiter.check_and_reserve("u", 10))
        assert decision.allowed is True
        assert decision.current == 0
        assert asyncio.run(limiter.commit("u", 10)) is False

    def test_unparseable_counter_reads_zero(self):
        store = MemoryKVStore(max_items=16)
        asyncio.run(store.set_if_absent("ratelimit:u", b"garbage", 60))
        assert asyncio.run(_limiter(store).current("u")) == 0


def test_from_config():
    config = RateLimitConfig(enabled=True, max_character_count=5, ttl_seconds=60, key_prefix="rl")
    limiter = RateLimiter.from_config(MemoryKVStore(), config)
    assert limiter.max_character_count == 5
    assert limiter.key_for("x") == "rl:x"
