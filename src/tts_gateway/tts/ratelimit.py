"""
Per-user daily character budget.

The counter lives in the ephemeral store under "ratelimit:<user_id>" and
is written create-if-absent with a 24 hour expiry. An existing counter is
therefore never advanced: the first committed total in a window is the
value every later check reads until it expires. Deployments relying on a
strict budget should use a store with an atomic increment instead.

Store failures never block a request: a failed read counts as zero and a
failed commit is logged and dropped.
"""
from __future__ import annotations

from dataclasses import dataclass

from tts_gateway.core.config import Defaults, RateLimitConfig
from tts_gateway.core.errors import StoreUnavailable
from tts_gateway.core.logging import get_logger, verbose, warn
from tts_gateway.tts.cache import KVStore

_LOG = get_logger("tts-gateway.ratelimit")


@dataclass(frozen=True)
class RateDecision:
    """Outcome of check_and_reserve(); pass new_total to commit()."""
    allowed: bool
    new_total: int
    current: int


class RateLimiter:
    def __init__(
        self,
        store: KVStore,
        max_character_count: int = Defaults.MAX_CHARACTER_COUNT,
        ttl_seconds: int = Defaults.RATE_LIMIT_TTL_SECONDS,
        key_prefix: str = Defaults.RATE_LIMIT_KEY_PREFIX,
        enabled: bool = True,
    ):
        self._store = store
        self.max_character_count = int(max_character_count)
        self.ttl_seconds = int(ttl_seconds)
        self.key_prefix = key_prefix
        self.enabled = enabled

    @classmethod
    def from_config(cls, store: KVStore, config: RateLimitConfig) -> "RateLimiter":
        return cls(
            store,
            max_character_count=config.max_character_count,
            ttl_seconds=config.ttl_seconds,
            key_prefix=config.key_prefix,
            enabled=config.enabled,
        )

    def key_for(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    async def current(self, user_id: str) -> int:
        """Characters counted for `user_id` in the current window (0 on any failure)."""
        try:
            raw = await self._store.get(self.key_for(user_id))
        except StoreUnavailable as e:
            warn(_LOG, "budget_read_failed", user=user_id, error=e.message)
            return 0
        if raw is None:
            return 0
        try:
            return int(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
        except ValueError:
            warn(_LOG, "budget_unparseable", user=user_id)
            return 0

    async def check_and_reserve(self, user_id: str, increment: int) -> RateDecision:
        """
        Decide whether `increment` more characters fit in the budget.

        Nothing is written here; call commit() once synthesis succeeded.
        """
        if not self.enabled:
            return RateDecision(allowed=True, new_total=int(increment), current=0)

        current = await self.current(user_id)
        new_total = current + int(increment)
        decision = RateDecision(
            allowed=new_total <= self.max_character_count,
            new_total=new_total,
            current=current,
        )
        verbose(
            _LOG, "budget_check",
            user=user_id,
            current=current,
            new_total=new_total,
            allowed=decision.allowed,
        )
        return decision

    async def commit(self, user_id: str, new_total: int) -> bool:
        """Record `new_total` if no counter exists yet. Returns True when written."""
        if not self.enabled:
            return False
        try:
            written = await self._store.set_if_absent(
                self.key_for(user_id),
                str(int(new_total)).encode("utf-8"),
                self.ttl_seconds,
            )
        except StoreUnavailable as e:
            warn(_LOG, "budget_commit_failed", user=user_id, error=e.message)
            return False
        verbose(_LOG, "budget_commit", user=user_id, new_total=new_total, written=written)
        return written
