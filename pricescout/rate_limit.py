"""Fixed-window, per-identity request limiter backed by Redis.

Each identity gets one counter per window (``floor(now / window)``). The
first increment in a window sets the key's expiry to the window length.
When Redis is unavailable the limiter fails open.
"""

from __future__ import annotations

import time
import logging
from enum import Enum
from typing import Callable, Optional

import redis.asyncio as redis
from pydantic import BaseModel

from .config.production import RateLimitConfig
from .observability import RATE_LIMIT_DECISIONS


class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class RateLimitResult(BaseModel):
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds


def window_key(identity: str, bucket: int) -> str:
    return f"ratelimit:{identity}:{bucket}"


class RateLimiter:
    """Counts requests per identity and window; never raises on storage errors."""

    def __init__(self,
                 client: Optional[redis.Redis],
                 config: Optional[RateLimitConfig] = None,
                 *,
                 clock: Callable[[], float] = time.time,
                 logger: Optional[logging.Logger] = None):
        self.client = client
        self.config = config or RateLimitConfig()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def limit_for(self, tier: SubscriptionTier) -> int:
        return self.config.tier_limits[tier.value]

    async def check_and_consume(self, identity: str,
                                tier: SubscriptionTier = SubscriptionTier.FREE) -> RateLimitResult:
        limit = self.limit_for(tier)
        window = self.config.window_seconds
        now = self.clock()

        if not self.config.enabled or self.client is None:
            return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset_at=now + window)

        key = window_key(identity, int(now // window))
        try:
            current = await self.client.incr(key)
            if current == 1:
                await self.client.expire(key, window)
            ttl = await self.client.ttl(key)
        except Exception as e:
            self.logger.error(f"Rate limit check error for {identity}: {e}")
            RATE_LIMIT_DECISIONS.labels(tier.value, "fail_open").inc()
            return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset_at=now + window)

        # -1 / -2 mean no expiry / no key; fall back to a full window
        if ttl is None or ttl < 0:
            ttl = window

        allowed = current <= limit
        RATE_LIMIT_DECISIONS.labels(tier.value, "allowed" if allowed else "rejected").inc()
        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - current),
            reset_at=now + ttl,
        )

    async def reset(self, identity: str) -> int:
        """Delete every window counter for ``identity``. Returns the number of keys removed."""
        if self.client is None:
            return 0
        try:
            keys = [key async for key in self.client.scan_iter(match=f"ratelimit:{identity}:*")]
            if not keys:
                return 0
            removed = await self.client.delete(*keys)
        except Exception as e:
            self.logger.error(f"Rate limit reset failed for {identity}: {e}")
            return 0
        self.logger.info(f"Reset {removed} rate limit window(s) for {identity}")
        return removed
