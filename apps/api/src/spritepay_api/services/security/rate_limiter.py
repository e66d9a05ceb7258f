"""Sliding-window call admission keyed by an arbitrary identity string."""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict
from uuid import uuid4

from loguru import logger
from redis.asyncio import Redis

from spritepay_api.core.settings import settings
from spritepay_api.observability.referrals import get_referral_store

Clock = Callable[[], float]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class SlidingWindowRateLimiter:
    """Per-process limiter: at most ``max_requests`` per rolling ``window_ms`` per key.

    State lives in memory and does not survive a restart; use
    :class:`RedisSlidingWindowRateLimiter` when several instances share a limit.
    """

    def __init__(self, window_ms: float, max_requests: int, *, clock: Clock | None = None) -> None:
        if window_ms <= 0 or max_requests <= 0:
            raise ValueError("window_ms and max_requests must be positive")
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock or _monotonic_ms
        self._requests: Dict[str, Deque[float]] = {}

    def _prune(self, key: str, now: float) -> Deque[float]:
        window_start = now - self.window_ms
        timestamps = self._requests.setdefault(key, deque())
        while timestamps and timestamps[0] < window_start:
            timestamps.popleft()
        return timestamps

    def allow(self, key: str) -> bool:
        now = self._clock()
        timestamps = self._prune(key, now)
        if len(timestamps) >= self.max_requests:
            return False
        timestamps.append(now)
        return True

    def retry_after_ms(self, key: str) -> float:
        """Milliseconds until the next call for ``key`` would be admitted."""

        now = self._clock()
        timestamps = self._prune(key, now)
        if len(timestamps) < self.max_requests:
            return 0.0
        return max(timestamps[0] + self.window_ms - now, 0.0)


class RedisSlidingWindowRateLimiter:
    """Shared-store limiter backed by one Redis sorted set per key."""

    def __init__(
        self,
        redis_client: Redis | None = None,
        *,
        window_ms: float,
        max_requests: int,
        namespace: str = "ratelimit",
        clock: Clock | None = None,
    ) -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._namespace = namespace
        self._clock = clock or (lambda: time.time() * 1000.0)

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def allow(self, key: str) -> bool:
        now = self._clock()
        redis_key = self._key(key)
        await self._redis.zremrangebyscore(redis_key, "-inf", f"({now - self.window_ms}")
        count = await self._redis.zcard(redis_key)
        if count >= self.max_requests:
            return False
        await self._redis.zadd(redis_key, {f"{now}:{uuid4().hex}": now})
        await self._redis.pexpire(redis_key, int(self.window_ms))
        return True

    async def retry_after_ms(self, key: str) -> float:
        now = self._clock()
        redis_key = self._key(key)
        count = await self._redis.zcard(redis_key)
        if count < self.max_requests:
            return 0.0
        oldest = await self._redis.zrange(redis_key, 0, 0, withscores=True)
        if not oldest:
            return 0.0
        _, score = oldest[0]
        return max(float(score) + self.window_ms - now, 0.0)


class WithdrawalRateLimiter:
    """Caps withdrawal submissions per authenticated identity."""

    def __init__(self, limiter: SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter) -> None:
        self._limiter = limiter

    async def allow(self, user_key: str) -> bool:
        if isinstance(self._limiter, RedisSlidingWindowRateLimiter):
            allowed = await self._limiter.allow(user_key)
        else:
            allowed = self._limiter.allow(user_key)
        get_referral_store().record_rate_limit("withdrawal", allowed=allowed)
        if not allowed:
            logger.warning("Withdrawal submission rate limited", user_key=user_key)
        return allowed

    async def retry_after_seconds(self, user_key: str) -> float:
        if isinstance(self._limiter, RedisSlidingWindowRateLimiter):
            retry_ms = await self._limiter.retry_after_ms(user_key)
        else:
            retry_ms = self._limiter.retry_after_ms(user_key)
        return retry_ms / 1000.0


def build_withdrawal_rate_limiter() -> WithdrawalRateLimiter:
    window_ms = settings.withdrawal_rate_limit_window_seconds * 1000
    max_requests = settings.withdrawal_rate_limit_max_requests
    if settings.withdrawal_rate_limit_backend == "redis":
        return WithdrawalRateLimiter(
            RedisSlidingWindowRateLimiter(
                window_ms=window_ms,
                max_requests=max_requests,
                namespace="withdrawals:ratelimit",
            )
        )
    return WithdrawalRateLimiter(SlidingWindowRateLimiter(window_ms, max_requests))


__all__ = [
    "RedisSlidingWindowRateLimiter",
    "SlidingWindowRateLimiter",
    "WithdrawalRateLimiter",
    "build_withdrawal_rate_limiter",
]
