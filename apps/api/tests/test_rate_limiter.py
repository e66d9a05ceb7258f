import pytest

from spritepay_api.observability.referrals import get_referral_store
from spritepay_api.services.security.rate_limiter import (
    RedisSlidingWindowRateLimiter,
    SlidingWindowRateLimiter,
    WithdrawalRateLimiter,
)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    def __init__(self) -> None:
        self.sets: dict[str, dict[str, float]] = {}
        self.expiry: dict[str, int] = {}

    @staticmethod
    def _bound(value: str) -> tuple[float, bool]:
        if value == "-inf":
            return float("-inf"), False
        if value.startswith("("):
            return float(value[1:]), True
        return float(value), False

    async def zremrangebyscore(self, key: str, minimum: str, maximum: str) -> int:
        low, _ = self._bound(minimum)
        high, exclusive = self._bound(maximum)
        members = self.sets.get(key, {})
        doomed = [
            member
            for member, score in members.items()
            if score >= low and (score < high if exclusive else score <= high)
        ]
        for member in doomed:
            members.pop(member)
        return len(doomed)

    async def zcard(self, key: str) -> int:
        return len(self.sets.get(key, {}))

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        self.sets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def pexpire(self, key: str, milliseconds: int) -> bool:
        self.expiry[key] = milliseconds
        return True

    async def zrange(self, key: str, start: int, end: int, withscores: bool = False):
        ordered = sorted(self.sets.get(key, {}).items(), key=lambda item: item[1])
        selected = ordered[start : end + 1]
        return selected if withscores else [member for member, _ in selected]


def test_sliding_window_admits_up_to_the_limit() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(1000, 3, clock=clock)

    assert [limiter.allow("user") for _ in range(3)] == [True, True, True]
    assert limiter.allow("user") is False
    assert limiter.retry_after_ms("user") == 1000

    clock.now = 1000
    assert limiter.allow("user") is False

    clock.now = 1001
    assert limiter.allow("user") is True


def test_sliding_window_keys_are_independent() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(1000, 1, clock=clock)

    assert limiter.allow("alpha") is True
    assert limiter.allow("alpha") is False
    assert limiter.allow("beta") is True
    assert limiter.retry_after_ms("gamma") == 0


def test_sliding_window_rejects_non_positive_configuration() -> None:
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(0, 3)
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(1000, 0)


@pytest.mark.asyncio
async def test_redis_limiter_uses_sorted_set_window() -> None:
    clock = FakeClock()
    redis = FakeRedis()
    limiter = RedisSlidingWindowRateLimiter(redis, window_ms=1000, max_requests=3, namespace="test", clock=clock)

    for _ in range(3):
        assert await limiter.allow("user") is True
    assert await limiter.allow("user") is False
    assert redis.expiry["test:user"] == 1000

    clock.now = 400
    assert await limiter.retry_after_ms("user") == 600

    clock.now = 1000
    assert await limiter.allow("user") is False

    clock.now = 1001
    assert await limiter.allow("user") is True


@pytest.mark.asyncio
async def test_withdrawal_limiter_records_decisions() -> None:
    clock = FakeClock()
    limiter = WithdrawalRateLimiter(SlidingWindowRateLimiter(60_000, 1, clock=clock))

    assert await limiter.allow("user-1") is True
    assert await limiter.allow("user-1") is False
    assert await limiter.retry_after_seconds("user-1") == 60.0

    counters = get_referral_store().snapshot().rate_limits
    assert counters == {"withdrawal:allowed": 1, "withdrawal:rejected": 1}
