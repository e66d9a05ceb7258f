"""Process-wide limiter instances shared across requests."""

from __future__ import annotations

from functools import lru_cache

from spritepay_api.services.security.rate_limiter import WithdrawalRateLimiter, build_withdrawal_rate_limiter


@lru_cache
def get_withdrawal_rate_limiter() -> WithdrawalRateLimiter:
    return build_withdrawal_rate_limiter()
