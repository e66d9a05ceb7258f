"""Anti-abuse primitives: validators, fingerprints, rate limiting and claim tracking."""

from .claim_tracker import (  # noqa: F401
    AbuseReport,
    InMemoryKeyValueStore,
    KeyValueStore,
    LocalClaimTracker,
    SecurityKeys,
)
from .errors import (  # noqa: F401
    AuthorityUnavailable,
    EligibilityAlreadyDecided,
    InputValidationError,
    RateLimitExceeded,
)
from .fingerprint import DeviceSignals, FingerprintGenerator, SignalProvider  # noqa: F401
from .rate_limiter import (  # noqa: F401
    RedisSlidingWindowRateLimiter,
    SlidingWindowRateLimiter,
    WithdrawalRateLimiter,
    build_withdrawal_rate_limiter,
)
