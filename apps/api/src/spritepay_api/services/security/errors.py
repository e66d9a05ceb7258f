"""Error taxonomy shared by the eligibility and referral flows."""

from __future__ import annotations


class InputValidationError(ValueError):
    """Malformed user input rejected before it reaches the authority."""

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.field = field


class RateLimitExceeded(Exception):
    """Admission refused by a sliding-window limiter."""

    def __init__(self, key: str, *, retry_after_seconds: float) -> None:
        super().__init__(f"Rate limit exceeded for {key}")
        self.key = key
        self.retry_after_seconds = retry_after_seconds


class AuthorityUnavailable(Exception):
    """The authority of record could not be reached or failed mid-call.

    Callers must treat the outcome as unknown and retry later.
    """


class EligibilityAlreadyDecided(Exception):
    """A terminal eligibility record already exists for the account."""


__all__ = [
    "AuthorityUnavailable",
    "EligibilityAlreadyDecided",
    "InputValidationError",
    "RateLimitExceeded",
]
