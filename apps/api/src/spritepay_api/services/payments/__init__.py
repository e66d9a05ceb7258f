"""Payment confirmation helpers."""

from .confirmation import PaymentConfirmationPoller, PollOutcome, PollResult

__all__ = ["PaymentConfirmationPoller", "PollOutcome", "PollResult"]
