"""Recurring and one-off job entrypoints."""

__all__ = ["referrals"]
