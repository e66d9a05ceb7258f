"""Referral job exports."""

from .backfill import BackfillReport, backfill_historical_referrals  # noqa: F401

__all__ = ["BackfillReport", "backfill_historical_referrals"]
