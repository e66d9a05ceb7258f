"""Replay historical referral signups and approved withdrawals once.

Run after restoring data from a system that did not write referral anchor
rows, or after an outage left approval events unprocessed. Safe to repeat:
rewards that already exist are skipped.

Example:
    python tooling/scripts/run_referral_backfill.py
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from loguru import logger

from spritepay_api.db.session import async_session
from spritepay_api.jobs.referrals import BackfillReport, backfill_historical_referrals


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill referral anchors and milestone rewards")
    parser.add_argument(
        "--fail-on-errors",
        action="store_true",
        help="Exit non-zero when any user or withdrawal could not be processed.",
    )
    return parser.parse_args()


async def _run() -> BackfillReport:
    return await backfill_historical_referrals(session_factory=async_session)


def main() -> int:
    args = parse_args()
    report = asyncio.run(_run())
    for error in report.errors:
        logger.warning("Backfill item skipped", error=error)
    logger.success(
        "Referral backfill run completed",
        anchors_created=report.anchors_created,
        withdrawals_replayed=report.withdrawals_replayed,
        rewards_issued=report.rewards_issued,
        errors=len(report.errors),
    )
    if args.fail_on_errors and report.errors:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
