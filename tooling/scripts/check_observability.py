#!/usr/bin/env python3
"""Quick health check for SpritePay referral and eligibility counters.

Usage:
    python tooling/scripts/check_observability.py \
        --base-url https://staging-api.example.com \
        --api-key "$OPERATOR_API_KEY"

The script fails when:
  * the share of indeterminate eligibility decisions exceeds the threshold,
  * referral linking is stuck retrying against an unavailable authority,
  * withdrawal rate-limit rejections exceed the threshold.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SpritePay referral observability checker")
    parser.add_argument("--base-url", default="http://localhost:8000", help="Base URL of the SpritePay API.")
    parser.add_argument("--api-key", default=None, help="Operator API key for the observability endpoint.")
    parser.add_argument(
        "--max-indeterminate-rate",
        type=float,
        default=0.05,
        help="Maximum ratio (0-1) of eligibility decisions that ended indeterminate (default: 0.05).",
    )
    parser.add_argument(
        "--min-sample-size",
        type=int,
        default=20,
        help="Minimum eligibility decisions before the indeterminate SLO is enforced (default: 20).",
    )
    parser.add_argument(
        "--max-referral-retries",
        type=int,
        default=50,
        help="Maximum referral processing attempts deferred for retry (default: 50).",
    )
    parser.add_argument(
        "--max-rate-limit-rejections",
        type=int,
        default=100,
        help="Maximum withdrawal submissions rejected by the rate limiter (default: 100).",
    )
    parser.add_argument("--timeout", type=float, default=10.0, help="HTTP request timeout in seconds.")
    return parser.parse_args()


def _fail(message: str) -> None:
    print(f"[check-observability] FAIL {message}")
    sys.exit(1)


def _log_ok(message: str) -> None:
    print(f"[check-observability] OK {message}")


def evaluate_snapshot(payload: Dict[str, Any], args: argparse.Namespace) -> None:
    eligibility = payload.get("eligibility", {}) or {}
    referrals = payload.get("referrals", {}) or {}
    rate_limits = payload.get("rate_limits", {}) or {}

    indeterminate = int(eligibility.get("indeterminate", 0))
    decisions = sum(int(value) for key, value in eligibility.items() if key != "indeterminate")
    if decisions >= args.min_sample_size and decisions:
        rate = indeterminate / decisions
        if rate > args.max_indeterminate_rate:
            _fail(f"Indeterminate eligibility rate {rate:.1%} exceeds {args.max_indeterminate_rate:.1%}")
    else:
        _log_ok(f"Eligibility sample below threshold ({decisions}/{args.min_sample_size})")

    retries = int(referrals.get("retry", 0))
    if retries > args.max_referral_retries:
        _fail(f"Referral retries {retries} exceed threshold {args.max_referral_retries}")

    rejected = int(rate_limits.get("withdrawal:rejected", 0))
    if rejected > args.max_rate_limit_rejections:
        _fail(f"Withdrawal rate-limit rejections {rejected} exceed threshold {args.max_rate_limit_rejections}")

    _log_ok(
        f"Referral observability OK (decisions={decisions}, indeterminate={indeterminate}, "
        f"referral_retries={retries}, withdrawal_rejections={rejected})"
    )


async def main() -> None:
    args = parse_args()
    headers = {"X-API-Key": args.api_key} if args.api_key else None

    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        response = await client.get("/api/v1/observability/referrals", headers=headers)
        response.raise_for_status()
        evaluate_snapshot(response.json(), args)

    _log_ok("Observability checks completed successfully")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except httpx.HTTPError as exc:
        _fail(f"HTTP error while calling the observability endpoint: {exc}")
