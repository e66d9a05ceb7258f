from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class ReferralSnapshot:
    eligibility: Dict[str, int]
    referrals: Dict[str, int]
    rewards: Dict[str, Dict[str, int]]
    rate_limits: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "eligibility": dict(self.eligibility),
            "referrals": dict(self.referrals),
            "rewards": {key: dict(value) for key, value in self.rewards.items()},
            "rate_limits": dict(self.rate_limits),
        }


class ReferralObservabilityStore:
    """Collect eligibility and referral engine telemetry for dashboards."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._eligibility: Dict[str, int] = defaultdict(int)
        self._referrals: Dict[str, int] = defaultdict(int)
        self._rewards_issued: Dict[str, int] = defaultdict(int)
        self._rewards_duplicate: Dict[str, int] = defaultdict(int)
        self._rate_limits: Dict[str, int] = defaultdict(int)

    def record_eligibility_decision(self, state: str, *, indeterminate: bool = False) -> None:
        with self._lock:
            self._eligibility[state] += 1
            if indeterminate:
                self._eligibility["indeterminate"] += 1

    def record_referral_event(self, event: str) -> None:
        with self._lock:
            self._referrals[event] += 1

    def record_reward_event(self, milestone: str, *, issued: bool) -> None:
        with self._lock:
            if issued:
                self._rewards_issued[milestone] += 1
            else:
                self._rewards_duplicate[milestone] += 1

    def record_rate_limit(self, scope: str, *, allowed: bool) -> None:
        with self._lock:
            key = f"{scope}:{'allowed' if allowed else 'rejected'}"
            self._rate_limits[key] += 1

    def snapshot(self) -> ReferralSnapshot:
        with self._lock:
            return ReferralSnapshot(
                eligibility=dict(self._eligibility),
                referrals=dict(self._referrals),
                rewards={
                    "issued": dict(self._rewards_issued),
                    "duplicate": dict(self._rewards_duplicate),
                },
                rate_limits=dict(self._rate_limits),
            )

    def reset(self) -> None:
        with self._lock:
            self._eligibility.clear()
            self._referrals.clear()
            self._rewards_issued.clear()
            self._rewards_duplicate.clear()
            self._rate_limits.clear()


_STORE = ReferralObservabilityStore()


def get_referral_store() -> ReferralObservabilityStore:
    return _STORE


__all__ = ["get_referral_store", "ReferralObservabilityStore", "ReferralSnapshot"]
