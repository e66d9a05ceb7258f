"""Durable "free credits already claimed on this device" marker and tamper heuristics."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Protocol

from loguru import logger

from spritepay_api.core.settings import settings

from .fingerprint import DeviceSignals, FingerprintGenerator


class SecurityKeys:
    DEVICE_ID = "spritepay_device_id"
    FIRST_VISIT = "spritepay_first_visit"
    CREDITS_CLAIMED = "spritepay_credits_claimed"
    BROWSER_HASH = "spritepay_browser_hash"
    SECURITY_HASH = "spritepay_security_hash"
    PENDING_REFERRAL_CODE = "pending_referral_code"


class KeyValueStore(Protocol):
    """Minimal get/set interface over client-local durable storage."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store wrapping the local state a client submitted."""

    def __init__(self, initial: Mapping[str, Optional[str]] | None = None) -> None:
        self._data: Dict[str, str] = {
            key: str(value) for key, value in (initial or {}).items() if value is not None
        }

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


@dataclass
class AbuseReport:
    suspicious: bool
    reasons: list[str] = field(default_factory=list)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class LocalClaimTracker:
    """Reads and maintains the locally persisted claim marker for one device."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        signals: DeviceSignals | None = None,
        generator: FingerprintGenerator | None = None,
        clock: Callable[[], int] | None = None,
        min_age_seconds: int | None = None,
        min_device_id_length: int | None = None,
    ) -> None:
        self._store = store
        self._signals = signals or DeviceSignals()
        self._generator = generator or FingerprintGenerator()
        self._clock = clock or _epoch_ms
        self._min_age_ms = (
            min_age_seconds if min_age_seconds is not None else settings.claim_tracker_min_age_seconds
        ) * 1000
        self._min_device_id_length = min_device_id_length or settings.claim_tracker_min_device_id_length

    @property
    def device_id(self) -> Optional[str]:
        return self._store.get(SecurityKeys.DEVICE_ID)

    def refresh_security_hash(self) -> str:
        """Fill in missing identity fields and return the storage consistency hash.

        Existing device id and first-seen values are never overwritten.
        """

        now = self._clock()
        device_id = self._store.get(SecurityKeys.DEVICE_ID) or self._generator.basic(self._signals)
        first_seen = self._store.get(SecurityKeys.FIRST_VISIT) or str(now)
        browser_hash = self._generator.advanced(self._signals)

        self._store.set(SecurityKeys.DEVICE_ID, device_id)
        self._store.set(SecurityKeys.FIRST_VISIT, first_seen)
        self._store.set(SecurityKeys.BROWSER_HASH, browser_hash)

        security_hash = self._generator.storage_hash(device_id, first_seen, browser_hash, now)
        self._store.set(SecurityKeys.SECURITY_HASH, security_hash)
        return security_hash

    def has_claimed(self) -> bool:
        return self._store.get(SecurityKeys.CREDITS_CLAIMED) == "true"

    def mark_claimed(self) -> None:
        self._store.set(SecurityKeys.CREDITS_CLAIMED, "true")

    def detect_abuse(self) -> AbuseReport:
        reasons: list[str] = []
        try:
            device_id = self._store.get(SecurityKeys.DEVICE_ID)
            first_seen = self._store.get(SecurityKeys.FIRST_VISIT)
            claimed = self._store.get(SecurityKeys.CREDITS_CLAIMED)
        except Exception as exc:
            logger.warning("Local claim marker unreadable", error=str(exc))
            return AbuseReport(suspicious=True, reasons=["local storage unreadable"])

        if not device_id or len(device_id) < self._min_device_id_length:
            reasons.append("device id missing or invalid")

        if not first_seen:
            reasons.append("first visit timestamp missing")
        else:
            try:
                first_seen_ms = int(first_seen)
            except ValueError:
                reasons.append("first visit timestamp invalid")
            else:
                if self._clock() - first_seen_ms < self._min_age_ms:
                    reasons.append("device storage too recent")

        if claimed == "true" and (not device_id or not first_seen):
            reasons.append("inconsistent security data")

        return AbuseReport(suspicious=bool(reasons), reasons=reasons)


__all__ = [
    "AbuseReport",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "LocalClaimTracker",
    "SecurityKeys",
]
