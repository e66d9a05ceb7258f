from spritepay_api.services.security.claim_tracker import (
    InMemoryKeyValueStore,
    LocalClaimTracker,
    SecurityKeys,
)
from spritepay_api.services.security.fingerprint import DeviceSignals, FingerprintGenerator

NOW_MS = 1_800_000_000_000


class UnreadableStore:
    def get(self, key: str):
        raise PermissionError("storage disabled")

    def set(self, key: str, value: str) -> None:
        raise PermissionError("storage disabled")

    def delete(self, key: str) -> None:
        raise PermissionError("storage disabled")


def _tracker(store, now: int = NOW_MS) -> LocalClaimTracker:
    return LocalClaimTracker(
        store,
        signals=DeviceSignals(userAgent="Mozilla/5.0", language="pt-BR"),
        generator=FingerprintGenerator(length=24),
        clock=lambda: now,
        min_age_seconds=60,
        min_device_id_length=10,
    )


def test_empty_storage_is_suspicious() -> None:
    report = _tracker(InMemoryKeyValueStore()).detect_abuse()

    assert report.suspicious
    assert "device id missing or invalid" in report.reasons
    assert "first visit timestamp missing" in report.reasons


def test_freshly_seeded_storage_is_too_recent() -> None:
    store = InMemoryKeyValueStore()
    tracker = _tracker(store)

    tracker.refresh_security_hash()
    report = tracker.detect_abuse()

    assert report.reasons == ["device storage too recent"]
    assert len(store.get(SecurityKeys.DEVICE_ID)) == 24
    assert store.get(SecurityKeys.FIRST_VISIT) == str(NOW_MS)


def test_storage_older_than_minimum_age_is_clean() -> None:
    store = InMemoryKeyValueStore(
        {SecurityKeys.DEVICE_ID: "device-1234567890", SecurityKeys.FIRST_VISIT: str(NOW_MS - 61_000)}
    )

    report = _tracker(store).detect_abuse()

    assert not report.suspicious
    assert report.reasons == []


def test_refresh_never_overwrites_identity_fields() -> None:
    store = InMemoryKeyValueStore(
        {SecurityKeys.DEVICE_ID: "device-1234567890", SecurityKeys.FIRST_VISIT: "12345"}
    )
    tracker = _tracker(store)

    first = tracker.refresh_security_hash()
    later = _tracker(store, now=NOW_MS + 5000).refresh_security_hash()

    assert store.get(SecurityKeys.DEVICE_ID) == "device-1234567890"
    assert store.get(SecurityKeys.FIRST_VISIT) == "12345"
    assert store.get(SecurityKeys.SECURITY_HASH) == later
    assert first != later


def test_claim_marker_without_identity_is_inconsistent() -> None:
    store = InMemoryKeyValueStore(
        {SecurityKeys.DEVICE_ID: "device-1234567890", SecurityKeys.FIRST_VISIT: str(NOW_MS - 120_000)}
    )
    tracker = _tracker(store)
    tracker.mark_claimed()
    assert tracker.has_claimed()

    store.delete(SecurityKeys.DEVICE_ID)
    report = tracker.detect_abuse()

    assert "inconsistent security data" in report.reasons


def test_invalid_first_visit_is_reported() -> None:
    store = InMemoryKeyValueStore(
        {SecurityKeys.DEVICE_ID: "device-1234567890", SecurityKeys.FIRST_VISIT: "yesterday"}
    )

    assert _tracker(store).detect_abuse().reasons == ["first visit timestamp invalid"]


def test_unreadable_storage_is_treated_as_suspicious() -> None:
    report = _tracker(UnreadableStore()).detect_abuse()

    assert report.suspicious
    assert report.reasons == ["local storage unreadable"]
