from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import select

from spritepay_api.models.notification import Notification
from spritepay_api.models.referral import ReferralCode, ReferralMilestone, ReferralReward
from spritepay_api.models.user import User
from spritepay_api.observability.referrals import get_referral_store
from spritepay_api.services.eligibility import AuthorityStatus
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.referrals import (
    CodeOwner,
    DatabaseReferralAuthority,
    ReferralAnchor,
    ReferralLinkProcessor,
    ReferralProcessingStatus,
    RelationshipResult,
    build_referral_link,
    extract_referral_code,
    strip_referral_code,
)
from spritepay_api.services.security.claim_tracker import InMemoryKeyValueStore, SecurityKeys
from spritepay_api.services.security.errors import AuthorityUnavailable


class FakeReferralAuthority:
    def __init__(self) -> None:
        self.codes: dict[str, CodeOwner] = {}
        self.anchors: dict = {}
        self.created = []
        self.echoed = []
        self.unavailable = False
        self.relationship_status = AuthorityStatus.OK
        self.fail_echo = False

    async def find_anchor(self, referred_user_id):
        if self.unavailable:
            raise AuthorityUnavailable("database offline")
        return self.anchors.get(referred_user_id)

    async def resolve_code(self, code):
        return self.codes.get(code)

    async def create_referral_relationship(self, referrer_user_id, referred_user_id, code, referred_user_name=None):
        if self.relationship_status is not AuthorityStatus.OK:
            return RelationshipResult(status=self.relationship_status)
        if referred_user_id in self.anchors:
            return RelationshipResult(status=AuthorityStatus.OK, created=False)
        self.anchors[referred_user_id] = ReferralAnchor(referrer_user_id, referred_user_id, code, referred_user_name)
        self.created.append((referrer_user_id, referred_user_id, code))
        return RelationshipResult(status=AuthorityStatus.OK, created=True)

    async def echo_referral_code(self, user_id, code):
        if self.fail_echo:
            raise AuthorityUnavailable("metadata write failed")
        self.echoed.append((user_id, code))


def _account(name: str | None = "Bruno") -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), email="bruno@example.com", display_name=name)


def _pending(code: str) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore({SecurityKeys.PENDING_REFERRAL_CODE: code})


def test_extract_referral_code_requires_exact_format() -> None:
    assert extract_referral_code("https://spritepay.app/signup?ref=ABCD1234") == "ABCD1234"
    assert extract_referral_code("https://spritepay.app/?utm=x&ref=Z9Z9Z9Z9") == "Z9Z9Z9Z9"
    assert extract_referral_code("https://spritepay.app/signup?ref=abcd1234") is None
    assert extract_referral_code("https://spritepay.app/signup?ref=ABCD123") is None
    assert extract_referral_code("https://spritepay.app/signup?ref=ABCD12345") is None
    assert extract_referral_code("https://spritepay.app/signup") is None
    assert extract_referral_code("https://spritepay.app/signup?invite=ABCD1234", param="invite") == "ABCD1234"


def test_strip_referral_code_preserves_other_parts() -> None:
    assert (
        strip_referral_code("https://spritepay.app/signup?utm=x&ref=ABCD1234#top")
        == "https://spritepay.app/signup?utm=x#top"
    )
    assert strip_referral_code("https://spritepay.app/signup?ref=ABCD1234") == "https://spritepay.app/signup"


def test_build_referral_link() -> None:
    assert build_referral_link("https://spritepay.app/", "ABCD1234") == "https://spritepay.app/signup?ref=ABCD1234"


def test_capture_holds_valid_code_only() -> None:
    store = InMemoryKeyValueStore()
    processor = ReferralLinkProcessor(store, FakeReferralAuthority())

    ignored = processor.capture("https://spritepay.app/signup?ref=bad")
    assert ignored.code is None
    assert processor.pending_code is None

    captured = processor.capture("https://spritepay.app/signup?ref=ABCD1234")
    assert captured.code == "ABCD1234"
    assert captured.clean_url == "https://spritepay.app/signup"
    assert processor.pending_code == "ABCD1234"
    assert get_referral_store().snapshot().referrals == {"captured": 1}


@pytest.mark.asyncio
async def test_no_pending_code_is_a_no_op() -> None:
    authority = FakeReferralAuthority()
    result = await ReferralLinkProcessor(InMemoryKeyValueStore(), authority).process_pending(_account())

    assert result.status is ReferralProcessingStatus.NO_PENDING
    assert authority.created == []


@pytest.mark.asyncio
async def test_malformed_pending_code_is_discarded() -> None:
    store = _pending("abc")
    result = await ReferralLinkProcessor(store, FakeReferralAuthority()).process_pending(_account())

    assert result.status is ReferralProcessingStatus.INVALID_CODE
    assert store.get(SecurityKeys.PENDING_REFERRAL_CODE) is None


@pytest.mark.asyncio
async def test_new_account_is_linked_and_both_sides_notified() -> None:
    authority = FakeReferralAuthority()
    referrer_id = uuid4()
    authority.codes["ABCD1234"] = CodeOwner(user_id=referrer_id, code="ABCD1234", is_active=True)
    notifications = NotificationService()
    store = _pending("ABCD1234")
    account = _account()

    result = await ReferralLinkProcessor(store, authority, notifications).process_pending(account)

    assert result.created
    assert result.referrer_user_id == referrer_id
    assert authority.created == [(referrer_id, account.id, "ABCD1234")]
    assert authority.echoed == [(account.id, "ABCD1234")]
    assert store.get(SecurityKeys.PENDING_REFERRAL_CODE) is None

    signup, = notifications.events_for(referrer_id)
    assert signup.event_type == "referral.signup"
    assert "Bruno" in signup.message
    welcome, = notifications.events_for(account.id)
    assert welcome.event_type == "referral.welcome"


@pytest.mark.asyncio
async def test_already_referred_account_is_not_relinked() -> None:
    authority = FakeReferralAuthority()
    account = _account()
    original_referrer = uuid4()
    authority.anchors[account.id] = ReferralAnchor(original_referrer, account.id, "FIRST111", "Bruno")
    authority.codes["ABCD1234"] = CodeOwner(user_id=uuid4(), code="ABCD1234", is_active=True)
    store = _pending("ABCD1234")

    result = await ReferralLinkProcessor(store, authority).process_pending(account)

    assert result.status is ReferralProcessingStatus.ALREADY_REFERRED
    assert result.referrer_user_id == original_referrer
    assert authority.created == []
    assert store.get(SecurityKeys.PENDING_REFERRAL_CODE) is None


@pytest.mark.asyncio
async def test_self_referral_is_ignored() -> None:
    authority = FakeReferralAuthority()
    account = _account()
    authority.codes["ABCD1234"] = CodeOwner(user_id=account.id, code="ABCD1234", is_active=True)
    store = _pending("ABCD1234")

    result = await ReferralLinkProcessor(store, authority).process_pending(account)

    assert result.status is ReferralProcessingStatus.SELF_REFERRAL
    assert authority.created == []
    assert store.get(SecurityKeys.PENDING_REFERRAL_CODE) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("active", [False, None])
async def test_unknown_or_inactive_code_is_dropped(active) -> None:
    authority = FakeReferralAuthority()
    if active is not None:
        authority.codes["ABCD1234"] = CodeOwner(user_id=uuid4(), code="ABCD1234", is_active=active)
    store = _pending("ABCD1234")

    result = await ReferralLinkProcessor(store, authority).process_pending(_account())

    assert result.status is ReferralProcessingStatus.CODE_NOT_FOUND
    assert store.get(SecurityKeys.PENDING_REFERRAL_CODE) is None


@pytest.mark.asyncio
async def test_unreachable_authority_keeps_code_for_retry() -> None:
    authority = FakeReferralAuthority()
    authority.unavailable = True
    store = _pending("ABCD1234")

    result = await ReferralLinkProcessor(store, authority).process_pending(_account())

    assert result.status is ReferralProcessingStatus.RETRY
    assert store.get(SecurityKeys.PENDING_REFERRAL_CODE) == "ABCD1234"


@pytest.mark.asyncio
async def test_unavailable_insert_keeps_code_for_retry() -> None:
    authority = FakeReferralAuthority()
    authority.codes["ABCD1234"] = CodeOwner(user_id=uuid4(), code="ABCD1234", is_active=True)
    authority.relationship_status = AuthorityStatus.UNAVAILABLE
    store = _pending("ABCD1234")

    result = await ReferralLinkProcessor(store, authority).process_pending(_account())

    assert result.status is ReferralProcessingStatus.RETRY
    assert store.get(SecurityKeys.PENDING_REFERRAL_CODE) == "ABCD1234"


@pytest.mark.asyncio
async def test_failed_echo_does_not_undo_the_link() -> None:
    authority = FakeReferralAuthority()
    authority.codes["ABCD1234"] = CodeOwner(user_id=uuid4(), code="ABCD1234", is_active=True)
    authority.fail_echo = True

    result = await ReferralLinkProcessor(_pending("ABCD1234"), authority).process_pending(_account())

    assert result.created
    assert authority.echoed == []


@pytest.mark.asyncio
async def test_signup_link_creates_anchor_end_to_end(session_factory) -> None:
    async with session_factory() as session:
        referrer = User(email="ana@example.com", display_name="Ana", credits=0)
        session.add(referrer)
        await session.flush()
        session.add(ReferralCode(user_id=referrer.id, code="ABCD1234", is_active=True))
        await session.commit()
        referrer_id = referrer.id

    store = InMemoryKeyValueStore()
    async with session_factory() as session:
        processor = ReferralLinkProcessor(store, DatabaseReferralAuthority(session), NotificationService(session))
        captured = processor.capture("https://spritepay.app/signup?ref=ABCD1234")
        assert captured.clean_url == "https://spritepay.app/signup"

        newcomer = User(email="bruno@example.com", display_name="Bruno", credits=0)
        session.add(newcomer)
        await session.commit()
        newcomer_id = newcomer.id

        result = await processor.process_pending(newcomer)
        assert result.status is ReferralProcessingStatus.CREATED

        # A second pass finds nothing pending.
        again = await processor.process_pending(newcomer)
        assert again.status is ReferralProcessingStatus.NO_PENDING

    async with session_factory() as session:
        anchor = (
            await session.execute(select(ReferralReward).where(ReferralReward.referred_user_id == newcomer_id))
        ).scalar_one()
        assert anchor.referrer_user_id == referrer_id
        assert anchor.milestone_type == ReferralMilestone.SIGNUP.value
        assert anchor.credits_earned == 0
        assert anchor.referral_code == "ABCD1234"
        assert anchor.referred_user_name == "Bruno"

        newcomer = await session.get(User, newcomer_id)
        assert newcomer.metadata_json == {"ref": "ABCD1234"}
        assert (await session.get(User, referrer_id)).credits == 0

        notification = (
            await session.execute(select(Notification).where(Notification.user_id == referrer_id))
        ).scalar_one()
        assert notification.category == "referral_signup"
        assert "Bruno" in notification.message
