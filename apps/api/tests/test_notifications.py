from uuid import uuid4

import pytest
from sqlalchemy import select

from spritepay_api.models.notification import Notification, NotificationTypeEnum
from spritepay_api.models.referral import ReferralMilestone
from spritepay_api.models.user import User
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.notifications.templates import (
    DEFAULT_REFERRED_NAME,
    render_eligibility_decision,
    render_referral_reward,
    render_referral_signup,
)


def test_templates_fall_back_to_default_name() -> None:
    assert render_referral_signup(None).message.startswith(DEFAULT_REFERRED_NAME)
    assert render_referral_signup("  ").message.startswith(DEFAULT_REFERRED_NAME)

    reward = render_referral_reward("Bruno", ReferralMilestone.WITHDRAWAL_250, 2)
    assert reward.message == 'Bruno reached the milestone "Withdrawal of 250 points"! You earned 2 credits!'


def test_eligibility_messages_reflect_state() -> None:
    granted = render_eligibility_decision("granted", credits_granted=4, reason=None, risk_score=0)
    denied = render_eligibility_decision("denied", credits_granted=0, reason="High risk score detected: 60", risk_score=60)

    assert "4" in granted.message
    assert "High risk score detected: 60" in denied.message


@pytest.mark.asyncio
async def test_reward_notification_is_persisted(session_factory) -> None:
    async with session_factory() as session:
        referrer = User(email="ana@example.com", credits=0)
        session.add(referrer)
        await session.commit()
        referrer_id = referrer.id

        service = NotificationService(session)
        await service.send_referral_reward(
            referrer_id,
            referred_name="Bruno",
            milestone=ReferralMilestone.FIRST_WITHDRAWAL,
            credits_earned=2,
        )

        event, = service.events_for(referrer_id)
        assert event.event_type == "referral.reward"
        assert event.metadata["milestone_type"] == "first_withdrawal"

    async with session_factory() as session:
        row = (await session.execute(select(Notification))).scalar_one()
        assert row.user_id == referrer_id
        assert row.category == "referral_reward"
        assert row.notification_type == NotificationTypeEnum.SUCCESS.value
        assert row.payload["credits_earned"] == 2


@pytest.mark.asyncio
async def test_events_without_session_are_only_recorded() -> None:
    service = NotificationService()
    user_id = uuid4()

    await service.send_referral_signup(user_id, referred_user_id=uuid4(), referred_name=None)
    service.publish_referral_welcome(uuid4(), referrer_user_id=user_id)

    assert [event.event_type for event in service.sent_events] == ["referral.signup", "referral.welcome"]
    assert len(service.events_for(user_id)) == 1
