"""Queues user notifications and UI events raised by the referral engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.models.notification import Notification, NotificationTypeEnum
from spritepay_api.models.referral import ReferralMilestone, milestone_label

from .templates import (
    RenderedMessage,
    render_eligibility_decision,
    render_referral_reward,
    render_referral_signup,
    render_referral_welcome,
)


@dataclass
class NotificationEvent:
    """Representation of an event raised towards the presentation layer."""

    user_id: UUID
    event_type: str
    title: str
    message: str
    metadata: dict[str, Any]


class NotificationService:
    """Persists referrer notifications and records UI events for the caller."""

    def __init__(self, db_session: AsyncSession | None = None) -> None:
        self._db = db_session
        self._events: list[NotificationEvent] = []

    @property
    def sent_events(self) -> list[NotificationEvent]:
        return self._events

    def events_for(self, user_id: UUID) -> list[NotificationEvent]:
        return [event for event in self._events if event.user_id == user_id]

    def _record(
        self,
        user_id: UUID,
        event_type: str,
        rendered: RenderedMessage,
        metadata: dict[str, Any],
    ) -> NotificationEvent:
        event = NotificationEvent(
            user_id=user_id,
            event_type=event_type,
            title=rendered.title,
            message=rendered.message,
            metadata=metadata,
        )
        self._events.append(event)
        return event

    async def _enqueue(
        self,
        user_id: UUID,
        *,
        category: str,
        rendered: RenderedMessage,
        notification_type: NotificationTypeEnum,
        payload: dict[str, Any],
    ) -> None:
        """Persist a notification row. Delivery failures never fail the caller."""

        if self._db is None:
            return
        self._db.add(
            Notification(
                user_id=user_id,
                category=category,
                notification_type=notification_type.value,
                message=rendered.message,
                payload=payload,
            )
        )
        try:
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.warning(
                "Failed to enqueue notification",
                user_id=str(user_id),
                category=category,
                error=str(exc),
            )

    def publish_eligibility_decision(
        self,
        user_id: UUID,
        *,
        state: str,
        credits_granted: int,
        reason: str | None,
        risk_score: int | None,
    ) -> NotificationEvent:
        rendered = render_eligibility_decision(
            state,
            credits_granted=credits_granted,
            reason=reason,
            risk_score=risk_score,
        )
        return self._record(
            user_id,
            "eligibility.decision",
            rendered,
            {
                "state": state,
                "credits_granted": credits_granted,
                "reason": reason,
                "risk_score": risk_score,
            },
        )

    async def send_referral_signup(
        self,
        referrer_user_id: UUID,
        *,
        referred_user_id: UUID,
        referred_name: str | None,
    ) -> None:
        rendered = render_referral_signup(referred_name)
        payload = {"referred_user_id": str(referred_user_id), "referred_user_name": referred_name}
        self._record(referrer_user_id, "referral.signup", rendered, payload)
        await self._enqueue(
            referrer_user_id,
            category="referral_signup",
            rendered=rendered,
            notification_type=NotificationTypeEnum.INFO,
            payload=payload,
        )

    def publish_referral_welcome(self, user_id: UUID, *, referrer_user_id: UUID) -> NotificationEvent:
        return self._record(
            user_id,
            "referral.welcome",
            render_referral_welcome(),
            {"referrer_user_id": str(referrer_user_id)},
        )

    async def send_referral_reward(
        self,
        referrer_user_id: UUID,
        *,
        referred_name: str | None,
        milestone: ReferralMilestone,
        credits_earned: int,
    ) -> None:
        rendered = render_referral_reward(referred_name, milestone, credits_earned)
        payload = {
            "referred_user_name": referred_name,
            "milestone_type": milestone.value,
            "milestone_label": milestone_label(milestone),
            "credits_earned": credits_earned,
        }
        self._record(referrer_user_id, "referral.reward", rendered, payload)
        await self._enqueue(
            referrer_user_id,
            category="referral_reward",
            rendered=rendered,
            notification_type=NotificationTypeEnum.SUCCESS,
            payload=payload,
        )
