"""Share-code issuance and referral statistics for referrers."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.core.settings import settings
from spritepay_api.models.referral import ReferralCode, ReferralMilestone, ReferralReward

from .link_processor import build_referral_link

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5


@dataclass
class ReferredUserSummary:
    referred_user_id: UUID
    referred_user_name: Optional[str]
    joined_at: Optional[datetime]
    milestones: list[str] = field(default_factory=list)
    credits_earned: int = 0


@dataclass
class ReferralStatistics:
    total_credits_earned: int
    total_referred: int
    active_referred: int
    completed_milestones: int
    referred_users: list[ReferredUserSummary]


class ReferralCodeService:
    """Owns the lifecycle of a referrer's share code."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        code_length: int | None = None,
        code_factory: Callable[[int], str] | None = None,
    ) -> None:
        self._db = db_session
        self._code_length = code_length or settings.referral_code_length
        self._code_factory = code_factory or _random_code

    async def get_active_code(self, user_id: UUID) -> Optional[ReferralCode]:
        stmt = (
            select(ReferralCode)
            .where(ReferralCode.user_id == user_id, ReferralCode.is_active.is_(True))
            .order_by(ReferralCode.created_at.desc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def ensure_code(self, user_id: UUID) -> ReferralCode:
        """Return the active code for ``user_id``, creating one when missing."""

        existing = await self.get_active_code(user_id)
        if existing is not None:
            return existing

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            record = ReferralCode(user_id=user_id, code=self._code_factory(self._code_length), is_active=True)
            self._db.add(record)
            try:
                await self._db.commit()
            except IntegrityError:
                await self._db.rollback()
                logger.info("Referral code collision, regenerating", user_id=str(user_id), attempt=attempt)
                continue
            await self._db.refresh(record)
            logger.info("Referral code created", user_id=str(user_id), code=record.code)
            return record

        raise RuntimeError("Unable to allocate a unique referral code")

    async def deactivate(self, user_id: UUID) -> bool:
        code = await self.get_active_code(user_id)
        if code is None:
            return False
        code.is_active = False
        code.deactivated_at = datetime.now(timezone.utc)
        await self._db.commit()
        logger.info("Referral code deactivated", user_id=str(user_id), code=code.code)
        return True

    def share_link(self, code: str, base_url: str | None = None) -> str:
        return build_referral_link(base_url or settings.frontend_url, code)

    async def statistics(self, user_id: UUID) -> ReferralStatistics:
        stmt = (
            select(ReferralReward)
            .where(ReferralReward.referrer_user_id == user_id)
            .order_by(ReferralReward.milestone_completed_at.asc())
        )
        result = await self._db.execute(stmt)
        rows = result.scalars().all()

        summaries: dict[UUID, ReferredUserSummary] = {}
        total_credits = 0
        completed = 0
        for row in rows:
            summary = summaries.get(row.referred_user_id)
            if summary is None:
                summary = ReferredUserSummary(
                    referred_user_id=row.referred_user_id,
                    referred_user_name=row.referred_user_name,
                    joined_at=None,
                )
                summaries[row.referred_user_id] = summary
            if row.milestone_type == ReferralMilestone.SIGNUP.value:
                summary.joined_at = row.milestone_completed_at
            else:
                completed += 1
            summary.milestones.append(row.milestone_type)
            summary.credits_earned += row.credits_earned or 0
            total_credits += row.credits_earned or 0

        referred = list(summaries.values())
        active = sum(
            1 for summary in referred if any(m != ReferralMilestone.SIGNUP.value for m in summary.milestones)
        )
        return ReferralStatistics(
            total_credits_earned=total_credits,
            total_referred=len(referred),
            active_referred=active,
            completed_milestones=completed,
            referred_users=referred,
        )


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


__all__ = [
    "ReferralCodeService",
    "ReferralStatistics",
    "ReferredUserSummary",
]
