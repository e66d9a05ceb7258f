"""SQL authority of record for referral relationships and milestone rewards."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.models.ledger import CreditLedgerEntry, CreditLedgerEntryType
from spritepay_api.models.referral import ReferralCode, ReferralMilestone, ReferralReward, milestone_label
from spritepay_api.models.user import User
from spritepay_api.models.withdrawal import WithdrawalRequest, WithdrawalStatusEnum
from spritepay_api.services.eligibility.authority import AuthorityStatus
from spritepay_api.services.security.errors import AuthorityUnavailable


@dataclass
class ReferralAnchor:
    """The signup row establishing who referred an account."""

    referrer_user_id: UUID
    referred_user_id: UUID
    referral_code: str
    referred_user_name: Optional[str]


@dataclass
class CodeOwner:
    user_id: UUID
    code: str
    is_active: bool


@dataclass
class RelationshipResult:
    status: AuthorityStatus
    created: bool = False
    reason: Optional[str] = None


@dataclass
class RewardResult:
    status: AuthorityStatus
    issued: bool = False
    credits_earned: int = 0
    reason: Optional[str] = None


class ReferralAuthority(Protocol):
    async def find_anchor(self, referred_user_id: UUID) -> Optional[ReferralAnchor]:
        ...

    async def resolve_code(self, code: str) -> Optional[CodeOwner]:
        ...

    async def create_referral_relationship(
        self,
        referrer_user_id: UUID,
        referred_user_id: UUID,
        code: str,
        referred_user_name: Optional[str] = None,
    ) -> RelationshipResult:
        ...

    async def echo_referral_code(self, user_id: UUID, code: str) -> None:
        ...

    async def is_first_approved_withdrawal(self, user_id: UUID, withdrawal_id: UUID) -> bool:
        ...

    async def has_reward(
        self,
        referrer_user_id: UUID,
        referred_user_id: UUID,
        milestone: ReferralMilestone,
    ) -> bool:
        ...

    async def issue_milestone_reward(
        self,
        anchor: ReferralAnchor,
        milestone: ReferralMilestone,
        credits_earned: int,
        *,
        completed_at: Optional[datetime] = None,
    ) -> RewardResult:
        ...


class DatabaseReferralAuthority:
    """Relies on the referral_rewards unique constraints for at-most-once effects.

    Inserts never check for an existing row first; a constraint violation is
    reported back as a no-op result instead of an error.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def find_anchor(self, referred_user_id: UUID) -> Optional[ReferralAnchor]:
        stmt = select(ReferralReward).where(
            ReferralReward.referred_user_id == referred_user_id,
            ReferralReward.milestone_type == ReferralMilestone.SIGNUP.value,
        )
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise AuthorityUnavailable("referral lookup failed") from exc
        row = result.scalars().first()
        if row is None:
            return None
        return ReferralAnchor(
            referrer_user_id=row.referrer_user_id,
            referred_user_id=row.referred_user_id,
            referral_code=row.referral_code,
            referred_user_name=row.referred_user_name,
        )

    async def resolve_code(self, code: str) -> Optional[CodeOwner]:
        stmt = select(ReferralCode).where(ReferralCode.code == code)
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise AuthorityUnavailable("referral code lookup failed") from exc
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return CodeOwner(user_id=row.user_id, code=row.code, is_active=bool(row.is_active))

    async def create_referral_relationship(
        self,
        referrer_user_id: UUID,
        referred_user_id: UUID,
        code: str,
        referred_user_name: Optional[str] = None,
    ) -> RelationshipResult:
        self._db.add(
            ReferralReward(
                referrer_user_id=referrer_user_id,
                referred_user_id=referred_user_id,
                referral_code=code,
                referred_user_name=referred_user_name,
                milestone_type=ReferralMilestone.SIGNUP.value,
                credits_earned=0,
                milestone_completed_at=datetime.now(timezone.utc),
            )
        )
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.info(
                "Referral relationship already exists",
                referred_user_id=str(referred_user_id),
                code=code,
            )
            return RelationshipResult(status=AuthorityStatus.OK, created=False, reason="already referred")
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error("Referral relationship insert failed", referred_user_id=str(referred_user_id), error=str(exc))
            return RelationshipResult(status=AuthorityStatus.UNAVAILABLE, reason="referral service unavailable")
        return RelationshipResult(status=AuthorityStatus.OK, created=True)

    async def echo_referral_code(self, user_id: UUID, code: str) -> None:
        try:
            user = await self._db.get(User, user_id)
            if user is None:
                return
            user.metadata_json = {**(user.metadata_json or {}), "ref": code}
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            raise AuthorityUnavailable("referral code echo failed") from exc

    async def is_first_approved_withdrawal(self, user_id: UUID, withdrawal_id: UUID) -> bool:
        stmt = (
            select(WithdrawalRequest.id)
            .where(
                WithdrawalRequest.user_id == user_id,
                WithdrawalRequest.status == WithdrawalStatusEnum.APPROVED.value,
            )
            .order_by(WithdrawalRequest.processed_at.asc(), WithdrawalRequest.created_at.asc())
            .limit(1)
        )
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise AuthorityUnavailable("withdrawal lookup failed") from exc
        first_id = result.scalar_one_or_none()
        return first_id is not None and first_id == withdrawal_id

    async def has_reward(
        self,
        referrer_user_id: UUID,
        referred_user_id: UUID,
        milestone: ReferralMilestone,
    ) -> bool:
        stmt = select(ReferralReward.id).where(
            ReferralReward.referrer_user_id == referrer_user_id,
            ReferralReward.referred_user_id == referred_user_id,
            ReferralReward.milestone_type == milestone.value,
        )
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise AuthorityUnavailable("reward lookup failed") from exc
        return result.first() is not None

    async def issue_milestone_reward(
        self,
        anchor: ReferralAnchor,
        milestone: ReferralMilestone,
        credits_earned: int,
        *,
        completed_at: Optional[datetime] = None,
    ) -> RewardResult:
        self._db.add(
            ReferralReward(
                referrer_user_id=anchor.referrer_user_id,
                referred_user_id=anchor.referred_user_id,
                referral_code=anchor.referral_code,
                referred_user_name=anchor.referred_user_name,
                milestone_type=milestone.value,
                credits_earned=credits_earned,
                milestone_completed_at=completed_at or datetime.now(timezone.utc),
            )
        )
        try:
            # Flush first so a duplicate never reaches the balance update.
            await self._db.flush()
            if credits_earned > 0:
                referrer = await self._db.get(User, anchor.referrer_user_id)
                if referrer is not None:
                    referrer.credits = (referrer.credits or 0) + credits_earned
                self._db.add(
                    CreditLedgerEntry(
                        user_id=anchor.referrer_user_id,
                        entry_type=CreditLedgerEntryType.REFERRAL_REWARD.value,
                        amount=credits_earned,
                        description=f"Referral reward: {milestone_label(milestone)}",
                        metadata_json={
                            "referred_user_id": str(anchor.referred_user_id),
                            "milestone_type": milestone.value,
                        },
                    )
                )
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.info(
                "Referral reward already issued",
                referrer_user_id=str(anchor.referrer_user_id),
                referred_user_id=str(anchor.referred_user_id),
                milestone=milestone.value,
            )
            return RewardResult(status=AuthorityStatus.OK, issued=False, reason="already issued")
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error(
                "Referral reward insert failed",
                referred_user_id=str(anchor.referred_user_id),
                milestone=milestone.value,
                error=str(exc),
            )
            return RewardResult(status=AuthorityStatus.UNAVAILABLE, reason="referral service unavailable")

        return RewardResult(status=AuthorityStatus.OK, issued=True, credits_earned=credits_earned)


__all__ = [
    "CodeOwner",
    "DatabaseReferralAuthority",
    "ReferralAnchor",
    "ReferralAuthority",
    "RelationshipResult",
    "RewardResult",
]
