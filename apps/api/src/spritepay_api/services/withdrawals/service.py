"""Withdrawal submission guard and approval hand-off to the reward engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.core.settings import settings
from spritepay_api.models.withdrawal import WithdrawalRequest, WithdrawalStatusEnum
from spritepay_api.services.referrals.milestones import (
    MilestoneRewardEngine,
    MilestoneRewardReport,
    WithdrawalEvent,
)
from spritepay_api.services.security.errors import RateLimitExceeded
from spritepay_api.services.security.rate_limiter import WithdrawalRateLimiter, build_withdrawal_rate_limiter
from spritepay_api.services.security.validators import require_amount, require_payment_key


class WithdrawalNotFound(LookupError):
    pass


class WithdrawalStateError(RuntimeError):
    pass


@dataclass
class ApprovalResult:
    withdrawal: WithdrawalRequest
    rewards: MilestoneRewardReport


class WithdrawalGuard:
    """Validates and admits withdrawal submissions before they are persisted."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rate_limiter: WithdrawalRateLimiter | None = None,
        min_amount: int | None = None,
        max_amount: int | None = None,
    ) -> None:
        self._db = db_session
        self._rate_limiter = rate_limiter or build_withdrawal_rate_limiter()
        self._min_amount = min_amount if min_amount is not None else settings.withdrawal_min_amount
        self._max_amount = max_amount if max_amount is not None else settings.withdrawal_max_amount

    async def submit(self, user_id: UUID, *, amount: Any, pix_key: Any) -> WithdrawalRequest:
        """Create a pending request, raising on invalid input or rate limiting."""

        sanitized_key, key_kind = require_payment_key(pix_key)
        validated_amount = require_amount(amount, min_value=self._min_amount, max_value=self._max_amount)

        user_key = str(user_id)
        # The slot is taken before the insert, so a failed write still counts
        # against the window.
        if not await self._rate_limiter.allow(user_key):
            retry_after = await self._rate_limiter.retry_after_seconds(user_key)
            raise RateLimitExceeded(user_key, retry_after_seconds=retry_after)

        withdrawal = WithdrawalRequest(
            user_id=user_id,
            amount=validated_amount,
            pix_key=sanitized_key,
            pix_key_type=key_kind.value,
            status=WithdrawalStatusEnum.PENDING.value,
        )
        self._db.add(withdrawal)
        try:
            await self._db.commit()
        except SQLAlchemyError:
            await self._db.rollback()
            logger.exception("Withdrawal could not be persisted", user_id=user_key)
            raise
        await self._db.refresh(withdrawal)

        logger.info(
            "Withdrawal submitted",
            user_id=user_key,
            withdrawal_id=str(withdrawal.id),
            amount=validated_amount,
            pix_key_type=key_kind.value,
        )
        return withdrawal


async def approve_withdrawal(
    session: AsyncSession,
    withdrawal_id: UUID,
    engine: MilestoneRewardEngine,
    *,
    approved_at: Optional[datetime] = None,
) -> ApprovalResult:
    """Approve a withdrawal and pay out the referrer milestones it unlocks.

    Approving an already approved withdrawal keeps its original timestamp and
    only replays the reward step, so an approval event that failed on
    ``AuthorityUnavailable`` can be retried. Rewards are idempotent per
    milestone, so the replay never pays twice.
    """

    stmt = (
        select(WithdrawalRequest)
        .where(WithdrawalRequest.id == withdrawal_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    withdrawal = (await session.execute(stmt)).scalar_one_or_none()
    if withdrawal is None:
        raise WithdrawalNotFound(str(withdrawal_id))

    if withdrawal.status == WithdrawalStatusEnum.PENDING.value:
        withdrawal.status = WithdrawalStatusEnum.APPROVED.value
        withdrawal.processed_at = approved_at or datetime.now(timezone.utc)
        await session.commit()
        logger.info("Withdrawal approved", withdrawal_id=str(withdrawal.id), user_id=str(withdrawal.user_id))
    elif withdrawal.status == WithdrawalStatusEnum.APPROVED.value:
        await session.commit()
        logger.info("Replaying approved withdrawal rewards", withdrawal_id=str(withdrawal.id))
    else:
        await session.rollback()
        raise WithdrawalStateError(f"Withdrawal is already {withdrawal.status}")

    event = WithdrawalEvent(
        withdrawal_id=withdrawal.id,
        user_id=withdrawal.user_id,
        amount=withdrawal.amount,
        approved_at=withdrawal.processed_at,
    )
    rewards = await engine.process_withdrawal(event)
    await session.refresh(withdrawal)
    return ApprovalResult(withdrawal=withdrawal, rewards=rewards)


__all__ = [
    "ApprovalResult",
    "WithdrawalGuard",
    "WithdrawalNotFound",
    "WithdrawalStateError",
    "approve_withdrawal",
]
