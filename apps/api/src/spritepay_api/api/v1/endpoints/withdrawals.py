"""Withdrawal submission and operator approval endpoints."""

from __future__ import annotations

import math
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.api.dependencies.rate_limit import get_withdrawal_rate_limiter
from spritepay_api.api.dependencies.security import require_operator_api_key
from spritepay_api.api.dependencies.session import require_member_session
from spritepay_api.db.session import get_session
from spritepay_api.models.user import User
from spritepay_api.schemas.withdrawals import (
    MilestoneRewardSummary,
    WithdrawalApprovalResponse,
    WithdrawalCreateRequest,
    WithdrawalResponse,
)
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.referrals import DatabaseReferralAuthority, MilestoneRewardEngine
from spritepay_api.services.security.errors import AuthorityUnavailable, InputValidationError, RateLimitExceeded
from spritepay_api.services.security.rate_limiter import WithdrawalRateLimiter
from spritepay_api.services.withdrawals import (
    WithdrawalGuard,
    WithdrawalNotFound,
    WithdrawalStateError,
    approve_withdrawal,
)


router = APIRouter(prefix="/withdrawals", tags=["Withdrawals"])


@router.post("", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
async def submit_withdrawal(
    payload: WithdrawalCreateRequest,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
    rate_limiter: WithdrawalRateLimiter = Depends(get_withdrawal_rate_limiter),
) -> WithdrawalResponse:
    """Validate and queue a payout request for the signed-in member."""

    guard = WithdrawalGuard(db, rate_limiter=rate_limiter)
    try:
        withdrawal = await guard.submit(current_user.id, amount=payload.amount, pix_key=payload.pix_key)
    except InputValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.reason) from exc
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many withdrawal requests, try again shortly",
            headers={"Retry-After": str(max(1, math.ceil(exc.retry_after_seconds)))},
        ) from exc
    return WithdrawalResponse.model_validate(withdrawal)


@router.post(
    "/{withdrawal_id}/approve",
    response_model=WithdrawalApprovalResponse,
    dependencies=[Depends(require_operator_api_key)],
)
async def approve_withdrawal_request(
    withdrawal_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> WithdrawalApprovalResponse:
    """Approve a withdrawal, or replay its rewards, and pay out any referral milestones it unlocks."""

    engine = MilestoneRewardEngine(DatabaseReferralAuthority(db), NotificationService(db))
    try:
        result = await approve_withdrawal(db, withdrawal_id, engine)
    except WithdrawalNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Withdrawal not found") from exc
    except WithdrawalStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except AuthorityUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Referral rewards could not be processed, retry the approval event",
        ) from exc

    rewards = result.rewards
    return WithdrawalApprovalResponse(
        withdrawal=WithdrawalResponse.model_validate(result.withdrawal),
        rewards=MilestoneRewardSummary(
            referrer_user_id=rewards.referrer_user_id,
            issued=[milestone.value for milestone in rewards.issued],
            skipped=[milestone.value for milestone in rewards.skipped],
            credits_awarded=rewards.credits_awarded,
        ),
    )
