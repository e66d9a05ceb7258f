"""Referral capture, linking and share-code endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.api.dependencies.session import require_member_session
from spritepay_api.db.session import get_session
from spritepay_api.models.referral import ReferralCode
from spritepay_api.models.user import User
from spritepay_api.schemas.client_state import ClientLocalState
from spritepay_api.schemas.referrals import (
    ReferralCaptureRequest,
    ReferralCaptureResponse,
    ReferralCodeDeactivateResponse,
    ReferralCodeResponse,
    ReferralProcessRequest,
    ReferralProcessResponse,
    ReferralStatisticsResponse,
    ReferredUserResponse,
)
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.referrals import (
    DatabaseReferralAuthority,
    ReferralCodeService,
    ReferralLinkProcessor,
)


router = APIRouter(prefix="/referrals", tags=["Referrals"])


def _serialize_code(service: ReferralCodeService, code: ReferralCode) -> ReferralCodeResponse:
    return ReferralCodeResponse(
        code=code.code,
        link=service.share_link(code.code),
        is_active=bool(code.is_active),
        created_at=code.created_at,
    )


@router.post("/capture", response_model=ReferralCaptureResponse)
async def capture_referral(
    payload: ReferralCaptureRequest,
    db: AsyncSession = Depends(get_session),
) -> ReferralCaptureResponse:
    """Hold the invite code from a landing URL until the visitor signs up."""

    store = payload.local_state.to_store()
    processor = ReferralLinkProcessor(store, DatabaseReferralAuthority(db))
    captured = processor.capture(payload.url)
    return ReferralCaptureResponse(
        code=captured.code,
        clean_url=captured.clean_url,
        local_state=ClientLocalState.from_store(store),
    )


@router.post("/process", response_model=ReferralProcessResponse)
async def process_pending_referral(
    payload: ReferralProcessRequest,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> ReferralProcessResponse:
    """Link the signed-in account to the referrer of its pending invite code."""

    store = payload.local_state.to_store()
    processor = ReferralLinkProcessor(store, DatabaseReferralAuthority(db), NotificationService(db))
    result = await processor.process_pending(current_user)
    return ReferralProcessResponse(
        status=result.status.value,
        code=result.code,
        referrer_user_id=result.referrer_user_id,
        local_state=ClientLocalState.from_store(store),
    )


@router.get("/code", response_model=ReferralCodeResponse)
async def get_referral_code(
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> ReferralCodeResponse:
    service = ReferralCodeService(db)
    code = await service.get_active_code(current_user.id)
    if code is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active referral code")
    return _serialize_code(service, code)


@router.post("/code", response_model=ReferralCodeResponse)
async def ensure_referral_code(
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> ReferralCodeResponse:
    """Return the member's share code, creating one on first use."""

    service = ReferralCodeService(db)
    code = await service.ensure_code(current_user.id)
    return _serialize_code(service, code)


@router.post("/code/deactivate", response_model=ReferralCodeDeactivateResponse)
async def deactivate_referral_code(
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> ReferralCodeDeactivateResponse:
    service = ReferralCodeService(db)
    return ReferralCodeDeactivateResponse(deactivated=await service.deactivate(current_user.id))


@router.get("/statistics", response_model=ReferralStatisticsResponse)
async def referral_statistics(
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> ReferralStatisticsResponse:
    stats = await ReferralCodeService(db).statistics(current_user.id)
    return ReferralStatisticsResponse(
        total_credits_earned=stats.total_credits_earned,
        total_referred=stats.total_referred,
        active_referred=stats.active_referred,
        completed_milestones=stats.completed_milestones,
        referred_users=[
            ReferredUserResponse(
                referred_user_id=row.referred_user_id,
                referred_user_name=row.referred_user_name,
                joined_at=row.joined_at,
                milestones=row.milestones,
                credits_earned=row.credits_earned,
            )
            for row in stats.referred_users
        ],
    )
