"""Starting-credit eligibility endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.api.dependencies.session import require_member_session
from spritepay_api.db.session import get_session
from spritepay_api.models.user import User
from spritepay_api.schemas.client_state import ClientLocalState
from spritepay_api.schemas.eligibility import EligibilityEvaluateRequest, EligibilityEvaluateResponse
from spritepay_api.services.eligibility import (
    DatabaseEligibilityAuthority,
    EligibilityContext,
    EligibilityEvaluator,
)
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.security.claim_tracker import LocalClaimTracker


router = APIRouter(prefix="/eligibility", tags=["Eligibility"])


@router.post("/evaluate", response_model=EligibilityEvaluateResponse)
async def evaluate_eligibility(
    payload: EligibilityEvaluateRequest,
    request: Request,
    response: Response,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> EligibilityEvaluateResponse:
    """Decide whether the signed-in account receives its starting credits."""

    store = payload.local_state.to_store()
    tracker = LocalClaimTracker(store, signals=payload.signals)
    evaluator = EligibilityEvaluator(
        DatabaseEligibilityAuthority(db),
        tracker,
        notifications=NotificationService(db),
    )
    context = EligibilityContext(
        ip_address=payload.ip_address or (request.client.host if request.client else "unknown"),
        user_agent=payload.user_agent or payload.signals.user_agent or request.headers.get("user-agent"),
        signals=payload.signals,
    )
    outcome = await evaluator.evaluate(current_user, context)
    if outcome.indeterminate:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return EligibilityEvaluateResponse(
        state=outcome.state.value,
        credits_granted=outcome.credits_granted,
        reason=outcome.reason,
        risk_score=outcome.risk_score,
        indeterminate=outcome.indeterminate,
        abuse_reasons=outcome.abuse_reasons,
        device_fingerprint=outcome.device_fingerprint,
        local_state=ClientLocalState.from_store(store),
    )
