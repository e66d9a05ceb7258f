"""Observability endpoints for the eligibility and referral engine."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from spritepay_api.api.dependencies.security import require_operator_api_key
from spritepay_api.observability.referrals import get_referral_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/referrals",
    dependencies=[Depends(require_operator_api_key)],
    summary="Eligibility and referral counters",
)
async def get_referral_snapshot() -> dict[str, object]:
    """Retrieve aggregated eligibility, referral and reward counters (requires operator API key)."""
    return get_referral_store().snapshot().as_dict()
