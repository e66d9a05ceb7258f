from fastapi import APIRouter

from .endpoints import (
    eligibility,
    health,
    observability,
    referrals,
    validation,
    withdrawals,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(validation.router)
router.include_router(eligibility.router)
router.include_router(referrals.router)
router.include_router(withdrawals.router)
router.include_router(observability.router)
