"""Stateless input validation helpers exposed to the client forms."""

from __future__ import annotations

from fastapi import APIRouter

from spritepay_api.schemas.validation import (
    PaymentKeyValidationRequest,
    PaymentKeyValidationResponse,
    TaxIdValidationRequest,
    TaxIdValidationResponse,
)
from spritepay_api.services.security.validators import (
    classify_payment_key,
    sanitize_text,
    validate_payment_key,
    validate_tax_id,
)


router = APIRouter(prefix="/validation", tags=["Validation"])


@router.post("/payment-key", response_model=PaymentKeyValidationResponse)
async def validate_payment_key_endpoint(payload: PaymentKeyValidationRequest) -> PaymentKeyValidationResponse:
    sanitized = sanitize_text(payload.value) if isinstance(payload.value, str) else ""
    valid = validate_payment_key(sanitized)
    kind = classify_payment_key(sanitized) if valid else None
    return PaymentKeyValidationResponse(valid=valid, kind=kind.value if kind else None, sanitized=sanitized)


@router.post("/tax-id", response_model=TaxIdValidationResponse)
async def validate_tax_id_endpoint(payload: TaxIdValidationRequest) -> TaxIdValidationResponse:
    return TaxIdValidationResponse(valid=validate_tax_id(payload.value, payload.kind))
