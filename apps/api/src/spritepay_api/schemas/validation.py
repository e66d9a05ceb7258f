from typing import Any, Optional

from pydantic import BaseModel

# meta: schema: validation


class PaymentKeyValidationRequest(BaseModel):
    value: Any = None


class PaymentKeyValidationResponse(BaseModel):
    valid: bool
    kind: Optional[str] = None
    sanitized: str


class TaxIdValidationRequest(BaseModel):
    value: Any = None
    kind: str = "personal"


class TaxIdValidationResponse(BaseModel):
    valid: bool
