from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from spritepay_api.services.security.fingerprint import DeviceSignals

from .client_state import ClientLocalState

# meta: schema: eligibility


class EligibilityEvaluateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signals: DeviceSignals = Field(default_factory=DeviceSignals)
    local_state: ClientLocalState = Field(default_factory=ClientLocalState, alias="localState")
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    user_agent: Optional[str] = Field(None, alias="userAgent")


class EligibilityEvaluateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    state: str
    credits_granted: int = Field(0, alias="creditsGranted")
    reason: Optional[str] = None
    risk_score: Optional[int] = Field(None, alias="riskScore")
    indeterminate: bool = False
    abuse_reasons: list[str] = Field(default_factory=list, alias="abuseReasons")
    device_fingerprint: Optional[str] = Field(None, alias="deviceFingerprint")
    local_state: ClientLocalState = Field(..., alias="localState")
