from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .client_state import ClientLocalState

# meta: schema: referrals


class ReferralCaptureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    local_state: ClientLocalState = Field(default_factory=ClientLocalState, alias="localState")


class ReferralCaptureResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    clean_url: str = Field(..., alias="cleanUrl")
    local_state: ClientLocalState = Field(..., alias="localState")


class ReferralProcessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    local_state: ClientLocalState = Field(default_factory=ClientLocalState, alias="localState")


class ReferralProcessResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    code: Optional[str] = None
    referrer_user_id: Optional[UUID] = Field(None, alias="referrerUserId")
    local_state: ClientLocalState = Field(..., alias="localState")


class ReferralCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    link: str
    is_active: bool = Field(..., alias="isActive")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class ReferralCodeDeactivateResponse(BaseModel):
    deactivated: bool


class ReferredUserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    referred_user_id: UUID = Field(..., alias="referredUserId")
    referred_user_name: Optional[str] = Field(None, alias="referredUserName")
    joined_at: Optional[datetime] = Field(None, alias="joinedAt")
    milestones: list[str] = Field(default_factory=list)
    credits_earned: int = Field(0, alias="creditsEarned")


class ReferralStatisticsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_credits_earned: int = Field(..., alias="totalCreditsEarned")
    total_referred: int = Field(..., alias="totalReferred")
    active_referred: int = Field(..., alias="activeReferred")
    completed_milestones: int = Field(..., alias="completedMilestones")
    referred_users: list[ReferredUserResponse] = Field(default_factory=list, alias="referredUsers")
