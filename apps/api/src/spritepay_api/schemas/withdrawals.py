from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# meta: schema: withdrawals


class WithdrawalCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Validated by the withdrawal guard so floats and booleans get a readable rejection.
    amount: Any = None
    pix_key: Any = Field(None, alias="pixKey")


class WithdrawalResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    amount: int
    pix_key_type: Optional[str] = Field(None, alias="pixKeyType")
    status: str
    processed_at: Optional[datetime] = Field(None, alias="processedAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class MilestoneRewardSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    referrer_user_id: Optional[UUID] = Field(None, alias="referrerUserId")
    issued: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    credits_awarded: int = Field(0, alias="creditsAwarded")


class WithdrawalApprovalResponse(BaseModel):
    withdrawal: WithdrawalResponse
    rewards: MilestoneRewardSummary
