"""Payout requests consumed by the referral reward engine."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from spritepay_api.db.base import Base


class WithdrawalStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalRequest(Base):
    __tablename__ = "withdraw_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    pix_key = Column(String(255), nullable=False)
    pix_key_type = Column(String(32), nullable=True)
    status = Column(String(16), nullable=False, default=WithdrawalStatusEnum.PENDING.value, server_default=WithdrawalStatusEnum.PENDING.value)
    rejection_reason = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
