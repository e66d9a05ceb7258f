"""Starting-credit eligibility audit trail."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from spritepay_api.db.base import Base


class EligibilityRecord(Base):
    """Immutable decision row written once per account."""

    __tablename__ = "signup_eligibility"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_signup_eligibility_user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    device_fingerprint = Column(String(64), nullable=False, index=True)
    browser_fingerprint = Column(String(64), nullable=True, index=True)
    local_storage_hash = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=False, index=True)
    user_agent = Column(Text, nullable=True)
    risk_score = Column(Integer, nullable=False, default=0, server_default="0")
    is_eligible = Column(Boolean, nullable=False, default=False, server_default="false")
    credits_granted = Column(Integer, nullable=False, default=0, server_default="0")
    evaluation_reason = Column(Text, nullable=True)
    evaluated_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
