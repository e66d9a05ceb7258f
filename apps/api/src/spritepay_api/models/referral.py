"""Referral codes and the milestone reward ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from spritepay_api.db.base import Base


class ReferralMilestone(str, Enum):
    """Milestones tracked for a referrer/referred pair."""

    SIGNUP = "signup"
    FIRST_WITHDRAWAL = "first_withdrawal"
    WITHDRAWAL_50 = "withdrawal_50"
    WITHDRAWAL_250 = "withdrawal_250"
    WITHDRAWAL_500 = "withdrawal_500"


class ReferralCode(Base):
    """Share code owned by a referring account."""

    __tablename__ = "referral_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(16), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)


_SIGNUP_ONLY = text("milestone_type = 'signup'")


class ReferralReward(Base):
    """One row per (referrer, referred, milestone); the signup row anchors the relationship."""

    __tablename__ = "referral_rewards"
    __table_args__ = (
        UniqueConstraint(
            "referrer_user_id",
            "referred_user_id",
            "milestone_type",
            name="uq_referral_rewards_pair_milestone",
        ),
        Index(
            "uq_referral_rewards_signup_referred",
            "referred_user_id",
            unique=True,
            sqlite_where=_SIGNUP_ONLY,
            postgresql_where=_SIGNUP_ONLY,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    referrer_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referred_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referral_code = Column(String(16), nullable=False)
    referred_user_name = Column(String, nullable=True)
    milestone_type = Column(String(32), nullable=False)
    credits_earned = Column(Integer, nullable=False, default=0, server_default="0")
    milestone_completed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


_MILESTONE_LABELS = {
    ReferralMilestone.SIGNUP: "Sign-up",
    ReferralMilestone.FIRST_WITHDRAWAL: "First withdrawal",
    ReferralMilestone.WITHDRAWAL_50: "Withdrawal of 50 points",
    ReferralMilestone.WITHDRAWAL_250: "Withdrawal of 250 points",
    ReferralMilestone.WITHDRAWAL_500: "Withdrawal of 500 points",
}


def milestone_label(milestone: ReferralMilestone | str) -> str:
    try:
        return _MILESTONE_LABELS[ReferralMilestone(milestone)]
    except ValueError:
        return str(milestone)
