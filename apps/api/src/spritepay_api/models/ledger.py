"""Credit ledger models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from spritepay_api.db.base import Base


class CreditLedgerEntryType(str, Enum):
    """Ledger entry types for credit balance adjustments."""

    STARTING_GRANT = "starting_grant"
    REFERRAL_REWARD = "referral_reward"
    ADJUSTMENT = "adjustment"


class CreditLedgerEntry(Base):
    """Append-only record of every credit movement on a user balance."""

    __tablename__ = "credit_ledger_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    entry_type = Column(String(length=32), nullable=False)
    amount = Column(Integer, nullable=False)
    description = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
