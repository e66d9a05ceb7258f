"""Users, credit ledger, eligibility audit, referral rewards and withdrawals.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "credit_ledger_entries",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("entry_type", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_credit_ledger_entries_user_id", "credit_ledger_entries", ["user_id"])

    op.create_table(
        "signup_eligibility",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("browser_fingerprint", sa.String(length=64), nullable=True),
        sa.Column("local_storage_hash", sa.String(length=64), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("risk_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_eligible", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("credits_granted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("evaluation_reason", sa.Text(), nullable=True),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", name="uq_signup_eligibility_user_id"),
    )
    op.create_index("ix_signup_eligibility_device_fingerprint", "signup_eligibility", ["device_fingerprint"])
    op.create_index("ix_signup_eligibility_browser_fingerprint", "signup_eligibility", ["browser_fingerprint"])
    op.create_index("ix_signup_eligibility_ip_address", "signup_eligibility", ["ip_address"])

    op.create_table(
        "referral_codes",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_referral_codes_code", "referral_codes", ["code"], unique=True)
    op.create_index("ix_referral_codes_user_id", "referral_codes", ["user_id"])

    op.create_table(
        "referral_rewards",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("referrer_user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referred_user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referral_code", sa.String(length=16), nullable=False),
        sa.Column("referred_user_name", sa.String(), nullable=True),
        sa.Column("milestone_type", sa.String(length=32), nullable=False),
        sa.Column("credits_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "milestone_completed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint(
            "referrer_user_id",
            "referred_user_id",
            "milestone_type",
            name="uq_referral_rewards_pair_milestone",
        ),
    )
    op.create_index("ix_referral_rewards_referrer_user_id", "referral_rewards", ["referrer_user_id"])
    op.create_index("ix_referral_rewards_referred_user_id", "referral_rewards", ["referred_user_id"])
    op.create_index(
        "uq_referral_rewards_signup_referred",
        "referral_rewards",
        ["referred_user_id"],
        unique=True,
        postgresql_where=sa.text("milestone_type = 'signup'"),
        sqlite_where=sa.text("milestone_type = 'signup'"),
    )

    op.create_table(
        "withdraw_requests",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("pix_key", sa.String(length=255), nullable=False),
        sa.Column("pix_key_type", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_withdraw_requests_user_id", "withdraw_requests", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="info"),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_withdraw_requests_user_id", table_name="withdraw_requests")
    op.drop_table("withdraw_requests")
    op.drop_index("uq_referral_rewards_signup_referred", table_name="referral_rewards")
    op.drop_index("ix_referral_rewards_referred_user_id", table_name="referral_rewards")
    op.drop_index("ix_referral_rewards_referrer_user_id", table_name="referral_rewards")
    op.drop_table("referral_rewards")
    op.drop_index("ix_referral_codes_user_id", table_name="referral_codes")
    op.drop_index("ix_referral_codes_code", table_name="referral_codes")
    op.drop_table("referral_codes")
    op.drop_index("ix_signup_eligibility_ip_address", table_name="signup_eligibility")
    op.drop_index("ix_signup_eligibility_browser_fingerprint", table_name="signup_eligibility")
    op.drop_index("ix_signup_eligibility_device_fingerprint", table_name="signup_eligibility")
    op.drop_table("signup_eligibility")
    op.drop_index("ix_credit_ledger_entries_user_id", table_name="credit_ledger_entries")
    op.drop_table("credit_ledger_entries")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
