"""SQLAlchemy models package."""

# Import all models
from .eligibility import EligibilityRecord  # noqa: F401
from .ledger import CreditLedgerEntry, CreditLedgerEntryType  # noqa: F401
from .notification import Notification, NotificationTypeEnum  # noqa: F401
from .referral import ReferralCode, ReferralMilestone, ReferralReward, milestone_label  # noqa: F401
from .user import User, UserRoleEnum  # noqa: F401
from .withdrawal import WithdrawalRequest, WithdrawalStatusEnum  # noqa: F401
