"""Referral linking, share codes and milestone rewards."""

from .authority import (
    CodeOwner,
    DatabaseReferralAuthority,
    ReferralAnchor,
    ReferralAuthority,
    RelationshipResult,
    RewardResult,
)
from .codes import ReferralCodeService, ReferralStatistics, ReferredUserSummary
from .link_processor import (
    CaptureResult,
    ReferralLinkProcessor,
    ReferralProcessingResult,
    ReferralProcessingStatus,
    build_referral_link,
    extract_referral_code,
    is_valid_referral_code,
    strip_referral_code,
)
from .milestones import MilestoneRewardEngine, MilestoneRewardReport, WithdrawalEvent, qualifying_milestones

__all__ = [
    "CaptureResult",
    "CodeOwner",
    "DatabaseReferralAuthority",
    "MilestoneRewardEngine",
    "MilestoneRewardReport",
    "ReferralAnchor",
    "ReferralAuthority",
    "ReferralCodeService",
    "ReferralLinkProcessor",
    "ReferralProcessingResult",
    "ReferralProcessingStatus",
    "ReferralStatistics",
    "ReferredUserSummary",
    "RelationshipResult",
    "RewardResult",
    "WithdrawalEvent",
    "build_referral_link",
    "extract_referral_code",
    "is_valid_referral_code",
    "qualifying_milestones",
    "strip_referral_code",
]
