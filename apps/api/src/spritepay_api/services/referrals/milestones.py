"""Milestone rewards paid to referrers as their referrals withdraw."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from loguru import logger

from spritepay_api.core.settings import settings
from spritepay_api.models.referral import ReferralMilestone
from spritepay_api.observability.referrals import get_referral_store
from spritepay_api.observability.tracing import get_tracer
from spritepay_api.services.eligibility.authority import AuthorityStatus
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.security.errors import AuthorityUnavailable

from .authority import ReferralAnchor, ReferralAuthority, RewardResult


AMOUNT_THRESHOLDS: tuple[tuple[ReferralMilestone, int], ...] = (
    (ReferralMilestone.WITHDRAWAL_50, 50),
    (ReferralMilestone.WITHDRAWAL_250, 250),
    (ReferralMilestone.WITHDRAWAL_500, 500),
)


def qualifying_milestones(amount: int, is_first_withdrawal: bool) -> list[ReferralMilestone]:
    """Every milestone satisfied by a single approved withdrawal."""

    milestones: list[ReferralMilestone] = []
    if is_first_withdrawal:
        milestones.append(ReferralMilestone.FIRST_WITHDRAWAL)
    milestones.extend(milestone for milestone, threshold in AMOUNT_THRESHOLDS if amount >= threshold)
    return milestones


@dataclass
class WithdrawalEvent:
    withdrawal_id: UUID
    user_id: UUID
    amount: int
    approved_at: Optional[datetime] = None


@dataclass
class MilestoneRewardReport:
    referred_user_id: UUID
    referrer_user_id: Optional[UUID] = None
    issued: list[ReferralMilestone] = field(default_factory=list)
    skipped: list[ReferralMilestone] = field(default_factory=list)
    credits_awarded: int = 0

    @property
    def anchored(self) -> bool:
        return self.referrer_user_id is not None


class MilestoneRewardEngine:
    """Issues each milestone at most once per referrer and referred pair.

    Authority failures are raised as ``AuthorityUnavailable`` so the approval
    workflow that invoked the engine can retry the whole event.
    """

    def __init__(
        self,
        authority: ReferralAuthority,
        notifications: NotificationService | None = None,
        *,
        reward_credits: int | None = None,
    ) -> None:
        self._authority = authority
        self._notifications = notifications or NotificationService()
        self._reward_credits = (
            reward_credits if reward_credits is not None else settings.referral_milestone_reward_credits
        )

    async def process_withdrawal(self, event: WithdrawalEvent) -> MilestoneRewardReport:
        with get_tracer().start_as_current_span("referrals.process_withdrawal"):
            return await self._process_withdrawal(event)

    async def _process_withdrawal(self, event: WithdrawalEvent) -> MilestoneRewardReport:
        report = MilestoneRewardReport(referred_user_id=event.user_id)
        anchor = await self._authority.find_anchor(event.user_id)
        if anchor is None:
            logger.debug("Withdrawal has no referrer", user_id=str(event.user_id))
            return report
        report.referrer_user_id = anchor.referrer_user_id

        is_first = await self._authority.is_first_approved_withdrawal(event.user_id, event.withdrawal_id)
        for milestone in qualifying_milestones(event.amount, is_first):
            result = await self._issue(anchor, milestone, completed_at=event.approved_at)
            if result.issued:
                report.issued.append(milestone)
                report.credits_awarded += result.credits_earned
            else:
                report.skipped.append(milestone)

        logger.info(
            "Withdrawal milestones processed",
            withdrawal_id=str(event.withdrawal_id),
            referred_user_id=str(event.user_id),
            referrer_user_id=str(anchor.referrer_user_id),
            issued=[milestone.value for milestone in report.issued],
            skipped=[milestone.value for milestone in report.skipped],
        )
        return report

    async def issue(
        self,
        referred_user_id: UUID,
        milestone: ReferralMilestone | str,
        amount: int | None = None,
        *,
        withdrawal_id: UUID | None = None,
    ) -> RewardResult:
        """Issue a single milestone for ``referred_user_id``.

        ``first_withdrawal`` needs the id of the approved withdrawal and is only
        issued when that withdrawal is the user's earliest approved one.
        """

        resolved = ReferralMilestone(milestone)
        if resolved is ReferralMilestone.SIGNUP:
            return RewardResult(status=AuthorityStatus.REJECTED, reason="signup is not a reward milestone")
        threshold = dict(AMOUNT_THRESHOLDS).get(resolved)
        if threshold is not None and (amount is None or amount < threshold):
            return RewardResult(status=AuthorityStatus.REJECTED, reason="withdrawal does not qualify")
        if resolved is ReferralMilestone.FIRST_WITHDRAWAL and (
            withdrawal_id is None
            or not await self._authority.is_first_approved_withdrawal(referred_user_id, withdrawal_id)
        ):
            return RewardResult(status=AuthorityStatus.REJECTED, reason="not the first approved withdrawal")

        anchor = await self._authority.find_anchor(referred_user_id)
        if anchor is None:
            return RewardResult(status=AuthorityStatus.REJECTED, reason="no referral relationship")
        return await self._issue(anchor, resolved)

    async def _issue(
        self,
        anchor: ReferralAnchor,
        milestone: ReferralMilestone,
        *,
        completed_at: Optional[datetime] = None,
    ) -> RewardResult:
        store = get_referral_store()
        if await self._authority.has_reward(anchor.referrer_user_id, anchor.referred_user_id, milestone):
            store.record_reward_event(milestone.value, issued=False)
            return RewardResult(status=AuthorityStatus.OK, issued=False, reason="already issued")

        result = await self._authority.issue_milestone_reward(
            anchor,
            milestone,
            self._reward_credits,
            completed_at=completed_at,
        )
        if result.status is AuthorityStatus.UNAVAILABLE:
            raise AuthorityUnavailable(result.reason or "reward issuance failed")

        store.record_reward_event(milestone.value, issued=result.issued)
        if result.issued:
            await self._notifications.send_referral_reward(
                anchor.referrer_user_id,
                referred_name=anchor.referred_user_name,
                milestone=milestone,
                credits_earned=result.credits_earned,
            )
        return result


__all__ = [
    "AMOUNT_THRESHOLDS",
    "MilestoneRewardEngine",
    "MilestoneRewardReport",
    "WithdrawalEvent",
    "qualifying_milestones",
]
