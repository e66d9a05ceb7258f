"""Replays historical signups and withdrawals through the referral engine."""

# meta: job: referral-backfill

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.models.user import User
from spritepay_api.models.withdrawal import WithdrawalRequest, WithdrawalStatusEnum
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.referrals.authority import DatabaseReferralAuthority
from spritepay_api.services.referrals.link_processor import is_valid_referral_code
from spritepay_api.services.referrals.milestones import MilestoneRewardEngine, WithdrawalEvent
from spritepay_api.services.security.errors import AuthorityUnavailable

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


@dataclass
class BackfillReport:
    users_scanned: int = 0
    anchors_created: int = 0
    withdrawals_replayed: int = 0
    rewards_issued: int = 0
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "users_scanned": self.users_scanned,
            "anchors_created": self.anchors_created,
            "withdrawals_replayed": self.withdrawals_replayed,
            "rewards_issued": self.rewards_issued,
            "errors": list(self.errors),
        }


async def backfill_historical_referrals(*, session_factory: SessionFactory) -> BackfillReport:
    """Create missing signup anchors from echoed codes, then replay approved withdrawals."""

    maybe_session = session_factory()
    session: AsyncSession
    if isinstance(maybe_session, AsyncSession):
        session = maybe_session
    else:
        session = await maybe_session

    report = BackfillReport()
    async with session as managed_session:
        authority = DatabaseReferralAuthority(managed_session)
        engine = MilestoneRewardEngine(authority, NotificationService(managed_session))

        referred = await _users_with_echoed_code(managed_session)
        report.users_scanned = len(referred)
        for user_id, display_name, code in referred:
            try:
                await _ensure_anchor(authority, user_id, display_name, code, report)
            except AuthorityUnavailable as exc:
                report.errors.append(f"user {user_id}: {exc}")

        for event in await _approved_withdrawals(managed_session):
            try:
                result = await engine.process_withdrawal(event)
            except AuthorityUnavailable as exc:
                report.errors.append(f"withdrawal {event.withdrawal_id}: {exc}")
                continue
            report.withdrawals_replayed += 1
            report.rewards_issued += len(result.issued)

    logger.bind(summary=report.as_dict()).info("Referral backfill completed")
    return report


async def _users_with_echoed_code(session: AsyncSession) -> list[tuple[Any, str | None, str]]:
    result = await session.execute(select(User.id, User.display_name, User.metadata_json))
    rows: list[tuple[Any, str | None, str]] = []
    for user_id, display_name, metadata in result.all():
        code = (metadata or {}).get("ref")
        if is_valid_referral_code(code):
            rows.append((user_id, display_name, code))
    return rows


async def _ensure_anchor(
    authority: DatabaseReferralAuthority,
    user_id: Any,
    display_name: str | None,
    code: str,
    report: BackfillReport,
) -> None:
    if await authority.find_anchor(user_id) is not None:
        return
    owner = await authority.resolve_code(code)
    if owner is None or not owner.is_active or owner.user_id == user_id:
        report.errors.append(f"user {user_id}: referral code {code} cannot be linked")
        return
    relationship = await authority.create_referral_relationship(owner.user_id, user_id, code, display_name)
    if relationship.created:
        report.anchors_created += 1


async def _approved_withdrawals(session: AsyncSession) -> list[WithdrawalEvent]:
    stmt = (
        select(WithdrawalRequest)
        .where(WithdrawalRequest.status == WithdrawalStatusEnum.APPROVED.value)
        .order_by(WithdrawalRequest.processed_at.asc(), WithdrawalRequest.created_at.asc())
    )
    result = await session.execute(stmt)
    return [
        WithdrawalEvent(
            withdrawal_id=row.id,
            user_id=row.user_id,
            amount=row.amount,
            approved_at=row.processed_at,
        )
        for row in result.scalars().all()
    ]


__all__ = ["BackfillReport", "backfill_historical_referrals"]
