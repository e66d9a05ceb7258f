"""Authority of record for starting-credit eligibility decisions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from spritepay_api.models.eligibility import EligibilityRecord
from spritepay_api.models.ledger import CreditLedgerEntry, CreditLedgerEntryType
from spritepay_api.models.user import User
from spritepay_api.services.security.errors import EligibilityAlreadyDecided


DEVICE_MATCH_WEIGHT = 60
BROWSER_MATCH_WEIGHT = 30
STORAGE_MATCH_WEIGHT = 20
IP_BURST_WEIGHT = 25
MISSING_USER_AGENT_WEIGHT = 10
IP_BURST_THRESHOLD = 3
IP_BURST_WINDOW = timedelta(hours=24)


class AuthorityStatus(str, Enum):
    OK = "ok"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"


@dataclass
class EvaluationInputs:
    """Signals submitted to the authority for one evaluation."""

    device_fingerprint: str
    ip_address: str
    user_agent: Optional[str]
    local_storage_hash: Optional[str]
    browser_fingerprint: Optional[str]


@dataclass
class EligibilityResult:
    status: AuthorityStatus
    risk_score: int = 0
    can_claim: bool = False
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is AuthorityStatus.OK


@dataclass
class DecisionResult:
    status: AuthorityStatus
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is AuthorityStatus.OK


class EligibilityAuthority(Protocol):
    async def evaluate_eligibility(self, inputs: EvaluationInputs) -> EligibilityResult:
        ...

    async def record_eligibility_decision(
        self,
        user_id: UUID,
        inputs: EvaluationInputs,
        *,
        is_eligible: bool,
        risk_score: int,
        credits_granted: int,
        reason: Optional[str],
    ) -> DecisionResult:
        ...


class DatabaseEligibilityAuthority:
    """Scores signals against prior eligibility records and persists decisions."""

    def __init__(self, db_session: AsyncSession, *, clock=None) -> None:
        self._db = db_session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _count(self, *criteria) -> int:
        stmt = select(func.count()).select_from(EligibilityRecord).where(*criteria)
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def evaluate_eligibility(self, inputs: EvaluationInputs) -> EligibilityResult:
        try:
            risk_score = 0
            reasons: list[str] = []

            device_matches = await self._count(EligibilityRecord.device_fingerprint == inputs.device_fingerprint)
            if device_matches:
                risk_score += DEVICE_MATCH_WEIGHT
                reasons.append("device already registered")

            if inputs.browser_fingerprint:
                browser_matches = await self._count(
                    EligibilityRecord.browser_fingerprint == inputs.browser_fingerprint
                )
                if browser_matches:
                    risk_score += BROWSER_MATCH_WEIGHT
                    reasons.append("browser already registered")

            if inputs.local_storage_hash:
                storage_matches = await self._count(
                    EligibilityRecord.local_storage_hash == inputs.local_storage_hash
                )
                if storage_matches:
                    risk_score += STORAGE_MATCH_WEIGHT
                    reasons.append("local storage reused")

            since = self._clock() - IP_BURST_WINDOW
            ip_matches = await self._count(
                EligibilityRecord.ip_address == inputs.ip_address,
                EligibilityRecord.evaluated_at >= since,
            )
            if ip_matches >= IP_BURST_THRESHOLD:
                risk_score += IP_BURST_WEIGHT
                reasons.append("many accounts from this network")

            if not (inputs.user_agent or "").strip():
                risk_score += MISSING_USER_AGENT_WEIGHT
                reasons.append("missing user agent")

            granted_on_device = await self._count(
                EligibilityRecord.device_fingerprint == inputs.device_fingerprint,
                EligibilityRecord.is_eligible.is_(True),
            )
        except SQLAlchemyError as exc:
            logger.error("Eligibility evaluation failed", error=str(exc))
            return EligibilityResult(status=AuthorityStatus.UNAVAILABLE, reason="Eligibility service unavailable")

        can_claim = granted_on_device == 0
        reason = None
        if not can_claim:
            reason = "Free credits were already granted on this device"
        elif reasons:
            reason = ", ".join(reasons)

        logger.debug(
            "Eligibility scored",
            risk_score=risk_score,
            can_claim=can_claim,
            signals=reasons,
        )
        return EligibilityResult(
            status=AuthorityStatus.OK,
            risk_score=risk_score,
            can_claim=can_claim,
            reason=reason,
        )

    async def _insert_decision(
        self,
        user_id: UUID,
        inputs: EvaluationInputs,
        *,
        is_eligible: bool,
        risk_score: int,
        credits_granted: int,
        reason: Optional[str],
    ) -> None:
        existing = await self._count(EligibilityRecord.user_id == user_id)
        if existing:
            raise EligibilityAlreadyDecided(str(user_id))

        now = self._clock()
        self._db.add(
            EligibilityRecord(
                user_id=user_id,
                device_fingerprint=inputs.device_fingerprint,
                browser_fingerprint=inputs.browser_fingerprint,
                local_storage_hash=inputs.local_storage_hash,
                ip_address=inputs.ip_address,
                user_agent=inputs.user_agent,
                risk_score=risk_score,
                is_eligible=is_eligible,
                credits_granted=credits_granted if is_eligible else 0,
                evaluation_reason=reason,
                evaluated_at=now,
            )
        )

        if is_eligible and credits_granted > 0:
            user = await self._db.get(User, user_id)
            if user is not None:
                user.credits = (user.credits or 0) + credits_granted
            self._db.add(
                CreditLedgerEntry(
                    user_id=user_id,
                    entry_type=CreditLedgerEntryType.STARTING_GRANT.value,
                    amount=credits_granted,
                    description="Starting credits",
                    metadata_json={"risk_score": risk_score},
                )
            )

        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise EligibilityAlreadyDecided(str(user_id)) from exc

    async def record_eligibility_decision(
        self,
        user_id: UUID,
        inputs: EvaluationInputs,
        *,
        is_eligible: bool,
        risk_score: int,
        credits_granted: int,
        reason: Optional[str],
    ) -> DecisionResult:
        try:
            await self._insert_decision(
                user_id,
                inputs,
                is_eligible=is_eligible,
                risk_score=risk_score,
                credits_granted=credits_granted,
                reason=reason,
            )
        except EligibilityAlreadyDecided:
            logger.info("Eligibility already decided", user_id=str(user_id))
            return DecisionResult(status=AuthorityStatus.REJECTED, reason="Eligibility already decided")
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error("Failed to record eligibility decision", user_id=str(user_id), error=str(exc))
            return DecisionResult(status=AuthorityStatus.UNAVAILABLE, reason="Eligibility service unavailable")

        logger.info(
            "Eligibility decision recorded",
            user_id=str(user_id),
            is_eligible=is_eligible,
            credits_granted=credits_granted if is_eligible else 0,
            risk_score=risk_score,
        )
        return DecisionResult(status=AuthorityStatus.OK)


__all__ = [
    "AuthorityStatus",
    "DatabaseEligibilityAuthority",
    "DecisionResult",
    "EligibilityAuthority",
    "EligibilityResult",
    "EvaluationInputs",
]
