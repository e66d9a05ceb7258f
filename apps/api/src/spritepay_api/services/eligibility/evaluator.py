"""Starting-credit eligibility state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Protocol
from uuid import UUID

from loguru import logger

from spritepay_api.core.settings import settings
from spritepay_api.observability.referrals import get_referral_store
from spritepay_api.observability.tracing import get_tracer
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.security.errors import AuthorityUnavailable
from spritepay_api.services.security.claim_tracker import AbuseReport, LocalClaimTracker
from spritepay_api.services.security.fingerprint import DeviceSignals, FingerprintGenerator

from .authority import AuthorityStatus, EligibilityAuthority, EvaluationInputs


class EligibilityState(str, Enum):
    UNCHECKED = "unchecked"
    EVALUATING = "evaluating"
    GRANTED = "granted"
    DENIED = "denied"
    ALREADY_CLAIMED = "already_claimed"


class EligibleAccount(Protocol):
    id: UUID
    email: str


@dataclass
class EligibilityContext:
    """Request-scoped signals declared by the client."""

    ip_address: str
    user_agent: Optional[str] = None
    signals: DeviceSignals = field(default_factory=DeviceSignals)


@dataclass
class EligibilityOutcome:
    state: EligibilityState
    credits_granted: int = 0
    reason: Optional[str] = None
    risk_score: Optional[int] = None
    indeterminate: bool = False
    abuse_reasons: list[str] = field(default_factory=list)
    device_fingerprint: Optional[str] = None


class EligibilityEvaluator:
    """Decides whether an account receives its starting credits.

    The evaluator drives a single account from ``unchecked`` to a terminal state.
    Scoring and persistence are delegated to the authority of record, which
    rejects a second decision for an account that was already evaluated. A risk
    score at or above the configured threshold always denies, even when the
    authority itself would allow the claim.
    """

    def __init__(
        self,
        authority: EligibilityAuthority,
        tracker: LocalClaimTracker,
        *,
        generator: FingerprintGenerator | None = None,
        notifications: NotificationService | None = None,
        risk_threshold: int | None = None,
        starting_credits: int | None = None,
        admin_emails: Iterable[str] | None = None,
    ) -> None:
        self._authority = authority
        self._tracker = tracker
        self._generator = generator or FingerprintGenerator()
        self._notifications = notifications or NotificationService()
        self._risk_threshold = risk_threshold if risk_threshold is not None else settings.eligibility_risk_threshold
        self._starting_credits = (
            starting_credits if starting_credits is not None else settings.eligibility_starting_credits
        )
        emails = admin_emails if admin_emails is not None else settings.eligibility_admin_emails
        self._admin_emails = {email.strip().lower() for email in emails}
        self._state = EligibilityState.UNCHECKED

    @property
    def state(self) -> EligibilityState:
        return self._state

    def _is_admin(self, email: Optional[str]) -> bool:
        return (email or "").strip().lower() in self._admin_emails

    def _inputs(self, context: EligibilityContext) -> EvaluationInputs:
        storage_hash = self._tracker.refresh_security_hash()
        return EvaluationInputs(
            device_fingerprint=self._generator.basic(context.signals),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            local_storage_hash=storage_hash,
            browser_fingerprint=self._generator.advanced(context.signals),
        )

    async def evaluate(self, account: EligibleAccount, context: EligibilityContext) -> EligibilityOutcome:
        with get_tracer().start_as_current_span("eligibility.evaluate"):
            return await self._evaluate(account, context)

    async def _evaluate(self, account: EligibleAccount, context: EligibilityContext) -> EligibilityOutcome:
        self._state = EligibilityState.EVALUATING
        # The authority may roll back the shared session, which expires ORM instances.
        user_id = account.id

        if self._is_admin(account.email):
            outcome = await self._grant_admin(user_id, context)
            return self._finish(user_id, outcome)

        abuse = self._tracker.detect_abuse()
        if self._tracker.has_claimed() and not abuse.suspicious:
            outcome = EligibilityOutcome(
                state=EligibilityState.ALREADY_CLAIMED,
                reason="Free credits were already claimed on this device",
                device_fingerprint=self._tracker.device_id,
            )
            return self._finish(user_id, outcome)

        inputs = self._inputs(context)
        try:
            verdict = await self._authority.evaluate_eligibility(inputs)
        except AuthorityUnavailable as exc:
            logger.warning("Eligibility authority unreachable", user_id=str(user_id), error=str(exc))
            return self._finish(user_id, self._indeterminate(inputs, None))
        if verdict.status is AuthorityStatus.UNAVAILABLE:
            return self._finish(user_id, self._indeterminate(inputs, verdict.reason))
        if verdict.status is AuthorityStatus.REJECTED:
            verdict.can_claim = False

        outcome = self._decide(verdict.risk_score, verdict.can_claim, verdict.reason, abuse)
        outcome.device_fingerprint = inputs.device_fingerprint

        try:
            recorded = await self._authority.record_eligibility_decision(
                user_id,
                inputs,
                is_eligible=outcome.state is EligibilityState.GRANTED,
                risk_score=verdict.risk_score,
                credits_granted=outcome.credits_granted,
                reason=outcome.reason,
            )
        except AuthorityUnavailable as exc:
            logger.warning("Eligibility decision not recorded", user_id=str(user_id), error=str(exc))
            return self._finish(user_id, self._indeterminate(inputs, None))
        if recorded.status is AuthorityStatus.UNAVAILABLE:
            return self._finish(user_id, self._indeterminate(inputs, recorded.reason))
        if recorded.status is AuthorityStatus.REJECTED:
            outcome = EligibilityOutcome(
                state=EligibilityState.ALREADY_CLAIMED,
                reason="Eligibility was already decided for this account",
                risk_score=verdict.risk_score,
                device_fingerprint=inputs.device_fingerprint,
            )

        if outcome.state is EligibilityState.GRANTED:
            self._tracker.mark_claimed()
        return self._finish(user_id, outcome)

    def _decide(
        self,
        risk_score: int,
        can_claim: bool,
        authority_reason: Optional[str],
        abuse: AbuseReport,
    ) -> EligibilityOutcome:
        if abuse.suspicious:
            return EligibilityOutcome(
                state=EligibilityState.DENIED,
                reason=f"Suspicious activity detected: {'; '.join(abuse.reasons)}",
                risk_score=risk_score,
                abuse_reasons=list(abuse.reasons),
            )
        if not can_claim:
            return EligibilityOutcome(
                state=EligibilityState.DENIED,
                reason=authority_reason or "This account is not eligible for free credits",
                risk_score=risk_score,
            )
        if risk_score >= self._risk_threshold:
            return EligibilityOutcome(
                state=EligibilityState.DENIED,
                reason=f"High risk score detected: {risk_score}",
                risk_score=risk_score,
            )
        return EligibilityOutcome(
            state=EligibilityState.GRANTED,
            credits_granted=self._starting_credits,
            risk_score=risk_score,
        )

    def _indeterminate(self, inputs: EvaluationInputs, reason: Optional[str]) -> EligibilityOutcome:
        return EligibilityOutcome(
            state=EligibilityState.DENIED,
            reason=reason or "Eligibility could not be verified, try again later",
            indeterminate=True,
            device_fingerprint=inputs.device_fingerprint,
        )

    async def _grant_admin(self, user_id: UUID, context: EligibilityContext) -> EligibilityOutcome:
        inputs = self._inputs(context)
        try:
            recorded = await self._authority.record_eligibility_decision(
                user_id,
                inputs,
                is_eligible=True,
                risk_score=0,
                credits_granted=self._starting_credits,
                reason="administrative account",
            )
            status = recorded.status
        except AuthorityUnavailable:
            status = AuthorityStatus.UNAVAILABLE
        credits = self._starting_credits if status is AuthorityStatus.OK else 0
        if status is AuthorityStatus.UNAVAILABLE:
            logger.warning("Administrative grant not recorded", user_id=str(user_id))
        self._tracker.mark_claimed()
        return EligibilityOutcome(
            state=EligibilityState.GRANTED,
            credits_granted=credits,
            risk_score=0,
            device_fingerprint=inputs.device_fingerprint,
        )

    def _finish(self, user_id: UUID, outcome: EligibilityOutcome) -> EligibilityOutcome:
        self._state = outcome.state
        get_referral_store().record_eligibility_decision(outcome.state.value, indeterminate=outcome.indeterminate)
        self._notifications.publish_eligibility_decision(
            user_id,
            state=outcome.state.value,
            credits_granted=outcome.credits_granted,
            reason=outcome.reason,
            risk_score=outcome.risk_score,
        )
        log = logger.warning if outcome.state is EligibilityState.DENIED else logger.info
        log(
            "Eligibility evaluated",
            user_id=str(user_id),
            state=outcome.state.value,
            credits_granted=outcome.credits_granted,
            risk_score=outcome.risk_score,
            indeterminate=outcome.indeterminate,
            abuse_reasons=outcome.abuse_reasons,
        )
        return outcome


__all__ = [
    "EligibilityContext",
    "EligibilityEvaluator",
    "EligibilityOutcome",
    "EligibilityState",
]
