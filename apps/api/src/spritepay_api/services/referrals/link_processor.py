"""Captures invite codes from landing URLs and links new accounts to their referrer."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from uuid import UUID

from loguru import logger

from spritepay_api.core.settings import settings
from spritepay_api.observability.referrals import get_referral_store
from spritepay_api.observability.tracing import get_tracer
from spritepay_api.services.eligibility.authority import AuthorityStatus
from spritepay_api.services.notifications import NotificationService
from spritepay_api.services.security.claim_tracker import KeyValueStore, SecurityKeys
from spritepay_api.services.security.errors import AuthorityUnavailable

from .authority import ReferralAuthority


REFERRAL_CODE_PATTERN = re.compile(r"^[A-Z0-9]{8}$")


def is_valid_referral_code(code: object) -> bool:
    return isinstance(code, str) and bool(REFERRAL_CODE_PATTERN.match(code))


def extract_referral_code(url: str, param: str | None = None) -> Optional[str]:
    """Return the invite code carried by ``url`` or None when absent or malformed."""

    name = param or settings.referral_query_param
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == name:
            return value if is_valid_referral_code(value) else None
    return None


def strip_referral_code(url: str, param: str | None = None) -> str:
    name = param or settings.referral_query_param
    parts = urlsplit(url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != name]
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_referral_link(base_url: str, code: str, *, path: str | None = None, param: str | None = None) -> str:
    signup_path = path or settings.referral_signup_path
    name = param or settings.referral_query_param
    return f"{base_url.rstrip('/')}{signup_path}?{urlencode({name: code})}"


class ReferredAccount(Protocol):
    id: UUID
    email: str
    display_name: Optional[str]


class ReferralProcessingStatus(str, Enum):
    NO_PENDING = "no_pending"
    INVALID_CODE = "invalid_code"
    ALREADY_REFERRED = "already_referred"
    CODE_NOT_FOUND = "code_not_found"
    SELF_REFERRAL = "self_referral"
    CREATED = "created"
    RETRY = "retry"


@dataclass
class CaptureResult:
    code: Optional[str]
    clean_url: str


@dataclass
class ReferralProcessingResult:
    status: ReferralProcessingStatus
    code: Optional[str] = None
    referrer_user_id: Optional[UUID] = None

    @property
    def created(self) -> bool:
        return self.status is ReferralProcessingStatus.CREATED


class ReferralLinkProcessor:
    """Holds a captured code in the pending slot until the new account can be linked.

    The slot is only cleared once processing reached a definitive answer, so an
    unreachable authority leaves the code in place for the next session event.
    """

    def __init__(
        self,
        store: KeyValueStore,
        authority: ReferralAuthority,
        notifications: NotificationService | None = None,
    ) -> None:
        self._store = store
        self._authority = authority
        self._notifications = notifications or NotificationService()

    @property
    def pending_code(self) -> Optional[str]:
        return self._store.get(SecurityKeys.PENDING_REFERRAL_CODE)

    def capture(self, url: str) -> CaptureResult:
        code = extract_referral_code(url)
        if code:
            self._store.set(SecurityKeys.PENDING_REFERRAL_CODE, code)
            get_referral_store().record_referral_event("captured")
            logger.info("Referral code captured", code=code)
        return CaptureResult(code=code, clean_url=strip_referral_code(url))

    def _finish(
        self,
        status: ReferralProcessingStatus,
        *,
        code: Optional[str] = None,
        referrer_user_id: Optional[UUID] = None,
        clear: bool = True,
    ) -> ReferralProcessingResult:
        if clear:
            self._store.delete(SecurityKeys.PENDING_REFERRAL_CODE)
        get_referral_store().record_referral_event(status.value)
        return ReferralProcessingResult(status=status, code=code, referrer_user_id=referrer_user_id)

    async def process_pending(self, account: ReferredAccount) -> ReferralProcessingResult:
        with get_tracer().start_as_current_span("referrals.process_pending"):
            return await self._process_pending(account)

    async def _process_pending(self, account: ReferredAccount) -> ReferralProcessingResult:
        user_id = account.id
        referred_name = account.display_name or None
        code = self.pending_code
        if not code:
            return ReferralProcessingResult(status=ReferralProcessingStatus.NO_PENDING)
        if not is_valid_referral_code(code):
            logger.info("Discarding malformed referral code", user_id=str(user_id))
            return self._finish(ReferralProcessingStatus.INVALID_CODE)

        try:
            anchor = await self._authority.find_anchor(user_id)
            if anchor is not None:
                logger.info(
                    "User already referred",
                    user_id=str(user_id),
                    referrer_user_id=str(anchor.referrer_user_id),
                )
                return self._finish(
                    ReferralProcessingStatus.ALREADY_REFERRED,
                    code=anchor.referral_code,
                    referrer_user_id=anchor.referrer_user_id,
                )

            owner = await self._authority.resolve_code(code)
            if owner is None or not owner.is_active:
                logger.info("Referral code not found or inactive", code=code, user_id=str(user_id))
                return self._finish(ReferralProcessingStatus.CODE_NOT_FOUND, code=code)
            if owner.user_id == user_id:
                logger.info("Self-referral ignored", code=code, user_id=str(user_id))
                return self._finish(ReferralProcessingStatus.SELF_REFERRAL, code=code)

            relationship = await self._authority.create_referral_relationship(
                owner.user_id,
                user_id,
                code,
                referred_name,
            )
        except AuthorityUnavailable as exc:
            logger.warning("Referral processing deferred", user_id=str(user_id), error=str(exc))
            return self._finish(ReferralProcessingStatus.RETRY, code=code, clear=False)

        if relationship.status is AuthorityStatus.UNAVAILABLE:
            return self._finish(ReferralProcessingStatus.RETRY, code=code, clear=False)
        if not relationship.created:
            return self._finish(
                ReferralProcessingStatus.ALREADY_REFERRED,
                code=code,
                referrer_user_id=owner.user_id,
            )

        try:
            await self._authority.echo_referral_code(user_id, code)
        except AuthorityUnavailable as exc:
            logger.warning("Referral code echo failed", user_id=str(user_id), error=str(exc))

        await self._notifications.send_referral_signup(
            owner.user_id,
            referred_user_id=user_id,
            referred_name=referred_name,
        )
        self._notifications.publish_referral_welcome(user_id, referrer_user_id=owner.user_id)
        logger.info(
            "Referral relationship created",
            code=code,
            referrer_user_id=str(owner.user_id),
            referred_user_id=str(user_id),
        )
        return self._finish(ReferralProcessingStatus.CREATED, code=code, referrer_user_id=owner.user_id)


__all__ = [
    "CaptureResult",
    "ReferralLinkProcessor",
    "ReferralProcessingResult",
    "ReferralProcessingStatus",
    "build_referral_link",
    "extract_referral_code",
    "is_valid_referral_code",
    "strip_referral_code",
]
