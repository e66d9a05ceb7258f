"""Message templates for referral and eligibility events."""

from __future__ import annotations

from dataclasses import dataclass

from spritepay_api.models.referral import ReferralMilestone, milestone_label


DEFAULT_REFERRED_NAME = "New user"


@dataclass
class RenderedMessage:
    title: str
    message: str


def _display_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    return cleaned or DEFAULT_REFERRED_NAME


def render_referral_signup(referred_name: str | None) -> RenderedMessage:
    name = _display_name(referred_name)
    return RenderedMessage(
        title="New referral",
        message=(
            f"{name} created an account using your invite link! "
            "You will earn credits when they make their first withdrawal."
        ),
    )


def render_referral_welcome() -> RenderedMessage:
    return RenderedMessage(
        title="Welcome!",
        message="You were invited by a friend! Earn points and start playing!",
    )


def render_referral_reward(
    referred_name: str | None,
    milestone: ReferralMilestone,
    credits_earned: int,
) -> RenderedMessage:
    name = _display_name(referred_name)
    return RenderedMessage(
        title="Referral reward",
        message=(
            f'{name} reached the milestone "{milestone_label(milestone)}"! '
            f"You earned {credits_earned} credits!"
        ),
    )


def render_eligibility_decision(
    state: str,
    *,
    credits_granted: int,
    reason: str | None,
    risk_score: int | None,
) -> RenderedMessage:
    if state == "granted":
        return RenderedMessage(
            title="Credits granted",
            message=f"{credits_granted} credits were added to your account.",
        )
    if state == "already_claimed":
        return RenderedMessage(
            title="Credits already claimed",
            message="Free credits were already claimed on this device.",
        )
    detail = reason or "Free credits are unavailable for this account."
    if risk_score is not None:
        detail = f"{detail} (risk score: {risk_score})"
    return RenderedMessage(title="Credits blocked", message=detail)
