from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from spritepay_api.api.dependencies.rate_limit import get_withdrawal_rate_limiter
from spritepay_api.core.settings import settings
from spritepay_api.models.referral import ReferralCode
from spritepay_api.models.user import User
from spritepay_api.services.referrals import DatabaseReferralAuthority
from spritepay_api.services.security.rate_limiter import SlidingWindowRateLimiter, WithdrawalRateLimiter


@pytest.fixture
def limited_app(app_with_db):
    app, session_factory = app_with_db
    limiter = WithdrawalRateLimiter(SlidingWindowRateLimiter(60_000, 3))
    app.dependency_overrides[get_withdrawal_rate_limiter] = lambda: limiter
    return app, session_factory


async def _referral_pair(session_factory) -> tuple[str, str]:
    async with session_factory() as session:
        referrer = User(email="ana@example.com", display_name="Ana", credits=0)
        referred = User(email="bruno@example.com", display_name="Bruno", credits=0)
        session.add_all([referrer, referred])
        await session.flush()
        session.add(ReferralCode(user_id=referrer.id, code="ANA12345", is_active=True))
        await session.commit()
        referrer_id, referred_id = referrer.id, referred.id
        await DatabaseReferralAuthority(session).create_referral_relationship(
            referrer_id, referred_id, "ANA12345", "Bruno"
        )
    return str(referrer_id), str(referred_id)


@pytest.mark.asyncio
async def test_invalid_withdrawal_input_is_rejected(limited_app) -> None:
    app, session_factory = limited_app
    _, referred_id = await _referral_pair(session_factory)
    headers = {"X-Session-User": referred_id}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        bad_key = await client.post("/api/v1/withdrawals", json={"amount": 50, "pixKey": "12345"}, headers=headers)
        bad_amount = await client.post(
            "/api/v1/withdrawals", json={"amount": 50.5, "pixKey": "bruno@example.com"}, headers=headers
        )

    assert bad_key.status_code == 422
    assert bad_key.json()["detail"].startswith("Invalid PIX key")
    assert bad_amount.status_code == 422
    assert "whole number" in bad_amount.json()["detail"]


@pytest.mark.asyncio
async def test_fourth_withdrawal_in_a_minute_is_throttled(limited_app) -> None:
    app, session_factory = limited_app
    _, referred_id = await _referral_pair(session_factory)
    headers = {"X-Session-User": referred_id}
    body = {"amount": 20, "pixKey": "(11) 98765-4321"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        statuses = [
            (await client.post("/api/v1/withdrawals", json=body, headers=headers)).status_code for _ in range(3)
        ]
        throttled = await client.post("/api/v1/withdrawals", json=body, headers=headers)

    assert statuses == [201, 201, 201]
    assert throttled.status_code == 429
    assert int(throttled.headers["Retry-After"]) >= 1


@pytest.mark.asyncio
async def test_approval_issues_referrer_rewards(limited_app) -> None:
    app, session_factory = limited_app
    referrer_id, referred_id = await _referral_pair(session_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post(
            "/api/v1/withdrawals",
            json={"amount": 600, "pixKey": "bruno@example.com"},
            headers={"X-Session-User": referred_id},
        )
        assert created.status_code == 201
        withdrawal = created.json()
        assert withdrawal["status"] == "pending"
        assert withdrawal["pixKeyType"] == "email"

        approved = await client.post(f"/api/v1/withdrawals/{withdrawal['id']}/approve")
        assert approved.status_code == 200
        payload = approved.json()
        assert payload["withdrawal"]["status"] == "approved"
        assert payload["rewards"]["referrerUserId"] == referrer_id
        assert payload["rewards"]["issued"] == [
            "first_withdrawal",
            "withdrawal_50",
            "withdrawal_250",
            "withdrawal_500",
        ]
        assert payload["rewards"]["creditsAwarded"] == 8

        replay = await client.post(f"/api/v1/withdrawals/{withdrawal['id']}/approve")
        assert replay.status_code == 200
        assert replay.json()["rewards"]["issued"] == []
        assert replay.json()["rewards"]["creditsAwarded"] == 0

        missing = await client.post(f"/api/v1/withdrawals/{uuid4()}/approve")
        assert missing.status_code == 404

        stats = await client.get("/api/v1/referrals/statistics", headers={"X-Session-User": referrer_id})
        assert stats.json()["activeReferred"] == 1
        assert stats.json()["totalCreditsEarned"] == 8


@pytest.mark.asyncio
async def test_approval_requires_operator_key_when_configured(limited_app, monkeypatch) -> None:
    app, _ = limited_app
    monkeypatch.setattr(settings, "operator_api_key", "operator-secret")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        denied = await client.post(f"/api/v1/withdrawals/{uuid4()}/approve")
        allowed = await client.post(
            f"/api/v1/withdrawals/{uuid4()}/approve", headers={"X-API-Key": "operator-secret"}
        )

    assert denied.status_code == 401
    assert allowed.status_code == 404
