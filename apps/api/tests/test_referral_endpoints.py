import pytest
from httpx import ASGITransport, AsyncClient

from spritepay_api.models.user import User


async def _create_user(session_factory, email: str, name: str) -> str:
    async with session_factory() as session:
        user = User(email=email, display_name=name, credits=0)
        session.add(user)
        await session.commit()
        return str(user.id)


@pytest.mark.asyncio
async def test_share_code_lifecycle(app_with_db) -> None:
    app, session_factory = app_with_db
    user_id = await _create_user(session_factory, "ana@example.com", "Ana")
    headers = {"X-Session-User": user_id}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = await client.get("/api/v1/referrals/code", headers=headers)
        assert missing.status_code == 404

        created = await client.post("/api/v1/referrals/code", headers=headers)
        assert created.status_code == 200
        payload = created.json()
        code = payload["code"]
        assert len(code) == 8
        assert payload["isActive"] is True
        assert payload["link"].endswith(f"/signup?ref={code}")

        fetched = await client.get("/api/v1/referrals/code", headers=headers)
        assert fetched.json()["code"] == code

        deactivated = await client.post("/api/v1/referrals/code/deactivate", headers=headers)
        assert deactivated.json() == {"deactivated": True}

        gone = await client.get("/api/v1/referrals/code", headers=headers)
        assert gone.status_code == 404


@pytest.mark.asyncio
async def test_capture_then_process_links_new_account(app_with_db) -> None:
    app, session_factory = app_with_db
    referrer_id = await _create_user(session_factory, "ana@example.com", "Ana")
    referred_id = await _create_user(session_factory, "bruno@example.com", "Bruno")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        code = (await client.post("/api/v1/referrals/code", headers={"X-Session-User": referrer_id})).json()["code"]

        captured = await client.post(
            "/api/v1/referrals/capture",
            json={"url": f"https://spritepay.app/signup?ref={code}&utm_source=share"},
        )
        assert captured.status_code == 200
        capture_payload = captured.json()
        assert capture_payload["code"] == code
        assert capture_payload["cleanUrl"] == "https://spritepay.app/signup?utm_source=share"
        assert capture_payload["localState"]["pendingReferralCode"] == code

        processed = await client.post(
            "/api/v1/referrals/process",
            json={"localState": capture_payload["localState"]},
            headers={"X-Session-User": referred_id},
        )
        assert processed.status_code == 200
        process_payload = processed.json()
        assert process_payload["status"] == "created"
        assert process_payload["referrerUserId"] == referrer_id
        assert process_payload["localState"]["pendingReferralCode"] is None

        replay = await client.post(
            "/api/v1/referrals/process",
            json={"localState": capture_payload["localState"]},
            headers={"X-Session-User": referred_id},
        )
        assert replay.json()["status"] == "already_referred"

        stats = await client.get("/api/v1/referrals/statistics", headers={"X-Session-User": referrer_id})
        assert stats.status_code == 200
        stats_payload = stats.json()
        assert stats_payload["totalReferred"] == 1
        assert stats_payload["activeReferred"] == 0
        assert stats_payload["totalCreditsEarned"] == 0
        assert stats_payload["referredUsers"][0]["referredUserName"] == "Bruno"


@pytest.mark.asyncio
async def test_own_code_is_not_linked(app_with_db) -> None:
    app, session_factory = app_with_db
    user_id = await _create_user(session_factory, "ana@example.com", "Ana")
    headers = {"X-Session-User": user_id}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        code = (await client.post("/api/v1/referrals/code", headers=headers)).json()["code"]
        processed = await client.post(
            "/api/v1/referrals/process",
            json={"localState": {"pendingReferralCode": code}},
            headers=headers,
        )

    assert processed.json()["status"] == "self_referral"
