"""Seed development shortcut users and a share code into the API database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from spritepay_api.core.settings import settings
from spritepay_api.models.referral import ReferralCode
from spritepay_api.models.user import User, UserRoleEnum


class SeedUser(TypedDict):
    email: str
    display_name: str
    role: str
    referral_code: str | None


DEV_USERS: list[SeedUser] = [
    {
        "email": os.getenv("DEV_SHORTCUT_ADMIN_EMAIL", "admin@imperium.com").lower(),
        "display_name": "Admin QA",
        "role": UserRoleEnum.ADMIN.value,
        "referral_code": None,
    },
    {
        "email": os.getenv("DEV_SHORTCUT_REFERRER_EMAIL", "referrer@spritepay.dev").lower(),
        "display_name": "Referrer QA",
        "role": UserRoleEnum.USER.value,
        "referral_code": os.getenv("DEV_SHORTCUT_REFERRAL_CODE", "DEVREF01").upper(),
    },
    {
        "email": os.getenv("DEV_SHORTCUT_PLAYER_EMAIL", "player@spritepay.dev").lower(),
        "display_name": "Player QA",
        "role": UserRoleEnum.USER.value,
        "referral_code": None,
    },
]


async def seed_users(session: AsyncSession) -> None:
    for user in DEV_USERS:
        with session.no_autoflush:
            existing = await session.execute(select(User).where(User.email == user["email"]))
        record = existing.scalar_one_or_none()

        if record:
            record.display_name = user["display_name"]
            record.role = user["role"]
        else:
            record = User(email=user["email"], display_name=user["display_name"], role=user["role"], credits=0)
            session.add(record)
            await session.flush()

        code = user["referral_code"]
        if code:
            found = await session.execute(select(ReferralCode).where(ReferralCode.code == code))
            if found.scalar_one_or_none() is None:
                session.add(ReferralCode(user_id=record.id, code=code, is_active=True))
    await session.commit()


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            await seed_users(session)
        print("Development shortcut users ready ✅")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
