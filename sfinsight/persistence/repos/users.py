from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import ApiKey, User


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def get_by_username(session: AsyncSession, username: str) -> User | None:
    # Usernames are matched case-insensitively.
    result = await session.execute(select(User).where(User.username.ilike(username)))
    return result.scalars().first()


async def find_conflict(session: AsyncSession, *, username: str, email: str) -> User | None:
    result = await session.execute(
        select(User).where(or_(User.username.ilike(username), User.email.ilike(email)))
    )
    return result.scalars().first()


async def create_user(
    session: AsyncSession,
    *,
    username: str,
    email: str,
    name: str,
    password_hash: str,
) -> User:
    user = User(username=username, email=email, name=name, password_hash=password_hash)
    session.add(user)
    await session.flush()
    return user


async def add_api_key(
    session: AsyncSession,
    *,
    key_id: str,
    user_id: int,
    key_prefix: str,
    key_hash: str,
    name: str | None,
    expires_at: datetime | None,
) -> ApiKey:
    api_key = ApiKey(
        id=key_id,
        user_id=user_id,
        key_prefix=key_prefix,
        key_hash=key_hash,
        name=name,
        expires_at=expires_at,
    )
    session.add(api_key)
    await session.flush()
    return api_key


async def get_api_key_by_hash(session: AsyncSession, key_hash: str) -> tuple[ApiKey, User] | None:
    result = await session.execute(
        select(ApiKey, User).join(User, User.id == ApiKey.user_id).where(ApiKey.key_hash == key_hash)
    )
    row = result.first()
    if row is None:
        return None
    return row[0], row[1]


async def revoke_api_key(session: AsyncSession, key_id: str, revoked_at: datetime) -> None:
    await session.execute(
        update(ApiKey).where(ApiKey.id == key_id, ApiKey.revoked_at.is_(None)).values(revoked_at=revoked_at)
    )
