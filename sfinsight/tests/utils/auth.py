from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from sfinsight.persistence.db import SessionLocal
from sfinsight.persistence.repos import users as users_repo
from sfinsight.services.auth.api_keys import generate_api_key
from sfinsight.services.auth.passwords import hash_password


TEST_PASSWORD = "correct-horse-battery"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def create_test_user(
    *,
    username: str | None = None,
    key_revoked: bool = False,
    key_expires_at: datetime | None = None,
) -> tuple[int, dict[str, str], str]:
    """Provision a user plus API key; returns (user id, auth headers, raw key)."""
    username = username or f"user-{uuid4().hex[:8]}"
    key_id, raw_key, key_prefix, key_hash = generate_api_key()
    async with SessionLocal() as session:
        user = await users_repo.create_user(
            session,
            username=username,
            email=f"{username}@example.com",
            name=username.title(),
            password_hash=hash_password(TEST_PASSWORD),
        )
        api_key = await users_repo.add_api_key(
            session,
            key_id=key_id,
            user_id=user.id,
            key_prefix=key_prefix,
            key_hash=key_hash,
            name="test-key",
            expires_at=key_expires_at or _utc_now() + timedelta(days=1),
        )
        if key_revoked:
            api_key.revoked_at = _utc_now()
        await session.commit()
        user_id = user.id
    return user_id, {"Authorization": f"Bearer {raw_key}"}, raw_key
