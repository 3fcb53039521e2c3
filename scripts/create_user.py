from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone

from sfinsight.core.config import get_settings
from sfinsight.core.logging import configure_logging
from sfinsight.persistence.db import SessionLocal
from sfinsight.persistence.repos import users as users_repo
from sfinsight.services.auth.api_keys import generate_api_key
from sfinsight.services.auth.passwords import hash_password


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create a user and issue an API key")
    parser.add_argument("--username", required=True, help="Login name")
    parser.add_argument("--email", required=True, help="Unique email address")
    parser.add_argument("--password", required=True, help="Initial password")
    parser.add_argument("--name", default=None, help="Display name (defaults to username)")
    parser.add_argument("--key-name", default="cli", help="Label stored with the API key")
    return parser


async def _create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with SessionLocal() as session:
        conflict = await users_repo.find_conflict(session, username=args.username, email=args.email)
        if conflict is not None:
            raise ValueError("Username or email already exists")
        user = await users_repo.create_user(
            session,
            username=args.username,
            email=args.email,
            name=args.name or args.username,
            password_hash=hash_password(args.password),
        )
        key_id, raw_key, key_prefix, key_hash = generate_api_key()
        await users_repo.add_api_key(
            session,
            key_id=key_id,
            user_id=user.id,
            key_prefix=key_prefix,
            key_hash=key_hash,
            name=args.key_name,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.api_key_ttl_hours),
        )
        await session.commit()

    print("User created:")
    print(f"  user_id: {user.id}")
    print(f"  key_prefix: {key_prefix}")
    print("  api_key: ")
    print(f"    {raw_key}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_create_user(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_user failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
