from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.core.config import get_settings
from sfinsight.domain.models import ApiKey, SalesforceOrg
from sfinsight.persistence.db import SessionLocal, get_session
from sfinsight.persistence.repos import orgs as orgs_repo
from sfinsight.persistence.repos import users as users_repo
from sfinsight.providers.salesforce.base import SalesforceApi
from sfinsight.providers.salesforce.connector import SalesforceConnector, get_salesforce_connector
from sfinsight.services.auth.api_keys import hash_api_key


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    user_id: int
    username: str
    api_key_id: str
    # api_key | dev_header
    auth_method: str = "api_key"


class PrincipalCache:
    """Short-lived map of API key hash to principal.

    Entries live for ``auth_cache_ttl_s`` seconds, so a key revoked from
    another process keeps working for at most that long.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, Principal]] = {}

    def get(self, key_hash: str) -> Principal | None:
        entry = self._entries.get(key_hash)
        if entry is None:
            return None
        deadline, principal = entry
        if deadline <= time.monotonic():
            del self._entries[key_hash]
            return None
        return principal

    def put(self, key_hash: str, principal: Principal, ttl_s: int) -> None:
        if ttl_s > 0:
            self._entries[key_hash] = (time.monotonic() + ttl_s, principal)

    def discard(self, key_hash: str) -> None:
        self._entries.pop(key_hash, None)

    def clear(self) -> None:
        self._entries.clear()


_auth_cache = PrincipalCache()


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def forget_cached_principal(raw_key: str) -> None:
    _auth_cache.discard(hash_api_key(raw_key))


def parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    scheme, _, token = header_value.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _unauthorized("Missing or invalid bearer token")
    return token


async def _record_key_use(api_key_id: str) -> None:
    # Own session: a failure here must not touch the request's transaction.
    async with SessionLocal() as session:
        try:
            await session.execute(update(ApiKey).where(ApiKey.id == api_key_id).values(last_used_at=func.now()))
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()


async def _principal_from_dev_header(request: Request, db: AsyncSession) -> Principal:
    # Local development only (AUTH_ENABLED=false).
    raw_user_id = request.headers.get("X-User-Id", "")
    if not raw_user_id.isdigit():
        raise _unauthorized("X-User-Id header is required when auth is disabled")
    user = await users_repo.get_user(db, int(raw_user_id))
    if user is None:
        raise _unauthorized("Unknown user")
    return Principal(user_id=user.id, username=user.username, api_key_id="dev-bypass", auth_method="dev_header")


def _is_expired(expires_at: datetime | None) -> bool:
    if expires_at is None:
        return False
    # SQLite hands back naive datetimes; they are UTC.
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= datetime.now(timezone.utc)


async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    settings = get_settings()
    if not settings.auth_enabled:
        return await _principal_from_dev_header(request, db)

    raw_key = parse_bearer_token(request.headers.get(settings.auth_api_key_header))
    if raw_key is None:
        raise _unauthorized("Missing API key")
    key_hash = hash_api_key(raw_key)
    principal = _auth_cache.get(key_hash)
    if principal is not None:
        return principal

    try:
        row = await users_repo.get_api_key_by_hash(db, key_hash)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "AUTH_UNAVAILABLE", "message": "Authentication unavailable"},
        ) from exc
    if row is None:
        raise _unauthorized("Invalid API key")
    api_key, user = row
    if api_key.revoked_at is not None:
        raise _unauthorized("API key is revoked")
    if _is_expired(api_key.expires_at):
        raise _unauthorized("API key has expired")

    principal = Principal(user_id=user.id, username=user.username, api_key_id=api_key.id)
    _auth_cache.put(key_hash, principal, settings.auth_cache_ttl_s)
    await _record_key_use(api_key.id)
    return principal


async def get_owned_org(
    org_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> SalesforceOrg:
    try:
        org = await orgs_repo.get_org_for_user(db, org_id, principal.user_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching org") from exc
    if org is None:
        # 404 rather than 403 so other users' org ids are not disclosed.
        raise HTTPException(status_code=404, detail="Org not found")
    return org


async def get_org_client(
    org: SalesforceOrg = Depends(get_owned_org),
    connector: SalesforceConnector = Depends(get_salesforce_connector),
) -> SalesforceApi:
    return await connector.for_org(org)
