from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import (
    Principal,
    forget_cached_principal,
    get_current_principal,
    get_db,
    parse_bearer_token,
)
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.core.config import get_settings
from sfinsight.domain.models import User
from sfinsight.persistence.repos import users as users_repo
from sfinsight.services.auth.api_keys import generate_api_key
from sfinsight.services.auth.passwords import hash_password, verify_password


logger = logging.getLogger(__name__)
router = APIRouter(tags=["auth"], responses=DEFAULT_ERROR_RESPONSES)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=8)
    email: str = Field(min_length=3)
    name: str = Field(min_length=1)


class LoginRequest(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    name: str
    created_at: str | None


class SessionResponse(BaseModel):
    user: UserResponse
    # Returned once; only the hash is stored.
    api_key: str
    expires_at: str | None


def _to_user(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        name=user.name,
        created_at=isoformat(user.created_at),
    )


async def _issue_key(db: AsyncSession, user: User, *, name: str) -> tuple[str, datetime]:
    key_id, raw_key, key_prefix, key_hash = generate_api_key()
    expires_at = datetime.now(timezone.utc) + timedelta(hours=get_settings().api_key_ttl_hours)
    await users_repo.add_api_key(
        db,
        key_id=key_id,
        user_id=user.id,
        key_prefix=key_prefix,
        key_hash=key_hash,
        name=name,
        expires_at=expires_at,
    )
    return raw_key, expires_at


@router.post("/register", response_model=SessionResponse, status_code=201)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)) -> SessionResponse:
    try:
        if await users_repo.find_conflict(db, username=payload.username, email=payload.email):
            raise HTTPException(status_code=409, detail="Username or email already registered")
        user = await users_repo.create_user(
            db,
            username=payload.username.strip(),
            email=payload.email.strip(),
            name=payload.name.strip(),
            password_hash=hash_password(payload.password),
        )
        raw_key, expires_at = await _issue_key(db, user, name="register")
        await db.commit()
        await db.refresh(user)
    except HTTPException:
        raise
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Username or email already registered") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while registering user") from exc
    logger.info("user_registered user_id=%s", user.id)
    return SessionResponse(user=_to_user(user), api_key=raw_key, expires_at=expires_at.isoformat())


@router.post("/login", response_model=SessionResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> SessionResponse:
    try:
        user = await users_repo.get_by_username(db, payload.username.strip())
        if user is None or not verify_password(payload.password, user.password_hash):
            logger.info("user_login_failed username=%s", payload.username)
            raise HTTPException(
                status_code=401,
                detail={"code": "AUTH_INVALID_CREDENTIALS", "message": "Invalid username or password"},
            )
        raw_key, expires_at = await _issue_key(db, user, name="login")
        await db.commit()
    except HTTPException:
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while logging in") from exc
    logger.info("user_logged_in user_id=%s", user.id)
    return SessionResponse(user=_to_user(user), api_key=raw_key, expires_at=expires_at.isoformat())


@router.post("/logout", status_code=204)
async def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        await users_repo.revoke_api_key(db, principal.api_key_id, datetime.now(timezone.utc))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while logging out") from exc
    raw_key = parse_bearer_token(request.headers.get(get_settings().auth_api_key_header))
    if raw_key:
        await forget_cached_principal(raw_key)
    logger.info("user_logged_out user_id=%s", principal.user_id)
    return Response(status_code=204)


@router.get("/user", response_model=UserResponse)
async def current_user(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    try:
        user = await users_repo.get_user(db, principal.user_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching user") from exc
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _to_user(user)
