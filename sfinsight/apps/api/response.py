from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel


REQUEST_ID_HEADER = "X-Request-Id"


class ResponseMeta(BaseModel):
    request_id: str


class ErrorDetail(BaseModel):
    # ``code`` is what clients branch on; ``message`` is for people.
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


def get_request_id(request: Request) -> str:
    """Request id set by the middleware, or a fresh one when it never ran."""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
    return request_id


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    envelope = ErrorEnvelope(
        error=ErrorDetail(code=code, message=message, details=details),
        meta=ResponseMeta(request_id=get_request_id(request)),
    )
    payload = envelope.model_dump()
    if details is None:
        payload["error"].pop("details")
    return payload


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    # SQLite drops tzinfo; every stored timestamp is UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
