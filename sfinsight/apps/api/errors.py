from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sfinsight.apps.api.response import error_response
from sfinsight.core.errors import (
    CredentialError,
    DataDictionaryError,
    QueryBuildError,
    SalesforceApiError,
    SalesforceAuthError,
    SalesforceError,
    SalesforceTimeoutError,
    SfInsightError,
    ValidationFailedError,
)


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
    504: "GATEWAY_TIMEOUT",
}

# Most specific classes first; the first isinstance match wins.
_DOMAIN_ERRORS: tuple[tuple[type[SfInsightError], int, str], ...] = (
    (ValidationFailedError, 400, "VALIDATION_FAILED"),
    (SalesforceAuthError, 401, "SALESFORCE_AUTH_FAILED"),
    (SalesforceTimeoutError, 504, "SALESFORCE_TIMEOUT"),
    (SalesforceApiError, 502, "SALESFORCE_API_ERROR"),
    (SalesforceError, 502, "SALESFORCE_API_ERROR"),
    (CredentialError, 409, "CREDENTIALS_UNAVAILABLE"),
    (QueryBuildError, 400, "QUERY_BUILD_FAILED"),
    (DataDictionaryError, 409, "DATA_DICTIONARY_CONFLICT"),
)


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Accept either a plain message or a {code, message, ...} mapping.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def domain_error_status(exc: SfInsightError) -> tuple[int, str] | None:
    for error_type, status_code, code in _DOMAIN_ERRORS:
        if isinstance(exc, error_type):
            return status_code, code
    return None


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(content=payload, status_code=422)


async def domain_exception_handler(request: Request, exc: SfInsightError) -> JSONResponse:
    mapped = domain_error_status(exc)
    if mapped is None:
        return await unhandled_exception_handler(request, exc)
    status_code, code = mapped
    details = {"errors": exc.errors} if isinstance(exc, ValidationFailedError) else None
    if status_code >= 500:
        logger.warning("request_failed path=%s code=%s error=%s", request.url.path, code, exc)
    payload = error_response(request=request, code=code, message=str(exc), details=details)
    return JSONResponse(content=payload, status_code=status_code)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Log the trace server-side only.
    logger.error("request_unhandled_error path=%s", request.url.path, exc_info=exc)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
