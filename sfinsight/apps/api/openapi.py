from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from sfinsight.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {
            "application/json": {
                "example": _error_example(code=code, message=message, details=details),
            }
        },
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response(
        "Bad request",
        "VALIDATION_FAILED",
        "Org name is required",
        details={"errors": ["Org name is required"]},
    ),
    401: _response("Unauthorized", "AUTH_UNAUTHORIZED", "Missing or invalid bearer token"),
    404: _response("Not found", "NOT_FOUND", "Org not found"),
    409: _response("Conflict", "CONFLICT", "Username or email already registered"),
    422: _response("Validation error", "REQUEST_VALIDATION_ERROR", "Validation error"),
    500: _response("Internal server error", "INTERNAL_ERROR", "Internal server error"),
    502: _response(
        "Salesforce request failed",
        "SALESFORCE_API_ERROR",
        "Failed to execute query: MALFORMED_QUERY",
    ),
    504: _response(
        "Salesforce timed out",
        "SALESFORCE_TIMEOUT",
        "Failed to execute query: Salesforce did not respond in time",
    ),
}


def install_openapi(app: FastAPI, *, public_paths: set[str]) -> None:
    """Publish a bearer security scheme and require it on every non-public route."""

    def build_schema() -> dict[str, Any]:
        if app.openapi_schema is None:
            schema = get_openapi(title=app.title, version=app.version, routes=app.routes)
            schema.setdefault("components", {}).setdefault("securitySchemes", {})["BearerAuth"] = {
                "type": "http",
                "scheme": "bearer",
            }
            for path, operations in schema.get("paths", {}).items():
                requirement = [] if path in public_paths else [{"BearerAuth": []}]
                for operation in operations.values():
                    operation["security"] = requirement
            app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = build_schema  # type: ignore[method-assign]
