from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx


logger = logging.getLogger(__name__)

CacheKey = tuple[Any, ...]
RETRYABLE_STATUSES = {429, 503}


class ApiError(Exception):
    """Non-2xx response from the sfinsight API."""

    def __init__(self, status: int, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details or {}


class QueryCache:
    """Response cache keyed by tuples such as ``("/api/orgs", 7, "metadata")``."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, Any] = {}
        self.invalidations: list[CacheKey] = []

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> Any:
        return self._entries.get(key)

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value

    def invalidate(self, prefix: CacheKey) -> int:
        """Drop every key starting with ``prefix``; returns how many were dropped."""
        self.invalidations.append(prefix)
        stale = [key for key in self._entries if key[: len(prefix)] == prefix]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def invalidation_count(self, prefix: CacheKey) -> int:
        return sum(1 for item in self.invalidations if item == prefix)


def _retry_after_seconds(headers: httpx.Headers) -> float | None:
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            return None
    return None


def _error_from_response(response: httpx.Response) -> ApiError:
    code = f"HTTP_{response.status_code}"
    message = response.reason_phrase or "Request failed"
    details: dict[str, Any] | None = None
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        code = str(error.get("code") or code)
        message = str(error.get("message") or message)
        details = error.get("details")
    return ApiError(response.status_code, code, message, details)


def orgs_key(*parts: Any) -> CacheKey:
    return ("/api/orgs", *parts)


class ApiClient:
    """Async client for the sfinsight HTTP API with a shared query cache.

    429 and 503 responses are retried with backoff, honoring ``Retry-After``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_key: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = 2,
        cache: QueryCache | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        timeout_s: float = 30.0,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._http = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=timeout_s)
        self._max_retries = max_retries
        self._sleep = sleep
        self.cache = cache or QueryCache()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def set_api_key(self, api_key: str) -> None:
        self._http.headers["Authorization"] = f"Bearer {api_key}"

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        attempt = 0
        while True:
            response = await self._http.request(method, path, **kwargs)
            if response.status_code in RETRYABLE_STATUSES and attempt < self._max_retries:
                delay = _retry_after_seconds(response.headers)
                if delay is None:
                    delay = min(2.0, 0.25 * (2 ** attempt))
                logger.info("api_retry method=%s path=%s status=%s delay_s=%.2f", method, path, response.status_code, delay)
                await self._sleep(delay)
                attempt += 1
                continue
            if response.status_code >= 400:
                raise _error_from_response(response)
            if response.status_code == 204 or not response.content:
                return None
            if response.headers.get("content-type", "").startswith("application/json"):
                return response.json()
            return response.text

    async def cached(self, key: CacheKey, path: str, *, params: dict[str, Any] | None = None) -> Any:
        if key in self.cache:
            return self.cache.get(key)
        value = await self.request("GET", path, params=params)
        self.cache.set(key, value)
        return value

    async def login(self, username: str, password: str) -> dict[str, Any]:
        session = await self.request("POST", "/api/login", json={"username": username, "password": password})
        self.set_api_key(session["api_key"])
        return session

    async def list_orgs(self) -> list[dict[str, Any]]:
        return await self.cached(orgs_key(), "/api/orgs")

    async def connect_org(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", "/api/orgs", json=payload)

    async def list_metadata(self, org_id: int, type_: str | None = None) -> list[dict[str, Any]]:
        params = {"type": type_} if type_ else None
        key = orgs_key(org_id, "metadata", type_) if type_ else orgs_key(org_id, "metadata")
        return await self.cached(key, f"/api/orgs/{org_id}/metadata", params=params)

    async def sync_metadata(self, org_id: int) -> dict[str, Any]:
        return await self.request("POST", f"/api/orgs/{org_id}/sync")

    async def execute_query(self, org_id: int, soql: str) -> dict[str, Any]:
        return await self.request("POST", f"/api/orgs/{org_id}/query", json={"query": soql})

    async def build_query(self, payload: dict[str, Any]) -> str:
        result = await self.request("POST", "/api/query/build", json=payload)
        return result["query"]

    async def list_fields(self, org_id: int) -> list[dict[str, Any]]:
        return await self.cached(orgs_key(org_id, "data-dictionary", "fields"), f"/api/orgs/{org_id}/data-dictionary")

    async def list_changes(self, org_id: int) -> list[dict[str, Any]]:
        return await self.cached(
            orgs_key(org_id, "data-dictionary", "changes"), f"/api/orgs/{org_id}/data-dictionary/changes"
        )

    async def list_audit_log(self, org_id: int) -> list[dict[str, Any]]:
        return await self.cached(
            orgs_key(org_id, "data-dictionary", "audit-log"), f"/api/orgs/{org_id}/data-dictionary/audit-log"
        )

    async def edit_field(self, org_id: int, field_id: int, user_description: str | None) -> dict[str, Any]:
        return await self.request(
            "PATCH",
            f"/api/orgs/{org_id}/data-dictionary/field/{field_id}",
            json={"user_description": user_description},
        )

    async def apply_changes(self, org_id: int, change_ids: list[int] | None = None) -> dict[str, Any]:
        return await self.request(
            "POST", f"/api/orgs/{org_id}/data-dictionary/changes/apply", json={"change_ids": change_ids}
        )

    async def discard_change(self, org_id: int, change_id: int) -> None:
        await self.request("DELETE", f"/api/orgs/{org_id}/data-dictionary/changes/{change_id}")
