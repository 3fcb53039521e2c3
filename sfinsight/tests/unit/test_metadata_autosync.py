from __future__ import annotations

import httpx
import pytest

from sfinsight.client.api import ApiClient, orgs_key
from sfinsight.client.sync import MetadataAutoSync


class _Backend:
    def __init__(self, sync_status: int = 200) -> None:
        self.sync_status = sync_status
        self.synced = False
        self.sync_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/api/orgs/5/sync":
            self.sync_calls += 1
            if self.sync_status != 200:
                return httpx.Response(
                    self.sync_status,
                    json={"error": {"code": "SALESFORCE_API_ERROR", "message": "describe failed"}, "meta": {}},
                )
            self.synced = True
            return httpx.Response(200, json={"synced": 1})
        if request.method == "GET" and request.url.path == "/api/orgs/5/metadata":
            rows = [{"id": 1, "type": "ApexClass", "name": "AccountService"}] if self.synced else []
            return httpx.Response(200, json=rows)
        return httpx.Response(404)


@pytest.mark.asyncio
async def test_empty_metadata_triggers_one_sync() -> None:
    backend = _Backend()
    async with ApiClient("http://test", transport=httpx.MockTransport(backend)) as api:
        autosync = MetadataAutoSync(api)
        metadata = await autosync.ensure(5)
        again = await autosync.ensure(5)

        assert api.cache.invalidation_count(orgs_key(5, "metadata")) == 1

    assert [row["name"] for row in metadata] == ["AccountService"]
    assert again == metadata
    assert backend.sync_calls == 1


@pytest.mark.asyncio
async def test_failed_sync_is_not_retried() -> None:
    backend = _Backend(sync_status=502)
    async with ApiClient("http://test", transport=httpx.MockTransport(backend)) as api:
        autosync = MetadataAutoSync(api)
        first = await autosync.ensure(5)
        second = await autosync.ensure(5)

    assert first == [] and second == []
    assert backend.sync_calls == 1
    assert autosync.errors == {5: "describe failed"}
