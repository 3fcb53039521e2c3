from __future__ import annotations

import pytest

from sfinsight.tests.utils.auth import create_test_user
from sfinsight.tests.utils.orgs import connect_demo_org


@pytest.mark.asyncio
async def test_connect_populates_metadata(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]

    rows = (await api_client.get(f"/api/orgs/{org_id}/metadata", headers=headers)).json()
    assert len(rows) == 13
    counts: dict[str, int] = {}
    for row in rows:
        counts[row["type"]] = counts.get(row["type"], 0) + 1
    assert counts["CustomObject"] == 5
    assert counts["ApexClass"] == 2
    assert counts["FlowDefinition"] == 2

    classes = (
        await api_client.get(f"/api/orgs/{org_id}/metadata", params={"type": "ApexClass"}, headers=headers)
    ).json()
    assert sorted(row["name"] for row in classes) == ["AccountService", "InvoiceSelector"]

    single = await api_client.get(f"/api/orgs/{org_id}/metadata/{classes[0]['id']}", headers=headers)
    assert single.status_code == 200
    assert "Body" in single.json()["data"]


@pytest.mark.asyncio
async def test_resync_of_unchanged_org_changes_nothing(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]

    response = await api_client.post(f"/api/orgs/{org_id}/sync", headers=headers)
    assert response.status_code == 200
    result = response.json()
    assert result["created"] == 0
    assert result["updated"] == 0
    assert result["deleted"] == 0
    assert result["failed_types"] == []
    assert result["fields"] == 34

    rows = (await api_client.get(f"/api/orgs/{org_id}/metadata", headers=headers)).json()
    assert len(rows) == 13


@pytest.mark.asyncio
async def test_missing_metadata_row_is_404(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]
    response = await api_client.get(f"/api/orgs/{org_id}/metadata/999999", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_org_stats_and_api_usage(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]

    stats = (await api_client.get(f"/api/orgs/{org_id}/stats", headers=headers)).json()
    by_key = {stat["key"]: stat for stat in stats}
    assert by_key["dailyApiRequests"]["value"] == 14210
    assert by_key["dailyApiRequests"]["limit"] == 15000
    assert by_key["dataStorage"]["unit"] == "MB"
    assert by_key["activeUsers"]["value"] == 12
    assert by_key["apexClasses"]["value"] == 2

    usage = (await api_client.get(f"/api/orgs/{org_id}/api-usage", headers=headers)).json()
    assert usage == {"used": 790, "remaining": 14210, "max": 15000}
