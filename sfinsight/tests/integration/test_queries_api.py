from __future__ import annotations

import pytest

from sfinsight.core.config import get_settings
from sfinsight.tests.utils.auth import create_test_user
from sfinsight.tests.utils.orgs import connect_demo_org


@pytest.mark.asyncio
async def test_execute_query_strips_record_attributes(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]

    response = await api_client.post(
        f"/api/orgs/{org_id}/query", json={"query": "SELECT Id, Name FROM Account"}, headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["totalSize"] == 3
    assert body["done"] is True
    assert all("attributes" not in record for record in body["records"])
    assert {record["Name"] for record in body["records"]} >= {"Acme Corporation"}


@pytest.mark.asyncio
async def test_empty_query_is_rejected(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]
    response = await api_client.post(f"/api/orgs/{org_id}/query", json={"query": ""}, headers=headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_build_simple_query(api_client) -> None:
    _, headers, _ = await create_test_user()
    response = await api_client.post(
        "/api/query/build",
        json={
            "object_name": "Account",
            "fields": ["Id", "Name"],
            "filters": [{"field": "AnnualRevenue", "operator": ">", "value": "1000000"}],
            "limit": 10,
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["query"] == "SELECT Id, Name\nFROM Account\nWHERE AnnualRevenue > 1000000\nLIMIT 10"


@pytest.mark.asyncio
async def test_relationship_builder_without_fields_fails(api_client) -> None:
    _, headers, _ = await create_test_user()
    response = await api_client.post("/api/query/build", json={"root_object": "Account"}, headers=headers)
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "QUERY_BUILD_FAILED"
    assert error["message"] == "No fields selected"


@pytest.mark.asyncio
async def test_saved_queries_lifecycle(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]

    created = await api_client.post(
        f"/api/orgs/{org_id}/saved-queries",
        json={"name": "Big accounts", "query": "SELECT Id FROM Account WHERE AnnualRevenue > 1000000"},
        headers=headers,
    )
    assert created.status_code == 201
    saved = created.json()
    assert saved["org_id"] == org_id

    listed = (await api_client.get(f"/api/orgs/{org_id}/saved-queries", headers=headers)).json()
    assert [item["name"] for item in listed] == ["Big accounts"]

    path = f"/api/orgs/{org_id}/saved-queries/{saved['id']}"
    assert (await api_client.delete(path, headers=headers)).status_code == 204
    assert (await api_client.delete(path, headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_filter_templates_are_private_unless_shared(api_client) -> None:
    _, owner_headers, _ = await create_test_user()
    _, other_headers, _ = await create_test_user()

    for name, shared in (("Mine", False), ("Team", True)):
        response = await api_client.post(
            "/api/filter-templates",
            json={"name": name, "filters": {"type": "ApexClass", "severity": "critical"}, "is_shared": shared},
            headers=owner_headers,
        )
        assert response.status_code == 201

    owner_view = (await api_client.get("/api/filter-templates", headers=owner_headers)).json()
    other_view = (await api_client.get("/api/filter-templates", headers=other_headers)).json()
    assert [item["name"] for item in owner_view] == ["Mine", "Team"]
    assert [item["name"] for item in other_view] == ["Team"]
    assert other_view[0]["filters"] == {"type": "ApexClass", "severity": "critical"}


@pytest.mark.asyncio
async def test_execute_query_caps_records(api_client, monkeypatch) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]
    monkeypatch.setenv("QUERY_MAX_RECORDS", "2")
    get_settings.cache_clear()

    response = await api_client.post(
        f"/api/orgs/{org_id}/query", json={"query": "SELECT Id, Name FROM Account"}, headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["totalSize"] == 3
    assert body["done"] is False
    assert len(body["records"]) == 2


@pytest.mark.asyncio
async def test_build_relationship_query_adds_target_id_and_default_limit(api_client) -> None:
    _, headers, _ = await create_test_user()
    response = await api_client.post(
        "/api/query/build",
        json={
            "root_object": "Contact",
            "selected_fields": [{"object_name": "Contact", "field_name": "Name"}],
            "relationships": [
                {"source_object": "Contact", "target_object": "Account", "relationship_name": "Account"}
            ],
            "object_fields": {"Contact": ["Id", "Name", "AccountId"], "Account": ["Id", "Name"]},
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["query"] == "SELECT Name, Account.Id\nFROM Contact\nLIMIT 10"


@pytest.mark.asyncio
async def test_build_relationship_query_honours_explicit_limit(api_client) -> None:
    _, headers, _ = await create_test_user()
    response = await api_client.post(
        "/api/query/build",
        json={
            "root_object": "Account",
            "selected_fields": [{"object_name": "Account", "field_name": "Name"}],
            "limit": 25,
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["query"] == "SELECT Name\nFROM Account\nLIMIT 25"
