from __future__ import annotations

import csv
import io

import pytest

from sfinsight.tests.utils.auth import create_test_user
from sfinsight.tests.utils.orgs import connect_demo_org


async def _org_with_field(api_client, field_name: str = "Website") -> tuple[int, dict[str, str], dict]:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]
    fields = (
        await api_client.get(f"/api/orgs/{org_id}/data-dictionary", params={"objects": "Account"}, headers=headers)
    ).json()
    assert {item["object_api_name"] for item in fields} == {"Account"}
    target = next(item for item in fields if item["field_api_name"] == field_name)
    return org_id, headers, target


@pytest.mark.asyncio
async def test_catalog_is_built_on_connect(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]

    fields = (await api_client.get(f"/api/orgs/{org_id}/data-dictionary", headers=headers)).json()
    assert len(fields) == 34

    refreshed = await api_client.post(f"/api/orgs/{org_id}/data-dictionary/refresh", headers=headers)
    assert refreshed.json() == {"fields": 34}


@pytest.mark.asyncio
async def test_edit_stages_one_pending_change_per_field(api_client) -> None:
    org_id, headers, target = await _org_with_field(api_client)
    path = f"/api/orgs/{org_id}/data-dictionary/field/{target['id']}"

    first = await api_client.patch(path, json={"user_description": "Public site"}, headers=headers)
    assert first.status_code == 200
    second = await api_client.patch(path, json={"user_description": "Corporate website"}, headers=headers)
    assert second.json()["id"] == first.json()["id"]

    changes = (await api_client.get(f"/api/orgs/{org_id}/data-dictionary/changes", headers=headers)).json()
    assert len(changes) == 1
    assert changes[0]["status"] == "pending"
    assert changes[0]["old_value"] is None
    assert changes[0]["new_value"] == "Corporate website"

    missing = await api_client.patch(
        f"/api/orgs/{org_id}/data-dictionary/field/999999", json={"user_description": "x"}, headers=headers
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_apply_deploys_and_audits(api_client) -> None:
    org_id, headers, target = await _org_with_field(api_client)
    change = (
        await api_client.patch(
            f"/api/orgs/{org_id}/data-dictionary/field/{target['id']}",
            json={"user_description": "Corporate website"},
            headers=headers,
        )
    ).json()

    applied = await api_client.post(
        f"/api/orgs/{org_id}/data-dictionary/changes/apply", json={"change_ids": [change["id"]]}, headers=headers
    )
    assert applied.status_code == 200
    assert applied.json() == {"applied": [change["id"]], "failed": []}

    changes = (
        await api_client.get(f"/api/orgs/{org_id}/data-dictionary/changes", params={"status": "applied"}, headers=headers)
    ).json()
    assert [item["id"] for item in changes] == [change["id"]]
    assert changes[0]["applied_at"] is not None

    fields = (
        await api_client.get(f"/api/orgs/{org_id}/data-dictionary", params={"objects": "Account"}, headers=headers)
    ).json()
    website = next(item for item in fields if item["id"] == target["id"])
    assert website["description"] == "Corporate website"

    actions = [
        entry["action"]
        for entry in (await api_client.get(f"/api/orgs/{org_id}/data-dictionary/audit-log", headers=headers)).json()
    ]
    assert sorted(actions) == ["change_applied", "change_requested"]

    # Only pending changes can be discarded.
    discard = await api_client.delete(f"/api/orgs/{org_id}/data-dictionary/changes/{change['id']}", headers=headers)
    assert discard.status_code == 409
    assert discard.json()["error"]["code"] == "DATA_DICTIONARY_CONFLICT"


@pytest.mark.asyncio
async def test_discard_rejects_pending_change(api_client) -> None:
    org_id, headers, target = await _org_with_field(api_client)
    change = (
        await api_client.patch(
            f"/api/orgs/{org_id}/data-dictionary/field/{target['id']}",
            json={"user_description": "Scratch"},
            headers=headers,
        )
    ).json()

    response = await api_client.delete(f"/api/orgs/{org_id}/data-dictionary/changes/{change['id']}", headers=headers)
    assert response.status_code == 204

    pending = (
        await api_client.get(f"/api/orgs/{org_id}/data-dictionary/changes", params={"status": "pending"}, headers=headers)
    ).json()
    assert pending == []
    applied = await api_client.post(f"/api/orgs/{org_id}/data-dictionary/changes/apply", json={}, headers=headers)
    assert applied.json() == {"applied": [], "failed": []}


@pytest.mark.asyncio
async def test_export_then_import(api_client) -> None:
    org_id, headers, _ = await _org_with_field(api_client)

    exported = await api_client.get(
        f"/api/orgs/{org_id}/data-dictionary/export", params={"objects": "Account"}, headers=headers
    )
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    assert f"data-dictionary-{org_id}.csv" in exported.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(exported.text)))
    assert {row["field"] for row in rows} >= {"Name", "Website", "Industry"}

    upload = "object,field,user_description\nAccount,Website,Corporate website\nAccount,Nope__c,Ghost\nAccount,Industry,\n"
    response = await api_client.post(
        f"/api/orgs/{org_id}/data-dictionary/import",
        files={"file": ("dictionary.csv", upload.encode("utf-8"), "text/csv")},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json() == {
        "staged": 1,
        "unchanged": 1,
        "errors": ["line 3: unknown field Account.Nope__c"],
    }

    bad = await api_client.post(
        f"/api/orgs/{org_id}/data-dictionary/import",
        files={"file": ("dictionary.csv", b"name,notes\nx,y\n", "text/csv")},
        headers=headers,
    )
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "INVALID_CSV"
