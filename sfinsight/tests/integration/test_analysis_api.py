from __future__ import annotations

import pytest

from sfinsight.tests.utils.auth import create_test_user
from sfinsight.tests.utils.orgs import connect_demo_org


async def _analyzed_org(api_client) -> tuple[int, dict[str, str], dict]:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]
    response = await api_client.post(f"/api/orgs/{org_id}/analyze", headers=headers)
    assert response.status_code == 200, response.text
    return org_id, headers, response.json()


async def _component_id(api_client, org_id: int, headers: dict[str, str], type_: str, name: str) -> int:
    rows = (await api_client.get(f"/api/orgs/{org_id}/metadata", params={"type": type_}, headers=headers)).json()
    return next(row["id"] for row in rows if row["name"] == name)


@pytest.mark.asyncio
async def test_health_before_analysis_is_404(api_client) -> None:
    _, headers, _ = await create_test_user()
    org_id = (await connect_demo_org(api_client, headers))["org"]["id"]
    response = await api_client.get(f"/api/orgs/{org_id}/health", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_analysis_scores_the_sample_org(api_client) -> None:
    org_id, headers, body = await _analyzed_org(api_client)

    health = body["health_score"]
    summary = body["summary"]
    assert summary["health_score_id"] == health["id"]
    assert summary["compliance_frameworks"] == 4
    assert summary["components_scanned"] > 0
    assert 0 <= health["overall_score"] <= 100
    assert health["security_score"] < 100
    titles = {issue["title"] for issue in health["issues"]}
    assert {"Apex Without Sharing Enforcement", "Unescaped Page Output"} <= titles

    latest = (await api_client.get(f"/api/orgs/{org_id}/health", headers=headers)).json()
    assert latest["id"] == health["id"]

    await api_client.post(f"/api/orgs/{org_id}/analyze", headers=headers)
    history = (await api_client.get(f"/api/orgs/{org_id}/health-scores", headers=headers)).json()
    assert len(history) == 2


@pytest.mark.asyncio
async def test_code_quality_flags_insecure_class(api_client) -> None:
    org_id, headers, _ = await _analyzed_org(api_client)
    rows = (
        await api_client.get(f"/api/orgs/{org_id}/code-quality", params={"componentType": "ApexClass"}, headers=headers)
    ).json()
    by_name = {row["component_name"]: row for row in rows}
    account_service = by_name["AccountService"]
    rules = {issue["rule"] for issue in account_service["issues"]}
    assert {"InsecureSharing", "AvoidSOQLInLoop", "DMLInLoop"} <= rules
    assert account_service["test_coverage"] is None
    assert account_service["quality_score"] < by_name["InvoiceSelector"]["quality_score"]


@pytest.mark.asyncio
async def test_compliance_and_issue_listing(api_client) -> None:
    org_id, headers, _ = await _analyzed_org(api_client)

    frameworks = (await api_client.get(f"/api/orgs/{org_id}/compliance", headers=headers)).json()
    totals = {row["framework_name"]: row["total_rules"] for row in frameworks}
    assert totals == {
        "Salesforce Security": 25,
        "GDPR Compliance": 18,
        "HIPAA": 22,
        "Financial Services Cloud": 15,
    }
    hipaa = (await api_client.get(f"/api/orgs/{org_id}/compliance", params={"framework": "HIPAA"}, headers=headers)).json()
    assert len(hipaa) == 1

    critical = (
        await api_client.get(f"/api/orgs/{org_id}/issues", params={"severity": "critical"}, headers=headers)
    ).json()
    assert critical
    assert all(issue["status"] == "open" for issue in critical)

    patched = await api_client.patch(f"/api/issues/{critical[0]['id']}", json={"status": "ignored"}, headers=headers)
    assert patched.status_code == 200
    assert patched.json()["status"] == "ignored"

    _, other_headers, _ = await create_test_user()
    hidden = await api_client.patch(f"/api/issues/{critical[0]['id']}", json={"status": "open"}, headers=other_headers)
    assert hidden.status_code == 404


@pytest.mark.asyncio
async def test_technical_debt_status_survives_reanalysis(api_client) -> None:
    org_id, headers, _ = await _analyzed_org(api_client)
    items = (await api_client.get(f"/api/orgs/{org_id}/technical-debt", headers=headers)).json()
    assert items
    target = items[0]

    invalid = await api_client.patch(f"/api/technical-debt/{target['id']}", json={"status": "Done"}, headers=headers)
    assert invalid.status_code == 400
    assert invalid.json()["error"]["code"] == "INVALID_STATUS"

    updated = await api_client.patch(
        f"/api/technical-debt/{target['id']}",
        json={"status": "In Progress", "assigned_to": "ada", "priority": 1},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "In Progress"
    assert "high-priority" in updated.json()["tags"]

    await api_client.post(f"/api/orgs/{org_id}/analyze", headers=headers)
    after = (await api_client.get(f"/api/orgs/{org_id}/technical-debt", headers=headers)).json()
    assert len(after) == len(items)
    kept = [item for item in after if item["id"] == target["id"]]
    assert kept and kept[0]["status"] == "In Progress"
    assert kept[0]["assigned_to"] == "ada"


@pytest.mark.asyncio
async def test_dependency_graph_and_release_impact(api_client) -> None:
    org_id, headers, _ = await _analyzed_org(api_client)
    trigger_id = await _component_id(api_client, org_id, headers, "ApexTrigger", "OpportunityTrigger")

    outgoing = (
        await api_client.get(f"/api/orgs/{org_id}/components/{trigger_id}/dependencies", headers=headers)
    ).json()
    assert any(dep["target_component_name"] == "Opportunity" for dep in outgoing)

    graph = (
        await api_client.get(f"/api/orgs/{org_id}/dependency-graph", params={"componentId": trigger_id}, headers=headers)
    ).json()
    focus = [node for node in graph["nodes"] if node["data"]["isFocus"]]
    assert [node["data"]["label"] for node in focus] == ["OpportunityTrigger"]

    object_id = await _component_id(api_client, org_id, headers, "CustomObject", "Opportunity")
    created = await api_client.post(
        f"/api/orgs/{org_id}/release-impacts",
        json={"release_name": "Spring cleanup", "component_ids": [object_id]},
        headers=headers,
    )
    assert created.status_code == 201
    impact = created.json()
    assert impact["risk_level"] in {"low", "medium", "high"}
    [affected] = impact["affected_components"]
    assert affected["name"] == "Opportunity"
    assert "OpportunityTrigger" in affected["dependentComponents"]

    listed = (await api_client.get(f"/api/orgs/{org_id}/release-impacts", headers=headers)).json()
    assert [item["id"] for item in listed] == [impact["id"]]

    rejected = await api_client.post(
        f"/api/orgs/{org_id}/release-impacts", json={"release_name": "Empty", "component_ids": []}, headers=headers
    )
    assert rejected.status_code == 400
    assert rejected.json()["error"]["code"] == "VALIDATION_FAILED"
