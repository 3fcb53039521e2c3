from __future__ import annotations

from sfinsight.domain.models import CodeQuality, Metadata
from sfinsight.services.analytics.findings import OrgFindings, collect_findings
from sfinsight.services.analytics.health import (
    DEFAULT_COMPLEXITY,
    complexity_metrics,
    score_org,
    to_health_score,
    to_issue_rows,
)


def test_empty_org_uses_default_complexity() -> None:
    assert complexity_metrics(OrgFindings()) == DEFAULT_COMPLEXITY


def test_clean_org_scores_full_marks() -> None:
    report = score_org(OrgFindings(counts={"total": 3, "CustomObject": 3}))
    assert report.overall_score == 100
    assert report.issues == []


def test_security_findings_lower_score_and_raise_issues() -> None:
    findings = OrgFindings()
    findings.rule_hits["InsecureSharing"].append("AccountService")
    findings.rule_hits["XSSVulnerability"].append("InvoiceView")

    report = score_org(findings)

    assert report.security_score == 65
    assert report.overall_score == 93
    assert [(issue["id"], issue["severity"]) for issue in report.issues] == [
        ("SEC-001", "critical"),
        ("SEC-002", "critical"),
    ]
    assert report.issues[0]["components"] == ["AccountService"]


def test_issue_numbering_is_per_category() -> None:
    findings = OrgFindings(
        triggers_per_object={"Opportunity": ["OppTriggerB", "OppTriggerA"]},
        inactive_flows=["Case_Escalation"],
        undocumented_fields=["Invoice__c.Status__c"],
        counts={"custom_fields": 4},
    )
    report = score_org(findings)
    ids = [issue["id"] for issue in report.issues]
    assert ids == ["DM-001", "AUT-001", "AUT-002"]
    assert report.issues[1]["components"] == ["OppTriggerA", "OppTriggerB"]
    assert report.automation_score == 85
    assert report.data_model_score == 95


def test_health_rows_carry_scores_and_issue_links() -> None:
    findings = OrgFindings()
    findings.rule_hits["HardcodedId"].append("Owners")
    report = score_org(findings)

    score = to_health_score(9, report)
    assert score.org_id == 9
    assert score.overall_score == report.overall_score
    assert score.complexity_score == DEFAULT_COMPLEXITY["complexity_score"]

    issues = to_issue_rows(9, report)
    assert len(issues) == 1
    assert issues[0].status == "open"
    assert issues[0].type == "apex"
    assert issues[0].related_metadata == {"healthIssueId": "APX-001", "components": ["Owners"]}


def test_collect_findings_reads_metadata_and_code_quality() -> None:
    metadata = [
        Metadata(
            id=1,
            type="CustomObject",
            name="Patient__c",
            data={
                "custom": True,
                "fields": [
                    {"name": "Name", "custom": False, "type": "string"},
                    {"name": "SSN__c", "custom": True, "type": "string"},
                    {"name": "Notes__c", "custom": True, "type": "textarea"},
                ],
                "relationships": [],
            },
        ),
        Metadata(id=2, type="ApexTrigger", name="PatientTriggerA", data={"TableEnumOrId": "Patient__c"}),
        Metadata(id=3, type="ApexTrigger", name="PatientTriggerB", data={"TableEnumOrId": "Patient__c"}),
        Metadata(id=4, type="FlowDefinition", name="Intake", data={"ActiveVersionId": None}),
    ]
    quality = [
        CodeQuality(
            component_id=2,
            component_name="PatientTriggerA",
            component_type="ApexTrigger",
            quality_score=80,
            complexity_score=10,
            issues=[{"rule": "DMLInLoop"}],
            complexity_metrics={"linesOfCode": 12, "commentRatio": 0},
        )
    ]

    findings = collect_findings(metadata, quality)

    assert findings.counts["custom_fields"] == 2
    assert findings.unencrypted_sensitive_fields == ["Patient__c.SSN__c"]
    assert findings.triggers_per_object == {"Patient__c": ["PatientTriggerA", "PatientTriggerB"]}
    assert findings.inactive_flows == ["Intake"]
    assert findings.hit_count("DMLInLoop") == 1
    assert findings.quality_by_family["apex"] == [80]
    assert findings.poorly_commented == []
