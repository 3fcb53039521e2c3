from __future__ import annotations

from sfinsight.services.analytics.compliance import (
    FRAMEWORKS,
    build_compliance_rows,
    evaluate_framework,
)
from sfinsight.services.analytics.findings import OrgFindings


def _framework(name: str):
    return next(framework for framework in FRAMEWORKS if framework.name == name)


def _findings() -> OrgFindings:
    findings = OrgFindings()
    findings.rule_hits["InsecureSharing"].extend(["AccountService", "LeadRouter"])
    findings.rule_hits["DebugStatement"].append("AccountService")
    return findings


def test_framework_catalog_totals() -> None:
    assert {framework.name: framework.total_rules for framework in FRAMEWORKS} == {
        "Salesforce Security": 25,
        "GDPR Compliance": 18,
        "HIPAA": 22,
        "Financial Services Cloud": 15,
    }


def test_clean_org_passes_every_rule() -> None:
    result = evaluate_framework(_framework("HIPAA"), OrgFindings())
    assert result["passed_rules"] == 22
    assert result["compliance_score"] == 100
    assert result["violations"] == []


def test_failed_rules_count_once_and_violations_per_component() -> None:
    result = evaluate_framework(_framework("Salesforce Security"), _findings())

    assert result["passed_rules"] == 23
    assert result["compliance_score"] == 92
    assert result["high_violations"] == 2
    assert result["medium_violations"] == 1
    assert result["critical_violations"] == 0
    names = [(violation["rule"], violation["componentName"]) for violation in result["violations"]]
    assert names == [
        ("Sharing Enforcement", "AccountService"),
        ("Sharing Enforcement", "LeadRouter"),
        ("Debug Log Hygiene", "AccountService"),
    ]
    first = result["violations"][0]
    assert first["id"] == "sharing-enforcement-accountservice"
    assert first["recommendation"] == "Implement proper sharing enforcement according to best practices"


def test_framework_only_checks_its_own_rules() -> None:
    findings = OrgFindings()
    findings.rule_hits["XSSVulnerability"].append("InvoiceView")

    gdpr = evaluate_framework(_framework("GDPR Compliance"), findings)
    hipaa = evaluate_framework(_framework("HIPAA"), findings)

    assert gdpr["violations"] == []
    assert hipaa["critical_violations"] == 1
    assert hipaa["passed_rules"] == 21


def test_one_row_per_framework() -> None:
    rows = build_compliance_rows(4, _findings())
    assert [row.framework_name for row in rows] == [framework.name for framework in FRAMEWORKS]
    assert all(row.org_id == 4 for row in rows)
    gdpr = next(row for row in rows if row.framework_name == "GDPR Compliance")
    assert gdpr.compliance_score == 89
