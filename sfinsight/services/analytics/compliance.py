from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from sfinsight.domain.models import Compliance
from sfinsight.services.analytics.findings import OrgFindings


@dataclass(frozen=True)
class ComplianceRule:
    name: str
    severity: str
    description: str
    impact: str


@dataclass(frozen=True)
class Framework:
    name: str
    # Size of the published checklist; rules we cannot evaluate count as passed.
    total_rules: int
    rules: tuple[str, ...]


COMPLIANCE_RULES: dict[str, ComplianceRule] = {
    rule.name: rule
    for rule in (
        ComplianceRule(
            "Sharing Enforcement",
            "high",
            "Apex code runs without enforcing record sharing",
            "Users can reach records outside their role hierarchy",
        ),
        ComplianceRule(
            "Output Encoding",
            "critical",
            "Page output is rendered without HTML escaping",
            "Exposes users to cross-site scripting",
        ),
        ComplianceRule(
            "Data Encryption",
            "critical",
            "Sensitive data is not properly encrypted",
            "Potential data breach risks",
        ),
        ComplianceRule(
            "Debug Log Hygiene",
            "medium",
            "Debug statements may write record data to debug logs",
            "Sensitive values can leak through log files",
        ),
        ComplianceRule(
            "Environment Independence",
            "medium",
            "Record IDs are hardcoded in code",
            "Breaks during deployment between environments",
        ),
        ComplianceRule(
            "Supported API Versions",
            "low",
            "Components target API versions that are no longer supported",
            "Platform fixes and security updates are not applied",
        ),
        ComplianceRule(
            "Data Documentation",
            "low",
            "Custom fields lack a documented purpose",
            "Data processing records cannot be kept accurate",
        ),
        ComplianceRule(
            "Governor Limit Safety",
            "high",
            "Queries or DML statements run inside loops",
            "Bulk operations fail once governor limits are reached",
        ),
    )
}

FRAMEWORKS: tuple[Framework, ...] = (
    Framework("Salesforce Security", 25, tuple(COMPLIANCE_RULES)),
    Framework(
        "GDPR Compliance",
        18,
        ("Data Encryption", "Data Documentation", "Debug Log Hygiene", "Sharing Enforcement"),
    ),
    Framework(
        "HIPAA",
        22,
        ("Data Encryption", "Sharing Enforcement", "Output Encoding", "Debug Log Hygiene", "Data Documentation"),
    ),
    Framework(
        "Financial Services Cloud",
        15,
        (
            "Sharing Enforcement",
            "Data Encryption",
            "Environment Independence",
            "Governor Limit Safety",
            "Supported API Versions",
        ),
    ),
)


def _offenders(rule: str, findings: OrgFindings) -> list[tuple[str, str]]:
    """Return (component type, component name) pairs violating ``rule``."""
    if rule == "Sharing Enforcement":
        return [("ApexClass", name) for name in findings.components_for("InsecureSharing")]
    if rule == "Output Encoding":
        return [("ApexPage", name) for name in findings.components_for("XSSVulnerability")]
    if rule == "Data Encryption":
        return [("CustomField", name) for name in findings.unencrypted_sensitive_fields]
    if rule == "Debug Log Hygiene":
        return [("ApexClass", name) for name in findings.components_for("DebugStatement")]
    if rule == "Environment Independence":
        return [("ApexClass", name) for name in findings.components_for("HardcodedId")]
    if rule == "Supported API Versions":
        return [("Component", name) for name in findings.components_for("DeprecatedAPI")]
    if rule == "Data Documentation":
        return [("CustomField", name) for name in findings.undocumented_fields]
    if rule == "Governor Limit Safety":
        names = set(findings.components_for("AvoidSOQLInLoop")) | set(findings.components_for("DMLInLoop"))
        return [("ApexClass", name) for name in sorted(names)]
    raise KeyError(rule)


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def evaluate_framework(framework: Framework, findings: OrgFindings) -> dict[str, Any]:
    violations: list[dict[str, Any]] = []
    failed_rules: set[str] = set()
    for rule_name in framework.rules:
        rule = COMPLIANCE_RULES[rule_name]
        for component_type, component_name in _offenders(rule_name, findings):
            failed_rules.add(rule_name)
            violations.append(
                {
                    "id": f"{_slug(rule_name)}-{_slug(component_name)}",
                    "rule": rule_name,
                    "description": rule.description,
                    "severity": rule.severity,
                    "componentType": component_type,
                    "componentName": component_name,
                    "details": f"Violation found in {component_name}: {rule.description}",
                    "recommendation": f"Implement proper {rule_name.lower()} according to best practices",
                    "impact": rule.impact,
                }
            )
    passed = framework.total_rules - len(failed_rules)
    by_severity = {level: 0 for level in ("critical", "high", "medium", "low")}
    for violation in violations:
        by_severity[violation["severity"]] += 1
    return {
        "framework_name": framework.name,
        "compliance_score": round(100 * passed / framework.total_rules),
        "passed_rules": passed,
        "total_rules": framework.total_rules,
        "critical_violations": by_severity["critical"],
        "high_violations": by_severity["high"],
        "medium_violations": by_severity["medium"],
        "low_violations": by_severity["low"],
        "violations": violations,
    }


def build_compliance_rows(org_id: int, findings: OrgFindings) -> list[Compliance]:
    return [Compliance(org_id=org_id, **evaluate_framework(framework, findings)) for framework in FRAMEWORKS]
