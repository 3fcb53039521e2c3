from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from sfinsight.domain.models import HealthScore, Issue
from sfinsight.services.analytics.findings import OrgFindings


# Used when an org has no synced metadata yet.
DEFAULT_COMPLEXITY = {
    "complexity_score": 50,
    "performance_risk": 40,
    "technical_debt": 35,
    "metadata_volume": 45,
    "customization_level": 55,
}

_PREFIX = {"security": "SEC", "dataModel": "DM", "automation": "AUT", "apex": "APX", "ui": "UI"}


def _clamp(value: float) -> int:
    return int(max(0, min(100, round(value))))


def _mean(values: list[int], default: int = 100) -> float:
    return sum(values) / len(values) if values else default


@dataclass
class HealthReport:
    security_score: int
    data_model_score: int
    automation_score: int
    apex_score: int
    ui_component_score: int
    complexity: dict[str, int]
    issues: list[dict[str, Any]] = field(default_factory=list)

    @property
    def overall_score(self) -> int:
        scores = [
            self.security_score,
            self.data_model_score,
            self.automation_score,
            self.apex_score,
            self.ui_component_score,
        ]
        return _clamp(sum(scores) / len(scores))


def complexity_metrics(findings: OrgFindings) -> dict[str, int]:
    counts = findings.counts
    total = counts.get("total", 0)
    if total == 0:
        return dict(DEFAULT_COMPLEXITY)
    # Log scale: roughly 1000 components saturates the volume metric.
    metadata_volume = _clamp(100 * math.log10(1 + total) / 3)
    objects = counts.get("CustomObject", 0)
    custom_object_ratio = counts.get("custom_objects", 0) / objects if objects else 0
    fields = counts.get("fields", 0)
    custom_field_ratio = counts.get("custom_fields", 0) / fields if fields else 0
    code_share = (
        counts.get("ApexClass", 0) + counts.get("ApexTrigger", 0) + counts.get("FlowDefinition", 0)
    ) / total
    customization_level = _clamp(100 * (0.4 * custom_object_ratio + 0.4 * custom_field_ratio + 0.2 * code_share))
    code_complexity = _mean(findings.complexity_scores, default=0)
    complexity_score = _clamp(0.5 * metadata_volume + 0.5 * code_complexity)
    loop_hits = findings.hit_count("AvoidSOQLInLoop") + findings.hit_count("DMLInLoop")
    performance_risk = _clamp(15 * loop_hits + 5 * len(findings.complex_objects) + 5 * len(findings.triggers_per_object))
    all_quality = findings.quality_by_family.get("apex", []) + findings.quality_by_family.get("ui", [])
    technical_debt = _clamp(100 - _mean(all_quality) + 2 * findings.hit_count("DeprecatedAPI"))
    return {
        "complexity_score": complexity_score,
        "performance_risk": performance_risk,
        "technical_debt": technical_debt,
        "metadata_volume": metadata_volume,
        "customization_level": customization_level,
    }


def _issues(findings: OrgFindings) -> list[dict[str, Any]]:
    candidates: list[tuple[str, str, str, str, str, str, list[str]]] = []
    sharing = findings.components_for("InsecureSharing")
    if sharing:
        candidates.append((
            "critical", "security", "Apex Without Sharing Enforcement",
            f"{len(sharing)} Apex class(es) run without sharing rules: {', '.join(sharing)}",
            "Users may read or modify records their role should not reach",
            "Declare classes with sharing and isolate system-context logic",
            sharing,
        ))
    xss = findings.components_for("XSSVulnerability")
    if xss:
        candidates.append((
            "critical", "security", "Unescaped Page Output",
            f"Visualforce output is rendered with escape=\"false\" in {', '.join(xss)}",
            "Allows cross-site scripting against logged-in users",
            "Remove escape=\"false\" or encode values before rendering",
            xss,
        ))
    sensitive = findings.unencrypted_sensitive_fields
    if sensitive:
        candidates.append((
            "warning", "security", "Sensitive Fields Stored Unencrypted",
            f"{len(sensitive)} field(s) look sensitive but are not encrypted: {', '.join(sensitive[:5])}",
            "Sensitive data could be exposed through reports, exports or logs",
            "Use Shield Platform Encryption or restrict field-level security",
            sensitive,
        ))
    complex_objects = findings.complex_objects
    if complex_objects:
        candidates.append((
            "warning", "dataModel", "Complex Object Relationships",
            f"Objects with more than 10 child relationships: {', '.join(complex_objects)}",
            "May lead to query performance issues and trigger complexity",
            "Review data model and consider simplification or restructuring",
            complex_objects,
        ))
    undocumented = findings.undocumented_fields
    if undocumented:
        candidates.append((
            "info", "dataModel", "Undocumented Custom Fields",
            f"{len(undocumented)} custom field(s) have no description",
            "Makes the data model harder to understand and govern",
            "Add descriptions through the data dictionary",
            undocumented,
        ))
    for obj, names in sorted(findings.triggers_per_object.items()):
        candidates.append((
            "warning", "automation", "Multiple Triggers on One Object",
            f"{obj} has {len(names)} triggers: {', '.join(sorted(names))}",
            "Execution order between triggers is not guaranteed",
            "Consolidate into one trigger per object with a handler class",
            sorted(names),
        ))
    if findings.inactive_flows:
        candidates.append((
            "info", "automation", "Inactive Flows",
            f"{len(findings.inactive_flows)} flow(s) have no active version",
            "Unused automation adds maintenance overhead",
            "Activate or delete flows that are no longer needed",
            findings.inactive_flows,
        ))
    loops = sorted(set(findings.components_for("AvoidSOQLInLoop") + findings.components_for("DMLInLoop")))
    if loops:
        candidates.append((
            "warning", "apex", "Queries or DML Inside Loops",
            f"Loops issue SOQL or DML statements in {', '.join(loops)}",
            "Bulk operations will hit governor limits",
            "Bulkify code by querying and writing collections outside loops",
            loops,
        ))
    hardcoded = findings.components_for("HardcodedId")
    if hardcoded:
        candidates.append((
            "warning", "apex", "Hardcoded Record IDs",
            f"Record IDs are hardcoded in {', '.join(hardcoded)}",
            "Breaks during deployment between environments",
            "Use Custom Metadata, Custom Settings or queries to resolve IDs",
            hardcoded,
        ))
    deprecated = findings.components_for("DeprecatedAPI")
    if deprecated:
        candidates.append((
            "info", "ui", "Outdated API Versions",
            f"{len(deprecated)} component(s) target API versions below 40.0",
            "Old API versions miss platform fixes and may be retired",
            "Raise the API version and retest the component",
            deprecated,
        ))

    issues: list[dict[str, Any]] = []
    numbering: dict[str, int] = {}
    for severity, category, title, description, impact, recommendation, components in candidates:
        numbering[category] = numbering.get(category, 0) + 1
        issues.append(
            {
                "id": f"{_PREFIX[category]}-{numbering[category]:03d}",
                "severity": severity,
                "category": category,
                "title": title,
                "description": description,
                "impact": impact,
                "recommendation": recommendation,
                "components": components,
            }
        )
    return issues


def score_org(findings: OrgFindings) -> HealthReport:
    """Deterministic category scores derived from synced metadata and code scans."""
    security = _clamp(
        100
        - 15 * findings.hit_count("InsecureSharing")
        - 20 * findings.hit_count("XSSVulnerability")
        - 5 * findings.hit_count("HardcodedId")
        - 3 * len(findings.unencrypted_sensitive_fields)
    )
    custom_fields = findings.counts.get("custom_fields", 0)
    undocumented_ratio = len(findings.undocumented_fields) / custom_fields if custom_fields else 0
    data_model = _clamp(100 - 10 * len(findings.complex_objects) - 20 * undocumented_ratio)
    automation = _clamp(
        100
        - 10 * len(findings.triggers_per_object)
        - 5 * len(findings.inactive_flows)
        - 8 * findings.hit_count("DMLInLoop")
    )
    apex = _clamp(_mean(findings.quality_by_family.get("apex", [])))
    ui = _clamp(_mean(findings.quality_by_family.get("ui", [])))
    return HealthReport(
        security_score=security,
        data_model_score=data_model,
        automation_score=automation,
        apex_score=apex,
        ui_component_score=ui,
        complexity=complexity_metrics(findings),
        issues=_issues(findings),
    )


def to_health_score(org_id: int, report: HealthReport) -> HealthScore:
    return HealthScore(
        org_id=org_id,
        overall_score=report.overall_score,
        security_score=report.security_score,
        data_model_score=report.data_model_score,
        automation_score=report.automation_score,
        apex_score=report.apex_score,
        ui_component_score=report.ui_component_score,
        issues=report.issues,
        **report.complexity,
    )


def to_issue_rows(org_id: int, report: HealthReport) -> list[Issue]:
    return [
        Issue(
            org_id=org_id,
            title=item["title"],
            description=item["description"],
            severity=item["severity"],
            type=item["category"],
            status="open",
            related_metadata={"healthIssueId": item["id"], "components": item["components"]},
        )
        for item in report.issues
    ]
