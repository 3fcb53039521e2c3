from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable

from sfinsight.domain.models import CodeQuality, Metadata


# Field names that usually hold personal, health or financial data.
SENSITIVE_FIELD_RE = re.compile(
    r"(ssn|social_?security|tax_?id|date_?of_?birth|birth_?date|passport|diagnos|medical|health|"
    r"bank_?account|account_?number|iban|credit_?card|routing)",
    re.IGNORECASE,
)


@dataclass
class OrgFindings:
    """Counts and rule hits shared by the health, compliance and debt analyses."""

    counts: dict[str, int] = field(default_factory=dict)
    # rule name -> component names that violate it
    rule_hits: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    complex_objects: list[str] = field(default_factory=list)
    triggers_per_object: dict[str, list[str]] = field(default_factory=dict)
    inactive_flows: list[str] = field(default_factory=list)
    undocumented_fields: list[str] = field(default_factory=list)
    unencrypted_sensitive_fields: list[str] = field(default_factory=list)
    quality_by_family: dict[str, list[int]] = field(default_factory=lambda: defaultdict(list))
    complexity_scores: list[int] = field(default_factory=list)
    poorly_commented: list[str] = field(default_factory=list)

    def components_for(self, rule: str) -> list[str]:
        return sorted(set(self.rule_hits.get(rule, [])))

    def hit_count(self, rule: str) -> int:
        return len(self.rule_hits.get(rule, []))


_UI_TYPES = {"ApexPage", "LightningComponentBundle", "AuraDefinitionBundle"}


def collect_findings(metadata: Iterable[Metadata], code_quality: Iterable[CodeQuality]) -> OrgFindings:
    findings = OrgFindings()
    counts: dict[str, int] = defaultdict(int)
    triggers: dict[str, list[str]] = defaultdict(list)
    for row in metadata:
        counts[row.type] += 1
        counts["total"] += 1
        data: dict[str, Any] = row.data or {}
        if row.type == "CustomObject":
            if data.get("custom"):
                counts["custom_objects"] += 1
            fields = data.get("fields") or []
            counts["fields"] += len(fields)
            for item in fields:
                if not item.get("custom"):
                    continue
                counts["custom_fields"] += 1
                qualified = f"{row.name}.{item.get('name')}"
                if SENSITIVE_FIELD_RE.search(str(item.get("name") or "")) and item.get("type") != "encryptedstring":
                    findings.unencrypted_sensitive_fields.append(qualified)
            children = [rel for rel in data.get("relationships") or [] if rel.get("type") == "Child"]
            counts["relationships"] += len(data.get("relationships") or [])
            if len(children) > 10:
                findings.complex_objects.append(row.name)
        elif row.type == "ApexTrigger":
            table = data.get("TableEnumOrId")
            if table:
                triggers[str(table)].append(row.name)
        elif row.type == "FlowDefinition":
            if data.get("ActiveVersionId"):
                counts["active_flows"] += 1
            else:
                findings.inactive_flows.append(row.name)
    findings.counts = dict(counts)
    findings.triggers_per_object = {obj: names for obj, names in triggers.items() if len(names) > 1}

    for report in code_quality:
        family = "ui" if report.component_type in _UI_TYPES else "apex"
        findings.quality_by_family[family].append(report.quality_score)
        findings.complexity_scores.append(report.complexity_score)
        for issue in report.issues or []:
            findings.rule_hits[issue["rule"]].append(report.component_name)
        metrics = report.complexity_metrics or {}
        if (
            report.component_type in {"ApexClass", "ApexTrigger"}
            and metrics.get("linesOfCode", 0) > 30
            and metrics.get("commentRatio", 0) < 5
        ):
            findings.poorly_commented.append(report.component_name)
    return findings


def attach_field_documentation(findings: OrgFindings, fields: Iterable[Any]) -> None:
    """Record custom fields that have neither a Salesforce nor a local description."""
    findings.undocumented_fields = sorted(
        f"{item.object_api_name}.{item.field_api_name}"
        for item in fields
        if item.field_api_name.endswith("__c") and not (item.description or item.user_description)
    )
