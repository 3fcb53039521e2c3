from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sfinsight.domain.models import CodeQuality, TechnicalDebtItem
from sfinsight.services.analytics.findings import OrgFindings


DEBT_CATEGORIES = (
    "Legacy Code",
    "Technical Implementation",
    "Documentation",
    "Testing",
    "Architecture",
    "Performance",
)
DEBT_STATUSES = ("Identified", "Analyzed", "Prioritized", "In Progress", "Completed", "Deferred")

_SEVERITY_PRIORITY = {"critical": 1, "high": 2, "medium": 3, "low": 4}


@dataclass(frozen=True)
class DebtTemplate:
    category: str
    title: str
    description: str
    impact: str
    # Hours for a single occurrence.
    hours: int


# Keyed by code-quality rule.
RULE_DEBT: dict[str, DebtTemplate] = {
    "DeprecatedAPI": DebtTemplate(
        "Legacy Code",
        "Deprecated API Usage",
        "Using deprecated Salesforce APIs that may be removed in future releases",
        "High risk of breaking functionality in future org upgrades",
        16,
    ),
    "HardcodedId": DebtTemplate(
        "Technical Implementation",
        "Hardcoded IDs",
        "Hardcoded record IDs in Apex code",
        "Breaks during deployment between environments",
        8,
    ),
    "InsecureSharing": DebtTemplate(
        "Technical Implementation",
        "Sharing Not Enforced",
        "Class runs without enforcing sharing rules",
        "Users may see or modify records outside their access",
        6,
    ),
    "XSSVulnerability": DebtTemplate(
        "Technical Implementation",
        "Unescaped Output",
        "Markup renders values without escaping",
        "Exposes users to cross-site scripting",
        6,
    ),
    "DebugStatement": DebtTemplate(
        "Technical Implementation",
        "Leftover Debug Statements",
        "System.debug calls remain in production code",
        "Consumes CPU time and may leak data into debug logs",
        1,
    ),
    "MethodTooLong": DebtTemplate(
        "Architecture",
        "Monolithic Design",
        "Business logic concentrated in very long methods",
        "Difficult to maintain and extend functionality",
        20,
    ),
    "AvoidSOQLInLoop": DebtTemplate(
        "Performance",
        "Inefficient SOQL Queries",
        "Queries executed inside loops that could be consolidated",
        "Approaching governor limits with large data volumes",
        16,
    ),
    "DMLInLoop": DebtTemplate(
        "Performance",
        "Excessive DML Operations",
        "DML statements inside loops causing governor limit issues",
        "Operations fail with more than 100 records",
        12,
    ),
}

MISSING_DOCUMENTATION = DebtTemplate(
    "Documentation",
    "Missing Code Documentation",
    "Apex code lacks proper documentation and comments",
    "Difficult for new developers to understand and maintain",
    12,
)
TRIGGER_FRAMEWORK = DebtTemplate(
    "Legacy Code",
    "Outdated Trigger Framework",
    "Several triggers on the same object instead of one handler-based trigger",
    "Execution order is undefined and logic is hard to bulkify",
    24,
)
FIELD_DOCUMENTATION = DebtTemplate(
    "Documentation",
    "Outdated Technical Specs",
    "Custom fields have no description in the data dictionary",
    "Knowledge transfer and maintenance challenges",
    1,
)


def debt_tags(category: str, priority: int) -> list[str]:
    return [category.lower(), "technical-debt", "high-priority" if priority <= 2 else "normal-priority"]


def _item(
    org_id: int,
    template: DebtTemplate,
    *,
    priority: int,
    description: str,
    hours: int,
    component: CodeQuality | None = None,
) -> TechnicalDebtItem:
    return TechnicalDebtItem(
        org_id=org_id,
        component_id=component.component_id if component else None,
        component_name=component.component_name if component else None,
        component_type=component.component_type if component else None,
        category=template.category,
        title=template.title,
        description=description,
        impact=template.impact,
        priority=priority,
        status="Identified",
        estimated_remediation_hours=hours,
        tags=debt_tags(template.category, priority),
    )


def derive_technical_debt(
    org_id: int,
    code_quality: Iterable[CodeQuality],
    findings: OrgFindings,
    *,
    keep: Iterable[tuple[int | None, str]] = (),
) -> list[TechnicalDebtItem]:
    """Group code-quality issues into one debt item per component and rule.

    ``keep`` holds (component id, title) pairs of items already being worked
    on; matching items are not recreated.
    """
    skip = set(keep)
    items: list[TechnicalDebtItem] = []
    for report in code_quality:
        grouped: dict[str, list[dict]] = {}
        for issue in report.issues or []:
            grouped.setdefault(issue["rule"], []).append(issue)
        for rule, issues in sorted(grouped.items()):
            template = RULE_DEBT.get(rule)
            if template is None or (report.component_id, template.title) in skip:
                continue
            lines = ", ".join(str(issue["line"]) for issue in issues)
            priority = min(_SEVERITY_PRIORITY[issue["severity"]] for issue in issues)
            items.append(
                _item(
                    org_id,
                    template,
                    priority=priority,
                    description=f"{template.description} ({len(issues)} occurrence(s), line(s) {lines})",
                    hours=template.hours * len(issues),
                    component=report,
                )
            )
        if (
            report.component_name in findings.poorly_commented
            and (report.component_id, MISSING_DOCUMENTATION.title) not in skip
        ):
            items.append(
                _item(
                    org_id,
                    MISSING_DOCUMENTATION,
                    priority=4,
                    description=MISSING_DOCUMENTATION.description,
                    hours=MISSING_DOCUMENTATION.hours,
                    component=report,
                )
            )

    # Org-wide items have no component.
    for obj, triggers in sorted(findings.triggers_per_object.items()):
        if (None, TRIGGER_FRAMEWORK.title) in skip:
            break
        items.append(
            _item(
                org_id,
                TRIGGER_FRAMEWORK,
                priority=3,
                description=f"{TRIGGER_FRAMEWORK.description}: {obj} has {', '.join(sorted(triggers))}",
                hours=TRIGGER_FRAMEWORK.hours,
            )
        )
    undocumented = findings.undocumented_fields
    if undocumented and (None, FIELD_DOCUMENTATION.title) not in skip:
        items.append(
            _item(
                org_id,
                FIELD_DOCUMENTATION,
                priority=5,
                description=f"{len(undocumented)} custom field(s) have no description in the data dictionary",
                hours=max(1, len(undocumented) // 4),
            )
        )
    return items
