from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from sfinsight.domain.models import CodeQuality, Metadata


@dataclass(frozen=True)
class Rule:
    name: str
    severity: str
    # security | performance | best_practices
    category: str
    description: str
    recommendation: str


RULES: dict[str, Rule] = {
    rule.name: rule
    for rule in (
        Rule(
            "AvoidSOQLInLoop",
            "high",
            "performance",
            "SOQL queries should not be executed inside loops",
            "Move the SOQL query outside the loop and filter results in memory",
        ),
        Rule(
            "DMLInLoop",
            "high",
            "performance",
            "DML statements should not be executed inside loops",
            "Collect records in a list and perform a single DML operation after the loop",
        ),
        Rule(
            "HardcodedId",
            "medium",
            "best_practices",
            "Hardcoded ID found in code",
            "Use Custom Settings, Custom Labels or Custom Metadata instead of hardcoded IDs",
        ),
        Rule(
            "InsecureSharing",
            "critical",
            "security",
            "Class does not enforce sharing rules",
            "Declare the class with sharing unless system context is required",
        ),
        Rule(
            "DebugStatement",
            "low",
            "best_practices",
            "Debug statement left in code",
            "Remove System.debug calls or guard them behind a logging level",
        ),
        Rule(
            "MethodTooLong",
            "medium",
            "best_practices",
            "Method has too many lines",
            "Break the method into smaller methods with specific responsibilities",
        ),
        Rule(
            "DeprecatedAPI",
            "medium",
            "best_practices",
            "Component targets a deprecated API version",
            "Update to use the latest API version according to documentation",
        ),
        Rule(
            "XSSVulnerability",
            "critical",
            "security",
            "Output is not properly escaped, creating a potential cross-site scripting vulnerability",
            'Use the escape="true" attribute or apex:outputText with proper escaping',
        ),
    )
}

SEVERITY_PENALTY = {"critical": 25, "high": 15, "medium": 8, "low": 3}
SCANNED_TYPES = ("ApexClass", "ApexTrigger", "ApexPage", "LightningComponentBundle", "AuraDefinitionBundle")
MIN_SUPPORTED_API_VERSION = 40.0
MAX_METHOD_LINES = 50

_LOOP_RE = re.compile(r"\b(for|while)\s*\(|\bdo\s*\{")
_SOQL_RE = re.compile(r"\[\s*SELECT\b|\bDatabase\.query\s*\(", re.IGNORECASE)
_DML_RE = re.compile(
    r"^\s*(insert|update|upsert|delete|undelete|merge)\s+\S|\bDatabase\.(insert|update|upsert|delete|undelete)\s*\(",
    re.IGNORECASE,
)
_ID_RE = re.compile(r"'([a-zA-Z0-9]{2}[0-9][a-zA-Z0-9]{12}(?:[a-zA-Z0-9]{3})?)'")
_CLASS_RE = re.compile(r"\bclass\s+\w+", re.IGNORECASE)
_DEBUG_RE = re.compile(r"\bSystem\.debug\s*\(", re.IGNORECASE)
_METHOD_RE = re.compile(
    r"^\s*(public|private|protected|global)\s+(static\s+|override\s+|virtual\s+)*[\w<>,.\[\]\s]+\s+\w+\s*\([^)]*\)\s*\{",
    re.IGNORECASE,
)
_BRANCH_RE = re.compile(r"\b(if|for|while|when|catch)\b|&&|\|\|")
_ESCAPE_FALSE_RE = re.compile(r"escape\s*=\s*\"false\"", re.IGNORECASE)


@dataclass
class ComponentReport:
    component_type: str
    issues: list[dict[str, Any]] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    quality_score: int = 100
    complexity_score: int = 0
    best_practices_score: int = 100
    security_score: int = 100
    performance_score: int = 100


def _issue(rule_name: str, line: int, snippet: str = "") -> dict[str, Any]:
    rule = RULES[rule_name]
    return {
        "rule": rule.name,
        "severity": rule.severity,
        "category": rule.category,
        "line": line,
        "message": f"{rule.name} - {rule.description}",
        "description": rule.description,
        "recommendation": rule.recommendation,
        "codeSnippet": snippet.strip()[:200],
    }


def _strip_comment(line: str) -> str:
    return line.split("//", 1)[0]


def scan_apex(source: str, *, is_class: bool) -> list[dict[str, Any]]:
    issues: list[dict[str, Any]] = []
    depth = 0
    loop_depths: list[int] = []
    method_start: tuple[int, int, str] | None = None
    declared_class = False
    for line_no, raw in enumerate(source.splitlines(), start=1):
        line = _strip_comment(raw)
        in_loop = bool(loop_depths)
        if in_loop and _SOQL_RE.search(line):
            issues.append(_issue("AvoidSOQLInLoop", line_no, raw))
        if in_loop and _DML_RE.search(line):
            issues.append(_issue("DMLInLoop", line_no, raw))
        if _ID_RE.search(line):
            issues.append(_issue("HardcodedId", line_no, raw))
        if _DEBUG_RE.search(line):
            issues.append(_issue("DebugStatement", line_no, raw))
        if is_class and not declared_class and _CLASS_RE.search(line):
            declared_class = True
            lowered = line.lower()
            if "without sharing" in lowered or ("sharing" not in lowered and "interface" not in lowered):
                issues.append(_issue("InsecureSharing", line_no, raw))
        if method_start is None and _METHOD_RE.match(line):
            method_start = (line_no, depth, raw)
        if _LOOP_RE.search(line):
            loop_depths.append(depth)
        depth += line.count("{") - line.count("}")
        while loop_depths and depth <= loop_depths[-1]:
            loop_depths.pop()
        if method_start is not None and depth <= method_start[1]:
            start_line, _, header = method_start
            if line_no - start_line + 1 > MAX_METHOD_LINES:
                issues.append(_issue("MethodTooLong", start_line, header))
            method_start = None
    return issues


def scan_markup(markup: str) -> list[dict[str, Any]]:
    return [
        _issue("XSSVulnerability", line_no, raw)
        for line_no, raw in enumerate(markup.splitlines(), start=1)
        if _ESCAPE_FALSE_RE.search(raw)
    ]


def complexity_metrics(source: str) -> dict[str, Any]:
    lines = [line for line in source.splitlines() if line.strip()]
    comment_lines = [line for line in lines if line.strip().startswith(("//", "/*", "*"))]
    code_lines = [line for line in lines if line not in comment_lines]
    depth = 0
    max_depth = 0
    for line in code_lines:
        depth += line.count("{") - line.count("}")
        max_depth = max(max_depth, depth)
    methods = sum(1 for line in code_lines if _METHOD_RE.match(line))
    branches = sum(len(_BRANCH_RE.findall(_strip_comment(line))) for line in code_lines)
    return {
        "linesOfCode": len(code_lines),
        "commentRatio": round(100 * len(comment_lines) / len(lines)) if lines else 0,
        "methodCount": methods,
        "averageMethodLength": round(len(code_lines) / methods) if methods else len(code_lines),
        "cyclomaticComplexity": 1 + branches,
        # The outer class/trigger block counts as one level.
        "nestingDepth": max(0, max_depth - 1),
    }


def _clamp(value: float) -> int:
    return int(max(0, min(100, round(value))))


def _api_version(data: dict[str, Any]) -> float | None:
    try:
        return float(data.get("ApiVersion"))
    except (TypeError, ValueError):
        return None


def analyze_component(component_type: str, data: dict[str, Any]) -> ComponentReport:
    """Score one component from its stored metadata payload."""
    report = ComponentReport(component_type=component_type)
    if component_type in {"ApexClass", "ApexTrigger"}:
        source = str(data.get("Body") or "")
        report.issues.extend(scan_apex(source, is_class=component_type == "ApexClass"))
    elif component_type == "ApexPage":
        source = str(data.get("Markup") or "")
        report.issues.extend(scan_markup(source))
    else:
        source = ""
    version = _api_version(data)
    if version is not None and version < MIN_SUPPORTED_API_VERSION:
        report.issues.append(_issue("DeprecatedAPI", 1, f"apiVersion {version}"))

    report.metrics = complexity_metrics(source)
    penalties = {"security": 0, "performance": 0, "best_practices": 0}
    for issue in report.issues:
        penalties[issue["category"]] += SEVERITY_PENALTY[issue["severity"]]
    report.security_score = _clamp(100 - penalties["security"])
    report.performance_score = _clamp(100 - penalties["performance"])
    report.best_practices_score = _clamp(100 - penalties["best_practices"])
    metrics = report.metrics
    report.complexity_score = _clamp(metrics["cyclomaticComplexity"] * 3 + metrics["nestingDepth"] * 8)
    report.quality_score = _clamp(
        0.4 * report.best_practices_score + 0.35 * report.security_score + 0.25 * report.performance_score
    )
    return report


def build_code_quality_rows(org_id: int, components: Iterable[Metadata]) -> list[CodeQuality]:
    rows: list[CodeQuality] = []
    for component in components:
        if component.type not in SCANNED_TYPES:
            continue
        report = analyze_component(component.type, component.data or {})
        rows.append(
            CodeQuality(
                org_id=org_id,
                component_id=component.id,
                component_name=component.name,
                component_type=component.type,
                quality_score=report.quality_score,
                complexity_score=report.complexity_score,
                # Coverage needs a test run, which analysis does not trigger.
                test_coverage=None,
                best_practices_score=report.best_practices_score,
                security_score=report.security_score,
                performance_score=report.performance_score,
                issues_count=len(report.issues),
                issues=report.issues,
                complexity_metrics=report.metrics,
            )
        )
    return rows
