from __future__ import annotations

from sfinsight.domain.models import Metadata
from sfinsight.services.analytics.code_quality import (
    MAX_METHOD_LINES,
    analyze_component,
    build_code_quality_rows,
    complexity_metrics,
)


LOOPING_CLASS = """public without sharing class RevenueRollup {
    public static void run(List<Account> accounts) {
        for (Account acc : accounts) {
            Contact c = [SELECT Id FROM Contact WHERE AccountId = :acc.Id LIMIT 1];
            update acc;
        }
        System.debug('done');
    }
}
"""

CLEAN_CLASS = """public with sharing class InvoiceSelector {
    // Returns invoices for the given accounts.
    public static List<Invoice__c> forAccounts(Set<Id> accountIds) {
        return [SELECT Id FROM Invoice__c WHERE Account__c IN :accountIds];
    }
}
"""


def _rules(report) -> list[str]:
    return [issue["rule"] for issue in report.issues]


def test_loop_queries_dml_sharing_and_debug_are_flagged() -> None:
    report = analyze_component("ApexClass", {"Body": LOOPING_CLASS, "ApiVersion": 59.0})
    assert _rules(report) == ["InsecureSharing", "AvoidSOQLInLoop", "DMLInLoop", "DebugStatement"]
    assert [issue["line"] for issue in report.issues] == [1, 4, 5, 7]
    assert report.security_score == 75
    assert report.performance_score == 70
    assert report.best_practices_score == 97


def test_clean_class_scores_full_marks() -> None:
    report = analyze_component("ApexClass", {"Body": CLEAN_CLASS, "ApiVersion": 59.0})
    assert report.issues == []
    assert report.quality_score == 100
    assert report.metrics["commentRatio"] > 0


def test_hardcoded_ids_and_old_api_versions() -> None:
    body = "public with sharing class Owners {\n    Id owner = '005000000000001AAA';\n}\n"
    report = analyze_component("ApexClass", {"Body": body, "ApiVersion": "30.0"})
    assert _rules(report) == ["HardcodedId", "DeprecatedAPI"]


def test_trigger_does_not_need_sharing_declaration() -> None:
    body = "trigger CaseTrigger on Case (before insert) {\n    for (Case c : Trigger.new) {\n        c.Status = 'New';\n    }\n}\n"
    report = analyze_component("ApexTrigger", {"Body": body, "ApiVersion": 59.0})
    assert report.issues == []


def test_long_method_is_reported_once() -> None:
    statements = "\n".join(f"        total += {index};" for index in range(MAX_METHOD_LINES + 5))
    body = (
        "public with sharing class Totals {\n"
        "    public static Integer sum() {\n"
        "        Integer total = 0;\n"
        f"{statements}\n"
        "        return total;\n"
        "    }\n"
        "}\n"
    )
    report = analyze_component("ApexClass", {"Body": body, "ApiVersion": 59.0})
    assert _rules(report) == ["MethodTooLong"]
    assert report.issues[0]["line"] == 2


def test_unescaped_markup_is_an_xss_finding() -> None:
    markup = '<apex:page>\n    <apex:outputText value="{!msg}" escape="false"/>\n</apex:page>\n'
    report = analyze_component("ApexPage", {"Markup": markup, "ApiVersion": 45.0})
    assert _rules(report) == ["XSSVulnerability"]
    assert report.issues[0]["line"] == 2
    assert report.security_score == 75


def test_complexity_metrics_count_methods_branches_and_nesting() -> None:
    metrics = complexity_metrics(LOOPING_CLASS)
    assert metrics["linesOfCode"] == 9
    assert metrics["methodCount"] == 1
    assert metrics["cyclomaticComplexity"] == 2
    assert metrics["nestingDepth"] == 2


def test_rows_only_cover_code_and_ui_components() -> None:
    components = [
        Metadata(id=1, org_id=1, type="ApexClass", name="RevenueRollup", data={"Body": LOOPING_CLASS, "ApiVersion": 59.0}),
        Metadata(id=2, org_id=1, type="CustomObject", name="Invoice__c", data={"fields": []}),
        Metadata(id=3, org_id=1, type="FlowDefinition", name="Invoice_Reminder", data={}),
        Metadata(id=4, org_id=1, type="LightningComponentBundle", name="invoiceList", data={"ApiVersion": 59.0}),
    ]
    rows = build_code_quality_rows(1, components)
    assert [(row.component_id, row.component_type) for row in rows] == [
        (1, "ApexClass"),
        (4, "LightningComponentBundle"),
    ]
    assert rows[0].issues_count == 4
    assert rows[0].test_coverage is None
