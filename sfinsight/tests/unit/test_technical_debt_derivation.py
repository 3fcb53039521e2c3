from __future__ import annotations

from sfinsight.domain.models import Metadata
from sfinsight.services.analytics.code_quality import build_code_quality_rows
from sfinsight.services.analytics.findings import OrgFindings, collect_findings
from sfinsight.services.analytics.technical_debt import debt_tags, derive_technical_debt


LOOPING_CLASS = """public without sharing class RevenueRollup {
    public static void run(List<Account> accounts) {
        for (Account acc : accounts) {
            Contact c = [SELECT Id FROM Contact WHERE AccountId = :acc.Id LIMIT 1];
            update acc;
            update c;
        }
        System.debug('done');
    }
}
"""


def _quality_rows():
    component = Metadata(id=11, org_id=1, type="ApexClass", name="RevenueRollup", data={"Body": LOOPING_CLASS, "ApiVersion": 59.0})
    return [component], build_code_quality_rows(1, [component])


def test_one_item_per_component_and_rule() -> None:
    metadata, rows = _quality_rows()
    items = derive_technical_debt(1, rows, collect_findings(metadata, rows))

    summary = [(item.title, item.priority, item.estimated_remediation_hours) for item in items]
    assert summary == [
        ("Inefficient SOQL Queries", 2, 16),
        ("Excessive DML Operations", 2, 24),
        ("Leftover Debug Statements", 4, 1),
        ("Sharing Not Enforced", 1, 6),
    ]
    assert all(item.component_id == 11 and item.status == "Identified" for item in items)
    assert "2 occurrence(s), line(s) 5, 6" in items[1].description


def test_items_in_progress_are_not_recreated() -> None:
    metadata, rows = _quality_rows()
    items = derive_technical_debt(
        1, rows, collect_findings(metadata, rows), keep=[(11, "Sharing Not Enforced")]
    )
    assert "Sharing Not Enforced" not in [item.title for item in items]


def test_org_wide_items_have_no_component() -> None:
    findings = OrgFindings(
        triggers_per_object={"Opportunity": ["OppA", "OppB"]},
        undocumented_fields=[f"Invoice__c.Field{index}__c" for index in range(8)],
    )
    items = derive_technical_debt(1, [], findings)
    assert [(item.title, item.component_id, item.estimated_remediation_hours) for item in items] == [
        ("Outdated Trigger Framework", None, 24),
        ("Outdated Technical Specs", None, 2),
    ]
    assert items[0].tags == ["legacy code", "technical-debt", "normal-priority"]


def test_tags_mark_high_priority() -> None:
    assert debt_tags("Performance", 1) == ["performance", "technical-debt", "high-priority"]
    assert debt_tags("Documentation", 4) == ["documentation", "technical-debt", "normal-priority"]
