from __future__ import annotations

from sfinsight.domain.models import Metadata
from sfinsight.services.analytics.dependencies import (
    build_graph,
    dependency_strength,
    dependency_type,
    derive_dependencies,
)


def _components() -> list[Metadata]:
    return [
        Metadata(
            id=1,
            type="ApexClass",
            name="InvoiceService",
            data={
                "Body": (
                    "public with sharing class InvoiceService {\n"
                    "    // TaxCalculator is mentioned here only in a comment\n"
                    "    public static Decimal total(Invoice__c inv) {\n"
                    "        return TaxCalculator.apply(inv.Total__c) + TaxCalculator.fees();\n"
                    "    }\n"
                    "}\n"
                )
            },
        ),
        Metadata(id=2, type="ApexClass", name="TaxCalculator", data={"Body": "public with sharing class TaxCalculator {}"}),
        Metadata(id=3, type="CustomObject", name="Invoice__c", data={"fields": []}),
        Metadata(
            id=4,
            type="ApexTrigger",
            name="InvoiceTrigger",
            data={
                "TableEnumOrId": "Invoice__c",
                "Body": "trigger InvoiceTrigger on Invoice__c (before insert) {\n    InvoiceService.total(null);\n}\n",
            },
        ),
        Metadata(
            id=5,
            type="ApexPage",
            name="InvoiceView",
            data={"Markup": '<apex:page standardController="Invoice__c" extensions="InvoiceService"></apex:page>'},
        ),
    ]


def _edges(rows) -> dict[tuple[str, str], tuple[str, str]]:
    return {
        (row.source_component_name, row.target_component_name): (row.dependency_type, row.dependency_strength)
        for row in rows
    }


def test_references_become_typed_weighted_edges() -> None:
    edges = _edges(derive_dependencies(1, _components()))
    assert edges == {
        ("InvoiceService", "TaxCalculator"): ("Class Reference", "medium"),
        ("InvoiceService", "Invoice__c"): ("Data Access", "weak"),
        ("InvoiceTrigger", "InvoiceService"): ("Method Call", "weak"),
        ("InvoiceTrigger", "Invoice__c"): ("Trigger Definition", "strong"),
        ("InvoiceView", "InvoiceService"): ("Controller Reference", "strong"),
        ("InvoiceView", "Invoice__c"): ("Data Binding", "medium"),
    }


def test_strength_and_type_helpers() -> None:
    assert dependency_strength(1) == "weak"
    assert dependency_strength(2) == "medium"
    assert dependency_strength(5) == "strong"
    assert dependency_type("AuraDefinitionBundle", "ApexClass") == "Controller Reference"
    assert dependency_type("FlowDefinition", "ApexClass") == "Reference"


def test_graph_marks_focus_and_filters_nodes() -> None:
    rows = derive_dependencies(1, _components())
    for index, row in enumerate(rows, start=1):
        row.id = index

    graph = build_graph(rows, focus_id=1)
    focus = [node for node in graph["nodes"] if node["data"]["isFocus"]]
    assert [node["id"] for node in focus] == ["node-1"]
    assert len(graph["edges"]) == len(rows)

    filtered = build_graph(rows, filter_text="invoice")
    labels = sorted(node["data"]["label"] for node in filtered["nodes"])
    assert labels == ["InvoiceService", "InvoiceTrigger", "InvoiceView", "Invoice__c"]
    assert all(edge["data"]["target"] != "node-2" for edge in filtered["edges"])
