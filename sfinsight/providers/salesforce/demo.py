from __future__ import annotations

import copy
import re
from typing import Any

from sfinsight.core.errors import SalesforceApiError


# Sample org served when Settings.demo_mode is on. Nothing outside this module
# reads these values.
DEMO_INSTANCE_URL = "https://demo.my.salesforce.com"
DEMO_SESSION_ID = "00Ddemo!demo-session"


def _field(
    name: str,
    label: str,
    type_: str,
    *,
    length: int = 0,
    required: bool = False,
    unique: bool = False,
    external_id: bool = False,
    reference_to: list[str] | None = None,
    relationship_name: str | None = None,
    picklist: list[str] | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    return {
        "name": name,
        "label": label,
        "type": type_,
        "length": length,
        "precision": 18 if type_ in {"currency", "double", "percent"} else 0,
        "scale": 2 if type_ in {"currency", "percent"} else 0,
        "nillable": not required,
        "unique": unique,
        "externalId": external_id,
        "custom": name.endswith("__c"),
        "inlineHelpText": description,
        "picklistValues": [{"value": value, "label": value, "active": True} for value in picklist or []],
        "referenceTo": reference_to or [],
        "relationshipName": relationship_name,
    }


_OWNER = _field("OwnerId", "Owner", "reference", required=True, reference_to=["User"], relationship_name="Owner")

_DESCRIBES: dict[str, dict[str, Any]] = {
    "Account": {
        "name": "Account",
        "label": "Account",
        "custom": False,
        "fields": [
            _field("Id", "Account ID", "id", length=18, required=True, unique=True),
            _field("Name", "Account Name", "string", length=255, required=True),
            _field("Type", "Account Type", "picklist", picklist=["Customer - Direct", "Customer - Channel", "Prospect"]),
            _field("Industry", "Industry", "picklist", picklist=["Technology", "Manufacturing", "Finance"]),
            _field("AnnualRevenue", "Annual Revenue", "currency"),
            _field("Website", "Website", "url", length=255),
            _field("ParentId", "Parent Account", "reference", reference_to=["Account"], relationship_name="Parent"),
            _OWNER,
        ],
        "childRelationships": [
            {"childSObject": "Contact", "field": "AccountId", "relationshipName": "Contacts", "cascadeDelete": False},
            {"childSObject": "Opportunity", "field": "AccountId", "relationshipName": "Opportunities", "cascadeDelete": False},
            {"childSObject": "Case", "field": "AccountId", "relationshipName": "Cases", "cascadeDelete": False},
            {"childSObject": "Invoice__c", "field": "Account__c", "relationshipName": "Invoices__r", "cascadeDelete": True},
        ],
    },
    "Contact": {
        "name": "Contact",
        "label": "Contact",
        "custom": False,
        "fields": [
            _field("Id", "Contact ID", "id", length=18, required=True, unique=True),
            _field("FirstName", "First Name", "string", length=40),
            _field("LastName", "Last Name", "string", length=80, required=True),
            _field("Email", "Email", "email", length=80),
            _field("AccountId", "Account", "reference", reference_to=["Account"], relationship_name="Account"),
            _OWNER,
        ],
        "childRelationships": [
            {"childSObject": "Case", "field": "ContactId", "relationshipName": "Cases", "cascadeDelete": False},
        ],
    },
    "Opportunity": {
        "name": "Opportunity",
        "label": "Opportunity",
        "custom": False,
        "fields": [
            _field("Id", "Opportunity ID", "id", length=18, required=True, unique=True),
            _field("Name", "Opportunity Name", "string", length=120, required=True),
            _field("StageName", "Stage", "picklist", required=True, picklist=["Prospecting", "Closed Won", "Closed Lost"]),
            _field("Amount", "Amount", "currency"),
            _field("CloseDate", "Close Date", "date", required=True),
            _field("AccountId", "Account", "reference", reference_to=["Account"], relationship_name="Account"),
            _OWNER,
        ],
        "childRelationships": [],
    },
    "Case": {
        "name": "Case",
        "label": "Case",
        "custom": False,
        "fields": [
            _field("Id", "Case ID", "id", length=18, required=True, unique=True),
            _field("CaseNumber", "Case Number", "string", length=30, required=True, unique=True),
            _field("Subject", "Subject", "string", length=255),
            _field("Status", "Status", "picklist", required=True, picklist=["New", "Working", "Closed"]),
            _field("AccountId", "Account", "reference", reference_to=["Account"], relationship_name="Account"),
            _field("ContactId", "Contact", "reference", reference_to=["Contact"], relationship_name="Contact"),
            _OWNER,
        ],
        "childRelationships": [],
    },
    "Invoice__c": {
        "name": "Invoice__c",
        "label": "Invoice",
        "custom": True,
        "fields": [
            _field("Id", "Record ID", "id", length=18, required=True, unique=True),
            _field("Name", "Invoice Number", "string", length=80, required=True),
            _field(
                "Account__c",
                "Account",
                "reference",
                required=True,
                reference_to=["Account"],
                relationship_name="Account__r",
            ),
            _field("Total__c", "Total", "currency", description="Invoice total including tax"),
            _field("External_Ref__c", "External Reference", "string", length=40, unique=True, external_id=True),
            _field("Status__c", "Status", "picklist", picklist=["Draft", "Sent", "Paid"]),
        ],
        "childRelationships": [],
    },
}

_ACCOUNT_SERVICE = """public without sharing class AccountService {
    public static void refreshRevenue(List<Account> accounts) {
        for (Account acc : accounts) {
            List<Opportunity> opps = [SELECT Amount FROM Opportunity WHERE AccountId = :acc.Id];
            Decimal total = 0;
            for (Opportunity opp : opps) {
                total += opp.Amount;
            }
            acc.AnnualRevenue = total;
            update acc;
        }
        System.debug('refreshed ' + accounts.size());
    }

    public static Id defaultOwner() {
        return '005000000000001AAA';
    }
}
"""

_INVOICE_SELECTOR = """public with sharing class InvoiceSelector {
    // Returns invoices for the given accounts.
    public static List<Invoice__c> forAccounts(Set<Id> accountIds) {
        return [SELECT Id, Name, Total__c FROM Invoice__c WHERE Account__c IN :accountIds];
    }
}
"""

_OPPORTUNITY_TRIGGER = """trigger OpportunityTrigger on Opportunity (after update) {
    for (Opportunity opp : Trigger.new) {
        if (opp.StageName == 'Closed Won') {
            insert new Invoice__c(Account__c = opp.AccountId, Total__c = opp.Amount);
        }
    }
    AccountService.refreshRevenue([SELECT Id FROM Account WHERE Id IN :Trigger.newMap.keySet()]);
}
"""

_INVOICE_PAGE = """<apex:page controller="InvoiceSelector">
    <apex:outputText value="{!$CurrentPage.parameters.msg}" escape="false"/>
</apex:page>
"""

_TOOLING: dict[str, list[dict[str, Any]]] = {
    "ApexClass": [
        {"Id": "01p000000000001AAA", "Name": "AccountService", "ApiVersion": 30.0, "Status": "Active", "Body": _ACCOUNT_SERVICE},
        {"Id": "01p000000000002AAA", "Name": "InvoiceSelector", "ApiVersion": 59.0, "Status": "Active", "Body": _INVOICE_SELECTOR},
    ],
    "ApexTrigger": [
        {
            "Id": "01q000000000001AAA",
            "Name": "OpportunityTrigger",
            "ApiVersion": 58.0,
            "Status": "Active",
            "TableEnumOrId": "Opportunity",
            "Body": _OPPORTUNITY_TRIGGER,
        },
    ],
    "ApexPage": [
        {
            "Id": "066000000000001AAA",
            "Name": "InvoiceView",
            "ApiVersion": 45.0,
            "ControllerType": "1",
            "Markup": _INVOICE_PAGE,
        },
    ],
    "LightningComponentBundle": [
        {"Id": "0Rb000000000001AAA", "DeveloperName": "invoiceList", "MasterLabel": "Invoice List", "ApiVersion": 59.0},
    ],
    "AuraDefinitionBundle": [
        {"Id": "0Ab000000000001AAA", "DeveloperName": "AccountSummary", "MasterLabel": "Account Summary", "ApiVersion": 48.0},
    ],
    "FlowDefinition": [
        {"Id": "300000000000001AAA", "DeveloperName": "Invoice_Reminder", "MasterLabel": "Invoice Reminder", "ActiveVersionId": "301000000000001AAA"},
        {"Id": "300000000000002AAA", "DeveloperName": "Case_Escalation", "MasterLabel": "Case Escalation", "ActiveVersionId": None},
    ],
}

_RECORDS: dict[str, list[dict[str, Any]]] = {
    "Account": [
        {"Id": "001xx000003DGb1AAG", "Name": "Acme Corporation", "Type": "Customer - Direct", "Industry": "Technology", "AnnualRevenue": 5000000},
        {"Id": "001xx000003DGb2AAG", "Name": "Universal Containers", "Type": "Customer - Channel", "Industry": "Manufacturing", "AnnualRevenue": 3500000},
        {"Id": "001xx000003DGb3AAG", "Name": "Salesforce Inc", "Type": "Customer - Direct", "Industry": "Technology", "AnnualRevenue": 8000000},
    ],
}

_LIMITS: dict[str, Any] = {
    "DailyApiRequests": {"Max": 15000, "Remaining": 14210},
    "DataStorageMB": {"Max": 1024, "Remaining": 871},
    "FileStorageMB": {"Max": 2048, "Remaining": 1930},
}

_FROM_RE = re.compile(r"\bFROM\s+([A-Za-z0-9_]+)", re.IGNORECASE)
_COUNT_RE = re.compile(r"^\s*SELECT\s+COUNT\(", re.IGNORECASE)


def _object_of(soql: str) -> str:
    match = _FROM_RE.search(soql)
    return match.group(1) if match else ""


def _with_attributes(object_name: str, record: dict[str, Any]) -> dict[str, Any]:
    row = {"attributes": {"type": object_name, "url": f"/services/data/v59.0/sobjects/{object_name}/{record.get('Id', '')}"}}
    row.update(record)
    return row


class DemoSalesforceClient:
    """Answers every SalesforceApi call from the bundled sample org."""

    def __init__(self) -> None:
        self.instance_url = DEMO_INSTANCE_URL
        self.session_id: str | None = DEMO_SESSION_ID
        self._describes = copy.deepcopy(_DESCRIBES)

    def _count(self, object_name: str) -> int:
        if object_name in _TOOLING:
            return len(_TOOLING[object_name])
        if object_name == "EntityDefinition":
            return len(self._describes)
        if object_name == "User":
            return 12
        return len(_RECORDS.get(object_name, []))

    async def query(self, soql: str) -> dict[str, Any]:
        object_name = _object_of(soql)
        if _COUNT_RE.match(soql):
            total = self._count(object_name)
            return {"totalSize": 1, "done": True, "records": [{"attributes": {"type": "AggregateResult"}, "total": total}]}
        records = [_with_attributes(object_name, record) for record in _RECORDS.get(object_name, [])]
        return {"totalSize": len(records), "done": True, "records": records}

    async def query_all(self, soql: str) -> dict[str, Any]:
        return await self.query(soql)

    async def query_records(self, soql: str, max_records: int) -> dict[str, Any]:
        result = await self.query(soql)
        records = result["records"]
        return {
            "totalSize": result["totalSize"],
            "done": len(records) <= max_records,
            "records": records[:max_records],
        }

    async def tooling_query(self, soql: str) -> dict[str, Any]:
        object_name = _object_of(soql)
        records = [_with_attributes(object_name, record) for record in _TOOLING.get(object_name, [])]
        return {"size": len(records), "totalSize": len(records), "done": True, "records": records}

    async def limits(self) -> dict[str, Any]:
        return copy.deepcopy(_LIMITS)

    async def describe_global(self) -> dict[str, Any]:
        return {
            "sobjects": [
                {"name": name, "label": describe["label"], "custom": describe["custom"], "queryable": True}
                for name, describe in self._describes.items()
            ]
        }

    async def describe_object(self, object_name: str) -> dict[str, Any]:
        describe = self._describes.get(object_name)
        if describe is None:
            raise SalesforceApiError(f"Failed to describe {object_name}: object not found")
        return copy.deepcopy(describe)

    async def update_field_description(self, object_name: str, field_name: str, description: str) -> None:
        describe = self._describes.get(object_name)
        fields = describe["fields"] if describe else []
        for field in fields:
            if field["name"] == field_name:
                field["inlineHelpText"] = description
                return
        raise SalesforceApiError(f"Failed to update description of {object_name}.{field_name}: field not found")
