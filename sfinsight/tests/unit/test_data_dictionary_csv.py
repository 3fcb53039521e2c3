from __future__ import annotations

import csv
import io

from sfinsight.domain.models import DataDictionaryField
from sfinsight.services.data_dictionary import EXPORT_COLUMNS, effective_description, export_csv


def _field(**overrides) -> DataDictionaryField:
    values = dict(
        org_id=1,
        object_api_name="Invoice__c",
        field_api_name="Status__c",
        label="Status",
        data_type="picklist",
        length=None,
        required=True,
        unique=False,
        external_id=False,
        description="Lifecycle, state",
        user_description=None,
        picklist_values=["Draft", "Sent", "Paid"],
        reference_to=None,
    )
    values.update(overrides)
    return DataDictionaryField(**values)


def test_export_writes_header_and_quoted_rows() -> None:
    text = export_csv([_field(), _field(field_api_name="Account__c", label="Account", data_type="reference",
                                        length=18, required=False, picklist_values=None,
                                        reference_to=["Account"], description=None,
                                        user_description="Billing account")])
    rows = list(csv.reader(io.StringIO(text)))

    assert tuple(rows[0]) == EXPORT_COLUMNS
    assert rows[1] == [
        "Invoice__c", "Status__c", "Status", "picklist", "", "true", "false", "false",
        "Lifecycle, state", "", "Draft;Sent;Paid", "",
    ]
    assert rows[2][4] == "18"
    assert rows[2][9] == "Billing account"
    assert rows[2][11] == "Account"


def test_export_of_empty_catalog_is_header_only() -> None:
    rows = list(csv.reader(io.StringIO(export_csv([]))))
    assert rows == [list(EXPORT_COLUMNS)]


def test_local_annotation_overrides_salesforce_description() -> None:
    assert effective_description(_field()) == "Lifecycle, state"
    assert effective_description(_field(user_description="Where the invoice is")) == "Where the invoice is"
    # An empty annotation still counts as an override.
    assert effective_description(_field(user_description="")) == ""
