from __future__ import annotations

import pytest

from sfinsight.core.errors import QueryBuildError
from sfinsight.services.soql_builder import (
    FilterItem,
    RelationshipQueryBuilder,
    SortItem,
    build_soql,
    is_numeric_literal,
)


def test_build_soql_renders_select_where_and_limit() -> None:
    query = build_soql(
        "Account",
        ["Id", "Name"],
        [FilterItem("AnnualRevenue", ">", "1000000")],
        limit=10,
    )
    assert query == "SELECT Id, Name\nFROM Account\nWHERE AnnualRevenue > 1000000\nLIMIT 10"


def test_build_soql_is_empty_without_object_or_fields() -> None:
    assert build_soql(None, ["Id"]) == ""
    assert build_soql("Account", []) == ""


def test_build_soql_quotes_text_and_expands_like_and_in() -> None:
    query = build_soql(
        "Contact",
        ["Id"],
        [
            FilterItem("LastName", "=", "Smith"),
            FilterItem("Email", "LIKE", "example.com"),
            FilterItem("LeadSource", "IN", "Web, Phone"),
        ],
    )
    assert query == (
        "SELECT Id\nFROM Contact\n"
        "WHERE LastName = 'Smith' AND Email LIKE '%example.com%' AND LeadSource IN ('Web', 'Phone')"
    )


def test_build_soql_skips_incomplete_filters_and_orders() -> None:
    query = build_soql(
        "Case",
        ["Id", "Subject"],
        [FilterItem("Status", "=", ""), FilterItem("", "=", "New")],
        [SortItem("CreatedDate", "DESC"), SortItem("", "ASC")],
        limit="abc",
    )
    assert query == "SELECT Id, Subject\nFROM Case\nORDER BY CreatedDate DESC"


@pytest.mark.parametrize(
    ("value", "expected"),
    [("42", True), ("-1.5", True), ("1e3", True), (" 7 ", True), ("0x1F", True), ("12abc", False), ("Acme", False)],
)
def test_numeric_literal_detection(value: str, expected: bool) -> None:
    assert is_numeric_literal(value) is expected


def _builder() -> RelationshipQueryBuilder:
    return RelationshipQueryBuilder(
        object_fields={
            "Contact": ["Id", "Name", "Email"],
            "Account": ["Id", "Name", "Industry"],
        }
    )


def test_relationship_builder_adds_target_id_and_generates_paths() -> None:
    builder = _builder()
    builder.add_relationship("Contact", "Account", "Account")
    builder.add_field("Contact", "Name")
    builder.add_field("Account", "Industry")
    builder.where_clause = "Email != null"

    assert builder.root_object == "Contact"
    assert builder.generate() == (
        "SELECT Name, Account.Id, Account.Industry\nFROM Contact\nWHERE Email != null\nLIMIT 10"
    )


def test_removing_relationship_drops_every_field_of_its_target() -> None:
    builder = _builder()
    builder.add_relationship("Contact", "Account", "Account")
    builder.add_field("Contact", "Email")
    builder.add_field("Account", "Name")
    builder.add_field("Account", "Industry")

    builder.remove_relationship("Contact", "Account")

    assert builder.relationships == []
    assert [(f.object_name, f.field_name) for f in builder.fields] == [("Contact", "Email")]
    assert not builder.is_object_used("Account")
    assert builder.is_object_used("Contact")


def test_duplicate_fields_and_relationships_are_ignored() -> None:
    builder = _builder()
    builder.add_relationship("Contact", "Account", "Account")
    builder.add_relationship("Contact", "Account", "Account")
    builder.add_field("Account", "Id")
    assert len(builder.relationships) == 1
    assert len(builder.fields) == 1


def test_generate_requires_root_and_fields() -> None:
    with pytest.raises(QueryBuildError):
        RelationshipQueryBuilder().generate()
    builder = RelationshipQueryBuilder(root_object="Account")
    with pytest.raises(QueryBuildError):
        builder.generate()


def test_removing_last_field_blocks_generation() -> None:
    builder = RelationshipQueryBuilder(root_object="Account")
    builder.add_field("Account", "Name")
    builder.remove_field("Account", "Name")
    builder.remove_field("Account", "Missing")
    assert builder.fields == []
    with pytest.raises(QueryBuildError, match="No fields selected"):
        builder.generate()


def test_non_ascii_digits_are_quoted() -> None:
    assert is_numeric_literal("١٢") is False
    query = build_soql("Account", ["Id"], [FilterItem("AccountNumber", "=", "١٢")])
    assert query == "SELECT Id\nFROM Account\nWHERE AccountNumber = '١٢'"
