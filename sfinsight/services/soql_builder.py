from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from sfinsight.core.errors import QueryBuildError


logger = logging.getLogger(__name__)

_DECIMAL_RE = re.compile(r"^[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?$")
_RADIX_RE = re.compile(r"^0([xX][0-9a-fA-F]+|[bB][01]+|[oO][0-7]+)$")


def is_numeric_literal(value: str) -> bool:
    """Return True when ``value`` reads as a number the way a browser's ``Number()`` does.

    Whitespace is trimmed and the empty string counts as zero. Decimal,
    exponent, ``Infinity`` and unsigned ``0x``/``0b``/``0o`` forms are numbers.
    """
    text = value.strip()
    if text == "":
        return True
    if text in {"Infinity", "+Infinity", "-Infinity"}:
        return True
    return bool(_DECIMAL_RE.match(text) or _RADIX_RE.match(text))


@dataclass(frozen=True)
class FilterItem:
    field: str
    operator: str
    value: str


@dataclass(frozen=True)
class SortItem:
    field: str
    direction: str = "ASC"


def render_condition(item: FilterItem) -> str:
    if item.operator == "LIKE":
        return f"{item.field} LIKE '%{item.value}%'"
    if item.operator == "IN":
        values = ", ".join(f"'{part.strip()}'" for part in item.value.split(","))
        return f"{item.field} IN ({values})"
    value = item.value if is_numeric_literal(item.value) else f"'{item.value}'"
    return f"{item.field} {item.operator} {value}"


def build_soql(
    object_name: str | None,
    fields: Sequence[str],
    filters: Iterable[FilterItem] = (),
    sort: Iterable[SortItem] = (),
    limit: str | int | None = None,
) -> str:
    """Compose a SOQL statement from builder selections; empty when nothing is selectable.

    Values are interpolated verbatim. The builder does not escape quotes or
    check field names against the org's metadata.
    """
    if not object_name or not fields:
        return ""
    query = f"SELECT {', '.join(fields)}\nFROM {object_name}"

    # Incomplete filter rows are still being edited and are skipped.
    conditions = [render_condition(item) for item in filters if item.field and item.operator and item.value]
    if conditions:
        query += f"\nWHERE {' AND '.join(conditions)}"

    ordering = [f"{item.field} {item.direction}" for item in sort if item.field]
    if ordering:
        query += f"\nORDER BY {', '.join(ordering)}"

    limit_text = "" if limit is None else str(limit)
    if limit_text and is_numeric_literal(limit_text):
        query += f"\nLIMIT {limit_text}"
    return query


@dataclass(frozen=True)
class SelectedField:
    object_name: str
    field_name: str
    field_label: str = ""
    field_type: str = ""


@dataclass(frozen=True)
class SelectedRelationship:
    source_object: str
    target_object: str
    relationship_name: str
    relationship_type: str = "Lookup"


@dataclass
class RelationshipQueryBuilder:
    """Selection state behind the data-model visualizer's query builder.

    ``object_fields`` maps object API names to their field names and is used
    to decide whether a relationship target exposes an ``Id`` field.
    """

    object_fields: dict[str, list[str]] = field(default_factory=dict)
    root_object: str | None = None
    fields: list[SelectedField] = field(default_factory=list)
    relationships: list[SelectedRelationship] = field(default_factory=list)
    where_clause: str = ""
    order_by_field: str = ""
    order_direction: str = "ASC"
    limit: str = "10"

    def add_field(self, object_name: str, field_name: str, field_label: str = "", field_type: str = "") -> None:
        if any(f.object_name == object_name and f.field_name == field_name for f in self.fields):
            return
        self.fields.append(SelectedField(object_name, field_name, field_label, field_type))

    def remove_field(self, object_name: str, field_name: str) -> None:
        self.fields = [
            f for f in self.fields if not (f.object_name == object_name and f.field_name == field_name)
        ]

    def add_relationship(
        self,
        source_object: str,
        target_object: str,
        relationship_name: str,
        relationship_type: str = "Lookup",
    ) -> None:
        if self.root_object is None:
            self.root_object = source_object
        exists = any(
            r.source_object == source_object and r.target_object == target_object for r in self.relationships
        )
        if not exists:
            self.relationships.append(
                SelectedRelationship(source_object, target_object, relationship_name, relationship_type)
            )
        if "Id" in self.object_fields.get(target_object, []):
            self.add_field(target_object, "Id", "ID", "id")

    def remove_relationship(self, source_object: str, target_object: str) -> None:
        self.relationships = [
            r
            for r in self.relationships
            if not (r.source_object == source_object and r.target_object == target_object)
        ]
        # Fields of the dropped target no longer have a path from the root.
        self.fields = [f for f in self.fields if f.object_name != target_object]

    def is_object_used(self, object_name: str) -> bool:
        return self.root_object == object_name or any(
            object_name in (r.source_object, r.target_object) for r in self.relationships
        )

    def _fields_of(self, object_name: str) -> list[str]:
        return [f.field_name for f in self.fields if f.object_name == object_name]

    def generate(self) -> str:
        if not self.root_object:
            raise QueryBuildError("No root object selected")
        if not self.fields:
            raise QueryBuildError("No fields selected")

        selected = list(self._fields_of(self.root_object))
        for rel in self.relationships:
            selected.extend(f"{rel.relationship_name}.{name}" for name in self._fields_of(rel.target_object))

        clauses = [
            f"SELECT {', '.join(selected)}",
            f"FROM {self.root_object}",
            f"WHERE {self.where_clause}" if self.where_clause else "",
            f"ORDER BY {self.order_by_field} {self.order_direction}" if self.order_by_field else "",
            f"LIMIT {self.limit}" if self.limit else "",
        ]
        query = "\n".join(clause for clause in clauses if clause)
        logger.debug("relationship_query_generated root=%s", self.root_object)
        return query
