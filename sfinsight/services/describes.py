from __future__ import annotations

import asyncio
import logging
from typing import Any

from sfinsight.core.config import CORE_STANDARD_OBJECTS
from sfinsight.core.errors import SalesforceError
from sfinsight.providers.salesforce.base import SalesforceApi


logger = logging.getLogger(__name__)


def select_objects(global_describe: dict[str, Any], limit: int) -> list[str]:
    """Pick the sObjects worth describing: core standard objects first, then custom ones."""
    available = {str(item.get("name")): item for item in global_describe.get("sobjects", []) if item.get("name")}
    core = [name for name in CORE_STANDARD_OBJECTS if name in available]
    custom = sorted(
        name for name, item in available.items() if item.get("custom") and name.endswith("__c")
    )
    return (core + custom)[: max(0, limit)]


async def describe_objects(
    client: SalesforceApi, object_names: list[str], *, max_concurrency: int
) -> dict[str, dict[str, Any]]:
    """Describe each object; objects whose describe fails are logged and left out."""
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _describe(name: str) -> tuple[str, dict[str, Any] | None]:
        async with semaphore:
            try:
                return name, await client.describe_object(name)
            except SalesforceError as exc:
                logger.warning("object_describe_failed object=%s error=%s", name, exc)
                return name, None

    results = await asyncio.gather(*(_describe(name) for name in object_names))
    return {name: describe for name, describe in results if describe is not None}


def field_description(field: dict[str, Any]) -> str | None:
    # Describe calls expose help text; Tooling metadata uses ``description``.
    return field.get("description") or field.get("inlineHelpText") or None


def summarize_object(describe: dict[str, Any]) -> dict[str, Any]:
    """Reduce a describe payload to what the dashboard stores per object."""
    fields = []
    relationships = []
    for field in describe.get("fields", []):
        reference_to = list(field.get("referenceTo") or [])
        fields.append(
            {
                "name": field.get("name"),
                "label": field.get("label"),
                "type": field.get("type"),
                "length": field.get("length") or None,
                "required": field.get("nillable") is False and field.get("type") != "boolean",
                "unique": bool(field.get("unique")),
                "custom": bool(field.get("custom")),
                "referenceTo": reference_to,
                "relationshipName": field.get("relationshipName"),
            }
        )
        if reference_to and field.get("relationshipName"):
            relationships.append(
                {
                    "name": field.get("relationshipName"),
                    "field": field.get("name"),
                    "object": reference_to[0],
                    "type": "Master-Detail" if field.get("cascadeDelete") else "Lookup",
                }
            )
    for child in describe.get("childRelationships", []):
        if not child.get("relationshipName"):
            continue
        relationships.append(
            {
                "name": child.get("relationshipName"),
                "field": child.get("field"),
                "object": child.get("childSObject"),
                "type": "Child",
            }
        )
    return {
        "name": describe.get("name"),
        "label": describe.get("label"),
        "custom": bool(describe.get("custom")),
        "fields": fields,
        "relationships": relationships,
    }
