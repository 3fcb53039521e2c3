from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.core.config import get_settings
from sfinsight.core.errors import DataDictionaryError, SalesforceError
from sfinsight.domain.models import DataDictionaryChange, DataDictionaryField, SalesforceOrg
from sfinsight.persistence.repos import data_dictionary as dd_repo
from sfinsight.providers.salesforce.base import SalesforceApi
from sfinsight.services.describes import describe_objects, field_description, select_objects


logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "object",
    "field",
    "label",
    "type",
    "length",
    "required",
    "unique",
    "external_id",
    "description",
    "user_description",
    "picklist_values",
    "reference_to",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def effective_description(item: DataDictionaryField) -> str | None:
    # A local annotation overrides whatever Salesforce holds.
    return item.user_description if item.user_description is not None else item.description


@dataclass
class ApplyResult:
    applied: list[int] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ImportResult:
    staged: int = 0
    unchanged: int = 0
    errors: list[str] = field(default_factory=list)


async def refresh_catalog(
    session: AsyncSession, org_id: int, describes: dict[str, dict[str, Any]]
) -> int:
    """Upsert one catalog row per described field; returns the number of rows written.

    Fields that disappeared from a described object are removed. Objects that
    were not described this time are left untouched.
    """
    existing = await dd_repo.index_fields(session, org_id)
    written = 0
    for object_name, describe in describes.items():
        seen: set[str] = set()
        for raw in describe.get("fields", []):
            field_name = raw.get("name")
            if not field_name:
                continue
            seen.add(field_name)
            values = {
                "label": raw.get("label") or field_name,
                "data_type": raw.get("type") or "string",
                "length": raw.get("length") or None,
                "precision": raw.get("precision") or None,
                "scale": raw.get("scale") or None,
                "required": raw.get("nillable") is False and raw.get("type") != "boolean",
                "external_id": bool(raw.get("externalId")),
                "unique": bool(raw.get("unique")),
                "description": field_description(raw),
                "picklist_values": [entry.get("value") for entry in raw.get("picklistValues") or []] or None,
                "reference_to": list(raw.get("referenceTo") or []) or None,
            }
            row = existing.get((object_name, field_name))
            if row is None:
                row = DataDictionaryField(org_id=org_id, object_api_name=object_name, field_api_name=field_name)
                session.add(row)
                existing[(object_name, field_name)] = row
            for key, value in values.items():
                setattr(row, key, value)
            written += 1
        stale = [
            row.id
            for (obj, name), row in existing.items()
            if obj == object_name and name not in seen and row.id is not None
        ]
        if stale:
            await session.execute(delete(DataDictionaryField).where(DataDictionaryField.id.in_(stale)))
    await session.flush()
    return written


async def refresh_from_salesforce(session: AsyncSession, org: SalesforceOrg, client: SalesforceApi) -> int:
    settings = get_settings()
    names = select_objects(await client.describe_global(), settings.sync_describe_limit)
    describes = await describe_objects(client, names, max_concurrency=settings.salesforce_max_concurrency)
    written = await refresh_catalog(session, org.id, describes)
    logger.info("data_dictionary_refreshed org_id=%s objects=%s fields=%s", org.id, len(describes), written)
    return written


async def stage_description_edit(
    session: AsyncSession,
    *,
    org_id: int,
    user_id: int,
    field_id: int,
    user_description: str | None,
) -> DataDictionaryChange:
    item = await dd_repo.get_field(session, org_id, field_id)
    if item is None:
        raise DataDictionaryError("Field not found")
    change = await dd_repo.get_pending_change_for_field(session, org_id, field_id)
    if change is None:
        change = DataDictionaryChange(
            org_id=org_id,
            field_id=item.id,
            user_id=user_id,
            object_api_name=item.object_api_name,
            field_api_name=item.field_api_name,
            change_type="update",
            old_value=effective_description(item),
            new_value=user_description,
            status="pending",
        )
        session.add(change)
    else:
        # One pending change per field; the newest edit wins.
        change.new_value = user_description
        change.user_id = user_id
        change.error = None
    await session.flush()
    await dd_repo.add_audit_entry(
        session,
        org_id=org_id,
        user_id=user_id,
        action="change_requested",
        object_api_name=item.object_api_name,
        field_api_name=item.field_api_name,
        details={"change_id": change.id, "old_value": change.old_value, "new_value": user_description},
    )
    return change


async def discard_change(session: AsyncSession, change: DataDictionaryChange, *, user_id: int) -> None:
    if change.status != "pending":
        raise DataDictionaryError(f"Change is already {change.status}")
    change.status = "rejected"
    await dd_repo.add_audit_entry(
        session,
        org_id=change.org_id,
        user_id=user_id,
        action="change_discarded",
        object_api_name=change.object_api_name,
        field_api_name=change.field_api_name,
        details={"change_id": change.id},
    )


async def apply_changes(
    session: AsyncSession,
    *,
    org_id: int,
    user_id: int,
    client: SalesforceApi,
    change_ids: list[int] | None = None,
) -> ApplyResult:
    """Deploy pending changes to Salesforce one by one.

    Ids that do not name a pending change are ignored. A change Salesforce
    rejects stays pending with ``error`` set so it can be retried or discarded.
    """
    result = ApplyResult()
    changes = await dd_repo.list_pending_changes_by_ids(session, org_id, change_ids)
    for change in changes:
        try:
            await client.update_field_description(
                change.object_api_name, change.field_api_name, change.new_value or ""
            )
        except SalesforceError as exc:
            change.error = str(exc)
            result.failed.append({"id": change.id, "error": str(exc)})
            await dd_repo.add_audit_entry(
                session,
                org_id=org_id,
                user_id=user_id,
                action="change_failed",
                object_api_name=change.object_api_name,
                field_api_name=change.field_api_name,
                details={"change_id": change.id, "error": str(exc)},
            )
            logger.warning("data_dictionary_apply_failed change_id=%s error=%s", change.id, exc)
            continue
        change.status = "applied"
        change.applied_at = _utc_now()
        change.error = None
        item = await dd_repo.get_field(session, org_id, change.field_id)
        if item is not None:
            item.description = change.new_value
            item.user_description = change.new_value
        await dd_repo.add_audit_entry(
            session,
            org_id=org_id,
            user_id=user_id,
            action="change_applied",
            object_api_name=change.object_api_name,
            field_api_name=change.field_api_name,
            details={"change_id": change.id, "new_value": change.new_value},
        )
        result.applied.append(change.id)
    await session.flush()
    logger.info(
        "data_dictionary_applied org_id=%s applied=%s failed=%s", org_id, len(result.applied), len(result.failed)
    )
    return result


def _join(values: Iterable[str] | None) -> str:
    return ";".join(values or [])


def export_csv(fields: Iterable[DataDictionaryField]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for item in fields:
        writer.writerow(
            [
                item.object_api_name,
                item.field_api_name,
                item.label,
                item.data_type,
                "" if item.length is None else item.length,
                "true" if item.required else "false",
                "true" if item.unique else "false",
                "true" if item.external_id else "false",
                item.description or "",
                item.user_description or "",
                _join(item.picklist_values),
                _join(item.reference_to),
            ]
        )
    return buffer.getvalue()


async def import_csv(session: AsyncSession, *, org_id: int, user_id: int, text: str) -> ImportResult:
    """Stage pending changes for rows whose description differs from the catalog.

    Rows need ``object`` and ``field`` columns plus ``user_description`` or
    ``description``; the former wins when both are present.
    """
    result = ImportResult()
    reader = csv.DictReader(io.StringIO(text))
    columns = set(reader.fieldnames or [])
    if not {"object", "field"} <= columns or not ({"description", "user_description"} & columns):
        raise DataDictionaryError("CSV must include object, field and description columns")
    catalog = await dd_repo.index_fields(session, org_id)
    for line_no, row in enumerate(reader, start=2):
        key = ((row.get("object") or "").strip(), (row.get("field") or "").strip())
        item = catalog.get(key)
        if item is None:
            result.errors.append(f"line {line_no}: unknown field {key[0]}.{key[1]}")
            continue
        raw = row.get("user_description")
        if raw is None or raw == "":
            raw = row.get("description")
        new_value = raw if raw else None
        if new_value == effective_description(item):
            result.unchanged += 1
            continue
        await stage_description_edit(
            session, org_id=org_id, user_id=user_id, field_id=item.id, user_description=new_value
        )
        result.staged += 1
    return result
