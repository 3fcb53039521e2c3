from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.core.config import Settings, get_settings
from sfinsight.core.errors import SalesforceError
from sfinsight.domain.models import Metadata, SalesforceOrg
from sfinsight.persistence.repos import metadata as metadata_repo
from sfinsight.providers.salesforce.base import SalesforceApi
from sfinsight.services.data_dictionary import refresh_catalog
from sfinsight.services.describes import describe_objects, select_objects, summarize_object


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolingType:
    type: str
    soql: str
    name_field: str


# Component types pulled from the Tooling API, one metadata row per record.
TOOLING_TYPES: tuple[ToolingType, ...] = (
    ToolingType("ApexClass", "SELECT Id, Name, ApiVersion, Status, Body FROM ApexClass", "Name"),
    ToolingType(
        "ApexTrigger",
        "SELECT Id, Name, ApiVersion, Status, TableEnumOrId, Body FROM ApexTrigger",
        "Name",
    ),
    ToolingType("ApexPage", "SELECT Id, Name, ApiVersion, ControllerType, Markup FROM ApexPage", "Name"),
    ToolingType(
        "LightningComponentBundle",
        "SELECT Id, DeveloperName, MasterLabel, ApiVersion FROM LightningComponentBundle",
        "DeveloperName",
    ),
    ToolingType(
        "AuraDefinitionBundle",
        "SELECT Id, DeveloperName, MasterLabel, ApiVersion FROM AuraDefinitionBundle",
        "DeveloperName",
    ),
    ToolingType(
        "FlowDefinition",
        "SELECT Id, DeveloperName, MasterLabel, ActiveVersionId, LatestVersionId FROM FlowDefinition",
        "DeveloperName",
    ),
)

SYNCED_TYPES = ("CustomObject",) + tuple(item.type for item in TOOLING_TYPES)


@dataclass
class SyncResult:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    types: list[str] = field(default_factory=list)
    failed_types: list[str] = field(default_factory=list)
    fields: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _strip_attributes(record: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in record.items() if key != "attributes"}


class MetadataSyncService:
    """Pulls object describes and component metadata into the local catalog."""

    def __init__(self, session: AsyncSession, client: SalesforceApi, settings: Settings | None = None) -> None:
        self._session = session
        self._client = client
        self._settings = settings or get_settings()

    async def _store(
        self,
        org_id: int,
        type_: str,
        rows: dict[str, dict[str, Any]],
        existing: dict[tuple[str, str], Metadata],
        result: SyncResult,
    ) -> None:
        for name, data in rows.items():
            current = existing.get((type_, name))
            changed = current is not None and current.data != data
            created = await metadata_repo.upsert_metadata(
                self._session, org_id, type_=type_, name=name, data=data, existing=existing
            )
            if created:
                result.created += 1
            elif changed:
                result.updated += 1
        deleted = await metadata_repo.delete_missing(
            self._session, org_id, type_=type_, keep_names=set(rows)
        )
        if deleted:
            for key in [key for key in existing if key[0] == type_ and key[1] not in rows]:
                existing.pop(key)
        result.deleted += deleted
        result.types.append(type_)

    async def _sync_objects(
        self, org_id: int, existing: dict[tuple[str, str], Metadata], result: SyncResult
    ) -> None:
        try:
            global_describe = await self._client.describe_global()
        except SalesforceError as exc:
            logger.warning("metadata_sync_type_failed org_id=%s type=CustomObject error=%s", org_id, exc)
            result.failed_types.append("CustomObject")
            return
        names = select_objects(global_describe, self._settings.sync_describe_limit)
        describes = await describe_objects(
            self._client, names, max_concurrency=self._settings.salesforce_max_concurrency
        )
        if names and not describes:
            # Nothing could be described; keep the previous rows rather than wiping them.
            result.failed_types.append("CustomObject")
            return
        rows = {name: summarize_object(describe) for name, describe in describes.items()}
        await self._store(org_id, "CustomObject", rows, existing, result)
        result.fields = await refresh_catalog(self._session, org_id, describes)

    async def _sync_tooling_type(
        self,
        org_id: int,
        spec: ToolingType,
        existing: dict[tuple[str, str], Metadata],
        result: SyncResult,
    ) -> None:
        try:
            response = await self._client.tooling_query(spec.soql)
        except SalesforceError as exc:
            # A failing type is skipped so the rest of the org still syncs.
            logger.warning("metadata_sync_type_failed org_id=%s type=%s error=%s", org_id, spec.type, exc)
            result.failed_types.append(spec.type)
            return
        rows: dict[str, dict[str, Any]] = {}
        for record in response.get("records") or []:
            name = record.get(spec.name_field)
            if name:
                rows[str(name)] = _strip_attributes(record)
        await self._store(org_id, spec.type, rows, existing, result)

    async def sync(self, org: SalesforceOrg) -> SyncResult:
        result = SyncResult()
        existing = {(row.type, row.name): row for row in await metadata_repo.list_metadata(self._session, org.id)}
        await self._sync_objects(org.id, existing, result)
        for spec in TOOLING_TYPES:
            await self._sync_tooling_type(org.id, spec, existing, result)
        org.last_synced_at = datetime.now(timezone.utc)
        await self._session.flush()
        logger.info(
            "metadata_sync_completed org_id=%s created=%s updated=%s deleted=%s failed_types=%s",
            org.id,
            result.created,
            result.updated,
            result.deleted,
            ",".join(result.failed_types) or "-",
        )
        return result
