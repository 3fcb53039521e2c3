from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import get_db, get_org_client, get_owned_org
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.core.errors import SfInsightError
from sfinsight.domain.models import Metadata, SalesforceOrg
from sfinsight.persistence.repos import metadata as metadata_repo
from sfinsight.providers.salesforce.base import SalesforceApi
from sfinsight.providers.salesforce.stats import SalesforceStatsService
from sfinsight.services.metadata_sync import MetadataSyncService


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orgs/{org_id}", tags=["metadata"], responses=DEFAULT_ERROR_RESPONSES)


class MetadataResponse(BaseModel):
    id: int
    org_id: int
    type: str
    name: str
    data: dict[str, Any]
    created_at: str | None
    updated_at: str | None


class SyncResponse(BaseModel):
    created: int
    updated: int
    deleted: int
    types: list[str]
    failed_types: list[str]
    fields: int


class OrgStatResponse(BaseModel):
    key: str
    label: str
    value: int
    limit: int
    unit: str | None = None
    category: str | None = None


class ApiUsageResponse(BaseModel):
    used: int
    remaining: int
    max: int


def _to_metadata(row: Metadata) -> MetadataResponse:
    return MetadataResponse(
        id=row.id,
        org_id=row.org_id,
        type=row.type,
        name=row.name,
        data=row.data or {},
        created_at=isoformat(row.created_at),
        updated_at=isoformat(row.updated_at),
    )


@router.get("/metadata", response_model=list[MetadataResponse])
async def list_metadata(
    type: str | None = Query(default=None),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[MetadataResponse]:
    try:
        rows = await metadata_repo.list_metadata(db, org.id, types=[type] if type else None)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing metadata") from exc
    return [_to_metadata(row) for row in rows]


@router.get("/metadata/{metadata_id}", response_model=MetadataResponse)
async def get_metadata(
    metadata_id: int,
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> MetadataResponse:
    try:
        row = await metadata_repo.get_metadata(db, org.id, metadata_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching metadata") from exc
    if row is None:
        raise HTTPException(status_code=404, detail="Metadata not found")
    return _to_metadata(row)


@router.post("/sync", response_model=SyncResponse)
async def sync_metadata(
    org: SalesforceOrg = Depends(get_owned_org),
    client: SalesforceApi = Depends(get_org_client),
    db: AsyncSession = Depends(get_db),
) -> SyncResponse:
    try:
        result = await MetadataSyncService(db, client).sync(org)
        await db.commit()
    except SfInsightError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while syncing metadata") from exc
    return SyncResponse(**result.to_dict())


@router.get("/stats", response_model=list[OrgStatResponse])
async def org_stats(
    org: SalesforceOrg = Depends(get_owned_org),
    client: SalesforceApi = Depends(get_org_client),
) -> list[OrgStatResponse]:
    stats = await SalesforceStatsService(client).get_general_stats(org.name)
    return [OrgStatResponse(**stat.to_dict()) for stat in stats]


@router.get("/api-usage", response_model=ApiUsageResponse)
async def api_usage(client: SalesforceApi = Depends(get_org_client)) -> ApiUsageResponse:
    return ApiUsageResponse(**await SalesforceStatsService(client).get_api_usage())
