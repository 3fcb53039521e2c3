from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import (
    Principal,
    get_current_principal,
    get_db,
    get_org_client,
    get_owned_org,
)
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.core.config import get_settings
from sfinsight.domain.models import SalesforceOrg, SavedQuery
from sfinsight.persistence.repos import queries as queries_repo
from sfinsight.providers.salesforce.base import SalesforceApi
from sfinsight.services.soql_builder import FilterItem, RelationshipQueryBuilder, SortItem, build_soql


logger = logging.getLogger(__name__)
router = APIRouter(tags=["queries"], responses=DEFAULT_ERROR_RESPONSES)


class ExecuteQueryRequest(BaseModel):
    query: str = Field(min_length=1)


class QueryResultResponse(BaseModel):
    totalSize: int
    done: bool
    records: list[dict[str, Any]]


class FilterPayload(BaseModel):
    field: str = ""
    operator: str = ""
    value: str = ""


class SortPayload(BaseModel):
    field: str = ""
    direction: str = "ASC"


class FieldPayload(BaseModel):
    object_name: str
    field_name: str
    field_label: str = ""
    field_type: str = ""


class RelationshipPayload(BaseModel):
    source_object: str
    target_object: str
    relationship_name: str
    relationship_type: str = "Lookup"


class BuildQueryRequest(BaseModel):
    # Simple builder inputs.
    object_name: str | None = None
    fields: list[str] = Field(default_factory=list)
    filters: list[FilterPayload] = Field(default_factory=list)
    sort: list[SortPayload] = Field(default_factory=list)
    limit: str | int | None = None
    # Relationship builder inputs; used when root_object is set.
    root_object: str | None = None
    selected_fields: list[FieldPayload] = Field(default_factory=list)
    relationships: list[RelationshipPayload] = Field(default_factory=list)
    where_clause: str = ""
    order_by_field: str = ""
    order_direction: str = "ASC"
    # Field names per object, as listed by the org's describes.
    object_fields: dict[str, list[str]] = Field(default_factory=dict)


class BuildQueryResponse(BaseModel):
    query: str


class SavedQueryRequest(BaseModel):
    name: str = Field(min_length=1)
    query: str = Field(min_length=1)


class SavedQueryResponse(BaseModel):
    id: int
    org_id: int
    name: str
    query: str
    created_at: str | None
    updated_at: str | None


def strip_attributes(value: Any) -> Any:
    # Salesforce tags every record (nested ones included) with an "attributes" entry.
    if isinstance(value, dict):
        return {key: strip_attributes(item) for key, item in value.items() if key != "attributes"}
    if isinstance(value, list):
        return [strip_attributes(item) for item in value]
    return value


def _to_saved(saved: SavedQuery) -> SavedQueryResponse:
    return SavedQueryResponse(
        id=saved.id,
        org_id=saved.org_id,
        name=saved.name,
        query=saved.query,
        created_at=isoformat(saved.created_at),
        updated_at=isoformat(saved.updated_at),
    )


@router.post("/orgs/{org_id}/query", response_model=QueryResultResponse)
async def execute_query(
    payload: ExecuteQueryRequest,
    org: SalesforceOrg = Depends(get_owned_org),
    client: SalesforceApi = Depends(get_org_client),
) -> QueryResultResponse:
    start = time.monotonic()
    cap = get_settings().query_max_records
    # Pages past the cap are never requested.
    result = await client.query_records(payload.query, cap)
    records = list(result.get("records") or [])
    truncated = not result.get("done", True)
    logger.info(
        "query_executed org_id=%s records=%s truncated=%s latency_ms=%.1f",
        org.id,
        len(records),
        truncated,
        (time.monotonic() - start) * 1000.0,
    )
    return QueryResultResponse(
        totalSize=int(result.get("totalSize") or len(records)),
        done=not truncated,
        records=strip_attributes(records),
    )


@router.post("/query/build", response_model=BuildQueryResponse)
async def build_query(
    payload: BuildQueryRequest,
    _principal: Principal = Depends(get_current_principal),
) -> BuildQueryResponse:
    if payload.root_object:
        builder = RelationshipQueryBuilder(
            object_fields=payload.object_fields,
            root_object=payload.root_object,
            where_clause=payload.where_clause,
            order_by_field=payload.order_by_field,
            order_direction=payload.order_direction,
        )
        if payload.limit is not None:
            builder.limit = str(payload.limit)
        for item in payload.selected_fields:
            builder.add_field(item.object_name, item.field_name, item.field_label, item.field_type)
        for rel in payload.relationships:
            builder.add_relationship(rel.source_object, rel.target_object, rel.relationship_name, rel.relationship_type)
        # QueryBuildError is rendered as 400 by the app's error handlers.
        return BuildQueryResponse(query=builder.generate())
    query = build_soql(
        payload.object_name,
        payload.fields,
        [FilterItem(item.field, item.operator, item.value) for item in payload.filters],
        [SortItem(item.field, item.direction) for item in payload.sort],
        payload.limit,
    )
    return BuildQueryResponse(query=query)


@router.get("/orgs/{org_id}/saved-queries", response_model=list[SavedQueryResponse])
async def list_saved_queries(
    org: SalesforceOrg = Depends(get_owned_org),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[SavedQueryResponse]:
    try:
        saved = await queries_repo.list_saved_queries(db, org.id, principal.user_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing saved queries") from exc
    return [_to_saved(item) for item in saved]


@router.post("/orgs/{org_id}/saved-queries", response_model=SavedQueryResponse, status_code=201)
async def create_saved_query(
    payload: SavedQueryRequest,
    org: SalesforceOrg = Depends(get_owned_org),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> SavedQueryResponse:
    try:
        saved = await queries_repo.create_saved_query(
            db, org_id=org.id, user_id=principal.user_id, name=payload.name.strip(), query=payload.query
        )
        await db.commit()
        await db.refresh(saved)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while saving query") from exc
    return _to_saved(saved)


@router.delete("/orgs/{org_id}/saved-queries/{query_id}", status_code=204)
async def delete_saved_query(
    query_id: int,
    org: SalesforceOrg = Depends(get_owned_org),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        saved = await queries_repo.get_saved_query(db, org_id=org.id, user_id=principal.user_id, query_id=query_id)
        if saved is None:
            raise HTTPException(status_code=404, detail="Saved query not found")
        await db.delete(saved)
        await db.commit()
    except HTTPException:
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while deleting saved query") from exc
    return Response(status_code=204)
