from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import Principal, get_current_principal, get_db, get_org_client, get_owned_org
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.core.errors import DataDictionaryError, SfInsightError
from sfinsight.domain.models import (
    DataDictionaryAuditLog,
    DataDictionaryChange,
    DataDictionaryField,
    SalesforceOrg,
)
from sfinsight.persistence.repos import data_dictionary as dd_repo
from sfinsight.providers.salesforce.base import SalesforceApi
from sfinsight.services import data_dictionary as dd_service


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/orgs/{org_id}/data-dictionary",
    tags=["data-dictionary"],
    responses=DEFAULT_ERROR_RESPONSES,
)


class FieldResponse(BaseModel):
    id: int
    object_api_name: str
    field_api_name: str
    label: str
    data_type: str
    length: int | None
    precision: int | None
    scale: int | None
    required: bool
    external_id: bool
    unique: bool
    description: str | None
    user_description: str | None
    picklist_values: list[str] | None
    reference_to: list[str] | None
    updated_at: str | None


class FieldPatchRequest(BaseModel):
    user_description: str | None

    model_config = {"extra": "forbid"}


class ChangeResponse(BaseModel):
    id: int
    field_id: int
    user_id: int
    object_api_name: str
    field_api_name: str
    change_type: str
    old_value: str | None
    new_value: str | None
    status: str
    error: str | None
    created_at: str | None
    applied_at: str | None


class ApplyRequest(BaseModel):
    # Omitted means every pending change of the org.
    change_ids: list[int] | None = None


class ApplyResponse(BaseModel):
    applied: list[int]
    failed: list[dict[str, Any]]


class RefreshResponse(BaseModel):
    fields: int


class ImportResponse(BaseModel):
    staged: int
    unchanged: int
    errors: list[str]


class AuditLogResponse(BaseModel):
    id: int
    user_id: int | None
    action: str
    object_api_name: str | None
    field_api_name: str | None
    details: dict[str, Any]
    created_at: str | None


def _to_field(item: DataDictionaryField) -> FieldResponse:
    return FieldResponse(
        id=item.id,
        object_api_name=item.object_api_name,
        field_api_name=item.field_api_name,
        label=item.label,
        data_type=item.data_type,
        length=item.length,
        precision=item.precision,
        scale=item.scale,
        required=item.required,
        external_id=item.external_id,
        unique=item.unique,
        description=item.description,
        user_description=item.user_description,
        picklist_values=item.picklist_values,
        reference_to=item.reference_to,
        updated_at=isoformat(item.updated_at),
    )


def _to_change(change: DataDictionaryChange) -> ChangeResponse:
    return ChangeResponse(
        id=change.id,
        field_id=change.field_id,
        user_id=change.user_id,
        object_api_name=change.object_api_name,
        field_api_name=change.field_api_name,
        change_type=change.change_type,
        old_value=change.old_value,
        new_value=change.new_value,
        status=change.status,
        error=change.error,
        created_at=isoformat(change.created_at),
        applied_at=isoformat(change.applied_at),
    )


def _to_audit(entry: DataDictionaryAuditLog) -> AuditLogResponse:
    return AuditLogResponse(
        id=entry.id,
        user_id=entry.user_id,
        action=entry.action,
        object_api_name=entry.object_api_name,
        field_api_name=entry.field_api_name,
        details=entry.details or {},
        created_at=isoformat(entry.created_at),
    )


@router.get("", response_model=list[FieldResponse])
async def list_fields(
    objects: str | None = Query(default=None, description="Comma-separated object API names"),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[FieldResponse]:
    names = [name.strip() for name in objects.split(",")] if objects else None
    try:
        fields = await dd_repo.list_fields(db, org.id, objects=names)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing fields") from exc
    return [_to_field(item) for item in fields]


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_fields(
    org: SalesforceOrg = Depends(get_owned_org),
    client: SalesforceApi = Depends(get_org_client),
    db: AsyncSession = Depends(get_db),
) -> RefreshResponse:
    try:
        written = await dd_service.refresh_from_salesforce(db, org, client)
        await db.commit()
    except SfInsightError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while refreshing fields") from exc
    return RefreshResponse(fields=written)


@router.patch("/field/{field_id}", response_model=ChangeResponse)
async def edit_field(
    field_id: int,
    payload: FieldPatchRequest,
    org: SalesforceOrg = Depends(get_owned_org),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> ChangeResponse:
    try:
        if await dd_repo.get_field(db, org.id, field_id) is None:
            raise HTTPException(status_code=404, detail="Field not found")
        change = await dd_service.stage_description_edit(
            db,
            org_id=org.id,
            user_id=principal.user_id,
            field_id=field_id,
            user_description=payload.user_description,
        )
        await db.commit()
        await db.refresh(change)
    except HTTPException:
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while staging change") from exc
    return _to_change(change)


@router.get("/changes", response_model=list[ChangeResponse])
async def list_changes(
    status: str | None = Query(default=None),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[ChangeResponse]:
    try:
        changes = await dd_repo.list_changes(db, org.id, status=status)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing changes") from exc
    return [_to_change(change) for change in changes]


@router.delete("/changes/{change_id}", status_code=204)
async def discard_change(
    change_id: int,
    org: SalesforceOrg = Depends(get_owned_org),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        change = await dd_repo.get_change(db, org.id, change_id)
        if change is None:
            raise HTTPException(status_code=404, detail="Change not found")
        # A change that is no longer pending surfaces as 409.
        await dd_service.discard_change(db, change, user_id=principal.user_id)
        await db.commit()
    except (HTTPException, DataDictionaryError):
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while discarding change") from exc
    return Response(status_code=204)


@router.post("/changes/apply", response_model=ApplyResponse)
async def apply_changes(
    payload: ApplyRequest,
    org: SalesforceOrg = Depends(get_owned_org),
    principal: Principal = Depends(get_current_principal),
    client: SalesforceApi = Depends(get_org_client),
    db: AsyncSession = Depends(get_db),
) -> ApplyResponse:
    try:
        result = await dd_service.apply_changes(
            db,
            org_id=org.id,
            user_id=principal.user_id,
            client=client,
            change_ids=payload.change_ids,
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while applying changes") from exc
    return ApplyResponse(applied=result.applied, failed=result.failed)


@router.get("/audit-log", response_model=list[AuditLogResponse])
async def audit_log(
    limit: int = Query(default=200, ge=1, le=1000),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[AuditLogResponse]:
    try:
        entries = await dd_repo.list_audit_log(db, org.id, limit=limit)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing audit log") from exc
    return [_to_audit(entry) for entry in entries]


@router.get("/export")
async def export_fields(
    objects: str | None = Query(default=None),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> Response:
    names = [name.strip() for name in objects.split(",")] if objects else None
    try:
        fields = await dd_repo.list_fields(db, org.id, objects=names)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while exporting fields") from exc
    return Response(
        content=dd_service.export_csv(fields),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="data-dictionary-{org.id}.csv"'},
    )


@router.post("/import", response_model=ImportResponse)
async def import_fields(
    file: UploadFile = File(...),
    org: SalesforceOrg = Depends(get_owned_org),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> ImportResponse:
    raw = await file.read()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded") from exc
    try:
        result = await dd_service.import_csv(db, org_id=org.id, user_id=principal.user_id, text=text)
        await db.commit()
    except DataDictionaryError as exc:
        await db.rollback()
        raise HTTPException(status_code=400, detail={"code": "INVALID_CSV", "message": str(exc)}) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while importing fields") from exc
    logger.info("data_dictionary_imported org_id=%s staged=%s", org.id, result.staged)
    return ImportResponse(staged=result.staged, unchanged=result.unchanged, errors=result.errors)
