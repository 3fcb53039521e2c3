from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import Principal, get_current_principal, get_db, get_owned_org
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.domain.models import SalesforceOrg
from sfinsight.persistence.repos import orgs as orgs_repo
from sfinsight.providers.salesforce.connector import SalesforceConnector, get_salesforce_connector
from sfinsight.services.org_connection import ConnectOrgRequest, OrgConnector


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orgs", tags=["orgs"], responses=DEFAULT_ERROR_RESPONSES)


class ConnectRequest(BaseModel):
    name: str = ""
    environment: str = "production"
    auth_method: str = "credentials"
    email: str | None = None
    password: str | None = None
    security_token: str | None = None
    access_token: str | None = None
    instance_url: str | None = None
    refresh_token: str | None = None

    model_config = {"extra": "forbid"}


class OrgPatchRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None

    model_config = {"extra": "forbid"}


class OrgResponse(BaseModel):
    id: int
    name: str
    domain: str
    instance_url: str
    type: str
    auth_method: str
    username: str | None
    is_active: bool
    connection_status: str
    last_error: str | None
    created_at: str | None
    last_synced_at: str | None


class ConnectResponse(BaseModel):
    org: OrgResponse
    status_history: list[str]
    sync_error: str | None = None


def to_org_response(org: SalesforceOrg) -> OrgResponse:
    # Credentials never leave the server.
    return OrgResponse(
        id=org.id,
        name=org.name,
        domain=org.domain,
        instance_url=org.instance_url,
        type=org.type,
        auth_method=org.auth_method,
        username=org.username,
        is_active=org.is_active,
        connection_status=org.connection_status,
        last_error=org.last_error,
        created_at=isoformat(org.created_at),
        last_synced_at=isoformat(org.last_synced_at),
    )


@router.get("", response_model=list[OrgResponse])
async def list_orgs(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[OrgResponse]:
    try:
        orgs = await orgs_repo.list_orgs_for_user(db, principal.user_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing orgs") from exc
    return [to_org_response(org) for org in orgs]


@router.post("", response_model=ConnectResponse, status_code=201)
async def connect_org(
    payload: ConnectRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    connector: SalesforceConnector = Depends(get_salesforce_connector),
) -> ConnectResponse:
    request = ConnectOrgRequest(**payload.model_dump())
    try:
        result = await OrgConnector(db, connector).connect(user_id=principal.user_id, request=request)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while connecting org") from exc
    return ConnectResponse(
        org=to_org_response(result.org),
        status_history=[status.value for status in result.status_history],
        sync_error=result.sync_error,
    )


@router.get("/{org_id}", response_model=OrgResponse)
async def get_org(org: SalesforceOrg = Depends(get_owned_org)) -> OrgResponse:
    return to_org_response(org)


@router.patch("/{org_id}", response_model=OrgResponse)
async def patch_org(
    payload: OrgPatchRequest,
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> OrgResponse:
    if payload.name is not None:
        org.name = payload.name.strip()
    if payload.is_active is not None:
        org.is_active = payload.is_active
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while updating org") from exc
    return to_org_response(org)


@router.delete("/{org_id}", status_code=204)
async def delete_org(
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> Response:
    org_id = org.id
    try:
        await orgs_repo.delete_org(db, org)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while deleting org") from exc
    logger.info("org_deleted org_id=%s", org_id)
    return Response(status_code=204)


@router.post("/{org_id}/refresh", response_model=OrgResponse)
async def refresh_org(
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
    connector: SalesforceConnector = Depends(get_salesforce_connector),
) -> OrgResponse:
    try:
        refreshed = await OrgConnector(db, connector).refresh(org)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while refreshing org") from exc
    return to_org_response(refreshed)
