from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import Principal, get_current_principal, get_db
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.domain.models import FilterTemplate
from sfinsight.persistence.repos import filter_templates as templates_repo


router = APIRouter(prefix="/filter-templates", tags=["filter-templates"], responses=DEFAULT_ERROR_RESPONSES)


class FilterTemplateRequest(BaseModel):
    name: str = Field(min_length=1)
    filters: dict[str, Any]
    is_shared: bool = False


class FilterTemplateResponse(BaseModel):
    id: int
    user_id: int
    name: str
    filters: dict[str, Any]
    is_shared: bool
    created_at: str | None


def _to_template(template: FilterTemplate) -> FilterTemplateResponse:
    return FilterTemplateResponse(
        id=template.id,
        user_id=template.user_id,
        name=template.name,
        filters=template.filters or {},
        is_shared=template.is_shared,
        created_at=isoformat(template.created_at),
    )


@router.get("", response_model=list[FilterTemplateResponse])
async def list_templates(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[FilterTemplateResponse]:
    try:
        templates = await templates_repo.list_templates_for_user(db, principal.user_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing filter templates") from exc
    return [_to_template(template) for template in templates]


@router.post("", response_model=FilterTemplateResponse, status_code=201)
async def create_template(
    payload: FilterTemplateRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> FilterTemplateResponse:
    try:
        template = await templates_repo.create_template(
            db,
            user_id=principal.user_id,
            name=payload.name.strip(),
            filters=payload.filters,
            is_shared=payload.is_shared,
        )
        await db.commit()
        await db.refresh(template)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while saving filter template") from exc
    return _to_template(template)
