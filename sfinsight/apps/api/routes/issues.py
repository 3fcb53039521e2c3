from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import Principal, get_current_principal, get_db, get_owned_org
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.domain.models import Issue, SalesforceOrg
from sfinsight.persistence.repos import issues as issues_repo
from sfinsight.persistence.repos import orgs as orgs_repo


router = APIRouter(tags=["issues"], responses=DEFAULT_ERROR_RESPONSES)


class IssueResponse(BaseModel):
    id: int
    org_id: int
    title: str
    description: str
    severity: str
    type: str
    status: str
    related_metadata: dict[str, Any] | None
    created_at: str | None


class IssuePatchRequest(BaseModel):
    status: Literal["open", "ignored", "resolved"]

    model_config = {"extra": "forbid"}


def _to_issue(issue: Issue) -> IssueResponse:
    return IssueResponse(
        id=issue.id,
        org_id=issue.org_id,
        title=issue.title,
        description=issue.description,
        severity=issue.severity,
        type=issue.type,
        status=issue.status,
        related_metadata=issue.related_metadata,
        created_at=isoformat(issue.created_at),
    )


@router.get("/orgs/{org_id}/issues", response_model=list[IssueResponse])
async def list_issues(
    status: str | None = Query(default=None),
    severity: str | None = Query(default=None),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[IssueResponse]:
    try:
        issues = await issues_repo.list_issues(db, org.id, status=status, severity=severity)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing issues") from exc
    return [_to_issue(issue) for issue in issues]


@router.patch("/issues/{issue_id}", response_model=IssueResponse)
async def patch_issue(
    issue_id: int,
    payload: IssuePatchRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> IssueResponse:
    try:
        issue = await issues_repo.get_issue(db, issue_id)
        if issue is None or await orgs_repo.get_org_for_user(db, issue.org_id, principal.user_id) is None:
            raise HTTPException(status_code=404, detail="Issue not found")
        issue.status = payload.status
        await db.commit()
    except HTTPException:
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while updating issue") from exc
    return _to_issue(issue)
