from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.apps.api.deps import Principal, get_current_principal, get_db, get_owned_org
from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.apps.api.response import isoformat
from sfinsight.core.errors import SfInsightError
from sfinsight.domain.models import (
    CodeQuality,
    Compliance,
    ComponentDependency,
    HealthScore,
    ReleaseImpact,
    SalesforceOrg,
    TechnicalDebtItem,
)
from sfinsight.persistence.repos import analysis as analysis_repo
from sfinsight.persistence.repos import orgs as orgs_repo
from sfinsight.services.analytics.dependencies import build_graph
from sfinsight.services.analytics.release_impact import assess_release
from sfinsight.services.analytics.runner import run_analysis
from sfinsight.services.analytics.technical_debt import DEBT_STATUSES, debt_tags


logger = logging.getLogger(__name__)
router = APIRouter(tags=["analysis"], responses=DEFAULT_ERROR_RESPONSES)


class HealthScoreResponse(BaseModel):
    id: int
    org_id: int
    overall_score: int
    security_score: int
    data_model_score: int
    automation_score: int
    apex_score: int
    ui_component_score: int
    complexity_score: int
    performance_risk: int
    technical_debt: int
    metadata_volume: int
    customization_level: int
    issues: list[dict[str, Any]]
    created_at: str | None


class AnalyzeResponse(BaseModel):
    health_score: HealthScoreResponse
    summary: dict[str, Any]


class CodeQualityResponse(BaseModel):
    id: int
    component_id: int
    component_name: str
    component_type: str
    quality_score: int
    complexity_score: int
    test_coverage: int | None
    best_practices_score: int
    security_score: int
    performance_score: int
    issues_count: int
    issues: list[dict[str, Any]]
    complexity_metrics: dict[str, Any]


class DependencyResponse(BaseModel):
    id: int
    source_component_id: int
    source_component_name: str
    source_component_type: str
    target_component_id: int
    target_component_name: str
    target_component_type: str
    dependency_type: str
    dependency_strength: str


class GraphResponse(BaseModel):
    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]


class ComplianceResponse(BaseModel):
    id: int
    framework_name: str
    compliance_score: int
    passed_rules: int
    total_rules: int
    critical_violations: int
    high_violations: int
    medium_violations: int
    low_violations: int
    violations: list[dict[str, Any]]
    last_scanned: str | None


class TechnicalDebtResponse(BaseModel):
    id: int
    component_id: int | None
    component_name: str | None
    component_type: str | None
    category: str
    title: str
    description: str
    impact: str
    priority: int
    status: str
    estimated_remediation_hours: int
    tags: list[str]
    assigned_to: str | None
    created_at: str | None
    updated_at: str | None


class TechnicalDebtPatchRequest(BaseModel):
    status: str | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    assigned_to: str | None = None

    model_config = {"extra": "forbid"}


class ReleaseImpactRequest(BaseModel):
    release_name: str = ""
    release_date: datetime | None = None
    summary: str | None = None
    component_ids: list[int] = Field(default_factory=list)


class ReleaseImpactResponse(BaseModel):
    id: int
    release_name: str
    release_date: str | None
    risk_level: str
    summary: str
    affected_components: list[dict[str, Any]]
    created_at: str | None


def _to_health(score: HealthScore) -> HealthScoreResponse:
    return HealthScoreResponse(
        id=score.id,
        org_id=score.org_id,
        overall_score=score.overall_score,
        security_score=score.security_score,
        data_model_score=score.data_model_score,
        automation_score=score.automation_score,
        apex_score=score.apex_score,
        ui_component_score=score.ui_component_score,
        complexity_score=score.complexity_score,
        performance_risk=score.performance_risk,
        technical_debt=score.technical_debt,
        metadata_volume=score.metadata_volume,
        customization_level=score.customization_level,
        issues=score.issues or [],
        created_at=isoformat(score.created_at),
    )


def _to_code_quality(row: CodeQuality) -> CodeQualityResponse:
    return CodeQualityResponse(
        id=row.id,
        component_id=row.component_id,
        component_name=row.component_name,
        component_type=row.component_type,
        quality_score=row.quality_score,
        complexity_score=row.complexity_score,
        test_coverage=row.test_coverage,
        best_practices_score=row.best_practices_score,
        security_score=row.security_score,
        performance_score=row.performance_score,
        issues_count=row.issues_count,
        issues=row.issues or [],
        complexity_metrics=row.complexity_metrics or {},
    )


def _to_dependency(dep: ComponentDependency) -> DependencyResponse:
    return DependencyResponse(
        id=dep.id,
        source_component_id=dep.source_component_id,
        source_component_name=dep.source_component_name,
        source_component_type=dep.source_component_type,
        target_component_id=dep.target_component_id,
        target_component_name=dep.target_component_name,
        target_component_type=dep.target_component_type,
        dependency_type=dep.dependency_type,
        dependency_strength=dep.dependency_strength,
    )


def _to_compliance(row: Compliance) -> ComplianceResponse:
    return ComplianceResponse(
        id=row.id,
        framework_name=row.framework_name,
        compliance_score=row.compliance_score,
        passed_rules=row.passed_rules,
        total_rules=row.total_rules,
        critical_violations=row.critical_violations,
        high_violations=row.high_violations,
        medium_violations=row.medium_violations,
        low_violations=row.low_violations,
        violations=row.violations or [],
        last_scanned=isoformat(row.last_scanned),
    )


def _to_debt(item: TechnicalDebtItem) -> TechnicalDebtResponse:
    return TechnicalDebtResponse(
        id=item.id,
        component_id=item.component_id,
        component_name=item.component_name,
        component_type=item.component_type,
        category=item.category,
        title=item.title,
        description=item.description,
        impact=item.impact,
        priority=item.priority,
        status=item.status,
        estimated_remediation_hours=item.estimated_remediation_hours,
        tags=item.tags or [],
        assigned_to=item.assigned_to,
        created_at=isoformat(item.created_at),
        updated_at=isoformat(item.updated_at),
    )


def _to_release(impact: ReleaseImpact) -> ReleaseImpactResponse:
    return ReleaseImpactResponse(
        id=impact.id,
        release_name=impact.release_name,
        release_date=isoformat(impact.release_date),
        risk_level=impact.risk_level,
        summary=impact.summary,
        affected_components=impact.affected_components or [],
        created_at=isoformat(impact.created_at),
    )


@router.post("/orgs/{org_id}/analyze", response_model=AnalyzeResponse)
async def analyze_org(
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> AnalyzeResponse:
    try:
        score, summary = await run_analysis(db, org)
        await db.commit()
        await db.refresh(score)
    except SfInsightError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while analyzing org") from exc
    return AnalyzeResponse(health_score=_to_health(score), summary=summary.to_dict())


@router.get("/orgs/{org_id}/health-scores", response_model=list[HealthScoreResponse])
async def list_health_scores(
    limit: int = Query(default=30, ge=1, le=365),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[HealthScoreResponse]:
    try:
        scores = await analysis_repo.list_health_scores(db, org.id, limit=limit)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing health scores") from exc
    return [_to_health(score) for score in scores]


@router.get("/orgs/{org_id}/health", response_model=HealthScoreResponse)
async def latest_health_score(
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> HealthScoreResponse:
    try:
        score = await analysis_repo.get_latest_health_score(db, org.id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching health score") from exc
    if score is None:
        raise HTTPException(status_code=404, detail="Org has not been analyzed yet")
    return _to_health(score)


@router.get("/orgs/{org_id}/code-quality", response_model=list[CodeQualityResponse])
async def list_code_quality(
    component_type: str | None = Query(default=None, alias="componentType"),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[CodeQualityResponse]:
    try:
        rows = await analysis_repo.list_code_quality(db, org.id, component_type=component_type)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing code quality") from exc
    return [_to_code_quality(row) for row in rows]


@router.get("/orgs/{org_id}/components/{component_id}/dependencies", response_model=list[DependencyResponse])
async def component_dependencies(
    component_id: int,
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[DependencyResponse]:
    try:
        deps = await analysis_repo.list_component_dependencies(db, org.id, component_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing dependencies") from exc
    return [_to_dependency(dep) for dep in deps]


@router.get(
    "/orgs/{org_id}/components/{component_id}/reverse-dependencies",
    response_model=list[DependencyResponse],
)
async def component_reverse_dependencies(
    component_id: int,
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[DependencyResponse]:
    try:
        deps = await analysis_repo.list_component_dependencies(db, org.id, component_id, reverse=True)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing dependencies") from exc
    return [_to_dependency(dep) for dep in deps]


@router.get("/orgs/{org_id}/dependency-graph", response_model=GraphResponse)
async def dependency_graph(
    component_id: int | None = Query(default=None, alias="componentId"),
    reverse: bool = Query(default=False),
    filter: str | None = Query(default=None),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> GraphResponse:
    try:
        if component_id is None:
            deps = await analysis_repo.list_dependencies(db, org.id)
        else:
            deps = await analysis_repo.list_component_dependencies(db, org.id, component_id, reverse=reverse)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while building dependency graph") from exc
    return GraphResponse(**build_graph(deps, focus_id=component_id, filter_text=filter))


@router.get("/orgs/{org_id}/compliance", response_model=list[ComplianceResponse])
async def list_compliance(
    framework: str | None = Query(default=None),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[ComplianceResponse]:
    try:
        rows = await analysis_repo.list_compliance(db, org.id, framework_name=framework)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing compliance") from exc
    return [_to_compliance(row) for row in rows]


@router.get("/orgs/{org_id}/technical-debt", response_model=list[TechnicalDebtResponse])
async def list_technical_debt(
    category: str | None = Query(default=None),
    status: str | None = Query(default=None),
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[TechnicalDebtResponse]:
    try:
        items = await analysis_repo.list_technical_debt(db, org.id, category=category, status=status)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing technical debt") from exc
    return [_to_debt(item) for item in items]


@router.patch("/technical-debt/{item_id}", response_model=TechnicalDebtResponse)
async def patch_technical_debt(
    item_id: int,
    payload: TechnicalDebtPatchRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> TechnicalDebtResponse:
    if payload.status is not None and payload.status not in DEBT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_STATUS", "message": f"Status must be one of: {', '.join(DEBT_STATUSES)}"},
        )
    try:
        item = await analysis_repo.get_technical_debt_item(db, item_id)
        # Items of other users' orgs are reported as missing.
        if item is None or await orgs_repo.get_org_for_user(db, item.org_id, principal.user_id) is None:
            raise HTTPException(status_code=404, detail="Technical debt item not found")
        fields = payload.model_dump(exclude_unset=True)
        for key, value in fields.items():
            setattr(item, key, value)
        if "priority" in fields:
            item.tags = debt_tags(item.category, item.priority)
        await db.commit()
        await db.refresh(item)
    except HTTPException:
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while updating technical debt") from exc
    logger.info("technical_debt_updated item_id=%s fields=%s", item_id, sorted(fields))
    return _to_debt(item)


@router.get("/orgs/{org_id}/release-impacts", response_model=list[ReleaseImpactResponse])
async def list_release_impacts(
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> list[ReleaseImpactResponse]:
    try:
        impacts = await analysis_repo.list_release_impacts(db, org.id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing release impacts") from exc
    return [_to_release(impact) for impact in impacts]


@router.post("/orgs/{org_id}/release-impacts", response_model=ReleaseImpactResponse, status_code=201)
async def create_release_impact(
    payload: ReleaseImpactRequest,
    org: SalesforceOrg = Depends(get_owned_org),
    db: AsyncSession = Depends(get_db),
) -> ReleaseImpactResponse:
    try:
        impact = await assess_release(
            db,
            org,
            release_name=payload.release_name,
            release_date=payload.release_date,
            summary=payload.summary,
            component_ids=payload.component_ids,
        )
        await db.commit()
        await db.refresh(impact)
    except SfInsightError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while assessing release") from exc
    return _to_release(impact)
