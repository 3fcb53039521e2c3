from __future__ import annotations

from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import (
    CodeQuality,
    Compliance,
    ComponentDependency,
    HealthScore,
    ReleaseImpact,
    TechnicalDebtItem,
)


async def add_health_score(session: AsyncSession, score: HealthScore) -> HealthScore:
    session.add(score)
    await session.flush()
    return score


async def list_health_scores(session: AsyncSession, org_id: int, *, limit: int = 30) -> list[HealthScore]:
    # Newest first; id breaks ties for scores created in the same instant.
    result = await session.execute(
        select(HealthScore)
        .where(HealthScore.org_id == org_id)
        .order_by(HealthScore.created_at.desc(), HealthScore.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_latest_health_score(session: AsyncSession, org_id: int) -> HealthScore | None:
    scores = await list_health_scores(session, org_id, limit=1)
    return scores[0] if scores else None


async def replace_code_quality(
    session: AsyncSession, org_id: int, rows: Iterable[CodeQuality]
) -> list[CodeQuality]:
    await session.execute(delete(CodeQuality).where(CodeQuality.org_id == org_id))
    stored = list(rows)
    session.add_all(stored)
    await session.flush()
    return stored


async def list_code_quality(
    session: AsyncSession, org_id: int, *, component_type: str | None = None
) -> list[CodeQuality]:
    query = select(CodeQuality).where(CodeQuality.org_id == org_id)
    if component_type:
        query = query.where(CodeQuality.component_type == component_type)
    result = await session.execute(query.order_by(CodeQuality.quality_score, CodeQuality.component_name))
    return list(result.scalars().all())


async def replace_dependencies(
    session: AsyncSession, org_id: int, rows: Iterable[ComponentDependency]
) -> list[ComponentDependency]:
    await session.execute(delete(ComponentDependency).where(ComponentDependency.org_id == org_id))
    stored = list(rows)
    session.add_all(stored)
    await session.flush()
    return stored


async def list_dependencies(session: AsyncSession, org_id: int) -> list[ComponentDependency]:
    result = await session.execute(
        select(ComponentDependency)
        .where(ComponentDependency.org_id == org_id)
        .order_by(ComponentDependency.id)
    )
    return list(result.scalars().all())


async def list_component_dependencies(
    session: AsyncSession, org_id: int, component_id: int, *, reverse: bool = False
) -> list[ComponentDependency]:
    # Reverse lookups answer "what depends on this component".
    column = ComponentDependency.target_component_id if reverse else ComponentDependency.source_component_id
    result = await session.execute(
        select(ComponentDependency)
        .where(ComponentDependency.org_id == org_id, column == component_id)
        .order_by(ComponentDependency.id)
    )
    return list(result.scalars().all())


async def replace_compliance(
    session: AsyncSession, org_id: int, rows: Iterable[Compliance]
) -> list[Compliance]:
    await session.execute(delete(Compliance).where(Compliance.org_id == org_id))
    stored = list(rows)
    session.add_all(stored)
    await session.flush()
    return stored


async def list_compliance(
    session: AsyncSession, org_id: int, *, framework_name: str | None = None
) -> list[Compliance]:
    query = select(Compliance).where(Compliance.org_id == org_id)
    if framework_name:
        query = query.where(Compliance.framework_name == framework_name)
    result = await session.execute(query.order_by(Compliance.framework_name))
    return list(result.scalars().all())


async def replace_technical_debt(
    session: AsyncSession, org_id: int, rows: Iterable[TechnicalDebtItem]
) -> list[TechnicalDebtItem]:
    # Items someone already picked up survive a re-analysis.
    await session.execute(
        delete(TechnicalDebtItem).where(
            TechnicalDebtItem.org_id == org_id,
            TechnicalDebtItem.status == "Identified",
        )
    )
    stored = list(rows)
    session.add_all(stored)
    await session.flush()
    return stored


async def list_technical_debt(
    session: AsyncSession,
    org_id: int,
    *,
    category: str | None = None,
    status: str | None = None,
) -> list[TechnicalDebtItem]:
    query = select(TechnicalDebtItem).where(TechnicalDebtItem.org_id == org_id)
    if category:
        query = query.where(TechnicalDebtItem.category == category)
    if status:
        query = query.where(TechnicalDebtItem.status == status)
    result = await session.execute(query.order_by(TechnicalDebtItem.priority, TechnicalDebtItem.id))
    return list(result.scalars().all())


async def get_technical_debt_item(session: AsyncSession, item_id: int) -> TechnicalDebtItem | None:
    return await session.get(TechnicalDebtItem, item_id)


async def add_release_impact(session: AsyncSession, impact: ReleaseImpact) -> ReleaseImpact:
    session.add(impact)
    await session.flush()
    return impact


async def list_release_impacts(session: AsyncSession, org_id: int) -> list[ReleaseImpact]:
    result = await session.execute(
        select(ReleaseImpact)
        .where(ReleaseImpact.org_id == org_id)
        .order_by(ReleaseImpact.created_at.desc(), ReleaseImpact.id.desc())
    )
    return list(result.scalars().all())
