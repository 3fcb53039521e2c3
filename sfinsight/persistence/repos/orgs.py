from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import (
    CodeQuality,
    Compliance,
    ComponentDependency,
    DataDictionaryAuditLog,
    DataDictionaryChange,
    DataDictionaryField,
    HealthScore,
    Issue,
    Metadata,
    ReleaseImpact,
    SalesforceOrg,
    SavedQuery,
    TechnicalDebtItem,
)


# Children first so deletes succeed whether or not the backend enforces FK cascades.
_DEPENDENT_MODELS = (
    DataDictionaryAuditLog,
    DataDictionaryChange,
    DataDictionaryField,
    ComponentDependency,
    CodeQuality,
    TechnicalDebtItem,
    Compliance,
    ReleaseImpact,
    Issue,
    HealthScore,
    SavedQuery,
    Metadata,
)


async def get_org(session: AsyncSession, org_id: int) -> SalesforceOrg | None:
    return await session.get(SalesforceOrg, org_id)


async def get_org_for_user(session: AsyncSession, org_id: int, user_id: int) -> SalesforceOrg | None:
    # Owner scoping prevents reading another user's org by id.
    result = await session.execute(
        select(SalesforceOrg).where(SalesforceOrg.id == org_id, SalesforceOrg.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def list_orgs_for_user(session: AsyncSession, user_id: int) -> list[SalesforceOrg]:
    result = await session.execute(
        select(SalesforceOrg)
        .where(SalesforceOrg.user_id == user_id)
        .order_by(SalesforceOrg.created_at, SalesforceOrg.id)
    )
    return list(result.scalars().all())


async def create_org(session: AsyncSession, org: SalesforceOrg) -> SalesforceOrg:
    session.add(org)
    await session.flush()
    return org


async def delete_org(session: AsyncSession, org: SalesforceOrg) -> None:
    for model in _DEPENDENT_MODELS:
        await session.execute(delete(model).where(model.org_id == org.id))
    await session.delete(org)
    await session.flush()
