from __future__ import annotations

from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import Issue


async def list_issues(
    session: AsyncSession,
    org_id: int,
    *,
    status: str | None = None,
    severity: str | None = None,
) -> list[Issue]:
    query = select(Issue).where(Issue.org_id == org_id)
    if status:
        query = query.where(Issue.status == status)
    if severity:
        query = query.where(Issue.severity == severity)
    result = await session.execute(query.order_by(Issue.created_at.desc(), Issue.id.desc()))
    return list(result.scalars().all())


async def get_issue(session: AsyncSession, issue_id: int) -> Issue | None:
    return await session.get(Issue, issue_id)


async def replace_open_issues(session: AsyncSession, org_id: int, issues: Iterable[Issue]) -> list[Issue]:
    # Ignored and resolved issues are user decisions and are kept.
    await session.execute(delete(Issue).where(Issue.org_id == org_id, Issue.status == "open"))
    stored = list(issues)
    session.add_all(stored)
    await session.flush()
    return stored
