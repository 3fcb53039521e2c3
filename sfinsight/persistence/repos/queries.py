from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import SavedQuery


async def list_saved_queries(session: AsyncSession, org_id: int, user_id: int) -> list[SavedQuery]:
    result = await session.execute(
        select(SavedQuery)
        .where(SavedQuery.org_id == org_id, SavedQuery.user_id == user_id)
        .order_by(SavedQuery.updated_at.desc(), SavedQuery.id.desc())
    )
    return list(result.scalars().all())


async def create_saved_query(
    session: AsyncSession, *, org_id: int, user_id: int, name: str, query: str
) -> SavedQuery:
    saved = SavedQuery(org_id=org_id, user_id=user_id, name=name, query=query)
    session.add(saved)
    await session.flush()
    return saved


async def get_saved_query(
    session: AsyncSession, *, org_id: int, user_id: int, query_id: int
) -> SavedQuery | None:
    result = await session.execute(
        select(SavedQuery).where(
            SavedQuery.id == query_id,
            SavedQuery.org_id == org_id,
            SavedQuery.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()
