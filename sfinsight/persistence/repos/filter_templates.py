from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import FilterTemplate


async def create_template(
    session: AsyncSession,
    *,
    user_id: int,
    name: str,
    filters: dict[str, Any],
    is_shared: bool,
) -> FilterTemplate:
    template = FilterTemplate(user_id=user_id, name=name, filters=filters, is_shared=is_shared)
    session.add(template)
    await session.flush()
    return template


async def list_templates_for_user(session: AsyncSession, user_id: int) -> list[FilterTemplate]:
    # A user sees their own templates plus anything shared by others.
    result = await session.execute(
        select(FilterTemplate)
        .where(or_(FilterTemplate.user_id == user_id, FilterTemplate.is_shared.is_(True)))
        .order_by(FilterTemplate.created_at, FilterTemplate.id)
    )
    return list(result.scalars().all())
