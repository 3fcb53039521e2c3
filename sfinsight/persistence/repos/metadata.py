from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import Metadata


async def list_metadata(
    session: AsyncSession,
    org_id: int,
    *,
    types: Iterable[str] | None = None,
) -> list[Metadata]:
    query = select(Metadata).where(Metadata.org_id == org_id)
    type_list = list(types) if types is not None else None
    if type_list:
        query = query.where(Metadata.type.in_(type_list))
    result = await session.execute(query.order_by(Metadata.type, Metadata.name, Metadata.id))
    return list(result.scalars().all())


async def get_metadata(session: AsyncSession, org_id: int, metadata_id: int) -> Metadata | None:
    result = await session.execute(
        select(Metadata).where(Metadata.org_id == org_id, Metadata.id == metadata_id)
    )
    return result.scalar_one_or_none()


async def upsert_metadata(
    session: AsyncSession,
    org_id: int,
    *,
    type_: str,
    name: str,
    data: dict[str, Any],
    existing: dict[tuple[str, str], Metadata],
) -> bool:
    """Insert or update one row; returns True when a row was created.

    ``existing`` is the caller's index of the org's current rows and is kept
    up to date so repeated calls within a sync stay consistent.
    """
    row = existing.get((type_, name))
    if row is None:
        row = Metadata(org_id=org_id, type=type_, name=name, data=data)
        session.add(row)
        existing[(type_, name)] = row
        return True
    if row.data != data:
        row.data = data
    return False


async def delete_missing(
    session: AsyncSession,
    org_id: int,
    *,
    type_: str,
    keep_names: set[str],
) -> int:
    result = await session.execute(
        select(Metadata.id, Metadata.name).where(Metadata.org_id == org_id, Metadata.type == type_)
    )
    stale_ids = [row[0] for row in result.all() if row[1] not in keep_names]
    if not stale_ids:
        return 0
    await session.execute(delete(Metadata).where(Metadata.id.in_(stale_ids)))
    return len(stale_ids)
