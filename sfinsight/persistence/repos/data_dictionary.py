from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import DataDictionaryAuditLog, DataDictionaryChange, DataDictionaryField


async def list_fields(
    session: AsyncSession,
    org_id: int,
    *,
    objects: Iterable[str] | None = None,
) -> list[DataDictionaryField]:
    query = select(DataDictionaryField).where(DataDictionaryField.org_id == org_id)
    object_list = [name for name in (objects or []) if name]
    if object_list:
        query = query.where(DataDictionaryField.object_api_name.in_(object_list))
    result = await session.execute(
        query.order_by(DataDictionaryField.object_api_name, DataDictionaryField.field_api_name)
    )
    return list(result.scalars().all())


async def get_field(session: AsyncSession, org_id: int, field_id: int) -> DataDictionaryField | None:
    result = await session.execute(
        select(DataDictionaryField).where(
            DataDictionaryField.org_id == org_id, DataDictionaryField.id == field_id
        )
    )
    return result.scalar_one_or_none()


async def index_fields(session: AsyncSession, org_id: int) -> dict[tuple[str, str], DataDictionaryField]:
    fields = await list_fields(session, org_id)
    return {(field.object_api_name, field.field_api_name): field for field in fields}


async def list_changes(
    session: AsyncSession,
    org_id: int,
    *,
    status: str | None = None,
) -> list[DataDictionaryChange]:
    query = select(DataDictionaryChange).where(DataDictionaryChange.org_id == org_id)
    if status:
        query = query.where(DataDictionaryChange.status == status)
    result = await session.execute(
        query.order_by(DataDictionaryChange.created_at.desc(), DataDictionaryChange.id.desc())
    )
    return list(result.scalars().all())


async def get_change(session: AsyncSession, org_id: int, change_id: int) -> DataDictionaryChange | None:
    result = await session.execute(
        select(DataDictionaryChange).where(
            DataDictionaryChange.org_id == org_id, DataDictionaryChange.id == change_id
        )
    )
    return result.scalar_one_or_none()


async def get_pending_change_for_field(
    session: AsyncSession, org_id: int, field_id: int
) -> DataDictionaryChange | None:
    result = await session.execute(
        select(DataDictionaryChange).where(
            DataDictionaryChange.org_id == org_id,
            DataDictionaryChange.field_id == field_id,
            DataDictionaryChange.status == "pending",
        )
    )
    return result.scalars().first()


async def list_pending_changes_by_ids(
    session: AsyncSession, org_id: int, change_ids: list[int] | None
) -> list[DataDictionaryChange]:
    # Only pending rows are ever deployable; other ids are ignored.
    query = select(DataDictionaryChange).where(
        DataDictionaryChange.org_id == org_id,
        DataDictionaryChange.status == "pending",
    )
    if change_ids is not None:
        query = query.where(DataDictionaryChange.id.in_(change_ids))
    result = await session.execute(query.order_by(DataDictionaryChange.id))
    return list(result.scalars().all())


async def add_audit_entry(
    session: AsyncSession,
    *,
    org_id: int,
    user_id: int | None,
    action: str,
    object_api_name: str | None = None,
    field_api_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> DataDictionaryAuditLog:
    entry = DataDictionaryAuditLog(
        org_id=org_id,
        user_id=user_id,
        action=action,
        object_api_name=object_api_name,
        field_api_name=field_api_name,
        details=details or {},
    )
    session.add(entry)
    await session.flush()
    return entry


async def list_audit_log(session: AsyncSession, org_id: int, *, limit: int = 200) -> list[DataDictionaryAuditLog]:
    result = await session.execute(
        select(DataDictionaryAuditLog)
        .where(DataDictionaryAuditLog.org_id == org_id)
        .order_by(DataDictionaryAuditLog.created_at.desc(), DataDictionaryAuditLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
