from __future__ import annotations

from typing import Any, Protocol


class SalesforceApi(Protocol):
    instance_url: str
    session_id: str | None

    async def query(self, soql: str) -> dict[str, Any]:
        ...

    async def query_all(self, soql: str) -> dict[str, Any]:
        ...

    async def query_records(self, soql: str, max_records: int) -> dict[str, Any]:
        ...

    async def tooling_query(self, soql: str) -> dict[str, Any]:
        ...

    async def limits(self) -> dict[str, Any]:
        ...

    async def describe_global(self) -> dict[str, Any]:
        ...

    async def describe_object(self, object_name: str) -> dict[str, Any]:
        ...

    async def update_field_description(self, object_name: str, field_name: str, description: str) -> None:
        ...
