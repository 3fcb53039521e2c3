from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from simple_salesforce import Salesforce
from simple_salesforce.exceptions import (
    SalesforceAuthenticationFailed,
    SalesforceError as SimpleSalesforceError,
    SalesforceExpiredSession,
)

from sfinsight.core.config import get_settings
from sfinsight.core.errors import SalesforceApiError, SalesforceAuthError, SalesforceTimeoutError


logger = logging.getLogger(__name__)


def _error_detail(exc: Exception) -> str:
    # simple-salesforce errors carry the decoded response body in ``content``.
    content = getattr(exc, "content", None)
    if isinstance(content, list) and content and isinstance(content[0], dict):
        message = content[0].get("message")
        if message:
            return str(message)
    if isinstance(content, dict) and content.get("message"):
        return str(content["message"])
    message = getattr(exc, "message", None)
    return str(message or exc) or exc.__class__.__name__


def map_salesforce_error(action: str, exc: Exception) -> Exception:
    """Translate a simple-salesforce or transport failure into the sfinsight taxonomy."""
    if isinstance(exc, (SalesforceAuthenticationFailed, SalesforceExpiredSession)):
        return SalesforceAuthError(f"Failed to {action}: {_error_detail(exc)}")
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return SalesforceTimeoutError(f"Failed to {action}: Salesforce did not respond in time")
    if isinstance(exc, SimpleSalesforceError):
        status = getattr(exc, "status", None)
        if status == 401:
            return SalesforceAuthError(f"Failed to {action}: {_error_detail(exc)}")
        return SalesforceApiError(f"Failed to {action}: {_error_detail(exc)}")
    # Transport failures (requests.RequestException is an OSError) and anything else.
    return SalesforceApiError(f"Failed to {action}: {exc}")


async def run_blocking(action: str, func: Callable[..., Any], *args: Any, timeout_ms: int | None = None, **kwargs: Any) -> Any:
    # Every blocking Salesforce call runs in a worker thread with a hard deadline.
    timeout_s = (timeout_ms or get_settings().salesforce_timeout_ms) / 1000.0
    start = time.monotonic()
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=timeout_s)
    except Exception as exc:
        logger.warning(
            "salesforce_call_failed action=%s latency_ms=%.1f error=%s",
            action,
            (time.monotonic() - start) * 1000.0,
            exc.__class__.__name__,
        )
        raise map_salesforce_error(action, exc) from exc


class SalesforceClient:
    """Async facade over one authenticated simple-salesforce session."""

    def __init__(self, sf: Salesforce, *, timeout_ms: int | None = None) -> None:
        self._sf = sf
        self._timeout_ms = timeout_ms

    @property
    def instance_url(self) -> str:
        return f"https://{self._sf.sf_instance}"

    @property
    def session_id(self) -> str | None:
        return self._sf.session_id

    async def _run(self, action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await run_blocking(action, func, *args, timeout_ms=self._timeout_ms, **kwargs)

    async def query(self, soql: str) -> dict[str, Any]:
        return await self._run("execute query", self._sf.query, soql)

    async def query_all(self, soql: str) -> dict[str, Any]:
        return await self._run("execute query", self._sf.query_all, soql)

    async def query_records(self, soql: str, max_records: int) -> dict[str, Any]:
        """Follow result pages until ``max_records`` rows are held or Salesforce reports done."""
        result = await self._run("execute query", self._sf.query, soql)
        records = list(result.get("records") or [])
        while not result.get("done", True) and len(records) < max_records:
            result = await self._run(
                "execute query", self._sf.query_more, result["nextRecordsUrl"], identifier_is_url=True
            )
            records.extend(result.get("records") or [])
        done = bool(result.get("done", True)) and len(records) <= max_records
        return {
            "totalSize": int(result.get("totalSize") or len(records)),
            "done": done,
            "records": records[:max_records],
        }

    async def tooling_query(self, soql: str) -> dict[str, Any]:
        result = await self._run(
            "execute tooling query", self._sf.toolingexecute, "query/", params={"q": soql}
        )
        if not isinstance(result, dict):
            raise SalesforceApiError("Failed to execute tooling query: unexpected response")
        return result

    async def limits(self) -> dict[str, Any]:
        return await self._run("retrieve org limits", self._sf.limits)

    async def describe_global(self) -> dict[str, Any]:
        return await self._run("describe org", self._sf.describe)

    async def describe_object(self, object_name: str) -> dict[str, Any]:
        sobject = getattr(self._sf, object_name)
        return await self._run(f"describe {object_name}", sobject.describe)

    async def update_field_description(self, object_name: str, field_name: str, description: str) -> None:
        action = f"update description of {object_name}.{field_name}"
        if not field_name.endswith("__c"):
            # Standard field descriptions are not writable through the Tooling API.
            raise SalesforceApiError(f"Failed to {action}: only custom fields can be updated")
        developer_name = field_name[: -len("__c")]
        if "__" in developer_name:
            # Strip a managed package namespace prefix.
            developer_name = developer_name.split("__", 1)[1]
        lookup = await self.tooling_query(
            "SELECT Id, Metadata FROM CustomField "
            f"WHERE DeveloperName = '{developer_name}' "
            f"AND EntityDefinition.QualifiedApiName = '{object_name}'"
        )
        records = lookup.get("records") or []
        if not records:
            raise SalesforceApiError(f"Failed to {action}: field not found")
        record = records[0]
        metadata = dict(record.get("Metadata") or {})
        metadata["description"] = description
        await self._run(
            action,
            self._sf.toolingexecute,
            f"sobjects/CustomField/{record['Id']}",
            method="PATCH",
            data={"Metadata": metadata},
        )
