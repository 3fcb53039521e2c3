from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from sfinsight.core.config import get_settings
from sfinsight.core.errors import SalesforceApiError
from sfinsight.providers.salesforce.base import SalesforceApi


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrgStat:
    key: str
    label: str
    value: int
    limit: int
    unit: str | None = None
    # storage | metadata | api | users | automation
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CountStat:
    value: int
    limit: int


# (key, label, category, soql, default limit, tooling API)
_COUNT_QUERIES: tuple[tuple[str, str, str, str, int, bool], ...] = (
    (
        "customObjects",
        "Custom Objects",
        "metadata",
        "SELECT COUNT(Id) total FROM EntityDefinition WHERE IsCustomizable = true",
        3000,
        False,
    ),
    ("apexClasses", "Apex Classes", "metadata", "SELECT COUNT(Id) total FROM ApexClass", 5000, False),
    ("visualforcePages", "Visualforce Pages", "metadata", "SELECT COUNT(Id) total FROM ApexPage", 5000, False),
    (
        "lightningComponents",
        "Lightning Web Components",
        "metadata",
        "SELECT COUNT(Id) total FROM LightningComponentBundle",
        2000,
        True,
    ),
    ("auraComponents", "Aura Components", "metadata", "SELECT COUNT(Id) total FROM AuraDefinitionBundle", 5000, False),
    ("flows", "Flows", "automation", "SELECT COUNT(Id) total FROM FlowDefinition", 2000, True),
    (
        "platformEvents",
        "Platform Events",
        "automation",
        "SELECT COUNT(Id) total FROM EntityDefinition "
        "WHERE IsCustomizable = true AND PublishBehavior = 'PublishAfterCommit'",
        250,
        False,
    ),
)

_DEFAULT_USER_LIMIT = 100


def _aggregate_total(result: dict[str, Any]) -> int:
    records = result.get("records") or []
    if records and isinstance(records[0], dict):
        for key in ("total", "expr0"):
            if records[0].get(key) is not None:
                return int(records[0][key])
    return int(result.get("totalSize") or 0)


def _limit_entry(limits: dict[str, Any], name: str) -> dict[str, Any]:
    entry = limits.get(name)
    return entry if isinstance(entry, dict) else {}


class SalesforceStatsService:
    """Collects the general org statistics shown on the overview page."""

    def __init__(self, client: SalesforceApi, *, max_concurrency: int | None = None) -> None:
        self._client = client
        limit = max_concurrency or get_settings().salesforce_max_concurrency
        self._semaphore = asyncio.Semaphore(max(1, limit))

    async def _bounded(self, func: Callable[[], Awaitable[Any]]) -> Any:
        async with self._semaphore:
            return await func()

    async def get_limits(self) -> dict[str, Any]:
        try:
            return await self._bounded(self._client.limits)
        except Exception as exc:  # noqa: BLE001 - a missing limits call degrades to defaults
            logger.warning("org_limits_unavailable error=%s", exc)
            return {}

    async def get_active_users(self) -> CountStat:
        try:
            counted = await self._bounded(
                lambda: self._client.query("SELECT COUNT(Id) total FROM User WHERE IsActive = true")
            )
            value = _aggregate_total(counted)
            license_info = await self._bounded(
                lambda: self._client.query("SELECT ActiveUserCount, ActiveUserLicenseCount FROM LimitInfo LIMIT 1")
            )
            records = license_info.get("records") or []
            if records:
                return CountStat(
                    value=int(records[0].get("ActiveUserCount") or value),
                    limit=int(records[0].get("ActiveUserLicenseCount") or _DEFAULT_USER_LIMIT),
                )
            return CountStat(value=value, limit=_DEFAULT_USER_LIMIT)
        except Exception as exc:  # noqa: BLE001 - each stat falls back independently
            logger.warning("active_user_count_failed error=%s", exc)
            return CountStat(value=0, limit=_DEFAULT_USER_LIMIT)

    async def count(self, key: str, soql: str, default_limit: int, *, tooling: bool = False) -> CountStat:
        runner = self._client.tooling_query if tooling else self._client.query
        try:
            result = await self._bounded(lambda: runner(soql))
            return CountStat(value=_aggregate_total(result), limit=default_limit)
        except Exception as exc:  # noqa: BLE001 - each stat falls back independently
            logger.warning("org_stat_count_failed key=%s error=%s", key, exc)
            return CountStat(value=0, limit=default_limit)

    async def get_general_stats(self, org_name: str | None = None) -> list[OrgStat]:
        logger.info("org_stats_fetch org=%s", org_name)
        try:
            limits, active_users, *counts = await asyncio.gather(
                self.get_limits(),
                self.get_active_users(),
                *(
                    self.count(key, soql, default_limit, tooling=tooling)
                    for key, _label, _category, soql, default_limit, tooling in _COUNT_QUERIES
                ),
            )
            api = _limit_entry(limits, "DailyApiRequests")
            data_storage = _limit_entry(limits, "DataStorageMB")
            file_storage = _limit_entry(limits, "FileStorageMB")
            stats = [
                OrgStat(
                    key="dailyApiRequests",
                    label="Daily API Calls",
                    # Remaining calls are reported only when the org exposes a maximum.
                    value=int(api.get("Remaining") or 0) if api.get("Max") else 0,
                    limit=int(api.get("Max") or 100000),
                    category="api",
                ),
                OrgStat(
                    key="dataStorage",
                    label="Data Storage",
                    value=int(data_storage.get("Remaining") or 0),
                    limit=int(data_storage.get("Max") or 1000),
                    unit="MB",
                    category="storage",
                ),
                OrgStat(
                    key="fileStorage",
                    label="File Storage",
                    value=int(file_storage.get("Remaining") or 0),
                    limit=int(file_storage.get("Max") or 1000),
                    unit="MB",
                    category="storage",
                ),
                OrgStat(
                    key="activeUsers",
                    label="Active Users",
                    value=active_users.value,
                    limit=active_users.limit,
                    category="users",
                ),
            ]
            for (key, label, category, _soql, _limit, _tooling), counted in zip(_COUNT_QUERIES, counts):
                stats.append(
                    OrgStat(key=key, label=label, value=counted.value, limit=counted.limit, category=category)
                )
            return stats
        except Exception as exc:
            logger.error("org_stats_failed org=%s", org_name, exc_info=exc)
            raise SalesforceApiError(f"Failed to retrieve organization stats: {exc or 'Unknown error'}") from exc

    async def get_api_usage(self) -> dict[str, int]:
        limits = await self._client.limits()
        api = _limit_entry(limits, "DailyApiRequests")
        maximum = int(api.get("Max") or 0)
        remaining = int(api.get("Remaining") or 0)
        return {"used": max(0, maximum - remaining), "remaining": remaining, "max": maximum}
