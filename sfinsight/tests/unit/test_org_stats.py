from __future__ import annotations

import pytest

from sfinsight.core.errors import SalesforceApiError
from sfinsight.providers.salesforce.demo import DemoSalesforceClient
from sfinsight.providers.salesforce.stats import SalesforceStatsService


class _FlakyClient(DemoSalesforceClient):
    """Sample org whose tooling API and limits endpoint are unavailable."""

    async def tooling_query(self, soql: str):
        raise SalesforceApiError("Failed to execute tooling query: INVALID_TYPE")

    async def limits(self):
        raise SalesforceApiError("Failed to retrieve org limits: REQUEST_LIMIT_EXCEEDED")


@pytest.mark.asyncio
async def test_general_stats_from_sample_org() -> None:
    stats = await SalesforceStatsService(DemoSalesforceClient(), max_concurrency=2).get_general_stats("Demo")
    by_key = {stat.key: stat for stat in stats}

    assert by_key["dailyApiRequests"].value == 14210
    assert by_key["dailyApiRequests"].limit == 15000
    assert by_key["dataStorage"].unit == "MB"
    assert by_key["activeUsers"].value == 12
    assert by_key["activeUsers"].limit == 100
    assert by_key["apexClasses"].value == 2
    assert by_key["flows"].value == 2
    assert by_key["lightningComponents"].value == 1
    assert by_key["customObjects"].category == "metadata"


@pytest.mark.asyncio
async def test_each_stat_falls_back_independently() -> None:
    stats = await SalesforceStatsService(_FlakyClient(), max_concurrency=2).get_general_stats("Demo")
    by_key = {stat.key: stat for stat in stats}

    # Limits fall back to defaults and tooling counts to zero.
    assert by_key["dailyApiRequests"].value == 0
    assert by_key["dailyApiRequests"].limit == 100000
    assert by_key["flows"].value == 0
    assert by_key["lightningComponents"].value == 0
    # Regular SOQL counts still work.
    assert by_key["apexClasses"].value == 2


@pytest.mark.asyncio
async def test_api_usage_reports_consumed_calls() -> None:
    usage = await SalesforceStatsService(DemoSalesforceClient()).get_api_usage()
    assert usage == {"used": 790, "remaining": 14210, "max": 15000}
