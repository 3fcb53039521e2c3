from __future__ import annotations

import pytest

from sfinsight.providers.salesforce.client import SalesforceClient


class _PagedSession:
    """Stands in for a simple-salesforce session serving fixed-size result pages."""

    sf_instance = "paged.my.salesforce.com"
    session_id = "session"

    def __init__(self, total: int, page_size: int) -> None:
        self._rows = [{"attributes": {"type": "Account"}, "Id": f"001{i:012d}"} for i in range(total)]
        self._page_size = page_size
        self.calls: list[str] = []

    def _page(self, start: int) -> dict:
        end = start + self._page_size
        page = {"totalSize": len(self._rows), "done": end >= len(self._rows), "records": self._rows[start:end]}
        if not page["done"]:
            page["nextRecordsUrl"] = f"/services/data/v59.0/query/01g-{end}"
        return page

    def query(self, soql: str) -> dict:
        self.calls.append("query")
        return self._page(0)

    def query_more(self, next_url: str, identifier_is_url: bool = False) -> dict:
        assert identifier_is_url
        self.calls.append("query_more")
        return self._page(int(next_url.rsplit("-", 1)[1]))

    def query_all(self, soql: str) -> dict:
        raise AssertionError("the full result set must not be fetched")


@pytest.mark.asyncio
async def test_paging_stops_once_the_cap_is_reached() -> None:
    session = _PagedSession(total=50000, page_size=2000)
    result = await SalesforceClient(session, timeout_ms=5000).query_records("SELECT Id FROM Account", 3000)

    assert session.calls == ["query", "query_more"]
    assert len(result["records"]) == 3000
    assert result["done"] is False
    assert result["totalSize"] == 50000


@pytest.mark.asyncio
async def test_small_result_is_returned_whole() -> None:
    session = _PagedSession(total=5, page_size=2000)
    result = await SalesforceClient(session, timeout_ms=5000).query_records("SELECT Id FROM Account", 2000)

    assert session.calls == ["query"]
    assert len(result["records"]) == 5
    assert result["done"] is True


@pytest.mark.asyncio
async def test_result_ending_exactly_at_the_cap_is_complete() -> None:
    session = _PagedSession(total=4000, page_size=2000)
    result = await SalesforceClient(session, timeout_ms=5000).query_records("SELECT Id FROM Account", 4000)

    assert session.calls == ["query", "query_more"]
    assert len(result["records"]) == 4000
    assert result["done"] is True
