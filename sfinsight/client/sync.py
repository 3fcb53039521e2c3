from __future__ import annotations

import logging
from typing import Any

from sfinsight.client.api import ApiClient, ApiError, orgs_key


logger = logging.getLogger(__name__)


async def ensure_metadata_synced(
    api: ApiClient,
    org_id: int,
    *,
    attempted: set[int],
    errors: dict[int, str] | None = None,
) -> list[dict[str, Any]]:
    """Trigger one sync when the org's metadata list comes back empty.

    ``attempted`` records orgs already synced by this client; a failed sync is
    not retried.
    """
    metadata = await api.list_metadata(org_id)
    if metadata or org_id in attempted:
        return metadata
    attempted.add(org_id)
    try:
        await api.sync_metadata(org_id)
    except ApiError as exc:
        if errors is not None:
            errors[org_id] = exc.message
        logger.warning("metadata_autosync_failed org_id=%s code=%s", org_id, exc.code)
        return metadata
    api.cache.invalidate(orgs_key(org_id, "metadata"))
    logger.info("metadata_autosync_done org_id=%s", org_id)
    return await api.list_metadata(org_id)


class MetadataAutoSync:
    """Per-client state for ``ensure_metadata_synced``."""

    def __init__(self, api: ApiClient) -> None:
        self._api = api
        self.attempted: set[int] = set()
        self.errors: dict[int, str] = {}

    async def ensure(self, org_id: int) -> list[dict[str, Any]]:
        return await ensure_metadata_synced(self._api, org_id, attempted=self.attempted, errors=self.errors)
