from __future__ import annotations

import logging
from typing import Any

from sfinsight.client.api import ApiClient, ApiError, orgs_key
from sfinsight.client.notify import Notifier


logger = logging.getLogger(__name__)


class PendingChangesPanel:
    """Lists queued data dictionary edits and deploys or discards them."""

    def __init__(self, api: ApiClient, notifier: Notifier, org_id: int) -> None:
        self._api = api
        self._notifier = notifier
        self._org_id = org_id

    def _invalidate_after_deploy(self) -> None:
        self._api.cache.invalidate(orgs_key(self._org_id, "data-dictionary", "changes"))
        self._api.cache.invalidate(orgs_key(self._org_id, "data-dictionary", "fields"))
        self._api.cache.invalidate(orgs_key(self._org_id, "data-dictionary", "audit-log"))

    async def pending(self) -> list[dict[str, Any]]:
        changes = await self._api.list_changes(self._org_id)
        return [change for change in changes if change.get("status") == "pending"]

    async def deploy(self) -> dict[str, Any] | None:
        pending = await self.pending()
        if not pending:
            return None
        change_ids = [change["id"] for change in pending]
        try:
            result = await self._api.apply_changes(self._org_id, change_ids)
        except ApiError as exc:
            self._notifier.toast("Error", f"Failed to apply changes: {exc.message}", variant="destructive")
            raise
        self._invalidate_after_deploy()
        if result.get("failed"):
            self._notifier.toast(
                "Error",
                f"{len(result['failed'])} change(s) could not be applied",
                variant="destructive",
            )
        else:
            self._notifier.toast("Success", "Changes have been applied to Salesforce")
        logger.info(
            "pending_changes_deployed org_id=%s applied=%s failed=%s",
            self._org_id,
            len(result.get("applied") or []),
            len(result.get("failed") or []),
        )
        return result

    async def discard(self, change_id: int) -> None:
        try:
            await self._api.discard_change(self._org_id, change_id)
        except ApiError as exc:
            self._notifier.toast("Error", f"Failed to discard change: {exc.message}", variant="destructive")
            raise
        self._api.cache.invalidate(orgs_key(self._org_id, "data-dictionary", "changes"))
