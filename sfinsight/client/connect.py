from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from sfinsight.client.api import ApiClient, orgs_key
from sfinsight.client.notify import Notifier
from sfinsight.services.org_connection import (
    ConnectOrgRequest,
    ConnectionStatus,
    ConnectionTracker,
    validate_connect_request,
)


logger = logging.getLogger(__name__)

DEFAULT_STAGE_DELAY_S = 0.8


class OrgConnectWizard:
    """Drives the connect dialog: validate, submit, walk the visible stages, notify."""

    def __init__(
        self,
        api: ApiClient,
        notifier: Notifier,
        *,
        stage_delay_s: float = DEFAULT_STAGE_DELAY_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._api = api
        self._notifier = notifier
        self._stage_delay_s = stage_delay_s
        self._sleep = sleep
        self.tracker = ConnectionTracker()

    @property
    def status(self) -> ConnectionStatus:
        return self.tracker.status

    @property
    def error(self) -> str | None:
        return self.tracker.error

    async def _pause(self) -> None:
        if self._stage_delay_s > 0:
            await self._sleep(self._stage_delay_s)

    async def connect(self, form: ConnectOrgRequest) -> dict[str, Any] | None:
        """Returns the created org, or None when the form was rejected locally."""
        problems = validate_connect_request(form)
        if problems:
            self._notifier.toast("Missing information", " ".join(problems), variant="destructive")
            return None

        self.tracker = ConnectionTracker(form.name)
        try:
            self.tracker.advance(ConnectionStatus.CONNECTING)
            result = await self._api.connect_org(form.to_payload())
            self.tracker.advance(ConnectionStatus.VALIDATING)
            await self._pause()
            self.tracker.advance(ConnectionStatus.FETCHING_METADATA)
            await self._pause()
            self.tracker.advance(ConnectionStatus.SUCCESS)
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or "Failed to connect to Salesforce org"
            self.tracker.fail(message)
            self._notifier.toast("Connection failed", message, variant="destructive")
            raise

        self._api.cache.invalidate(orgs_key())
        org = result.get("org", result) if isinstance(result, dict) else result
        self._notifier.toast("Connection successful", f"{form.name} has been connected to your account")
        logger.info("org_connect_wizard_done org=%s", form.name)
        return org
