from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from simple_salesforce import Salesforce

from sfinsight.core.config import Settings, get_settings
from sfinsight.core.errors import CredentialError, SalesforceApiError, SalesforceAuthError
from sfinsight.domain.models import SalesforceOrg
from sfinsight.providers.salesforce.base import SalesforceApi
from sfinsight.providers.salesforce.client import SalesforceClient, run_blocking
from sfinsight.providers.salesforce.demo import DemoSalesforceClient
from sfinsight.services.crypto.credentials import decrypt_secret


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SalesforceCredentials:
    # token | credentials
    auth_method: str
    # production | sandbox
    environment: str = "production"
    instance_url: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    username: str | None = None
    password: str | None = None
    security_token: str | None = None

    @property
    def login_domain(self) -> str:
        return "test" if self.environment == "sandbox" else "login"


@dataclass(frozen=True)
class TokenRefresh:
    access_token: str
    instance_url: str


def credentials_for_org(org: SalesforceOrg) -> SalesforceCredentials:
    """Decrypt the stored credentials of ``org`` (scoped to its owner)."""
    scope = str(org.user_id)
    return SalesforceCredentials(
        auth_method=org.auth_method,
        environment=org.type,
        instance_url=org.instance_url,
        access_token=decrypt_secret(org.access_token_enc, scope=scope),
        refresh_token=decrypt_secret(org.refresh_token_enc, scope=scope),
        username=org.username,
        password=decrypt_secret(org.password_enc, scope=scope),
        security_token=decrypt_secret(org.security_token_enc, scope=scope),
    )


class SalesforceConnector:
    """Builds authenticated Salesforce clients; injected into routes as a dependency."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def demo_mode(self) -> bool:
        return bool(self._settings.demo_mode)

    async def connect(self, credentials: SalesforceCredentials) -> SalesforceApi:
        if self.demo_mode:
            return DemoSalesforceClient()
        version = self._settings.salesforce_api_version
        if credentials.auth_method == "token":
            if not credentials.access_token or not credentials.instance_url:
                raise CredentialError("Access token and instance URL are required")
            # Token sessions are built locally; the first API call proves them.
            sf = Salesforce(
                instance_url=credentials.instance_url,
                session_id=credentials.access_token,
                version=version,
            )
        else:
            if not credentials.username or not credentials.password:
                raise CredentialError("Username and password are required")
            sf = await run_blocking(
                "log in to Salesforce",
                Salesforce,
                username=credentials.username,
                password=credentials.password,
                security_token=credentials.security_token or "",
                domain=credentials.login_domain,
                version=version,
                timeout_ms=self._settings.salesforce_timeout_ms,
            )
        return SalesforceClient(sf, timeout_ms=self._settings.salesforce_timeout_ms)

    async def for_org(self, org: SalesforceOrg) -> SalesforceApi:
        return await self.connect(credentials_for_org(org))

    def can_refresh(self, credentials: SalesforceCredentials) -> bool:
        return bool(
            credentials.refresh_token
            and self._settings.salesforce_client_id
            and self._settings.salesforce_client_secret
        )

    async def refresh_access_token(self, credentials: SalesforceCredentials) -> TokenRefresh:
        """Exchange the stored refresh token for a new access token."""
        if not self.can_refresh(credentials):
            raise CredentialError("Refresh token or connected app settings are missing")
        token_url = f"https://{credentials.login_domain}.salesforce.com/services/oauth2/token"
        form = {
            "grant_type": "refresh_token",
            "refresh_token": credentials.refresh_token,
            "client_id": self._settings.salesforce_client_id,
            "client_secret": self._settings.salesforce_client_secret,
        }
        timeout_s = self._settings.salesforce_timeout_ms / 1000.0
        try:
            async with httpx.AsyncClient(timeout=timeout_s) as client:
                response = await client.post(token_url, data=form)
        except httpx.HTTPError as exc:
            raise SalesforceApiError(f"Failed to refresh access token: {exc}") from exc
        payload: dict[str, Any] = {}
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code in {400, 401}:
            detail = payload.get("error_description") or payload.get("error") or response.text
            raise SalesforceAuthError(f"Failed to refresh access token: {detail}")
        if response.status_code >= 300 or "access_token" not in payload:
            raise SalesforceApiError(f"Failed to refresh access token: HTTP {response.status_code}")
        logger.info("salesforce_token_refreshed")
        return TokenRefresh(
            access_token=str(payload["access_token"]),
            instance_url=str(payload.get("instance_url") or credentials.instance_url or ""),
        )


def get_salesforce_connector() -> SalesforceConnector:
    # FastAPI dependency; tests override it with a fake connector.
    return SalesforceConnector()
