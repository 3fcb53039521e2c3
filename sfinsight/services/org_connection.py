from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.core.config import Settings, get_settings
from sfinsight.core.errors import SfInsightError, ValidationFailedError
from sfinsight.domain.models import SalesforceOrg
from sfinsight.persistence.repos import orgs as orgs_repo
from sfinsight.providers.salesforce.connector import (
    SalesforceConnector,
    SalesforceCredentials,
    credentials_for_org,
)
from sfinsight.services.crypto.credentials import encrypt_secret
from sfinsight.services.metadata_sync import MetadataSyncService


logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    VALIDATING = "validating"
    FETCHING_METADATA = "fetching_metadata"
    SUCCESS = "success"
    ERROR = "error"


# Linear happy path; any non-terminal state may also fall to ERROR.
_NEXT_STATUS = {
    ConnectionStatus.IDLE: ConnectionStatus.CONNECTING,
    ConnectionStatus.CONNECTING: ConnectionStatus.VALIDATING,
    ConnectionStatus.VALIDATING: ConnectionStatus.FETCHING_METADATA,
    ConnectionStatus.FETCHING_METADATA: ConnectionStatus.SUCCESS,
}
TERMINAL_STATUSES = frozenset({ConnectionStatus.SUCCESS, ConnectionStatus.ERROR})


class InvalidTransitionError(SfInsightError):
    """A connection status change skipped or reversed a stage."""


@dataclass
class ConnectOrgRequest:
    name: str
    auth_method: str = "credentials"
    environment: str = "production"
    email: str | None = None
    password: str | None = None
    security_token: str | None = None
    access_token: str | None = None
    instance_url: str | None = None
    refresh_token: str | None = None

    def to_credentials(self) -> SalesforceCredentials:
        return SalesforceCredentials(
            auth_method=self.auth_method,
            environment=self.environment,
            instance_url=self.instance_url,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            username=self.email,
            password=self.password,
            security_token=self.security_token,
        )

    def to_payload(self) -> dict[str, str]:
        # Wire format for POST /api/orgs; unset optional values are omitted.
        payload = {
            "name": self.name,
            "auth_method": self.auth_method,
            "environment": self.environment,
        }
        for key in ("email", "password", "security_token", "access_token", "instance_url", "refresh_token"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        return payload


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_connect_request(request: ConnectOrgRequest) -> list[str]:
    """Return every problem with ``request``; an empty list means it may be submitted."""
    errors: list[str] = []
    if _blank(request.name):
        errors.append("Org name is required")
    if request.environment not in {"production", "sandbox"}:
        errors.append("Environment must be production or sandbox")
    if request.auth_method == "credentials":
        if _blank(request.email):
            errors.append("Email is required")
        if _blank(request.password):
            errors.append("Password is required")
    elif request.auth_method == "token":
        if _blank(request.access_token):
            errors.append("Access token is required")
        if _blank(request.instance_url):
            errors.append("Instance URL is required")
        elif not request.instance_url.strip().startswith("https://"):
            errors.append("Instance URL must start with https://")
    else:
        errors.append("Auth method must be credentials or token")
    return errors


class ConnectionTracker:
    """Enforces the connect stages and keeps the history of statuses visited."""

    def __init__(self, label: str = "") -> None:
        self._label = label
        self.status = ConnectionStatus.IDLE
        self.history: list[ConnectionStatus] = [ConnectionStatus.IDLE]
        self.error: str | None = None

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def advance(self, target: ConnectionStatus) -> None:
        if _NEXT_STATUS.get(self.status) != target:
            raise InvalidTransitionError(f"Cannot move from {self.status.value} to {target.value}")
        self.status = target
        self.history.append(target)
        logger.info("org_connect_stage org=%s status=%s", self._label, target.value)

    def fail(self, message: str) -> None:
        if self.done:
            raise InvalidTransitionError(f"Cannot fail a connection that is already {self.status.value}")
        self.status = ConnectionStatus.ERROR
        self.error = message
        self.history.append(ConnectionStatus.ERROR)
        logger.warning("org_connect_failed org=%s error=%s", self._label, message)


@dataclass
class ConnectResult:
    org: SalesforceOrg
    status_history: list[ConnectionStatus] = field(default_factory=list)
    sync_error: str | None = None


def _domain_of(instance_url: str) -> str:
    return urlparse(instance_url).hostname or instance_url


class OrgConnector:
    """Runs the server side of the connect flow and persists the org."""

    def __init__(
        self,
        session: AsyncSession,
        connector: SalesforceConnector,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._connector = connector
        self._settings = settings or get_settings()

    async def connect(self, *, user_id: int, request: ConnectOrgRequest) -> ConnectResult:
        problems = validate_connect_request(request)
        if problems:
            raise ValidationFailedError(problems)
        tracker = ConnectionTracker(request.name)
        try:
            tracker.advance(ConnectionStatus.CONNECTING)
            client = await self._connector.connect(request.to_credentials())
            tracker.advance(ConnectionStatus.VALIDATING)
            # One cheap authenticated call proves the session works.
            await client.limits()
        except SfInsightError as exc:
            tracker.fail(str(exc))
            raise

        instance_url = client.instance_url
        scope = str(user_id)
        # Sessions obtained by username/password are stored as the access token too.
        access_token = request.access_token or client.session_id
        org = SalesforceOrg(
            user_id=user_id,
            name=request.name.strip(),
            domain=_domain_of(instance_url),
            instance_url=instance_url,
            type=request.environment,
            auth_method=request.auth_method,
            username=request.email if request.auth_method == "credentials" else None,
            access_token_enc=encrypt_secret(access_token, scope=scope),
            refresh_token_enc=encrypt_secret(request.refresh_token, scope=scope),
            password_enc=encrypt_secret(request.password, scope=scope),
            security_token_enc=encrypt_secret(request.security_token, scope=scope),
            is_active=True,
            connection_status=ConnectionStatus.FETCHING_METADATA.value,
        )
        tracker.advance(ConnectionStatus.FETCHING_METADATA)
        await orgs_repo.create_org(self._session, org)
        await self._session.commit()

        sync_error: str | None = None
        if self._settings.sync_on_connect:
            try:
                await MetadataSyncService(self._session, client, self._settings).sync(org)
                await self._session.commit()
            except (SfInsightError, SQLAlchemyError) as exc:
                # The org stays connected; the failed sync is reported on it.
                org_id = org.id
                await self._session.rollback()
                await self._session.refresh(org)
                sync_error = str(exc)
                logger.warning("org_connect_sync_failed org_id=%s error=%s", org_id, exc)

        org.connection_status = ConnectionStatus.SUCCESS.value
        org.last_error = sync_error
        await self._session.commit()
        # Load server-side defaults such as created_at for the response.
        await self._session.refresh(org)
        tracker.advance(ConnectionStatus.SUCCESS)
        logger.info("org_connected org_id=%s user_id=%s type=%s", org.id, user_id, org.type)
        return ConnectResult(org=org, status_history=list(tracker.history), sync_error=sync_error)

    async def refresh(self, org: SalesforceOrg) -> SalesforceOrg:
        """Re-validate stored credentials, refreshing the OAuth token when possible."""
        credentials = credentials_for_org(org)
        scope = str(org.user_id)
        try:
            if self._connector.can_refresh(credentials):
                refreshed = await self._connector.refresh_access_token(credentials)
                org.access_token_enc = encrypt_secret(refreshed.access_token, scope=scope)
                if refreshed.instance_url:
                    org.instance_url = refreshed.instance_url
                    org.domain = _domain_of(refreshed.instance_url)
                credentials = credentials_for_org(org)
            client = await self._connector.connect(credentials)
            await client.limits()
        except SfInsightError as exc:
            org.connection_status = ConnectionStatus.ERROR.value
            org.last_error = str(exc)
            await self._session.commit()
            logger.warning("org_refresh_failed org_id=%s error=%s", org.id, exc)
            raise
        if org.auth_method == "credentials" and client.session_id:
            org.access_token_enc = encrypt_secret(client.session_id, scope=scope)
        org.connection_status = ConnectionStatus.SUCCESS.value
        org.last_error = None
        await self._session.commit()
        logger.info("org_refreshed org_id=%s", org.id)
        return org
