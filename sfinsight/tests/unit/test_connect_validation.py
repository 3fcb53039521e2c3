from __future__ import annotations

import pytest

from sfinsight.services.org_connection import (
    ConnectionStatus,
    ConnectionTracker,
    ConnectOrgRequest,
    InvalidTransitionError,
    validate_connect_request,
)


def _token_request(**overrides) -> ConnectOrgRequest:
    values = {
        "name": "Production",
        "auth_method": "token",
        "access_token": "00D!token",
        "instance_url": "https://acme.my.salesforce.com",
    }
    values.update(overrides)
    return ConnectOrgRequest(**values)


def test_valid_token_request_has_no_problems() -> None:
    assert validate_connect_request(_token_request()) == []


@pytest.mark.parametrize(
    ("overrides", "problem"),
    [
        ({"name": "  "}, "Org name is required"),
        ({"instance_url": "http://acme.my.salesforce.com"}, "Instance URL must start with https://"),
        ({"access_token": ""}, "Access token is required"),
        ({"instance_url": None}, "Instance URL is required"),
        ({"environment": "staging"}, "Environment must be production or sandbox"),
        ({"auth_method": "saml"}, "Auth method must be credentials or token"),
    ],
)
def test_invalid_token_requests_are_rejected(overrides: dict, problem: str) -> None:
    assert problem in validate_connect_request(_token_request(**overrides))


def test_credentials_request_needs_email_and_password() -> None:
    problems = validate_connect_request(ConnectOrgRequest(name="Sandbox", environment="sandbox"))
    assert problems == ["Email is required", "Password is required"]


def test_payload_omits_unset_credentials() -> None:
    payload = _token_request().to_payload()
    assert payload == {
        "name": "Production",
        "auth_method": "token",
        "environment": "production",
        "access_token": "00D!token",
        "instance_url": "https://acme.my.salesforce.com",
    }


def test_tracker_walks_stages_in_order() -> None:
    tracker = ConnectionTracker("Production")
    for status in (
        ConnectionStatus.CONNECTING,
        ConnectionStatus.VALIDATING,
        ConnectionStatus.FETCHING_METADATA,
        ConnectionStatus.SUCCESS,
    ):
        tracker.advance(status)
    assert tracker.done
    assert [status.value for status in tracker.history] == [
        "idle",
        "connecting",
        "validating",
        "fetching_metadata",
        "success",
    ]


def test_tracker_rejects_skipped_stage() -> None:
    tracker = ConnectionTracker()
    tracker.advance(ConnectionStatus.CONNECTING)
    with pytest.raises(InvalidTransitionError):
        tracker.advance(ConnectionStatus.FETCHING_METADATA)


def test_tracker_failure_keeps_message_and_is_terminal() -> None:
    tracker = ConnectionTracker()
    tracker.advance(ConnectionStatus.CONNECTING)
    tracker.fail("Failed to log in to Salesforce: INVALID_LOGIN")
    assert tracker.status is ConnectionStatus.ERROR
    assert tracker.error == "Failed to log in to Salesforce: INVALID_LOGIN"
    with pytest.raises(InvalidTransitionError):
        tracker.fail("again")
    with pytest.raises(InvalidTransitionError):
        tracker.advance(ConnectionStatus.VALIDATING)
