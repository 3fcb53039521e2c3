from __future__ import annotations

import pytest

from sfinsight.core.errors import CredentialError
from sfinsight.services.crypto.credentials import decrypt_secret, encrypt_secret


def test_secret_roundtrip_is_bound_to_scope() -> None:
    token = encrypt_secret("00D!session", scope="7", secret="k1")
    assert token is not None and token.startswith("v1:")
    assert "00D!session" not in token
    assert decrypt_secret(token, scope="7", secret="k1") == "00D!session"
    with pytest.raises(CredentialError):
        decrypt_secret(token, scope="8", secret="k1")


def test_wrong_secret_cannot_decrypt() -> None:
    token = encrypt_secret("hunter2", scope="1", secret="k1")
    with pytest.raises(CredentialError):
        decrypt_secret(token, scope="1", secret="k2")


def test_empty_values_are_not_stored() -> None:
    assert encrypt_secret(None, scope="1", secret="k") is None
    assert encrypt_secret("", scope="1", secret="k") is None
    assert decrypt_secret(None, scope="1", secret="k") is None


def test_malformed_tokens_raise_credential_error() -> None:
    with pytest.raises(CredentialError):
        decrypt_secret("plaintext", scope="1", secret="k")
    with pytest.raises(CredentialError):
        decrypt_secret("v1:not base64!", scope="1", secret="k")
