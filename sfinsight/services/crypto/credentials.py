from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sfinsight.core.config import get_settings
from sfinsight.core.errors import CredentialError


# Version prefix lets the key derivation change without breaking stored rows.
_PREFIX = "v1:"
_NONCE_BYTES = 12


def _derive_key(secret: str) -> bytes:
    # Stretch the configured secret into a 256-bit AES key.
    return hashlib.sha256(f"sfinsight-credentials:{secret}".encode("utf-8")).digest()


def _aad(org_scope: str) -> bytes:
    return f"org:{org_scope}".encode("utf-8")


def encrypt_secret(plaintext: str | None, *, scope: str, secret: str | None = None) -> str | None:
    """Encrypt one credential value bound to ``scope`` (the owning user id)."""
    if plaintext is None or plaintext == "":
        return None
    key = _derive_key(secret or get_settings().credential_secret)
    nonce = os.urandom(_NONCE_BYTES)
    cipher_text = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), _aad(scope))
    return _PREFIX + base64.b64encode(nonce + cipher_text).decode("ascii")


def decrypt_secret(token: str | None, *, scope: str, secret: str | None = None) -> str | None:
    if token is None or token == "":
        return None
    if not token.startswith(_PREFIX):
        raise CredentialError("Stored credential has an unknown format")
    key = _derive_key(secret or get_settings().credential_secret)
    try:
        payload = base64.b64decode(token[len(_PREFIX):].encode("ascii"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CredentialError("Stored credential is not valid base64") from exc
    nonce, cipher_text = payload[:_NONCE_BYTES], payload[_NONCE_BYTES:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, cipher_text, _aad(scope))
    except InvalidTag as exc:
        # Wrong secret or a row moved between owners.
        raise CredentialError("Stored credential cannot be decrypted") from exc
    return plaintext.decode("utf-8")
