from __future__ import annotations

import hashlib
import secrets
from typing import NamedTuple
from uuid import uuid4


KEY_PREFIX = "sfi"


class IssuedKey(NamedTuple):
    key_id: str
    # Shown to the user once and never stored.
    raw_key: str
    key_prefix: str
    key_hash: str


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(*, key_id: str | None = None) -> IssuedKey:
    """Mint a bearer key of the form ``sfi_<key id>_<secret>``."""
    key_id = key_id or uuid4().hex
    raw_key = f"{KEY_PREFIX}_{key_id}_{secrets.token_urlsafe(32)}"
    # The prefix identifies a key in listings without revealing the secret.
    return IssuedKey(key_id, raw_key, raw_key[: len(KEY_PREFIX) + 9], hash_api_key(raw_key))
