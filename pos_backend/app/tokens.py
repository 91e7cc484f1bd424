"""Opaque bearer tokens and their one-way digests.

The raw token is handed to the caller exactly once; only the SHA-256 digest is
ever persisted. Neither helper logs its input.
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import NamedTuple

TOKEN_BYTES = 32


class MintedToken(NamedTuple):
    raw: str
    token_hash: str


def hash_token(raw: str) -> str:
    """Return the lowercase hex SHA-256 digest of ``raw``."""

    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def mint() -> MintedToken:
    """Generate a 64-char hex token together with its digest."""

    raw = secrets.token_hex(TOKEN_BYTES)
    return MintedToken(raw=raw, token_hash=hash_token(raw))


def verify(candidate: str, stored_hash: str) -> bool:
    """Constant-time check of ``candidate`` against a stored digest."""

    if not candidate or not stored_hash:
        return False
    return hmac.compare_digest(hash_token(candidate), stored_hash.lower())


__all__ = ["MintedToken", "TOKEN_BYTES", "hash_token", "mint", "verify"]
