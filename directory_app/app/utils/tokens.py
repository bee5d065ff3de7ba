"""Invitation secret generation and digesting.

The raw secret is handed to the recipient once and never stored; only
``digest(secret)`` goes into ``member_invitations.token_hash``.
"""
from __future__ import annotations
import hashlib
import re
import secrets

TOKEN_BYTES = 32  # 256 bits of entropy
TOKEN_LENGTH = TOKEN_BYTES * 2

_TOKEN_RE = re.compile(r"[0-9a-f]{%d}" % TOKEN_LENGTH)


def generate() -> str:
    """Return a fresh 64 character hex secret."""
    return secrets.token_hex(TOKEN_BYTES)


def digest(secret: str) -> str:
    """SHA-256 of the secret, hex encoded like the secret itself."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def is_well_formed(secret: str | None) -> bool:
    if not isinstance(secret, str):
        return False
    return _TOKEN_RE.fullmatch(secret) is not None
