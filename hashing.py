"""
hashing.py — One-way digests for share passwords.

Share passwords are stored as unsalted SHA-256 hex digests. User account
passwords are NOT handled here; those go through bcrypt in security.py.

Older records may still hold the plaintext password in the digest column.
Setting ALLOW_LEGACY_PLAINTEXT_PASSWORDS=true lets verify() accept those until
migrate.rehash_legacy_passwords() has converted every row.
"""

import hashlib
import hmac
import os
import re

from dotenv import load_dotenv

load_dotenv()

ALLOW_LEGACY_PLAINTEXT_PASSWORDS = os.getenv("ALLOW_LEGACY_PLAINTEXT_PASSWORDS", "false").lower() == "true"

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def digest(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def is_digest(value) -> bool:
    """True if value looks like a SHA-256 hex digest."""
    return isinstance(value, str) and bool(_DIGEST_RE.match(value))


def verify(plaintext: str, stored_digest, *, allow_plaintext: bool = False) -> bool:
    """Compare plaintext against a stored digest. Never raises."""
    if not stored_digest or plaintext is None:
        return False
    candidate = plaintext.encode("utf-8")
    stored = stored_digest.encode("utf-8")
    if hmac.compare_digest(digest(plaintext).encode("utf-8"), stored):
        return True
    if allow_plaintext:
        return hmac.compare_digest(candidate, stored)
    return False
