"""
auth/passwords.py -- One-way password hashing (bcrypt).

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

bcrypt only accepts 72 bytes of input, and recent releases raise instead of
truncating. hash_password() checks the UTF-8 length up front and raises
ValidationError, so a multibyte password that fits a 72-character field
limit still gets a structured 422. The request models apply the same byte
check before a request reaches the service layer.
"""

from __future__ import annotations

import bcrypt

from core.errors import ValidationError

_ROUNDS = 10
MAX_PASSWORD_BYTES = 72


def password_fits(plain: str) -> bool:
    """True if the UTF-8 encoding of plain is within bcrypt's input limit."""
    return len(plain.encode("utf-8")) <= MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    if not password_fits(plain):
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash, or a candidate over the byte limit, is treated
    as a mismatch.
    """
    if not password_fits(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
