"""Password hashing with bcrypt."""

from __future__ import annotations

import bcrypt

DEFAULT_COST = 10
MAX_PASSWORD_BYTES = 72


class PasswordMismatchError(Exception):
    """Raised when a password does not match a stored hash."""

    def __init__(self, message: str = "hashed password is not the hash of the given password"):
        super().__init__(message)


def hash_password(password: str) -> str:
    """Return a salted bcrypt hash of password."""
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password length exceeds {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=DEFAULT_COST)).decode("ascii")


def compare_password(hashed: str, password: str) -> None:
    """Check password against hashed; raise PasswordMismatchError when they differ.

    A malformed hash raises ValueError.
    """
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise PasswordMismatchError()
    if not bcrypt.checkpw(encoded, hashed.encode("utf-8")):
        raise PasswordMismatchError()