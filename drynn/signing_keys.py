"""Storage and rotation of JWT signing keys in an SQLite database."""

from __future__ import annotations

import secrets
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
SIGNING_ALGORITHM_HS256 = "HS256"
KEY_STATE_ACTIVE = "active"
KEY_STATE_RETIRED = "retired"
SECRET_SIZE = 32

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_COLUMNS = "id, token_type, algorithm, secret, state, verify_until, created_at, updated_at"
_SCHEMA = """
CREATE TABLE IF NOT EXISTS jwt_signing_keys (
    id TEXT PRIMARY KEY,
    token_type TEXT NOT NULL CHECK (token_type IN ('access', 'refresh')),
    algorithm TEXT NOT NULL,
    secret BLOB NOT NULL,
    state TEXT NOT NULL CHECK (state IN ('active', 'retired')),
    verify_until TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


class SigningKeyError(Exception):
    """Base class for signing key failures."""


class InvalidTokenTypeError(SigningKeyError):
    def __init__(self, message: str = "token type must be access or refresh"):
        super().__init__(message)


class NoActiveSigningKeyError(SigningKeyError):
    def __init__(self, message: str = "no active signing key configured"):
        super().__init__(message)


class SigningKeyNotFoundError(SigningKeyError):
    def __init__(self, message: str = "signing key not found"):
        super().__init__(message)


class SigningKeyUnavailableError(SigningKeyError):
    def __init__(self, message: str = "signing key is not valid for verification"):
        super().__init__(message)


class CannotDeleteActiveKeyError(SigningKeyError):
    def __init__(
        self,
        message: str = "active signing keys must be rotated or expired before deletion",
    ):
        super().__init__(message)


class NegativeVerificationGraceError(SigningKeyError):
    def __init__(self, message: str = "verification grace period must be non-negative"):
        super().__init__(message)


@dataclass
class SigningKey:
    """A stored HMAC signing key."""

    id: uuid.UUID
    token_type: str
    algorithm: str
    secret: bytes
    state: str
    verify_until: datetime | None
    created_at: datetime
    updated_at: datetime


def normalize_token_type(token_type: str) -> str:
    """Return the canonical token type or raise InvalidTokenTypeError."""
    value = token_type.strip().lower()
    if value in (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH):
        return value
    raise InvalidTokenTypeError()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _encode_time(value: datetime) -> str:
    return _as_utc(value).strftime(_TIME_FORMAT)


def _decode_time(text: str) -> datetime:
    return datetime.strptime(text, _TIME_FORMAT).replace(tzinfo=timezone.utc)


def _hydrate(row) -> SigningKey:
    key_id, token_type, algorithm, secret, state, verify_until, created_at, updated_at = row
    return SigningKey(
        id=uuid.UUID(key_id),
        token_type=token_type,
        algorithm=algorithm,
        secret=bytes(secret),
        state=state,
        verify_until=_decode_time(verify_until) if verify_until else None,
        created_at=_decode_time(created_at),
        updated_at=_decode_time(updated_at),
    )


class KeyStore:
    """Signing keys kept in the jwt_signing_keys table of an SQLite connection."""

    def __init__(self, connection: sqlite3.Connection):
        self._conn = connection
        self._conn.execute(_SCHEMA)
        self._conn.commit()

    # ------------------------------------------------------------ queries

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        if self._conn.in_transaction:
            self._conn.commit()
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        self._conn.commit()

    def _get_active(self, token_type: str) -> SigningKey | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM jwt_signing_keys"
            " WHERE token_type = ? AND state = 'active'"
            " ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (token_type,),
        ).fetchone()
        return _hydrate(row) if row is not None else None

    def _get_by_id(self, key_id: uuid.UUID) -> SigningKey | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM jwt_signing_keys WHERE id = ?",
            (str(key_id),),
        ).fetchone()
        return _hydrate(row) if row is not None else None

    def _retire(self, key_id: uuid.UUID, verify_until: datetime) -> SigningKey:
        self._conn.execute(
            "UPDATE jwt_signing_keys SET state = 'retired', verify_until = ?, updated_at = ?"
            " WHERE id = ?",
            (_encode_time(verify_until), _encode_time(_utcnow()), str(key_id)),
        )
        retired = self._get_by_id(key_id)
        if retired is None:
            raise SigningKeyNotFoundError()
        return retired

    def _insert(self, token_type: str, secret: bytes) -> SigningKey:
        key_id = uuid.uuid4()
        stamp = _encode_time(_utcnow())
        self._conn.execute(
            f"INSERT INTO jwt_signing_keys ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, NULL, ?, ?)",
            (
                str(key_id),
                token_type,
                SIGNING_ALGORITHM_HS256,
                secret,
                KEY_STATE_ACTIVE,
                stamp,
                stamp,
            ),
        )
        created = self._get_by_id(key_id)
        if created is None:
            raise SigningKeyNotFoundError()
        return created

    # ------------------------------------------------------------ public API

    def ensure_ready(self) -> None:
        """Make sure an active key exists for each token type."""
        for token_type in (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH):
            try:
                self.active_signing_key(token_type)
            except NoActiveSigningKeyError:
                self.create_signing_key(token_type, timedelta(0))

    def active_signing_key(self, token_type: str) -> SigningKey:
        """Return the newest active key for token_type."""
        normalized = normalize_token_type(token_type)
        key = self._get_active(normalized)
        if key is None:
            raise NoActiveSigningKeyError()
        return key

    def verification_key(
        self, key_id: uuid.UUID, token_type: str, now: datetime
    ) -> SigningKey:
        """Return the key with key_id if it may verify token_type tokens at now."""
        normalized = normalize_token_type(token_type)
        key = self._get_by_id(key_id)
        if key is None:
            raise SigningKeyNotFoundError()
        if key.token_type != normalized:
            raise SigningKeyUnavailableError()
        if key.state == KEY_STATE_ACTIVE:
            return key
        if (
            key.state == KEY_STATE_RETIRED
            and key.verify_until is not None
            and _as_utc(now) < key.verify_until
        ):
            return key
        raise SigningKeyUnavailableError()

    def create_signing_key(
        self, token_type: str, verify_old_for: timedelta
    ) -> tuple[SigningKey, SigningKey | None]:
        """Create a new active key, retiring the current one.

        Returns the new key and the retired key (None when there was none).
        """
        normalized = normalize_token_type(token_type)
        if verify_old_for < timedelta(0):
            raise NegativeVerificationGraceError()
        secret = secrets.token_bytes(SECRET_SIZE)

        with self._transaction():
            retired = None
            active = self._get_active(normalized)
            if active is not None:
                retired = self._retire(active.id, _utcnow() + verify_old_for)
            created = self._insert(normalized, secret)
        return created, retired

    def expire_signing_key(self, key_id: uuid.UUID, verify_for: timedelta) -> SigningKey:
        """Retire a key, keeping it usable for verification for verify_for."""
        if verify_for < timedelta(0):
            raise NegativeVerificationGraceError()
        with self._transaction():
            key = self._get_by_id(key_id)
            if key is None:
                raise SigningKeyNotFoundError()
            retired = self._retire(key.id, _utcnow() + verify_for)
        return retired

    def delete_signing_key(self, key_id: uuid.UUID) -> None:
        """Delete a retired key."""
        with self._transaction():
            key = self._get_by_id(key_id)
            if key is None:
                raise SigningKeyNotFoundError()
            if key.state == KEY_STATE_ACTIVE:
                raise CannotDeleteActiveKeyError()
            self._conn.execute("DELETE FROM jwt_signing_keys WHERE id = ?", (str(key_id),))