"""JWT issuing and verification, session cookies and viewers."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt

from drynn.signing_keys import (
    SIGNING_ALGORITHM_HS256,
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    KeyStore,
    SigningKeyError,
)

ACCESS_COOKIE_NAME = "drynn_access"
REFRESH_COOKIE_NAME = "drynn_refresh"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TokenError(Exception):
    """Raised when a token cannot be issued or fails verification."""

    def __init__(self, message: str, *, expired: bool = False):
        super().__init__(message)
        self.expired = expired


@dataclass
class Claims:
    """Verified token claims."""

    token_type: str
    subject: str
    issued_at: datetime | None = None
    expires_at: datetime | None = None

    def user_id(self) -> uuid.UUID:
        """Parse the subject as a UUID; raises ValueError when it is not one."""
        return uuid.UUID(self.subject)


@dataclass
class TokenPair:
    access_token: str
    access_expiry: datetime
    refresh_token: str
    refresh_expiry: datetime


@dataclass
class Viewer:
    """The user behind a request."""

    id: uuid.UUID = field(default_factory=lambda: uuid.UUID(int=0))
    handle: str = ""
    email: str = ""
    is_active: bool = False
    roles: list[str] = field(default_factory=list)

    def has_role(self, role: str) -> bool:
        return role in self.roles


def guest_viewer() -> Viewer:
    """Return a fresh viewer for an unauthenticated session."""
    return Viewer(roles=["guest"])


@dataclass
class Cookie:
    """An HTTP cookie to set on a response."""

    name: str
    value: str
    expires: datetime
    max_age: int
    secure: bool = False
    path: str = "/"
    http_only: bool = True
    same_site: str = "Lax"


def _from_numeric(value) -> datetime | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, timezone.utc)
    return None


class Manager:
    """Issues and verifies access and refresh tokens."""

    def __init__(
        self,
        keys: KeyStore,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        cookie_secure: bool,
        logger: logging.Logger | None = None,
    ):
        self.keys = keys
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.cookie_secure = cookie_secure
        self.logger = logger if logger is not None else logging.getLogger("drynn.auth")

    def issue_tokens(self, user_id: uuid.UUID) -> TokenPair:
        """Sign a fresh access and refresh token for user_id."""
        now = datetime.now(timezone.utc)
        access_expiry = now + self.access_ttl
        refresh_expiry = now + self.refresh_ttl
        return TokenPair(
            access_token=self._sign(user_id, TOKEN_TYPE_ACCESS, now, access_expiry),
            access_expiry=access_expiry,
            refresh_token=self._sign(user_id, TOKEN_TYPE_REFRESH, now, refresh_expiry),
            refresh_expiry=refresh_expiry,
        )

    def parse_access_token(self, token: str) -> Claims:
        return self._parse(token, TOKEN_TYPE_ACCESS)

    def parse_refresh_token(self, token: str) -> Claims:
        return self._parse(token, TOKEN_TYPE_REFRESH)

    def auth_cookies(self, pair: TokenPair) -> list[Cookie]:
        """Cookies carrying both tokens of pair."""
        return [
            self._cookie(ACCESS_COOKIE_NAME, pair.access_token, pair.access_expiry),
            self._cookie(REFRESH_COOKIE_NAME, pair.refresh_token, pair.refresh_expiry),
        ]

    def cleared_auth_cookies(self) -> list[Cookie]:
        """Cookies that remove both tokens from the client."""
        return [
            self._cookie(ACCESS_COOKIE_NAME, "", _EPOCH),
            self._cookie(REFRESH_COOKIE_NAME, "", _EPOCH),
        ]

    def _sign(
        self,
        user_id: uuid.UUID,
        token_type: str,
        issued_at: datetime,
        expires_at: datetime,
    ) -> str:
        try:
            key = self.keys.active_signing_key(token_type)
        except SigningKeyError as exc:
            raise TokenError(f"load {token_type} signing key: {exc}") from exc

        payload = {
            "token_type": token_type,
            "sub": str(user_id),
            "exp": int(expires_at.timestamp()),
            "iat": int(issued_at.timestamp()),
        }
        try:
            return jwt.encode(
                payload,
                key.secret,
                algorithm=SIGNING_ALGORITHM_HS256,
                headers={"kid": str(key.id)},
            )
        except jwt.PyJWTError as exc:
            raise TokenError(f"sign {token_type} token: {exc}") from exc

    def _parse(self, raw_token: str, expected_type: str) -> Claims:
        prefix = f"parse {expected_type} token"
        try:
            header = jwt.get_unverified_header(raw_token)
        except jwt.PyJWTError as exc:
            raise TokenError(f"{prefix}: {exc}") from exc

        alg = header.get("alg")
        if alg != SIGNING_ALGORITHM_HS256:
            raise TokenError(f'{prefix}: unexpected signing method "{alg}"')

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid.strip():
            raise TokenError(f"{prefix}: missing signing key identifier")
        try:
            key_id = uuid.UUID(kid.strip())
        except ValueError as exc:
            raise TokenError(f"{prefix}: parse signing key identifier: {exc}") from exc

        try:
            key = self.keys.verification_key(
                key_id, expected_type, datetime.now(timezone.utc)
            )
        except SigningKeyError as exc:
            raise TokenError(f"{prefix}: {exc}") from exc
        if key.algorithm != SIGNING_ALGORITHM_HS256:
            raise TokenError(f'{prefix}: unexpected signing algorithm "{key.algorithm}"')

        try:
            payload = jwt.decode(
                raw_token,
                key.secret,
                algorithms=[SIGNING_ALGORITHM_HS256],
                options={"verify_aud": False},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenError(f"{prefix}: {exc}", expired=True) from exc
        except jwt.PyJWTError as exc:
            raise TokenError(f"{prefix}: {exc}") from exc

        token_type = payload.get("token_type", "")
        subject = payload.get("sub", "")
        if not isinstance(token_type, str) or not isinstance(subject, str):
            raise TokenError(f"invalid {expected_type} token")
        if token_type != expected_type:
            raise TokenError(f'unexpected token type "{token_type}"')

        return Claims(
            token_type=token_type,
            subject=subject,
            issued_at=_from_numeric(payload.get("iat")),
            expires_at=_from_numeric(payload.get("exp")),
        )

    def _cookie(self, name: str, value: str, expires: datetime) -> Cookie:
        remaining = expires - datetime.now(timezone.utc)
        return Cookie(
            name=name,
            value=value,
            expires=expires,
            max_age=int(remaining.total_seconds()),
            secure=self.cookie_secure,
        )