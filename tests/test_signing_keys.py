import sqlite3
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from drynn.signing_keys import (
    CannotDeleteActiveKeyError,
    InvalidTokenTypeError,
    KeyStore,
    NegativeVerificationGraceError,
    NoActiveSigningKeyError,
    SigningKeyNotFoundError,
    SigningKeyUnavailableError,
    normalize_token_type,
)


@pytest.fixture
def store():
    connection = sqlite3.connect(":memory:")
    yield KeyStore(connection)
    connection.close()


def now():
    return datetime.now(timezone.utc)


def test_normalize_token_type():
    assert normalize_token_type(" ACCESS ") == "access"
    assert normalize_token_type("Refresh") == "refresh"
    with pytest.raises(InvalidTokenTypeError):
        normalize_token_type("bogus")


def test_no_active_key_initially(store):
    with pytest.raises(NoActiveSigningKeyError):
        store.active_signing_key("access")


def test_ensure_ready_creates_and_is_idempotent(store):
    store.ensure_ready()
    access = store.active_signing_key("access")
    refresh = store.active_signing_key("refresh")
    assert access.token_type == "access"
    assert refresh.token_type == "refresh"
    assert access.id != refresh.id
    store.ensure_ready()
    assert store.active_signing_key("access").id == access.id
    assert store.active_signing_key("refresh").id == refresh.id


def test_created_key_properties(store):
    created, retired = store.create_signing_key("access", timedelta(0))
    assert retired is None
    assert created.algorithm == "HS256"
    assert created.state == "active"
    assert created.verify_until is None
    assert len(created.secret) == 32
    assert created.created_at.tzinfo is not None
    assert store.active_signing_key("access") == created


def test_rotation_retires_previous_key(store):
    first, _ = store.create_signing_key("access", timedelta(0))
    before = now()
    second, retired = store.create_signing_key("access", timedelta(hours=1))
    assert retired.id == first.id
    assert retired.state == "retired"
    assert retired.verify_until >= before + timedelta(hours=1)
    assert second.id != first.id
    assert store.active_signing_key("access").id == second.id


def test_verification_key_active_and_grace(store):
    first, _ = store.create_signing_key("refresh", timedelta(0))
    assert store.verification_key(first.id, "refresh", now()).id == first.id
    store.create_signing_key("refresh", timedelta(minutes=5))
    assert store.verification_key(first.id, "refresh", now()).id == first.id
    with pytest.raises(SigningKeyUnavailableError):
        store.verification_key(first.id, "refresh", now() + timedelta(minutes=10))


def test_verification_key_wrong_type(store):
    key, _ = store.create_signing_key("access", timedelta(0))
    with pytest.raises(SigningKeyUnavailableError):
        store.verification_key(key.id, "refresh", now())


def test_verification_key_unknown_id(store):
    with pytest.raises(SigningKeyNotFoundError):
        store.verification_key(uuid.uuid4(), "access", now())


def test_verification_key_invalid_type(store):
    key, _ = store.create_signing_key("access", timedelta(0))
    with pytest.raises(InvalidTokenTypeError):
        store.verification_key(key.id, "other", now())


def test_negative_grace_rejected(store):
    key, _ = store.create_signing_key("access", timedelta(0))
    with pytest.raises(NegativeVerificationGraceError):
        store.create_signing_key("access", timedelta(seconds=-1))
    with pytest.raises(NegativeVerificationGraceError):
        store.expire_signing_key(key.id, timedelta(seconds=-1))


def test_expire_signing_key(store):
    key, _ = store.create_signing_key("access", timedelta(0))
    expired = store.expire_signing_key(key.id, timedelta(0))
    assert expired.id == key.id
    assert expired.state == "retired"
    with pytest.raises(NoActiveSigningKeyError):
        store.active_signing_key("access")
    with pytest.raises(SigningKeyUnavailableError):
        store.verification_key(key.id, "access", now())


def test_expire_unknown_key(store):
    with pytest.raises(SigningKeyNotFoundError):
        store.expire_signing_key(uuid.uuid4(), timedelta(0))


def test_delete_active_key_rejected(store):
    key, _ = store.create_signing_key("access", timedelta(0))
    with pytest.raises(CannotDeleteActiveKeyError):
        store.delete_signing_key(key.id)
    assert store.active_signing_key("access").id == key.id


def test_delete_retired_key(store):
    first, _ = store.create_signing_key("access", timedelta(0))
    store.create_signing_key("access", timedelta(0))
    store.delete_signing_key(first.id)
    with pytest.raises(SigningKeyNotFoundError):
        store.verification_key(first.id, "access", now())
    with pytest.raises(SigningKeyNotFoundError):
        store.delete_signing_key(first.id)