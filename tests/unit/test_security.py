"""Tests for password hashing, credential issuing and outcome unwrapping."""

import jwt
import pytest
from fastapi import HTTPException

from bookstore.api.deps import unwrap
from bookstore.db.results import Conflict, Failure, NotFound, Ok
from bookstore.security.utils import (
    MissingSecretError,
    create_access_token,
    decode_token,
    hash_password,
    verify_password,
)
from tests.conftest import get_test_settings


def test_password_hash_roundtrip():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)


def test_token_carries_subject_and_email():
    settings = get_test_settings()
    token, exp = create_access_token(settings, "user-1", "a@b.com")
    claims = decode_token(settings, token)
    assert claims["sub"] == "user-1"
    assert claims["email"] == "a@b.com"
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] == 86400


def test_expired_token_rejected():
    settings = get_test_settings(ACCESS_TOKEN_EXPIRES_SECONDS=-60)
    token, _ = create_access_token(settings, "user-1", "a@b.com")
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_token(settings, token)


def test_wrong_secret_rejected():
    token, _ = create_access_token(get_test_settings(), "user-1", "a@b.com")
    with pytest.raises(jwt.InvalidSignatureError):
        decode_token(get_test_settings(JWT_SECRET="another-secret"), token)


def test_missing_secret():
    settings = get_test_settings(JWT_SECRET="")
    with pytest.raises(MissingSecretError):
        create_access_token(settings, "user-1", "a@b.com")
    with pytest.raises(MissingSecretError):
        decode_token(settings, "whatever")


@pytest.mark.parametrize("outcome, status", [
    (NotFound("Book not found"), 404),
    (Conflict("Genre name already exists"), 400),
    (Failure(), 500),
])
def test_unwrap_maps_outcomes_to_status(outcome, status):
    with pytest.raises(HTTPException) as excinfo:
        unwrap(outcome)
    assert excinfo.value.status_code == status


def test_unwrap_ok():
    assert unwrap(Ok(42)) == 42
