"""
Unit tests for security.py (bearer token handling).
"""

import pytest
from jose import jwt

from app.core.errors import AuthenticationError
from app.core.security import create_access_token, decode_access_token, extract_bearer_token, resolve_caller


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Bearer abc.def", "abc.def"),
        ("bearer  abc.def ", "abc.def"),
        ("Basic abc", None),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


def test_resolve_caller_returns_subject(settings):
    token = create_access_token({"sub": "user-9", "role": "authenticated"}, settings)
    identity = resolve_caller(f"Bearer {token}", settings)

    assert identity.user_id == "user-9"
    assert identity.claims["role"] == "authenticated"


def test_missing_header_is_unauthorized(settings):
    with pytest.raises(AuthenticationError) as exc_info:
        resolve_caller(None, settings)
    assert exc_info.value.status_code == 401


def test_wrong_secret_is_rejected(settings):
    token = jwt.encode({"sub": "user-9", "aud": "authenticated"}, "another-secret", algorithm="HS256")
    assert decode_access_token(token, settings) is None
    with pytest.raises(AuthenticationError):
        resolve_caller(f"Bearer {token}", settings)


def test_wrong_audience_is_rejected(settings):
    token = create_access_token({"sub": "user-9", "aud": "anon"}, settings)
    assert decode_access_token(token, settings) is None


def test_token_without_subject_is_rejected(settings):
    token = create_access_token({"role": "authenticated"}, settings)
    with pytest.raises(AuthenticationError):
        resolve_caller(f"Bearer {token}", settings)
