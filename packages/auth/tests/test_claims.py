"""Tests for reading claims out of Supabase access tokens."""

from __future__ import annotations

import time

import jwt as pyjwt
import pytest
from gcmn_auth.jwt import read_claims
from gcmn_shared.auth_models import AccessTokenClaims

SECRET = "super-secret-jwt-token-for-testing-only"


def _make_token(secret: str = SECRET, **claims: object) -> str:
    payload: dict[str, object] = {
        "sub": "user-123",
        "email": "student@gcmn.edu.pk",
        "role": "authenticated",
        "exp": int(time.time()) + 3600,
        **claims,
    }
    return pyjwt.encode(payload, secret, algorithm="HS256")


class TestReadClaims:
    def test_reads_supabase_claims(self) -> None:
        claims = read_claims(_make_token())

        assert isinstance(claims, AccessTokenClaims)
        assert claims.user_id == "user-123"
        assert claims.email == "student@gcmn.edu.pk"
        assert claims.role == "authenticated"
        assert claims.exp > time.time()

    def test_signature_is_not_checked(self) -> None:
        claims = read_claims(_make_token(secret="some-other-project-secret"))
        assert claims.user_id == "user-123"

    def test_expired_token_still_readable(self) -> None:
        exp = int(time.time()) - 60
        assert read_claims(_make_token(exp=exp)).exp == exp

    def test_missing_optional_claims_default(self) -> None:
        token = pyjwt.encode({"sub": "abc"}, SECRET, algorithm="HS256")
        claims = read_claims(token)
        assert claims.email == ""
        assert claims.role == "authenticated"
        assert claims.exp == 0

    def test_missing_subject_raises(self) -> None:
        token = pyjwt.encode({"email": "x@y.z"}, SECRET, algorithm="HS256")
        with pytest.raises(KeyError):
            read_claims(token)

    def test_malformed_token_raises(self) -> None:
        with pytest.raises(pyjwt.DecodeError):
            read_claims("not-a-jwt")
