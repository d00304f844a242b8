"""Unit tests for password hashing and token signing."""

import uuid
from datetime import timedelta

import jwt
import pytest

from acado_auth.config import settings
from acado_auth.core.security import (
    AccessTokenClaims,
    RefreshTokenClaims,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_secure_token,
    get_password_hash,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)


@pytest.fixture
def access_claims():
    return AccessTokenClaims(
        sub=str(uuid.uuid4()),
        name="Ada Learner",
        email="a@x.com",
        role="learner",
    )


class TestPasswordHashing:
    """Tests for password hashing."""

    def test_hash_round_trip(self):
        pwd_hash = get_password_hash("CorrectHorse1")

        assert pwd_hash != "CorrectHorse1"
        assert verify_password("CorrectHorse1", pwd_hash)
        assert not verify_password("WrongHorse1", pwd_hash)

    def test_same_password_produces_different_hashes(self):
        assert get_password_hash("CorrectHorse1") != get_password_hash("CorrectHorse1")

    def test_corrupt_hash_does_not_verify(self):
        assert verify_password("CorrectHorse1", "not-a-bcrypt-hash") is False

    def test_overlong_password_does_not_verify(self):
        pwd_hash = get_password_hash("x" * 72)
        assert verify_password("x" * 73, pwd_hash) is False


class TestAccessTokens:
    """Tests for access token claims and validation."""

    def test_optional_claims_always_present(self, access_claims):
        token = create_access_token(access_claims)
        payload = decode_token(token, "access")

        assert payload["organization_id"] is None
        assert payload["organization_name"] is None
        assert payload["university_ids"] == []
        assert payload["course_ids"] == []
        assert payload["type"] == "access"
        assert {"exp", "iat", "jti"} <= set(payload)

    def test_verify_returns_typed_claims(self, access_claims):
        claims = verify_access_token(create_access_token(access_claims))

        assert isinstance(claims, AccessTokenClaims)
        assert claims.sub == access_claims.sub
        assert claims.role == "learner"

    def test_expired_access_token_rejected(self, access_claims):
        token = create_access_token(access_claims, expires_delta=timedelta(seconds=-5))
        assert verify_access_token(token) is None

    def test_tampered_token_rejected(self, access_claims):
        token = create_access_token(access_claims)
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[:-2] + ("AA" if signature[-2:] != "AA" else "BB")])
        assert verify_access_token(tampered) is None

    def test_garbage_rejected(self):
        assert verify_access_token("invalid.token.here") is None
        assert verify_access_token("") is None


class TestKeySeparation:
    """Access and refresh tokens are signed with different keys."""

    def test_refresh_token_is_not_an_access_token(self):
        token = create_refresh_token(RefreshTokenClaims(sub=str(uuid.uuid4()), ver=1))

        assert verify_refresh_token(token) is not None
        assert verify_access_token(token) is None

    def test_access_token_is_not_a_refresh_token(self, access_claims):
        token = create_access_token(access_claims)
        assert verify_refresh_token(token) is None

    def test_refresh_forged_with_access_secret_rejected(self):
        forged = jwt.encode(
            {"sub": str(uuid.uuid4()), "ver": 1, "type": "refresh", "iat": 0, "exp": 4102444800},
            settings.JWT_ACCESS_SECRET,
            algorithm=settings.ALGORITHM,
        )
        assert verify_refresh_token(forged) is None

    def test_refresh_token_carries_version(self):
        sub = str(uuid.uuid4())
        claims = verify_refresh_token(create_refresh_token(RefreshTokenClaims(sub=sub, ver=7)))

        assert claims.sub == sub
        assert claims.ver == 7

    def test_refresh_without_version_rejected(self):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "type": "refresh", "iat": 0, "exp": 4102444800},
            settings.JWT_REFRESH_SECRET,
            algorithm=settings.ALGORITHM,
        )
        assert verify_refresh_token(token) is None


def test_secure_tokens_are_unique():
    tokens = {generate_secure_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) >= 40 for t in tokens)
