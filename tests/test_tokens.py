"""Unit tests for auth/tokens.py -- JWT issue/verify, cookie wrapping, passwords."""

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.crypto import TokenCipher
from auth.errors import TokenBadSignature, TokenExpired, TokenMalformed
from auth.models import Principal
from auth.tokens import TokenService, authenticate_user, hash_password, verify_password
from conftest import ADMIN, TEST_SECRET_KEY, VIEWER

PRINCIPAL = Principal(username="coach", role="editor", email="coach@club.test")


@pytest.fixture(scope="module")
def tokens() -> TokenService:
    return TokenService(TEST_SECRET_KEY, TokenCipher(TEST_SECRET_KEY))


def _b64(obj: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj).encode()).rstrip(b"=").decode()


class TestIssueVerify:
    def test_round_trip(self, tokens: TokenService) -> None:
        assert tokens.verify(tokens.issue(PRINCIPAL)) == PRINCIPAL

    def test_claims(self, tokens: TokenService) -> None:
        claims = jwt.get_unverified_claims(tokens.issue(PRINCIPAL))
        assert claims["sub"] == "coach"
        assert claims["username"] == "coach"
        assert claims["email"] == "coach@club.test"
        assert claims["role"] == "editor"
        assert claims["exp"] - claims["iat"] == 24 * 60 * 60

    def test_principal_without_email(self, tokens: TokenService) -> None:
        principal = Principal(username="guestcoach", role="viewer")
        assert tokens.verify(tokens.issue(principal)).email is None

    def test_expired(self, tokens: TokenService) -> None:
        with pytest.raises(TokenExpired):
            tokens.verify(tokens.issue(PRINCIPAL, expire_seconds=-10))

    def test_other_key_is_bad_signature(self, tokens: TokenService) -> None:
        other_key = "another-secret-key-0123456789abcdef0123456789"
        other = TokenService(other_key, TokenCipher(other_key))
        with pytest.raises(TokenBadSignature):
            tokens.verify(other.issue(PRINCIPAL))

    def test_altered_payload_is_bad_signature(self, tokens: TokenService) -> None:
        header, _, signature = tokens.issue(PRINCIPAL).split(".")
        forged = _b64({"sub": "coach", "username": "coach", "role": "admin", "exp": 9999999999})
        with pytest.raises(TokenBadSignature):
            tokens.verify(f"{header}.{forged}.{signature}")

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b", "a.b.c.d", "!!!.???.###"])
    def test_malformed(self, tokens: TokenService, token: str) -> None:
        with pytest.raises(TokenMalformed):
            tokens.verify(token)

    def test_alg_none_rejected(self, tokens: TokenService) -> None:
        token = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64({'username': 'coach', 'role': 'admin'})}."
        with pytest.raises(TokenMalformed):
            tokens.verify(token)

    def test_unknown_role_rejected(self, tokens: TokenService) -> None:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"username": "coach", "role": "superuser", "exp": exp}, TEST_SECRET_KEY, algorithm="HS256")
        with pytest.raises(TokenMalformed):
            tokens.verify(token)

    def test_missing_expiry_rejected(self, tokens: TokenService) -> None:
        token = jwt.encode({"username": "coach", "role": "viewer"}, TEST_SECRET_KEY, algorithm="HS256")
        with pytest.raises(TokenMalformed):
            tokens.verify(token)

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenService("", TokenCipher(TEST_SECRET_KEY))


class TestCookieWrapping:
    def test_wrap_hides_the_jwt(self, tokens: TokenService) -> None:
        token = tokens.issue(PRINCIPAL)
        envelope = tokens.wrap_for_cookie(token)
        assert token not in envelope
        assert tokens.unwrap_from_cookie(envelope) == token

    @pytest.mark.parametrize("envelope", ["garbage", "", "00:00", "eyJhbGciOiJIUzI1NiJ9.e30.sig"])
    def test_unwrap_garbage_returns_none(self, tokens: TokenService, envelope: str) -> None:
        assert tokens.unwrap_from_cookie(envelope) is None


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret!")
        assert hashed != "s3cret!"
        assert verify_password("s3cret!", hashed)
        assert not verify_password("wrong", hashed)

    def test_corrupt_hash_is_false(self) -> None:
        assert verify_password("s3cret!", "not-a-bcrypt-hash") is False


class TestAuthenticateUser:
    def test_valid_credentials(self, user_store) -> None:
        user = authenticate_user(user_store, *ADMIN)
        assert user is not None
        assert user.role == "admin"

    def test_wrong_password(self, user_store) -> None:
        assert authenticate_user(user_store, ADMIN[0], "nope") is None

    def test_unknown_user(self, user_store) -> None:
        assert authenticate_user(user_store, "nobody", "whatever") is None

    def test_inactive_user(self, user_store) -> None:
        viewer = user_store.get_by_username(VIEWER[0])
        user_store.update_user(viewer.id, is_active=False)
        try:
            assert authenticate_user(user_store, *VIEWER) is None
        finally:
            user_store.update_user(viewer.id, is_active=True)
