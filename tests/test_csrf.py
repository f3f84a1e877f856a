"""Unit tests for auth/csrf.py -- synchronizer tokens bound to a session."""

import pytest

from auth.errors import CSRFValidationFailed
from auth.csrf import CsrfEngine
from conftest import TEST_CSRF_SECRET


@pytest.fixture
def engine() -> CsrfEngine:
    return CsrfEngine(
        TEST_CSRF_SECRET,
        exempt_paths={"/api/auth/login", "/api/csrf-token"},
        logout_path="/api/auth/logout",
    )


class TestTokens:
    def test_token_valid_for_its_session(self, engine: CsrfEngine) -> None:
        token = engine.issue_token("session-a")
        assert engine.verify_token("session-a", token)

    def test_token_rejected_for_another_session(self, engine: CsrfEngine) -> None:
        token = engine.issue_token("session-a")
        assert not engine.verify_token("session-b", token)

    def test_many_tokens_valid_for_one_session(self, engine: CsrfEngine) -> None:
        tokens = [engine.issue_token("session-a") for _ in range(5)]
        assert len(set(tokens)) == 5
        assert all(engine.verify_token("session-a", t) for t in tokens)

    def test_other_server_secret_rejects(self, engine: CsrfEngine) -> None:
        other = CsrfEngine("another-csrf-secret-0123456789abcdef0123")
        assert not other.verify_token("session-a", engine.issue_token("session-a"))

    def test_derive_is_stable_per_session(self, engine: CsrfEngine) -> None:
        assert engine.derive("session-a") == engine.derive("session-a")
        assert engine.derive("session-a") != engine.derive("session-b")

    @pytest.mark.parametrize("token", ["", "no-separator", ".mac-only", "salt-only.", "salt.wrong-mac", "sält.ünïcode"])
    def test_malformed_tokens_rejected(self, engine: CsrfEngine, token: str) -> None:
        assert not engine.verify_token("session-a", token)

    def test_swapped_salt_rejected(self, engine: CsrfEngine) -> None:
        _, _, mac = engine.issue_token("session-a").partition(".")
        other_salt, _, _ = engine.issue_token("session-a").partition(".")
        assert not engine.verify_token("session-a", f"{other_salt}.{mac}")

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            CsrfEngine("")


class TestRequiresCheck:
    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
    def test_safe_methods_unprotected(self, engine: CsrfEngine, method: str) -> None:
        assert not engine.requires_check(method, "/api/users", authenticated=True)

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_state_changing_methods_protected(self, engine: CsrfEngine, method: str) -> None:
        assert engine.requires_check(method, "/api/users", authenticated=False)

    @pytest.mark.parametrize("path", ["/api/auth/login", "/api/csrf-token"])
    def test_exempt_paths(self, engine: CsrfEngine, path: str) -> None:
        assert not engine.requires_check("POST", path, authenticated=True)

    def test_logout_unprotected_when_anonymous(self, engine: CsrfEngine) -> None:
        assert not engine.requires_check("POST", "/api/auth/logout", authenticated=False)

    def test_logout_protected_when_authenticated(self, engine: CsrfEngine) -> None:
        assert engine.requires_check("POST", "/api/auth/logout", authenticated=True)


class TestValidate:
    def test_valid(self, engine: CsrfEngine) -> None:
        engine.validate("session-a", engine.issue_token("session-a"))

    @pytest.mark.parametrize(
        "session_id, token",
        [(None, "x.y"), ("", "x.y"), ("session-a", None), ("session-a", ""), ("session-a", "x.y")],
    )
    def test_every_failure_is_the_same_error(self, engine: CsrfEngine, session_id, token) -> None:
        with pytest.raises(CSRFValidationFailed) as excinfo:
            engine.validate(session_id, token)
        assert excinfo.value.to_dict() == {"code": "csrf_failed", "message": "CSRF validation failed."}
        assert excinfo.value.status_code == 403

    def test_cross_session_token_fails(self, engine: CsrfEngine) -> None:
        with pytest.raises(CSRFValidationFailed):
            engine.validate("session-b", engine.issue_token("session-a"))
