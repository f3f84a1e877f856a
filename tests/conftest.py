"""
tests/conftest.py -- Shared test fixtures for Clubhouse.

This module provides:
  - make_settings(): explicit Settings for tests, independent of any .env file
  - user_store: module-scoped in-memory store seeded with admin/editor/viewer
  - client: TestClient over a fresh create_app() per test (fresh cookie jar)
  - login() / csrf_headers() / set_cookies(): request helpers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG must be set before any api import so get_settings() never raises. Each
app gets its own limiter, so login counters never leak between tests.
"""

from __future__ import annotations

import os
from collections.abc import Generator

# CRITICAL: set before importing api/* so get_settings() never raises.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings

TEST_SECRET_KEY = "test-secret-key-0123456789abcdef0123456789abcdef"
TEST_CSRF_SECRET = "test-csrf-secret-fedcba9876543210fedcba9876543210"

ADMIN = ("admin", "adminpass123")
EDITOR = ("editor", "editorpass123")
VIEWER = ("viewer", "viewerpass123")


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": TEST_SECRET_KEY,
        "csrf_secret": TEST_CSRF_SECRET,
        "allowed_hosts": ["*"],
        "login_rate_limit": "10000/minute",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _make_test_store(db_suffix: str) -> UserStore:
    return UserStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def set_cookies(resp) -> list[str]:
    """All Set-Cookie header values on a response."""
    return resp.headers.get_list("set-cookie")


def cookie_headers_for(resp, name: str) -> list[str]:
    return [h for h in set_cookies(resp) if h.startswith(f"{name}=")]


def is_clear(header: str) -> bool:
    lowered = header.lower()
    return "max-age=0" in lowered or "expires=thu, 01 jan 1970" in lowered


def login(client: TestClient, credentials: tuple[str, str]) -> str:
    """Log in and return the CSRF token from the response body."""
    username, password = credentials
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["csrfToken"]


def csrf_headers(client: TestClient) -> dict[str, str]:
    """Fetch a token for the client's current session and return it as a header."""
    resp = client.get("/api/csrf-token")
    assert resp.status_code == 200, resp.text
    return {"X-CSRF-Token": resp.json()["csrfToken"]}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def user_store(request) -> Generator[UserStore, None, None]:
    """One isolated store per test module, seeded with one user per role."""
    store = _make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    for (username, password), role in ((ADMIN, "admin"), (EDITOR, "editor"), (VIEWER, "viewer")):
        store.create_user(
            User(
                username=username,
                email=f"{username}@club.test",
                role=role,
                hashed_password=hash_password(password),
                created_by="tests",
            )
        )
    yield store
    store.close()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def app(settings: Settings, user_store: UserStore):
    return create_app(settings, user_store=user_store)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
