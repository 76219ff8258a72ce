"""
tests/conftest.py -- Shared test fixtures for AreaGate integration tests.

This module provides:
  - make_settings(): a Settings instance with fixed, distinct test secrets
  - _make_test_stores(): creates isolated in-memory DBs for auth + workspace
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_env: module-scoped TestClient plus seeded users across two areas

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates the signing secrets in dev mode rather than raising ValueError.

Seeded users (password for all: PASSWORD):
  root   admin        group 1  HQ
  alice  Area Admin   group 7  North Gate
  bob    Basic User   group 7  North Gate
  carol  Area Admin   group 9  South Gate
  dave   Basic User   group 9  South Gate
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate the secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import wire_app_state
from asgi import app
from auth.models import Role, User
from auth.passwords import hash_password
from auth.store import UserStore
from core.config import Settings
from workspace.store import WorkspaceStore

# Repeated logins within one module must not trip the per-IP counters.
limiter.enabled = False

PASSWORD = "correct-horse-1"
SESSION_SECRET = "s" * 16 + "session-secret-for-tests"
TOKEN_SECRET = "t" * 16 + "magic-link-secret-for-tests"
FRONTEND_URL = "http://console.test"
BACKEND_URL = "http://api.test"

_SEED_USERS: tuple[tuple[str, Role, int, str], ...] = (
    ("root", Role.ADMIN, 1, "HQ"),
    ("alice", Role.AREA_ADMIN, 7, "North Gate"),
    ("bob", Role.BASIC_USER, 7, "North Gate"),
    ("carol", Role.AREA_ADMIN, 9, "South Gate"),
    ("dave", Role.BASIC_USER, 9, "South Gate"),
)


def make_settings(**overrides) -> Settings:
    """Return Settings isolated from the environment and any .env file."""
    values = {
        "debug": False,
        "session_secret": SESSION_SECRET,
        "token_secret": TOKEN_SECRET,
        "frontend_url": FRONTEND_URL,
        "backend_url": BACKEND_URL,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, WorkspaceStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    workspace_url = f"sqlite:///file:test_workspace_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), WorkspaceStore(db_url=workspace_url)


def _patch_lifespan(settings: Settings, user_store: UserStore, workspace_store: WorkspaceStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state through the same
    wire_app_state() the production lifespan uses.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_app_state(app, settings, user_store, workspace_store)
        yield

    return test_lifespan


def seed_users(store: UserStore) -> dict[str, User]:
    users: dict[str, User] = {}
    hashed = hash_password(PASSWORD)
    for username, role, group_id, area in _SEED_USERS:
        uid = store.create_user(
            User(username=username, role=role, group_id=group_id, area_name=area, hashed_password=hashed)
        )
        users[username] = store.get_by_id(uid)
    return users


@dataclass
class ApiEnv:
    """Everything an integration test needs: client, stores and seeded users."""

    client: TestClient
    user_store: UserStore
    workspace: WorkspaceStore
    settings: Settings
    users: dict[str, User] = field(default_factory=dict)

    def headers(self, username: str) -> dict[str, str]:
        """Bearer headers carrying a fresh session token for a seeded user."""
        token = self.client.app.state.sessions.create_session(self.users[username])
        return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_env(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv backed by stores unique to the requesting test module.

    follow_redirects=False so browser-flow tests can assert on redirect
    locations.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, workspace_store = _make_test_stores(suffix)
    users = seed_users(user_store)
    settings = make_settings()

    app.router.lifespan_context = _patch_lifespan(settings, user_store, workspace_store)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiEnv(client=client, user_store=user_store, workspace=workspace_store, settings=settings, users=users)

    workspace_store.close()
    user_store.close()


@pytest.fixture(autouse=True)
def _clear_client_cookies(request) -> None:
    """Drop cookies left by a previous test's login so identities never leak between tests."""
    if "api_env" in request.fixturenames:
        request.getfixturevalue("api_env").client.cookies.clear()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """Fresh in-memory UserStore for unit tests (single thread, plain :memory:)."""
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def workspace_store() -> Generator[WorkspaceStore, None, None]:
    store = WorkspaceStore("sqlite:///:memory:")
    yield store
    store.close()
