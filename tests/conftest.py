"""
tests/conftest.py -- Shared test fixtures for FitZone auth tests.

This module provides:
  - store:        fresh in-memory CredentialStore per test (unit tests)
  - clock:        controllable UTC clock for expiry tests
  - add_user:     inserts a user with a real bcrypt hash into `store`
  - api_client:   module-scoped TestClient wired to isolated stores
  - client:       per-test view of api_client with an empty cookie jar

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
HTTP tests because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

The TestClient base_url is https:// because session and remember cookies are
Secure -- the cookie jar would never send them back over plain http.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.models import Role, User
from auth.sessions import MemorySessionStore
from auth.store import CredentialStore
from auth.tokens import hash_password

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock returning a fixed UTC instant until advanced."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_user(
    store: CredentialStore,
    email: str,
    password: str = "hunter2",
    role: Role = Role.customer,
    status: str = "active",
    name: str = "Test User",
) -> int:
    return store.create_user(
        User(name=name, email=email, role=role, hashed_password=hash_password(password), status=status)
    )


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def add_user(store):
    """Insert a user into the per-test store: add_user(email, **make_user kwargs) -> id."""

    def _add(email: str, **kwargs) -> int:
        return make_user(store, email, **kwargs)

    return _add


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, session_store: MemorySessionStore):
    """Return a lifespan that wires the given test stores instead of real ones."""

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, store, session_store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, CredentialStore, dict[str, int]], None, None]:
    """Yield (client, store, user_ids) for HTTP integration tests.

    Seeded accounts (password "hunter2"):
      customer  a@x.com
      staff     s@x.com
      admin     admin@x.com
      suspended b@x.com (customer)

    The DB name includes the test module so modules never share state.
    """
    db_name = f"test_auth_{request.module.__name__.rsplit('.', 1)[-1]}"
    store = CredentialStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    user_ids = {
        "customer": make_user(store, "a@x.com", name="Ann Customer"),
        "staff": make_user(store, "s@x.com", role=Role.staff, name="Sam Staff"),
        "admin": make_user(store, "admin@x.com", role=Role.admin, name="Ada Admin"),
        "suspended": make_user(store, "b@x.com", status="suspended", name="Bob Suspended"),
    }
    session_store = MemorySessionStore(ttl_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(store, session_store)

    with TestClient(app, base_url="https://testserver", raise_server_exceptions=True) as client:
        yield client, store, user_ids

    store.close()


@pytest.fixture
def client(api_client) -> TestClient:
    """The shared TestClient with cookies cleared, so each test starts anonymous."""
    test_client, _, _ = api_client
    test_client.cookies.clear()
    return test_client
