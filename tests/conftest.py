"""
tests/conftest.py -- Shared test fixtures for Storefront auth tests.

This module provides:
  - FixedClock: a controllable clock injected into TokenCodec and SessionService
  - store / codec / service: unit-level components on a private in-memory DB
  - alice / admin: seeded accounts (client and admin) with known passwords
  - api: ApiHarness wrapping a TestClient on the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient harness because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any api/auth/core import:
get_settings() auto-generates SECRET_KEY in dev mode, and the limiter reads
its enabled flag at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any api/auth/core import (see module docstring).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Account, Role
from auth.passwords import PasswordHasher
from auth.session import SessionService
from auth.store import AccountStore
from auth.tokens import TokenCodec

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
TEST_ISSUER = "storefront-test"
ACCESS_TTL = timedelta(minutes=15)
REFRESH_TTL = timedelta(days=7)

ALICE_PASSWORD = "wonderland"
ADMIN_PASSWORD = "adminpass123"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FixedClock:
    """Callable clock that only moves when told to.

    Starts on a whole second because JWT iat/exp carry second precision.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Component helpers
# ---------------------------------------------------------------------------


def make_account(
    store: AccountStore,
    hasher: PasswordHasher,
    username: str,
    password: str,
    role: Role = Role.client,
    profile_id: str | None = None,
) -> Account:
    """Create an account and return it as read back from the store."""
    account_id = store.create_account(
        Account(
            username=username,
            profile_id=profile_id or f"profile-{username}",
            role=role,
            hashed_password=hasher.hash(password),
        )
    )
    return store.get_by_id(account_id)


def make_service(store: AccountStore, hasher: PasswordHasher, clock=None, leeway_seconds: int = 0) -> SessionService:
    kwargs = {"clock": clock} if clock is not None else {}
    codec = TokenCodec(TEST_SECRET, issuer=TEST_ISSUER, leeway_seconds=leeway_seconds, **kwargs)
    return SessionService(
        store=store,
        codec=codec,
        hasher=hasher,
        access_ttl=ACCESS_TTL,
        refresh_ttl=REFRESH_TTL,
        min_password_length=6,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """bcrypt at the minimum cost factor so tests stay fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def codec(clock: FixedClock) -> TokenCodec:
    return TokenCodec(TEST_SECRET, issuer=TEST_ISSUER, clock=clock)


@pytest.fixture
def service(store: AccountStore, hasher: PasswordHasher, clock: FixedClock) -> SessionService:
    return make_service(store, hasher, clock)


@pytest.fixture
def alice(store: AccountStore, hasher: PasswordHasher) -> Account:
    return make_account(store, hasher, "alice", ALICE_PASSWORD, profile_id="cust-1001")


@pytest.fixture
def admin(store: AccountStore, hasher: PasswordHasher) -> Account:
    return make_account(store, hasher, "admin", ADMIN_PASSWORD, role=Role.admin, profile_id="staff-1")


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, sessions: SessionService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test components into app.state so TestClient routes see
    an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = store
        app.state.sessions = sessions
        yield

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    store: AccountStore
    sessions: SessionService
    alice: Account
    admin: Account

    def login(self, username: str, password: str) -> dict:
        resp = self.client.post("/api/v1/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()

    def token_for(self, username: str, password: str) -> str:
        return self.login(username, password)["accessToken"]

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(hasher: PasswordHasher) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness on the real FastAPI app with a fresh shared-memory DB.

    Function-scoped: most API tests mutate the refresh pair, so each test gets
    its own database. The services use the real clock because requests made
    through TestClient run in real time.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = AccountStore(db_url)
    sessions = make_service(store, hasher)
    alice = make_account(store, hasher, "alice", ALICE_PASSWORD, profile_id="cust-1001")
    admin = make_account(store, hasher, "admin", ADMIN_PASSWORD, role=Role.admin, profile_id="staff-1")

    app.router.lifespan_context = _patch_lifespan(store, sessions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, store=store, sessions=sessions, alice=alice, admin=admin)

    store.close()
