"""
tests/conftest.py -- Shared test fixtures for the account service.

This module provides:
  - make_store(): isolated named shared-memory SQLite AccountStore
  - FakeClock: manually advanced clock for token expiry tests
  - hasher / tokens / service: low-cost real collaborators for unit tests
  - api_client: TestClient with patched lifespan and admin + user tokens

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because the service runs store calls on worker threads (asyncio.to_thread)
and TestClient runs the app on its own thread. Plain :memory: DBs are
per-connection and would present a blank schema to each thread. Each store
gets a unique name so tests never share state.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from accounts.images import DirectoryImageStore
from accounts.service import AccountService
from accounts.store import AccountStore
from api.main import app
from auth.models import Role
from auth.passwords import PasswordHasher
from auth.tokens import TokenService

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars-long"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_store() -> AccountStore:
    """Return an AccountStore on a fresh, uniquely named shared-memory database."""
    return AccountStore(f"sqlite:///file:test_accounts_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


class FakeClock:
    """Callable clock returning a settable epoch time in seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def run(coro):
    """Drive one service coroutine to completion from a sync test."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> Generator[PasswordHasher, None, None]:
    """bcrypt at the minimum cost factor so the suite stays fast."""
    h = PasswordHasher(rounds=4, max_workers=2)
    yield h
    h.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tokens(clock: FakeClock) -> TokenService:
    return TokenService(TEST_SECRET, key_id="test", ttl_seconds=60, clock=clock)


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture
def service(store: AccountStore, hasher: PasswordHasher, tokens: TokenService) -> AccountService:
    return AccountService(store, hasher, tokens)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    service: AccountService
    admin_id: int
    admin_token: str
    user_id: int
    user_token: str

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(store: AccountStore, service: AccountService, images: DirectoryImageStore):
    """Return a lifespan that wires pre-built test components into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.token_service = service.tokens
        app.state.account_service = service
        app.state.image_store = images
        app.state.max_image_bytes = 1024
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory, hasher: PasswordHasher) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with one ADMIN and one USER account already logged in.

    Tokens are issued with the real clock and a one-hour TTL.
    """
    store = make_store()
    tokens = TokenService(TEST_SECRET, key_id="test", ttl_seconds=3600)
    service = AccountService(store, hasher, tokens)
    images = DirectoryImageStore(tmp_path_factory.mktemp("profileimages"))

    admin = run(service.register("Admin", "admin", "admin@example.com", "adminpass123"))
    store.update(admin.id, role=Role.ADMIN)
    user = run(service.register("User", "user", "user@example.com", "userpass123"))

    app.router.lifespan_context = _patch_lifespan(store, service, images)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            service=service,
            admin_id=admin.id,
            admin_token=tokens.issue(admin.id, Role.ADMIN),
            user_id=user.id,
            user_token=tokens.issue(user.id, Role.USER),
        )

    store.close()
