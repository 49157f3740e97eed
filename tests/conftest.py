"""
tests/conftest.py -- Shared test fixtures for gatekey.

This module provides:
  - clock:      a controllable time source injected into issuers/authenticators
  - store:      an isolated shared-memory SQLite UserStore
  - auth:       an Auth facade over that store with a fixed test key
  - api_client: TestClient over create_app() wired to the same store and clock

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
Each store gets a unique name so tests never share rows.

The DEBUG env var must be set before any gatekey import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator

# CRITICAL: Set DEBUG before any gatekey import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.service import Auth, AuthConfig
from auth.store import UserStore
from core.config import Settings, get_settings

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"
TEST_ISSUER = "gatekey-tests"
# 2023-11-14T22:13:20Z -- any fixed instant works; tokens are checked against this clock.
EPOCH = 1_700_000_000


class FakeClock:
    """Callable time source. Call advance() to move time forward."""

    def __init__(self, now: float = EPOCH) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore(f"sqlite:///file:test_users_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield s
    s.close()


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(secret_key=TEST_SECRET, issuer=TEST_ISSUER)


@pytest.fixture
def auth(auth_config: AuthConfig, store: UserStore, clock: FakeClock) -> Auth:
    return Auth(auth_config, database=store, clock=clock)


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Generator[None, None, None]:
    """Clear slowapi counters so login-heavy tests never trip each other's limits."""
    limiter.reset()
    yield
    limiter.reset()
    get_settings.cache_clear()


@pytest.fixture
def api_client(store: UserStore, clock: FakeClock) -> Generator[TestClient, None, None]:
    """Yield a TestClient over a fresh app wired to the test store and clock.

    The store is passed in as the embedding application's UserDatabase, so
    the lifespan does not open (or close) a database of its own.
    """
    settings = Settings(debug=True, secret_key=TEST_SECRET, token_issuer=TEST_ISSUER, token_expire_seconds=3600)
    app = create_app(settings=settings, database=store, clock=clock)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
