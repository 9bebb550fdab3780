"""
tests/conftest.py -- Shared test fixtures for Signon tests.

This module provides:
  - make_user_store(): isolated named shared-memory SQLite UserStore
  - _patch_lifespan(): wires test collaborators into app.state, bypassing real startup
  - google_strategy: a configured GoogleStrategy for route tests
  - app_client: TestClient + store + mocked Authlib client for each test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient and asyncio.to_thread run store calls on worker threads.
Plain :memory: DBs are per-connection and would present a blank schema to
each thread. The named URI shares one in-memory instance across all
connections in the same process.

The DEBUG env var must be set before any core/auth/api import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.google import GoogleStrategy
from auth.store import UserStore
from core.config import Settings

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_user_store() -> UserStore:
    """Create a UserStore on a uniquely named shared-memory SQLite DB."""
    name = f"test_users_{uuid.uuid4().hex}"
    return UserStore(db_url=f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")


def _settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": "test-secret-key-0123456789abcdef0123",  # noqa: S105
        "base_url": "",
        "public_url": "http://testserver",
    }
    values.update(overrides)
    return Settings(**values)


def _patch_lifespan(settings: Settings, user_store: UserStore, oauth, strategy):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.oauth = oauth
        app.state.google_strategy = strategy
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_settings():
    """Return a factory for Settings in dev mode with test URLs, plus overrides."""
    return _settings


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = make_user_store()
    yield store
    store.close()


@pytest.fixture
def google_strategy() -> GoogleStrategy:
    return GoogleStrategy(
        client_id="test-client-id",
        client_secret="test-client-secret",  # noqa: S106
        callback_url="http://testserver/auth/google/callback",
    )


@dataclass
class AppHarness:
    client: TestClient
    user_store: UserStore
    google: MagicMock  # the Authlib client returned by oauth.create_client()

    def set_profile(self, profile: dict) -> None:
        """Make the next callback see this userinfo payload."""
        resp = MagicMock()
        resp.json.return_value = profile
        resp.raise_for_status.return_value = None
        self.google.get = AsyncMock(return_value=resp)


def _build_harness(user_store: UserStore, strategy: GoogleStrategy | None, **settings_overrides):
    google = MagicMock()
    google.authorize_access_token = AsyncMock(return_value={"access_token": "at", "refresh_token": "rt"})
    oauth = MagicMock()
    oauth.create_client.return_value = google
    settings = _settings(**settings_overrides)
    app.router.lifespan_context = _patch_lifespan(settings, user_store, oauth, strategy)
    # The limiter keeps in-memory counters for the whole process.
    limiter.reset()
    return google


@pytest.fixture
def app_client(user_store: UserStore, google_strategy: GoogleStrategy) -> Generator[AppHarness, None, None]:
    """Yield an AppHarness with Google enabled and allowed_domains="example.com".

    follow_redirects=False so tests can assert on redirect locations.
    """
    google = _build_harness(user_store, google_strategy, allowed_domains="example.com")
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield AppHarness(client=client, user_store=user_store, google=google)


@pytest.fixture
def app_client_no_google(user_store: UserStore) -> Generator[AppHarness, None, None]:
    """Yield an AppHarness with no Google strategy configured."""
    google = _build_harness(user_store, None)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield AppHarness(client=client, user_store=user_store, google=google)
