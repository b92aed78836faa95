"""
tests/conftest.py -- Shared test fixtures for the remember-me service.

This module provides:
  - NOW / clock: a frozen UTC clock so token ages are exact
  - hasher, crypto: fast bcrypt (cost 4) and a fixed crypto context
  - store: in-memory SqlUserStore seeded with the five fixture users
  - make_authenticator: factory for CookieAuthenticator over that store
  - jar: an empty request-scoped CookieJar
  - api_client: TestClient with a patched lifespan and isolated stores

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

DEBUG must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode instead of raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any core/api import (get_settings() is cached).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RESUME_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from auth.cookie_auth import CookieAuthenticator
from auth.cookies import CookieJar
from auth.hashers import BcryptHasher, CryptoContext
from auth.models import User
from auth.store import SqlUserStore

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"

MARIANO_UUID = "e99a6234-22d0-4676-b4e1-4c58b9c937d5"
MARIANO_TOKEN = "a4e4243a-946f-44b4-8250-886c4e068de2"
NATE_UUID = "0c5d6a3e-8f3b-4f0a-9a51-7f1c2b6e4d10"
NATE_TOKEN = "3b7f0e62-1d1b-4a8e-b2c9-5e0b4f7d2a61"
LARRY_UUID = "7a1e4f9c-52b3-4d6e-8c07-9b2d1f3e6a58"
LARRY_TOKEN = "c2d8e5f1-6a4b-4e3c-9d07-1f8b2a5c3e94"

# Fixture users. mariano's token is fresh, nate's is 40 days old, larry is
# inactive. Every password hash is of the plaintext "password".
_USERS = [
    ("mariano", MARIANO_UUID, MARIANO_TOKEN, timedelta(days=1), True, "12345"),
    ("nate", NATE_UUID, NATE_TOKEN, timedelta(days=40), True, "23456"),
    ("larry", LARRY_UUID, LARRY_TOKEN, timedelta(days=1), False, "34567"),
    ("garrett", None, None, None, True, "45678"),
    ("chartjes", None, None, None, True, "56789"),
]


def clock() -> datetime:
    return NOW


def remember_me_options(**overrides) -> dict:
    """Token-style options: uuid + remember_me_token with staleness checking."""
    options = {
        "fields": {"username": "uuid", "password": "remember_me_token"},
        "tokenCreated": "remember_me_token_created",
        "userModel": "users",
        "cookie": {"name": "RememberMe", "expires": "+2 weeks"},
    }
    options.update(overrides)
    return options


def seed_users(store: SqlUserStore, hasher: BcryptHasher) -> None:
    password_hash = hasher.hash("password")
    for name, uuid, token, age, active, legacy_token in _USERS:
        store.create_user(
            User(
                user_name=name,
                email=f"{name}@example.com",
                password=password_hash,
                token=legacy_token,
                uuid=uuid,
                remember_me_token=hasher.hash(token) if token else None,
                remember_me_token_created=NOW - age if age else None,
                created=datetime(2007, 3, 17, 1, 16, 23, tzinfo=timezone.utc),
                updated=datetime(2007, 3, 17, 1, 18, 31, tzinfo=timezone.utc),
                active=active,
            )
        )


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> BcryptHasher:
    # Cost 4 is the bcrypt minimum -- keeps the suite fast.
    return BcryptHasher(rounds=4)


@pytest.fixture
def crypto() -> CryptoContext:
    return CryptoContext(secret_key=TEST_SECRET, salt="")


@pytest.fixture
def store(hasher) -> Generator[SqlUserStore, None, None]:
    s = SqlUserStore("sqlite:///:memory:")
    seed_users(s, hasher)
    yield s
    s.close()


@pytest.fixture
def jar(crypto) -> CookieJar:
    return CookieJar({}, crypto)


@pytest.fixture
def make_authenticator(store, hasher, crypto):
    """Return a factory building a CookieAuthenticator over the seeded store."""

    def _make(options: dict | None = None, **kwargs) -> CookieAuthenticator:
        kwargs.setdefault("clock", clock)
        options = {"passwordHasher": hasher, **(options or {})}
        return CookieAuthenticator.from_options(options, store, crypto, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: SqlUserStore, crypto: CryptoContext, hasher: BcryptHasher):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and a token-style authenticator (frozen clock) into
    app.state so routes never touch the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.crypto = crypto
        app.state.authenticator = CookieAuthenticator.from_options(
            remember_me_options(passwordHasher=hasher), user_store, crypto, clock=clock
        )
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(hasher) -> Generator[tuple[TestClient, CryptoContext], None, None]:
    """Yield (client, crypto) for API integration tests.

    crypto is the context the app encrypts cookies with, so tests can build
    remember-me cookie values the server will accept.
    """
    from api.main import app
    from core.config import get_settings

    user_store = SqlUserStore("sqlite:///file:test_rememberme_api?mode=memory&cache=shared&uri=true")
    seed_users(user_store, hasher)
    crypto = CryptoContext(secret_key=get_settings().secret_key)

    app.router.lifespan_context = _patch_lifespan(user_store, crypto, hasher)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, crypto

    user_store.close()
