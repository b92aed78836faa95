"""
tests/test_api_routes.py -- Integration tests for the remember-me auth routes.

These tests exercise the full stack: FastAPI routing -> SessionMiddleware ->
auth dependency injection -> CookieAuthenticator -> SqlUserStore -> response
model serialization.

Coverage:
  - GET /me: 401 without credentials, 200 from the remember-me cookie, then
    from the session it rebuilt
  - POST /resume: 200 for a fresh token, identical 401 for stale, wrong or
    undecryptable cookies, principal never carries secrets
  - POST /logout: deletes the cookie and the session, idempotent

Fixtures used (from conftest.py):
  - api_client: (client, crypto) -- the app encrypts cookies with crypto
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from auth.cookies import CookieJar
from auth.hashers import CryptoContext
from conftest import MARIANO_TOKEN, MARIANO_UUID, NATE_TOKEN, NATE_UUID

COOKIE = "RememberMe"


def _cookie_value(crypto: CryptoContext, uuid: str, token: str) -> str:
    jar = CookieJar({}, crypto)
    jar.configure(COOKIE, {"expires": "+2 weeks"})
    return jar.encode(COOKIE, {"uuid": uuid, "remember_me_token": token})


@pytest.fixture
def client(api_client) -> Generator[TestClient, None, None]:
    """The shared TestClient with no cookies left over from other tests."""
    client, _ = api_client
    client.cookies.clear()
    yield client
    client.cookies.clear()


@pytest.fixture
def crypto(api_client) -> CryptoContext:
    return api_client[1]


class TestMe:
    def test_unauthenticated(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_cookie_then_session(self, client: TestClient, crypto: CryptoContext) -> None:
        client.cookies.set(COOKIE, _cookie_value(crypto, MARIANO_UUID, MARIANO_TOKEN))

        first = client.get("/api/v1/auth/me")
        assert first.status_code == 200, first.text
        assert first.json()["source"] == "cookie"
        assert first.json()["user"]["user_name"] == "mariano"
        assert first.headers["cache-control"] == "no-store"

        second = client.get("/api/v1/auth/me")
        assert second.status_code == 200
        assert second.json()["source"] == "session"
        assert second.json()["user"]["user_name"] == "mariano"


class TestResume:
    def test_fresh_token(self, client: TestClient, crypto: CryptoContext) -> None:
        client.cookies.set(COOKIE, _cookie_value(crypto, MARIANO_UUID, MARIANO_TOKEN))
        resp = client.post("/api/v1/auth/resume")
        assert resp.status_code == 200, resp.text
        user = resp.json()["user"]
        assert user["uuid"] == MARIANO_UUID
        assert "remember_me_token" not in user
        assert "password" not in user

    @pytest.mark.parametrize(
        "uuid, token",
        [
            (NATE_UUID, NATE_TOKEN),  # stale: 40 days against a 2 week window
            (MARIANO_UUID, NATE_TOKEN),  # wrong token
            ("00000000-0000-0000-0000-000000000000", MARIANO_TOKEN),  # unknown identifier
        ],
    )
    def test_rejected_cookies_share_one_error(self, client, crypto, uuid, token) -> None:
        client.cookies.set(COOKIE, _cookie_value(crypto, uuid, token))
        resp = client.post("/api/v1/auth/resume")
        assert resp.status_code == 401
        assert resp.json() == {
            "error": {"code": "unauthorized", "message": "Remember-me cookie was not accepted."}
        }

    def test_undecryptable_cookie(self, client: TestClient) -> None:
        client.cookies.set(COOKIE, "not-a-real-cookie")
        resp = client.post("/api/v1/auth/resume")
        assert resp.status_code == 401

    def test_no_cookie(self, client: TestClient) -> None:
        assert client.post("/api/v1/auth/resume").status_code == 401


class TestLogout:
    def test_logout_clears_cookie_and_session(self, client: TestClient, crypto: CryptoContext) -> None:
        client.cookies.set(COOKIE, _cookie_value(crypto, MARIANO_UUID, MARIANO_TOKEN))
        assert client.post("/api/v1/auth/resume").status_code == 200

        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        deletions = [h for h in resp.headers.get_list("set-cookie") if h.startswith(f"{COOKIE}=")]
        assert len(deletions) == 1
        assert "max-age=0" in deletions[0].lower()

        # Whatever the client jar kept, the session no longer authenticates.
        client.cookies.delete(COOKIE)
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_logout_twice(self, client: TestClient) -> None:
        assert client.post("/api/v1/auth/logout").status_code == 200
        assert client.post("/api/v1/auth/logout").status_code == 200
