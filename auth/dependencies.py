"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two sources are checked in priority order:
  1. The server-side session (Starlette SessionMiddleware) -- already
     authenticated earlier in this browser session.
  2. The remember-me cookie -- CookieAuthenticator rebuilds the session from
     it and writes the principal back into the session.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

The authenticator, crypto context and user store live on app.state (wired in
api/main.py lifespan). The request's CookieJar is kept on request.state so a
route can flush queued cookie changes onto its response.

Layer rule: auth/dependencies.py may import from fastapi (for
HTTPException/Request) because this module is part of the FastAPI dependency
injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.cookie_auth import CookieAuthenticator
from auth.cookies import CookieJar
from auth.models import Principal
from auth.session import StarletteSession


def get_cookie_jar(request: Request) -> CookieJar:
    """Return the request-scoped CookieJar, creating it on first use."""
    jar = getattr(request.state, "cookie_jar", None)
    if jar is None:
        jar = CookieJar(request.cookies, request.app.state.crypto)
        request.state.cookie_jar = jar
    return jar


def get_session(request: Request) -> StarletteSession:
    return StarletteSession(request.session)


def session_user(request: Request) -> Principal | None:
    """Return the principal already stored in the session, if any."""
    authenticator: CookieAuthenticator = request.app.state.authenticator
    user = get_session(request).read(authenticator.config.session_key)
    return user if isinstance(user, dict) and user else None


def try_get_current_user(request: Request) -> Principal | None:
    """Return the current principal from the session or the remember-me cookie.

    Never raises for authentication failures -- callers that need a hard
    401 should use get_current_user(). ConfigurationError still propagates:
    a mis-wired authenticator is a server fault, not an anonymous request.
    """
    user = session_user(request)
    if user is not None:
        request.state.auth_source = "session"
        return user
    authenticator: CookieAuthenticator = request.app.state.authenticator
    user = authenticator.authenticate(get_cookie_jar(request), get_session(request))
    request.state.auth_source = "cookie" if user is not None else None
    return user


def get_current_user(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: Principal = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
