"""
api/routes/v1/auth.py -- Remember-me authentication endpoints.

Routes:
  GET  /api/v1/auth/me      -- current principal (session, else remember-me cookie)
  POST /api/v1/auth/resume  -- rebuild the session from the remember-me cookie
  POST /api/v1/auth/logout  -- fire the Auth.logout event, clear session and cookie

Security:
  [H2] POST /resume is rate-limited per IP (Settings.resume_rate_limit). Each
       call is a guess at a (identifier, token) pair, so it gets the same
       brute-force treatment as a password login.
  [C1] All authentication failures produce the same 401 body. Which check
       failed is only visible in DEBUG logs.
  [M5] Cache-Control: no-store on responses that carry a principal.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import MessageResponse, PrincipalResponse
from auth.cookie_auth import CookieAuthenticator
from auth.dependencies import get_cookie_jar, get_current_user, get_session, session_user
from auth.models import Principal
from core.config import get_settings

logger = logging.getLogger("rememberme.api.auth")

# Auth policy:
# - GET  /api/v1/auth/me:      requires auth (get_current_user)
# - POST /api/v1/auth/resume:  public -- the cookie is the credential
# - POST /api/v1/auth/logout:  public -- clearing a cookie needs no prior auth
router = APIRouter()


def _resume_rate_limit() -> str:
    return get_settings().resume_rate_limit


def _principal_response(user: Principal, source: str) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=PrincipalResponse(user=jsonable_encoder(user), source=source).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/me", response_model=PrincipalResponse)
def me(request: Request, current_user: Principal = Depends(get_current_user)) -> JSONResponse:
    """Return the principal for the current request.

    get_current_user() may have rebuilt the session from the remember-me
    cookie; either way the session holds the principal afterwards.
    """
    return _principal_response(current_user, request.state.auth_source)


@limiter.limit(_resume_rate_limit)  # [H2] must be ABOVE @router, as with every limited route
@router.post("/auth/resume", response_model=PrincipalResponse)
def resume(request: Request) -> JSONResponse:
    """Authenticate from the remember-me cookie even if a session already exists.

    Returns 401 with a generic error for every failure mode [C1].
    """
    authenticator: CookieAuthenticator = request.app.state.authenticator
    user = authenticator.authenticate(get_cookie_jar(request), get_session(request))
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Remember-me cookie was not accepted."},
        )
    if authenticator.needs_password_rehash():
        logger.info("Remember-me hash for user id %s uses outdated parameters", user.get("id"))
    return _principal_response(user, "cookie")


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """End the session and delete the remember-me cookie.

    The authenticator's Auth.logout handler deletes the cookie; this route
    clears the session key and flushes the deletion onto the response.
    Idempotent: logging out twice is not an error.
    """
    authenticator: CookieAuthenticator = request.app.state.authenticator
    jar = get_cookie_jar(request)
    user = session_user(request)

    handler = authenticator.implemented_events().get("Auth.logout")
    if handler is not None:
        handler(jar, user)
    get_session(request).delete(authenticator.config.session_key)

    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    jar.apply(resp)
    return resp
