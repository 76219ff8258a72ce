"""
api/routes/v1/auth.py -- Password login and session introspection.

Routes:
  POST /api/v1/auth/login    -- password login; sets session cookie
  POST /api/v1/auth/logout   -- clears the session cookie
  GET  /api/v1/auth/session  -- current session user, or {"user": null}

Security:
  [H2] POST /login is rate-limited per IP.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on responses that carry a session token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, limiter
from api.models import LoginRequest, LoginResponse, SessionResponse, SessionUser
from auth.dependencies import try_get_session
from auth.passwords import authenticate_user
from auth.sessions import SessionManager
from auth.store import UserStore

logger = logging.getLogger("areagate.api.auth")

# Auth policy:
# - POST /api/v1/auth/login:    public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:   public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/session:  public -- reports signed-out state instead of 401
router = APIRouter()


@limiter.limit(LOGIN_LIMIT)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    Wrong username and wrong password both raise InvalidCredentials, which the
    AuthError handler renders as 401 bad_credentials.
    """
    user_store: UserStore = request.app.state.user_store
    sessions: SessionManager = request.app.state.sessions

    user = authenticate_user(user_store, body.username, body.password)
    token = sessions.create_session(user)
    logger.info("Password login for user_id=%s", user.id)

    resp = JSONResponse(
        content=LoginResponse(
            user=SessionUser.from_user(user),
            access_token=token,
            expires_in=sessions.lifetime_seconds,
        ).model_dump(mode="json"),
    )
    sessions.set_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Expire the session cookie. The token itself stays valid until exp."""
    sessions: SessionManager = request.app.state.sessions
    resp = JSONResponse(content={"message": "Logged out."})
    sessions.clear_cookie(resp)
    return resp


@router.get("/auth/session", response_model=SessionResponse)
def session(request: Request) -> SessionResponse:
    """Return the signed-in user, or {"user": null} when there is no valid session."""
    claims = try_get_session(request)
    if claims is None:
        return SessionResponse()
    return SessionResponse(user=SessionUser.from_claims(claims), expires_at=claims.exp)
