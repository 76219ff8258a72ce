"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two transports are checked in priority order:
  1. Session cookie ("next-auth.session-token") -- set by login / magic link.
  2. Authorization: Bearer <token> header -- API clients holding a session token.

Both carry the same TokenKind.SESSION token and converge on a ClaimSet via
SessionManager.read_session(). A magic-link token presented here fails with
InvalidSignature: the two kinds are signed with different secrets.

try_get_session() is the soft variant (returns None on any failure).
get_current_session() raises HTTP 401 when no token was presented and lets
token-layer errors (InvalidFormat, InvalidSignature, Expired, InvalidToken)
propagate to the AuthError handler in api/main.py, which maps each to 401
with its own error code.

Layer rule: no imports from web/, core/, or workspace/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.exceptions import AuthError
from auth.models import ClaimSet
from auth.sessions import SESSION_COOKIE, SessionManager


def _presented_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_session(request: Request) -> ClaimSet | None:
    """Return the session claims for the request, or None. Never raises AuthError."""
    token = _presented_token(request)
    if token is None:
        return None
    sessions: SessionManager = request.app.state.sessions
    try:
        return sessions.read_session(token)
    except AuthError:
        return None


def get_current_session(request: Request) -> ClaimSet:
    """Require a valid session. Use as a FastAPI dependency:

        @router.get("/protected")
        def route(actor: ClaimSet = Depends(get_current_session)): ...
    """
    token = _presented_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    sessions: SessionManager = request.app.state.sessions
    return sessions.read_session(token)
