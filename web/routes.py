"""
web/routes.py -- Browser redirect flows for the console frontend.

These routes never render HTML. They set or clear the session cookie and
redirect the browser back to the frontend, reporting failures through a fixed
?error= code that the frontend login page maps to a message.

Routes:
  POST     /login    -- username/password form; redirect to frontend / or /login?error=
  GET|POST /logout   -- clear cookie, redirect to frontend /login
  GET      /verify   -- redeem ?token= magic link, set cookie, redirect to frontend /

They share app.state with the API routes (same stores, same SessionManager)
and are mounted by asgi.py.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from auth.exceptions import (
    AuthError,
    Expired,
    InvalidCredentials,
    InvalidFormat,
    InvalidSignature,
    InvalidToken,
    MissingToken,
)
from auth.magic_links import MagicLinkManager
from auth.passwords import authenticate_user
from auth.sessions import SessionManager
from auth.store import UserStore

logger = logging.getLogger("areagate.web")

router = APIRouter()

# ---------------------------------------------------------------------------
# Redirect helpers
# ---------------------------------------------------------------------------

# Whitelist of ?error= codes the frontend knows [M3]. Exception text is never
# put in a redirect URL -- only one of these codes.
ERROR_CODES: frozenset[str] = frozenset(
    {
        "missing_token",
        "invalid_token",
        "token_expired",
        "invalid_signature",
        "invalid_credentials",
        "missing_credentials",
        "invalid_form",
        "session_failed",
    }
)

# Most specific class first: isinstance() picks the first match.
_TOKEN_ERROR_CODES: tuple[tuple[type[AuthError], str], ...] = (
    (MissingToken, "missing_token"),
    (Expired, "token_expired"),
    (InvalidSignature, "invalid_signature"),
    (InvalidFormat, "invalid_token"),
    (InvalidToken, "invalid_token"),
)


def _frontend(request: Request, path: str) -> str:
    return request.app.state.settings.frontend_url.rstrip("/") + path


def _login_error(request: Request, code: str) -> RedirectResponse:
    if code not in ERROR_CODES:
        code = "session_failed"
    return RedirectResponse(_frontend(request, "/login?" + urlencode({"error": code})), status_code=302)


def _error_code_for(exc: AuthError) -> str:
    for cls, code in _TOKEN_ERROR_CODES:
        if isinstance(exc, cls):
            return code
    return "session_failed"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/login")
def login_post(
    request: Request,
    username: Optional[str] = Form(default=None),
    password: Optional[str] = Form(default=None),
) -> RedirectResponse:
    """Handle the username/password login form submission."""
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        return _login_error(request, "invalid_form")
    if not username or not username.strip() or not password:
        return _login_error(request, "missing_credentials")

    user_store: UserStore = request.app.state.user_store
    sessions: SessionManager = request.app.state.sessions
    try:
        user = authenticate_user(user_store, username.strip(), password)  # [C1] timing equalization
    except InvalidCredentials:
        return _login_error(request, "invalid_credentials")

    try:
        token = sessions.create_session(user)
    except (AuthError, ValueError):
        logger.exception("Could not issue a session for user_id=%s", user.id)
        return _login_error(request, "session_failed")

    resp = RedirectResponse(_frontend(request, "/"), status_code=302)
    sessions.set_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request) -> RedirectResponse:
    """Clear the session cookie and send the browser to the login page."""
    sessions: SessionManager = request.app.state.sessions
    resp = RedirectResponse(_frontend(request, "/login"), status_code=302)
    sessions.clear_cookie(resp)
    return resp


@router.get("/verify")
def verify(request: Request, token: Optional[str] = None) -> RedirectResponse:
    """Redeem a magic link from an e-mailed URL and start a browser session."""
    links: MagicLinkManager = request.app.state.magic_links
    sessions: SessionManager = request.app.state.sessions
    try:
        claims, session_token = links.redeem_to_session(token)
    except SQLAlchemyError:
        logger.exception("Magic-link redemption failed in storage")
        return _login_error(request, "session_failed")
    except AuthError as exc:
        logger.info("Magic-link redemption rejected: %s", exc.code)
        return _login_error(request, _error_code_for(exc))

    logger.info("Magic-link browser login for user_id=%s", claims.id)
    resp = RedirectResponse(_frontend(request, "/"), status_code=302)
    sessions.set_cookie(resp, session_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
