"""
api/routes/v1/tokens.py -- Magic-link generation and redemption.

Routes:
  POST /api/v1/tokens/generation  -- username + password -> magic-link token
  POST /api/v1/tokens/verify      -- redeem a token (JSON body or ?token=); sets session cookie

Both endpoints are public and rate-limited. Generation goes through
authenticate_user() [C1] so an unknown username and a wrong password are
indistinguishable. Redemption error order is fixed by MagicLinkManager.redeem():
MissingToken (400), InvalidToken, Expired, InvalidSignature (401).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, TOKEN_LIMIT, limiter
from api.models import LoginRequest, LoginResponse, MagicLinkResponse, SessionUser, TokenVerifyRequest
from auth.magic_links import MagicLinkManager
from auth.passwords import authenticate_user
from auth.sessions import SessionManager
from auth.store import UserStore

logger = logging.getLogger("areagate.api.tokens")

router = APIRouter()


@limiter.limit(LOGIN_LIMIT)
@router.post("/tokens/generation", response_model=MagicLinkResponse)
def generate_token(request: Request, body: LoginRequest) -> JSONResponse:
    """Mint a magic-link token for the holder of a username/password pair."""
    user_store: UserStore = request.app.state.user_store
    links: MagicLinkManager = request.app.state.magic_links

    user = authenticate_user(user_store, body.username, body.password)
    token, record = links.generate(user)
    resp = JSONResponse(
        content=MagicLinkResponse(
            token=token,
            login_link=links.login_link(token),
            user_id=user.id,
            expires_at=record.expires_at,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@limiter.limit(TOKEN_LIMIT)
@router.post("/tokens/verify", response_model=LoginResponse)
def verify_token(
    request: Request,
    body: Optional[TokenVerifyRequest] = None,
    token: Optional[str] = Query(default=None, max_length=4096),
) -> JSONResponse:
    """Redeem a magic-link token and start a fresh session.

    The query parameter wins when both transports carry a token. A token may
    be redeemed any number of times before it expires; only the first use is
    stamped.
    """
    links: MagicLinkManager = request.app.state.magic_links
    sessions: SessionManager = request.app.state.sessions

    presented = token or (body.token if body is not None else None)
    claims, session_token = links.redeem_to_session(presented)
    logger.info("Magic-link login for user_id=%s", claims.id)

    resp = JSONResponse(
        content=LoginResponse(
            user=SessionUser.from_claims(claims),
            access_token=session_token,
            expires_in=sessions.lifetime_seconds,
        ).model_dump(mode="json"),
    )
    sessions.set_cookie(resp, session_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
