"""
auth/sessions.py -- Browser session tokens and their cookie transport.

A session token is a TokenKind.SESSION token carrying a ClaimSet snapshot of
the user. Sessions are stateless: nothing is stored server-side, so a session
cannot be revoked before its natural expiry. Logout only tells the browser to
drop the cookie.

read_session() is the one place where staleness is caught proactively: after
the signature and expiry checks it confirms that the username still resolves
to an active account. Role and group changes are NOT re-read -- the claims are
authoritative until the token expires.

Cookie attributes (shared with the frontend session reader):
  name      next-auth.session-token
  httponly  True   -- JS cannot read the cookie (XSS mitigation)
  samesite  lax    -- not sent on cross-site POST (CSRF mitigation)
  path      /
  max_age   session lifetime; -1 on logout for immediate expiry
  secure    from Settings.secure_cookies (true in production)

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from auth.codec import TokenCodec, TokenKind
from auth.exceptions import InvalidToken, MissingToken
from auth.models import ClaimSet, User

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("areagate.auth.sessions")

SESSION_COOKIE = "next-auth.session-token"


class SessionManager:
    """Issue and read browser session tokens.

    Usage:
        sessions = SessionManager(codec, user_store, lifetime_seconds=3600)
        token = sessions.create_session(user)
        sessions.set_cookie(response, token)
        claims = sessions.read_session(request.cookies.get(SESSION_COOKIE))
    """

    def __init__(
        self,
        codec: TokenCodec,
        store: UserStore,
        lifetime_seconds: int,
        secure_cookies: bool = False,
    ) -> None:
        self._codec = codec
        self._store = store
        self.lifetime_seconds = lifetime_seconds
        self.secure_cookies = secure_cookies

    def create_session(self, identity: User | ClaimSet, now: int | None = None) -> str:
        """Sign a fresh session token for a user or an already-verified claim set.

        A ClaimSet identity (from a redeemed magic link) keeps its identity
        fields but always gets new iat/exp from the session lifetime.
        """
        issued_at = int(time.time()) if now is None else now
        expires_at = issued_at + self.lifetime_seconds
        if isinstance(identity, User):
            claims = ClaimSet.from_user(identity, issued_at, expires_at)
        else:
            claims = ClaimSet.for_identity(
                identity.user_id,
                identity.username,
                identity.group_id,
                identity.area_name,
                identity.role,
                issued_at,
                expires_at,
            )
        return self._codec.encode(TokenKind.SESSION, claims.to_payload())

    def read_session(self, cookie_value: str | None, now: float | None = None) -> ClaimSet:
        """Return the claims of a valid session token.

        Raises:
            MissingToken:     no cookie value.
            InvalidFormat / InvalidSignature / Expired: from the codec.
            InvalidToken:     the account was deleted or renamed since issuance.
        """
        if not cookie_value:
            raise MissingToken("Session cookie is missing.")
        claims = ClaimSet.from_payload(self._codec.decode(TokenKind.SESSION, cookie_value, now=now))
        if self._store.get_active_by_username(claims.username) is None:
            logger.info("Rejected session for missing or inactive account (user_id=%s)", claims.id)
            raise InvalidToken("Session account no longer exists.")
        return claims

    # ------------------------------------------------------------------
    # Cookie transport
    # ------------------------------------------------------------------

    def set_cookie(self, response, token: str) -> None:
        """Write the session token as an httpOnly cookie on a Starlette response."""
        response.set_cookie(
            SESSION_COOKIE,
            value=token,
            max_age=self.lifetime_seconds,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
        )

    def clear_cookie(self, response) -> None:
        """Expire the session cookie immediately (logout)."""
        response.set_cookie(
            SESSION_COOKIE,
            value="",
            max_age=-1,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
        )
