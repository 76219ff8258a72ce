"""
auth/magic_links.py -- Long-lived, persisted, first-use-tracked login tokens.

A magic link separates "prove identity once" (generate, e.g. by an admin or by
the user with their password) from "redeem it later" (any time before
expiry). Tokens are TokenKind.MAGIC_LINK tokens, signed with a different
secret than sessions, so a leaked link can never be presented as a session
cookie and a session cookie can never be redeemed as a link.

Redemption pipeline (short-circuits on the first failure, in this order):
  1. empty token                           -> MissingToken
  2. no persisted record for the string    -> InvalidToken
  3. persisted expires_at in the past      -> Expired
  4. signature check with the link secret  -> InvalidSignature
Then first use is stamped (is_used, used_at) if not already set.

Redemption is tracked, not blocking: a second redemption of the same token
still succeeds and returns the same claims. used_at is telemetry, not an
enforcement gate. The check-then-set on is_used is not transactional; two
concurrent first redemptions both succeed and the store keeps whichever
used_at lands first.

Every successful redemption issues a brand new session token via the
SessionManager. The link token itself is never used as a session.

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

from auth.codec import TokenCodec, TokenKind
from auth.exceptions import (
    Expired,
    InvalidFormat,
    InvalidSignature,
    InvalidToken,
    MissingToken,
    PersistenceFailure,
)
from auth.models import ClaimSet, MagicLinkToken, User

if TYPE_CHECKING:
    from auth.sessions import SessionManager
    from auth.store import UserStore

logger = logging.getLogger("areagate.auth.magic_links")


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _parse_iso(value: str) -> datetime:
    """Parse a stored ISO 8601 timestamp; naive values are treated as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MagicLinkManager:
    """Generate and redeem magic-link tokens.

    Usage:
        links = MagicLinkManager(codec, store, sessions, lifetime_seconds=..., backend_url=...)
        token, record = links.generate(user)
        url = links.login_link(token)
        claims, session_token = links.redeem_to_session(token)
    """

    def __init__(
        self,
        codec: TokenCodec,
        store: UserStore,
        sessions: SessionManager,
        lifetime_seconds: int,
        backend_url: str,
    ) -> None:
        self._codec = codec
        self._store = store
        self._sessions = sessions
        self.lifetime_seconds = lifetime_seconds
        self.backend_url = backend_url.rstrip("/")

    def generate(self, user: User, now: int | None = None) -> tuple[str, MagicLinkToken]:
        """Sign and persist a new magic-link token for a user.

        Raises PersistenceFailure if the record cannot be stored; a token that
        is not persisted could never be redeemed, so it is not returned.
        """
        issued_at = int(time.time()) if now is None else now
        expires_at = issued_at + self.lifetime_seconds
        claims = ClaimSet.from_user(user, issued_at, expires_at)
        payload = claims.to_payload()
        # Links minted for one user within the same second would otherwise be identical.
        payload["jti"] = secrets.token_hex(8)
        token = self._codec.encode(TokenKind.MAGIC_LINK, payload)
        record = MagicLinkToken(
            token=token,
            user_id=user.id,
            username=user.username,
            group_id=user.group_id,
            area_name=user.area_name,
            role=user.role,
            expires_at=_iso(expires_at),
            created_at=_iso(issued_at),
        )
        try:
            record.id = self._store.create_magic_link(record)
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist magic-link token for user_id=%s", user.id)
            raise PersistenceFailure() from exc
        logger.info("Magic-link token generated for user_id=%s (expires %s)", user.id, record.expires_at)
        return token, record

    def login_link(self, token: str) -> str:
        """Return the browser URL that redeems a token and starts a session."""
        return f"{self.backend_url}/verify?token={quote(token, safe='')}"

    def redeem(self, token: str | None, now: float | None = None) -> ClaimSet:
        """Verify a magic-link token and stamp its first use.

        Returns the claims encoded in the token; every redemption of the same
        token returns the same claims.
        """
        if not token:
            raise MissingToken()

        record = self._store.get_magic_link(token)
        if record is None:
            raise InvalidToken()

        current = time.time() if now is None else now
        if datetime.fromtimestamp(current, tz=timezone.utc) > _parse_iso(record.expires_at):
            raise Expired()

        try:
            payload = self._codec.decode(TokenKind.MAGIC_LINK, token, now=current)
        except InvalidFormat as exc:
            # InvalidFormat on a string we persisted ourselves means it was
            # tampered with in storage; report it as a signature failure.
            raise InvalidSignature() from exc
        claims = ClaimSet.from_payload(payload)

        if not record.is_used:
            try:
                first = self._store.mark_magic_link_used(record.id, _iso(current))
            except SQLAlchemyError as exc:
                logger.exception("Failed to stamp first use of magic-link id=%s", record.id)
                raise PersistenceFailure() from exc
            if first:
                logger.info("Magic-link id=%s redeemed for the first time by user_id=%s", record.id, record.user_id)
        else:
            logger.info("Magic-link id=%s redeemed again (first used %s)", record.id, record.used_at)
        return claims

    def redeem_to_session(self, token: str | None, now: float | None = None) -> tuple[ClaimSet, str]:
        """Redeem a token and issue a new session token for the same identity."""
        claims = self.redeem(token, now=now)
        session_now = int(time.time()) if now is None else int(now)
        return claims, self._sessions.create_session(claims, now=session_now)
