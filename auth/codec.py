"""
auth/codec.py -- Compact signed token construction and verification.

Tokens are standard HS256 JWTs built with python-jose:

    base64url(header) "." base64url(payload) "." base64url(signature)

  - header is {"alg":"HS256","typ":"JWT"}.
  - payload is the flat claim dict (see REQUIRED_CLAIMS).
  - signature is HMAC-SHA256 over "<header-b64>.<payload-b64>".

The module has no knowledge of users or roles: encode() takes a dict and a
secret, decode() returns a dict. auth/models.ClaimSet maps between that dict
and the domain. encode/decode are the only seam; nothing else in the project
imports jose.

Two token kinds exist by policy: browser session tokens and magic-link
tokens. TokenCodec resolves the secret from the TokenKind tag so callers never
pick a secret by hand, which would make cross-use possible.

Decode failure order:
  1. InvalidFormat    -- not exactly three segments, bad header, alg != HS256
  2. InvalidSignature -- signature does not verify with the expected secret
  3. InvalidFormat    -- payload is not a JSON object or has no numeric exp
  4. Expired          -- exp earlier than decode time

Expiry is checked here rather than by jose so fractional timestamps and an
injected decode time behave exactly: exp == now is still valid.

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any

from jose import JWSError, jws, jwt

from auth.exceptions import Expired, InvalidFormat, InvalidSignature

ALGORITHM = "HS256"

REQUIRED_CLAIMS: tuple[str, ...] = ("sub", "id", "username", "groupId", "areaName", "role", "iat", "exp")


class TokenKind(str, Enum):
    SESSION = "session"
    MAGIC_LINK = "magic_link"


# ---------------------------------------------------------------------------
# encode / decode
# ---------------------------------------------------------------------------


def encode(claims: dict[str, Any], secret: str) -> str:
    """Sign a claim dict and return the compact token string.

    Every key in REQUIRED_CLAIMS must be present. A missing claim is a
    programming error on the issuing side, so it raises ValueError rather
    than a token-layer error.
    """
    missing = [k for k in REQUIRED_CLAIMS if k not in claims]
    if missing:
        raise ValueError(f"Cannot encode token without claims: {', '.join(missing)}")
    if not secret:
        raise ValueError("Cannot sign a token with an empty secret.")
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def _load_payload(raw: bytes) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise InvalidFormat("Token payload is not valid JSON.") from exc
    if not isinstance(value, dict):
        raise InvalidFormat("Token payload is not a JSON object.")
    return value


def decode(token: str, secret: str, now: float | None = None) -> dict[str, Any]:
    """Verify a compact token and return its payload dict.

    Args:
        token:  The compact token string.
        secret: The secret the token is expected to be signed with.
        now:    Decode time as a UNIX timestamp. Defaults to time.time();
                tests pass a fixed value to probe the expiry boundary.

    Timestamps are left exactly as JSON decoding produced them (int or float).
    """
    parts = token.split(".") if isinstance(token, str) else []
    if len(parts) != 3 or not all(parts):
        raise InvalidFormat()

    # Every segment is decoded here, so jws.verify below can only fail on the signature.
    try:
        header = jws.get_unverified_header(token)
        jws.get_unverified_claims(token)
    except JWSError as exc:
        raise InvalidFormat("Token segments are not valid.") from exc
    if header.get("alg") != ALGORITHM:
        raise InvalidFormat("Unsupported token algorithm.")

    try:
        raw_payload = jws.verify(token, secret, algorithms=[ALGORITHM])
    except JWSError as exc:
        raise InvalidSignature() from exc

    payload = _load_payload(raw_payload)
    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise InvalidFormat("Token has no numeric exp claim.")

    current = time.time() if now is None else now
    if current > exp:
        raise Expired()
    return payload


class TokenCodec:
    """encode/decode with the secret chosen by token kind, never by the caller.

    Usage:
        codec = TokenCodec(session_secret=s1, magic_link_secret=s2)
        token = codec.encode(TokenKind.SESSION, claims.to_payload())
        payload = codec.decode(TokenKind.SESSION, token)
    """

    def __init__(self, session_secret: str, magic_link_secret: str) -> None:
        if not session_secret or not magic_link_secret:
            raise ValueError("Both token secrets are required.")
        if session_secret == magic_link_secret:
            raise ValueError("Session and magic-link secrets must differ.")
        self._secrets: dict[TokenKind, str] = {
            TokenKind.SESSION: session_secret,
            TokenKind.MAGIC_LINK: magic_link_secret,
        }

    def encode(self, kind: TokenKind, claims: dict[str, Any]) -> str:
        return encode(claims, self._secrets[kind])

    def decode(self, kind: TokenKind, token: str, now: float | None = None) -> dict[str, Any]:
        return decode(token, self._secrets[kind], now=now)
