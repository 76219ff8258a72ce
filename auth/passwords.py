"""
auth/passwords.py -- Password hashing and credential verification.

Passwords: bcrypt used directly (no passlib wrapper). bcrypt's cost factor
makes brute-force of low-entropy secrets expensive. The hash is computed once
when a user is created or their password changes; verification never tries to
invert it.

The _DUMMY_HASH constant enables timing equalization in authenticate_user()
so response time does not reveal whether a username exists [C1].

No plaintext password is ever logged, stored, or echoed back.

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from auth.exceptions import InvalidCredentials

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("areagate.auth")

_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    # bcrypt only uses the first 72 bytes and newer releases reject longer input.
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(stored_hash: str, password: str) -> bool:
    """Return True if the presented password matches the stored bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(password), stored_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash (e.g. a row written by hand). Treat as mismatch.
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("areagate_timing_dummy")


def authenticate_user(store: UserStore, username: str, password: str) -> User:
    """Return the active user for a username/password pair or raise InvalidCredentials.

    Always runs bcrypt whether or not the user exists [C1]:
    - Unknown or deactivated username: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash
    Both failures raise the same InvalidCredentials.
    """
    user = store.get_by_username(username)
    if user is None or not user.is_active or not user.hashed_password:
        verify_password(_DUMMY_HASH, password)
        raise InvalidCredentials()
    if not verify_password(user.hashed_password, password):
        raise InvalidCredentials()
    return user
