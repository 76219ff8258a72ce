"""
auth/exceptions.py -- Error kinds raised by the auth and policy layers.

Every error carries a machine-readable `code`, the HTTP `status_code` the
request boundary maps it to, and a human-readable `message`. api/main.py
installs one exception handler for AuthError that renders the standard
ErrorResponse envelope from these three attributes, so route handlers simply
let these exceptions propagate.

Token-layer failures are distinct classes (InvalidFormat, InvalidSignature,
Expired, InvalidToken) so callers can choose differentiated messaging.
InvalidCredentials deliberately covers both "unknown user" and "wrong
password" -- the caller cannot tell them apart.

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error the request boundary maps to a fixed status."""

    code = "auth_error"
    status_code = 400
    default_message = "Request could not be authorized."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    """Unknown username or password mismatch (indistinguishable on purpose)."""

    code = "bad_credentials"
    status_code = 401
    default_message = "Invalid username or password."


# ---------------------------------------------------------------------------
# Token errors
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    code = "invalid_token"
    status_code = 401
    default_message = "Invalid token."


class InvalidFormat(TokenError):
    """The token is not three dot-separated segments or a segment is undecodable."""

    code = "invalid_format"
    default_message = "Invalid token format."


class InvalidSignature(TokenError):
    code = "invalid_signature"
    default_message = "Invalid token signature."


class Expired(TokenError):
    code = "token_expired"
    default_message = "Token expired."


class InvalidToken(TokenError):
    """The token is well-formed but refers to nothing we know about.

    Raised when a magic-link token has no persisted record, and when a
    session's username no longer resolves to an active account.
    """


class MissingToken(AuthError):
    code = "missing_token"
    status_code = 400
    default_message = "Token is required."


# ---------------------------------------------------------------------------
# Authorization errors
# ---------------------------------------------------------------------------


class Forbidden(AuthError):
    """Authorization denial. The reason never names resources outside the actor's area."""

    code = "forbidden"
    status_code = 403
    default_message = "Access denied."


class UnknownRole(Forbidden):
    """A role value outside the closed Role enumeration reached the policy layer."""

    code = "unknown_role"

    def __init__(self, role: object) -> None:
        self.role = role
        super().__init__(f"Unknown role: {role!r}")


class NotFound(AuthError):
    """Resource absent, or outside the actor's area (indistinguishable on purpose)."""

    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class PersistenceFailure(AuthError):
    """Storage layer error. The original detail is logged, never returned."""

    code = "internal_error"
    status_code = 500
    default_message = "An unexpected error occurred."
