"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
managers do the work; these classes own the domain shape.

ClaimSet is the one exception that carries a little behaviour: it is the
bridge between the domain (snake_case, typed) and the wire payload inside a
token (camelCase keys shared with the frontend session reader). Keeping the
key mapping here means the codec stays ignorant of users and roles.

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from auth.exceptions import InvalidFormat, UnknownRole


class Role(str, Enum):
    """Closed set of console roles, ranked by decreasing privilege."""

    ADMIN = "admin"
    AREA_ADMIN = "Area Admin"
    BASIC_USER = "Basic User"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Return the Role for a raw value or raise UnknownRole.

        Role strings arrive from token payloads and DB rows; an unexpected
        value must never fall through to some default branch.
        """
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownRole(value) from None

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def outranks(self, other: "Role") -> bool:
        return self.rank > other.rank


_ROLE_RANK: dict[Role, int] = {
    Role.ADMIN: 3,
    Role.AREA_ADMIN: 2,
    Role.BASIC_USER: 1,
}


@dataclass
class User:
    """A console operator belonging to exactly one group (area).

    hashed_password is a bcrypt hash; plaintext never reaches this class.
    is_active = False is a soft delete: the row (and its username) stays so
    that magic-link and audit rows referencing it remain meaningful.
    """

    username: str
    role: Role
    group_id: int
    area_name: str
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    is_active: bool = True


# Exact payload keys, shared with the frontend session-reading convention.
CLAIM_KEYS: tuple[str, ...] = ("sub", "id", "username", "groupId", "areaName", "role", "iat", "exp")


@dataclass(frozen=True)
class ClaimSet:
    """Identity snapshot embedded in every issued token.

    The snapshot can go stale if the underlying user's role or group changes
    before the token expires. That window is bounded by the token lifetime.
    """

    sub: str
    id: str
    username: str
    group_id: int
    area_name: str
    role: Role
    iat: int
    exp: int

    @classmethod
    def for_identity(
        cls,
        user_id: int,
        username: str,
        group_id: int,
        area_name: str,
        role: Role | str,
        issued_at: int,
        expires_at: int,
    ) -> "ClaimSet":
        return cls(
            sub=str(user_id),
            id=str(user_id),
            username=username,
            group_id=int(group_id),
            area_name=area_name,
            role=Role.parse(role),
            iat=int(issued_at),
            exp=int(expires_at),
        )

    @classmethod
    def from_user(cls, user: User, issued_at: int, expires_at: int) -> "ClaimSet":
        return cls.for_identity(
            user.id, user.username, user.group_id, user.area_name, user.role, issued_at, expires_at
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "sub": self.sub,
            "id": self.id,
            "username": self.username,
            "groupId": self.group_id,
            "areaName": self.area_name,
            "role": self.role.value,
            "iat": self.iat,
            "exp": self.exp,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ClaimSet":
        """Build a ClaimSet from a decoded payload.

        Numeric fields may arrive as floats from generic JSON number decoding;
        they are truncated to int here. A missing key or a non-numeric
        timestamp is an InvalidFormat, not a KeyError.
        """
        missing = [k for k in CLAIM_KEYS if k not in payload]
        if missing:
            raise InvalidFormat(f"Token payload is missing claims: {', '.join(missing)}")
        try:
            return cls(
                sub=str(payload["sub"]),
                id=str(payload["id"]),
                username=str(payload["username"]),
                group_id=int(payload["groupId"]),
                area_name=str(payload["areaName"]),
                role=Role.parse(payload["role"]),
                iat=int(payload["iat"]),
                exp=int(payload["exp"]),
            )
        except (TypeError, ValueError) as exc:
            raise InvalidFormat("Token payload has malformed claims.") from exc

    @property
    def user_id(self) -> int:
        return int(self.id)


@dataclass
class MagicLinkToken:
    """A persisted, long-lived login token.

    The identity fields are a snapshot taken at generation time, like a
    ClaimSet. is_used / used_at are written exactly once, on first redemption,
    and are telemetry rather than an enforcement gate.
    """

    token: str
    user_id: int
    username: str
    group_id: int
    area_name: str
    role: Role
    expires_at: str  # ISO 8601, UTC
    is_used: bool = False
    used_at: str | None = None
    created_at: str | None = None
    id: int | None = None
