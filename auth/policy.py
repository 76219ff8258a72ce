"""
auth/policy.py -- Role/group authorization decisions.

can_act() is a pure function: no I/O, no side effects, safe to call from any
thread. Route handlers consult it before any mutation begins, so a denied
operation never partially applies.

Rules, evaluated in order (first match wins):
  1. admin       -> allow everything, across all groups.
  2. Basic User  -> deny create/update/delete on every resource kind;
                    allow read only inside the actor's own group.
  3. Area Admin  -> allow create/update/delete only when the target group is
                    the actor's group; allow read only inside the own group.
Any other role raises UnknownRole.

List endpoints do not call can_act() per row. They pass list_scope() to the
store as a WHERE filter instead, so cross-group rows are never returned.

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.exceptions import Forbidden
from auth.models import Role


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class Resource(str, Enum):
    VIEW_GROUP = "view group"
    CUSTOM_MAP = "custom map"
    USER = "user"


_WRITES = frozenset({Action.CREATE, Action.UPDATE, Action.DELETE})


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


_ALLOW = Decision(True)


def _plural(resource: Resource) -> str:
    return f"{resource.value}s"


def can_act(
    role: Role | str,
    actor_group: int,
    action: Action,
    target_group: int,
    resource: Resource = Resource.VIEW_GROUP,
) -> Decision:
    """Decide whether an actor may perform an action on a resource in a group.

    Deny reasons name the actor's own limits, never the target resource.
    """
    role = Role.parse(role)

    if role is Role.ADMIN:
        return _ALLOW

    if role is Role.BASIC_USER:
        if action in _WRITES:
            return Decision(False, f"Basic Users cannot {action.value} {_plural(resource)}")
        if target_group != actor_group:
            return Decision(False, f"Basic Users can only view {_plural(resource)} in their own area")
        return _ALLOW

    if role is Role.AREA_ADMIN:
        if target_group == actor_group:
            return _ALLOW
        if action is Action.READ:
            return Decision(False, f"Area Admin can only view {_plural(resource)} in their own area")
        return Decision(False, f"Area Admin can only {action.value} {_plural(resource)} in their own area")

    # Unreachable while Role has three members; kept so a new member fails loudly.
    raise Forbidden(f"No policy for role {role.value!r}")


def require(
    role: Role | str,
    actor_group: int,
    action: Action,
    target_group: int,
    resource: Resource = Resource.VIEW_GROUP,
) -> None:
    """Raise Forbidden(reason) unless can_act() allows the action."""
    decision = can_act(role, actor_group, action, target_group, resource)
    if not decision:
        raise Forbidden(decision.reason)


def can_write(role: Role | str, resource: Resource = Resource.VIEW_GROUP) -> Decision:
    """Role-only precheck for writes, used before the target group is known.

    Lets a Basic User's write be refused before the target is even looked up,
    so the response does not depend on whether the target exists.
    """
    role = Role.parse(role)
    if role is Role.BASIC_USER:
        return Decision(False, f"Basic Users cannot modify {_plural(resource)}")
    return _ALLOW


def list_scope(role: Role | str, actor_group: int) -> int | None:
    """Return the group filter for list queries; None means "all groups"."""
    return None if Role.parse(role) is Role.ADMIN else actor_group
