"""
api/routes/v1/users.py -- Area-scoped user management.

Routes:
  POST   /api/v1/users                   -- create user
  GET    /api/v1/users                   -- list users (group scoped)
  PUT    /api/v1/users/{id}              -- partial update
  DELETE /api/v1/users/{id}              -- soft delete (is_active = 0)
  POST   /api/v1/users/{id}/magic-link   -- mint a magic link on behalf of a user

Authorization (auth/policy.py, Resource.USER):
  admin       -- any user, any group.
  Area Admin  -- users in its own group only; cross-area writes are 403.
  Basic User  -- no writes (403 before the target is looked up); list own group.

Role ceiling on top of the policy: a non-admin can never touch an admin
account, grant the admin role, or move a user into another group.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import MagicLinkResponse, UserCreate, UserResponse, UserUpdate
from auth.dependencies import get_current_session
from auth.exceptions import Forbidden, NotFound
from auth.magic_links import MagicLinkManager
from auth.models import ClaimSet, Role, User
from auth.passwords import hash_password
from auth.policy import Action, Resource, can_write, list_scope, require
from auth.store import UserStore

logger = logging.getLogger("areagate.api.users")

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_write(actor: ClaimSet) -> None:
    decision = can_write(actor.role, Resource.USER)
    if not decision:
        raise Forbidden(decision.reason)


def _check_role_ceiling(actor: ClaimSet, target_role: Role | None = None, new_role: Role | None = None) -> None:
    """Refuse to touch or grant a role that outranks the actor's own."""
    if target_role is not None and target_role.outranks(actor.role):
        raise Forbidden("Only admins can manage admin accounts")
    if new_role is not None and new_role.outranks(actor.role):
        raise Forbidden("Only admins can assign the admin role")


def _load_target(store: UserStore, actor: ClaimSet, user_id: int, action: Action) -> User:
    """Fetch an active user and apply the policy for the requested action."""
    target = store.get_by_id(user_id)
    if target is None or not target.is_active:
        raise NotFound("User not found.")
    require(actor.role, actor.group_id, action, target.group_id, Resource.USER)
    _check_role_ceiling(actor, target_role=target.role)
    return target


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    actor: ClaimSet = Depends(get_current_session),
) -> UserResponse:
    """Create a user account in the caller's area (any area for admins)."""
    store: UserStore = request.app.state.user_store

    _require_write(actor)
    require(actor.role, actor.group_id, Action.CREATE, body.group_id, Resource.USER)
    _check_role_ceiling(actor, new_role=body.role)

    new_user = User(
        username=body.username,
        role=body.role,
        group_id=body.group_id,
        area_name=body.area_name,
        hashed_password=hash_password(body.password),
    )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username already exists."},
        ) from exc

    logger.info("User id=%s created in group %s by %s", user_id, body.group_id, actor.username)
    return UserResponse.from_user(store.get_by_id(user_id))


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    actor: ClaimSet = Depends(get_current_session),
) -> list[UserResponse]:
    """List active users; non-admins only see their own group."""
    store: UserStore = request.app.state.user_store
    users = store.list_users(group_id=list_scope(actor.role, actor.group_id))
    return [UserResponse.from_user(u) for u in users]


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    actor: ClaimSet = Depends(get_current_session),
) -> UserResponse:
    """Update password, area or role. Omitted fields are left unchanged."""
    store: UserStore = request.app.state.user_store

    _require_write(actor)
    target = _load_target(store, actor, user_id, Action.UPDATE)
    _check_role_ceiling(actor, new_role=body.role)

    updates: dict = {}
    if body.group_id is not None and body.group_id != target.group_id:
        # Moving a user is a write into the destination group as well.
        require(actor.role, actor.group_id, Action.UPDATE, body.group_id, Resource.USER)
        updates["group_id"] = body.group_id
    if body.area_name is not None:
        updates["area_name"] = body.area_name
    if body.role is not None:
        updates["role"] = body.role.value
    if body.password is not None:
        updates["hashed_password"] = hash_password(body.password)

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    store.update_user(user_id, **updates)
    logger.info("User id=%s updated by %s (fields: %s)", user_id, actor.username, ", ".join(sorted(updates)))
    return UserResponse.from_user(store.get_by_id(user_id))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    actor: ClaimSet = Depends(get_current_session),
) -> Response:
    """Deactivate a user. The username stays reserved; existing sessions stop validating."""
    store: UserStore = request.app.state.user_store

    _require_write(actor)
    target = _load_target(store, actor, user_id, Action.DELETE)
    if target.id == actor.user_id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot delete your own account."},
        )

    store.deactivate_user(user_id)
    logger.info("User id=%s deactivated by %s", user_id, actor.username)
    return Response(status_code=204)


@router.post("/users/{user_id}/magic-link", response_model=MagicLinkResponse, status_code=201)
def create_magic_link(
    request: Request,
    user_id: int,
    actor: ClaimSet = Depends(get_current_session),
) -> MagicLinkResponse:
    """Mint a magic-link token for another user (admin, or Area Admin in-area)."""
    store: UserStore = request.app.state.user_store
    links: MagicLinkManager = request.app.state.magic_links

    _require_write(actor)
    target = _load_target(store, actor, user_id, Action.CREATE)
    token, record = links.generate(target)
    logger.info("Magic link for user_id=%s minted by %s", target.id, actor.username)
    return MagicLinkResponse(
        token=token,
        login_link=links.login_link(token),
        user_id=target.id,
        expires_at=record.expires_at,
    )
