"""
api/routes/v1/view_groups.py -- Area-scoped view groups with an audit trail.

Routes:
  POST   /api/v1/view-groups             -- create + audit CREATE
  GET    /api/v1/view-groups             -- list (group scoped, newest first)
  GET    /api/v1/view-groups/{id}        -- detail
  PUT    /api/v1/view-groups/{id}        -- update + audit UPDATE (last write wins)
  DELETE /api/v1/view-groups/{id}        -- delete + audit DELETE
  GET    /api/v1/view-groups/{id}/audit  -- audit trail, oldest first

Order of checks on every mutation:
  1. can_write() role precheck   -> 403 for Basic Users, before any lookup
  2. target lookup               -> 404
  3. require() on target group   -> 403 for cross-area Area Admins
  4. serialize_changes()         -> aborts before anything is written
  5. mutation
  6. AuditRecorder.record()      -> best effort; reported as audit_recorded

Reads outside the caller's area return 404, the same as a missing id.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    AuditRecordResponse,
    ViewGroupCreate,
    ViewGroupMutationResponse,
    ViewGroupResponse,
    ViewGroupUpdate,
)
from auth.dependencies import get_current_session
from auth.exceptions import Forbidden, NotFound
from auth.models import ClaimSet, Role
from auth.policy import Action, Resource, can_act, can_write, list_scope, require
from workspace.audit import AuditRecorder, serialize_changes
from workspace.models import AuditAction, ViewGroup
from workspace.store import WorkspaceStore

logger = logging.getLogger("areagate.api.view_groups")

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_write(actor: ClaimSet) -> None:
    decision = can_write(actor.role, Resource.VIEW_GROUP)
    if not decision:
        raise Forbidden(decision.reason)


def _get_readable(store: WorkspaceStore, actor: ClaimSet, view_group_id: str) -> ViewGroup:
    vg = store.get_view_group(view_group_id)
    if vg is None or not can_act(actor.role, actor.group_id, Action.READ, vg.group_id, Resource.VIEW_GROUP):
        raise NotFound("View group not found.")
    return vg


def _get_writable(store: WorkspaceStore, actor: ClaimSet, view_group_id: str, action: Action) -> ViewGroup:
    vg = store.get_view_group(view_group_id)
    if vg is None:
        raise NotFound("View group not found.")
    require(actor.role, actor.group_id, action, vg.group_id, Resource.VIEW_GROUP)
    return vg


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/view-groups", response_model=ViewGroupMutationResponse, status_code=201)
def create_view_group(
    request: Request,
    body: ViewGroupCreate,
    actor: ClaimSet = Depends(get_current_session),
) -> ViewGroupMutationResponse:
    """Create a view group in the caller's area (any area for admins)."""
    store: WorkspaceStore = request.app.state.workspace
    audit: AuditRecorder = request.app.state.audit

    _require_write(actor)
    group_id = body.group_id if body.group_id is not None else actor.group_id
    require(actor.role, actor.group_id, Action.CREATE, group_id, Resource.VIEW_GROUP)

    area_name = body.area_name or (actor.area_name if group_id == actor.group_id else None)
    if area_name is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "area_required", "message": "area_name is required for another group."},
        )

    conflict = HTTPException(
        status_code=409,
        detail={"code": "conflict", "message": "A view group with that id already exists."},
    )
    if store.get_view_group(body.id) is not None:
        raise conflict

    changes = serialize_changes({"name": body.name, "groupId": group_id})
    vg = ViewGroup(
        id=body.id,
        name=body.name,
        group_id=group_id,
        area_name=area_name,
        is_hq=body.is_hq,
        cameras=body.cameras,
        auto_rotation_interval=body.auto_rotation_interval,
        created_by=actor.username,
        updated_by=actor.username,
    )
    try:
        store.create_view_group(vg)
    except IntegrityError as exc:
        # Lost a race with a concurrent create of the same id.
        raise conflict from exc

    recorded = audit.record(vg.id, AuditAction.CREATE, actor.username, changes)
    return ViewGroupMutationResponse(view_group=ViewGroupResponse.from_view_group(vg), audit_recorded=recorded)


@router.get("/view-groups", response_model=list[ViewGroupResponse])
def list_view_groups(
    request: Request,
    actor: ClaimSet = Depends(get_current_session),
) -> list[ViewGroupResponse]:
    store: WorkspaceStore = request.app.state.workspace
    groups = store.list_view_groups(group_id=list_scope(actor.role, actor.group_id))
    return [ViewGroupResponse.from_view_group(vg) for vg in groups]


@router.get("/view-groups/{view_group_id}", response_model=ViewGroupResponse)
def get_view_group(
    request: Request,
    view_group_id: str,
    actor: ClaimSet = Depends(get_current_session),
) -> ViewGroupResponse:
    store: WorkspaceStore = request.app.state.workspace
    return ViewGroupResponse.from_view_group(_get_readable(store, actor, view_group_id))


@router.put("/view-groups/{view_group_id}", response_model=ViewGroupMutationResponse)
def update_view_group(
    request: Request,
    view_group_id: str,
    body: ViewGroupUpdate,
    actor: ClaimSet = Depends(get_current_session),
) -> ViewGroupMutationResponse:
    """Apply an update (last write wins) and audit what changed."""
    store: WorkspaceStore = request.app.state.workspace
    audit: AuditRecorder = request.app.state.audit

    _require_write(actor)
    vg = _get_writable(store, actor, view_group_id, Action.UPDATE)

    updates: dict = {"auto_rotation_interval": body.auto_rotation_interval, "updated_by": actor.username}
    changes: dict = {"autoRotationInterval": body.auto_rotation_interval}
    if body.name and body.name != vg.name:
        updates["name"] = body.name
        changes["name"] = body.name
    if body.cameras is not None:
        updates["cameras"] = body.cameras
        changes["cameras"] = body.cameras
    serialized = serialize_changes(changes)

    store.update_view_group(view_group_id, **updates)
    updated = store.get_view_group(view_group_id)
    if updated is None:
        # Deleted concurrently between the update and the re-read.
        raise NotFound("View group not found.")

    recorded = audit.record(view_group_id, AuditAction.UPDATE, actor.username, serialized)
    return ViewGroupMutationResponse(view_group=ViewGroupResponse.from_view_group(updated), audit_recorded=recorded)


@router.delete("/view-groups/{view_group_id}", response_model=ViewGroupMutationResponse)
def delete_view_group(
    request: Request,
    view_group_id: str,
    actor: ClaimSet = Depends(get_current_session),
) -> ViewGroupMutationResponse:
    store: WorkspaceStore = request.app.state.workspace
    audit: AuditRecorder = request.app.state.audit

    _require_write(actor)
    vg = _get_writable(store, actor, view_group_id, Action.DELETE)
    changes = serialize_changes({"name": vg.name})

    if not store.delete_view_group(view_group_id):
        raise NotFound("View group not found.")

    recorded = audit.record(view_group_id, AuditAction.DELETE, actor.username, changes)
    return ViewGroupMutationResponse(deleted_id=view_group_id, audit_recorded=recorded)


@router.get("/view-groups/{view_group_id}/audit", response_model=list[AuditRecordResponse])
def list_view_group_audit(
    request: Request,
    view_group_id: str,
    actor: ClaimSet = Depends(get_current_session),
) -> list[AuditRecordResponse]:
    """Return the audit trail of a view group.

    Admins can read the trail of a deleted view group; everyone else needs the
    view group to exist in their own area.
    """
    store: WorkspaceStore = request.app.state.workspace
    if actor.role is not Role.ADMIN:
        _get_readable(store, actor, view_group_id)
    records = store.list_audit(view_group_id)
    if not records and store.get_view_group(view_group_id) is None:
        raise NotFound("View group not found.")
    return [AuditRecordResponse.from_record(r, json.loads(r.changes)) for r in records]
