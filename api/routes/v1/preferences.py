"""
api/routes/v1/preferences.py -- Per-user default view preference.

Routes:
  GET /api/v1/users/me/default-view  -- read the caller's default view
  PUT /api/v1/users/me/default-view  -- set (or clear with null) the default view

Every role may manage its own preference. Setting a default view requires
the view group to exist and to be readable by the caller. Both failures are
a 404, so another area's view ids cannot be probed through this route.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import DefaultViewResponse, DefaultViewUpdate
from auth.dependencies import get_current_session
from auth.exceptions import NotFound
from auth.models import ClaimSet
from auth.policy import Action, Resource, can_act
from workspace.store import WorkspaceStore

router = APIRouter()


@router.get("/users/me/default-view", response_model=DefaultViewResponse)
def get_default_view(
    request: Request,
    actor: ClaimSet = Depends(get_current_session),
) -> DefaultViewResponse:
    store: WorkspaceStore = request.app.state.workspace
    pref = store.get_preference(actor.user_id)
    if pref is None:
        return DefaultViewResponse(user_id=actor.user_id)
    return DefaultViewResponse(
        user_id=pref.user_id,
        default_view_id=pref.default_view_id,
        updated_at=pref.updated_at,
    )


@router.put("/users/me/default-view", response_model=DefaultViewResponse)
def set_default_view(
    request: Request,
    body: DefaultViewUpdate,
    actor: ClaimSet = Depends(get_current_session),
) -> DefaultViewResponse:
    store: WorkspaceStore = request.app.state.workspace

    if body.default_view_id:
        vg = store.get_view_group(body.default_view_id)
        if vg is None or not can_act(actor.role, actor.group_id, Action.READ, vg.group_id, Resource.VIEW_GROUP):
            raise NotFound("View group not found.")

    pref = store.upsert_preference(actor.user_id, actor.username, body.default_view_id or None)
    return DefaultViewResponse(
        user_id=pref.user_id,
        default_view_id=pref.default_view_id,
        updated_at=pref.updated_at,
    )
