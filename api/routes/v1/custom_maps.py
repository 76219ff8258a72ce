"""
api/routes/v1/custom_maps.py -- Area-scoped custom maps and their camera positions.

Routes:
  POST   /api/v1/custom-maps        -- create map + camera positions
  GET    /api/v1/custom-maps        -- list (group scoped, no image data or cameras)
  GET    /api/v1/custom-maps/{id}   -- map detail with camera positions
  PUT    /api/v1/custom-maps/{id}   -- partial update; cameras replaces all positions
  DELETE /api/v1/custom-maps/{id}   -- delete map and its camera positions

Same authorization shape as view groups (Resource.CUSTOM_MAP), without an
audit trail.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import CustomMapCreate, CustomMapResponse, CustomMapUpdate
from auth.dependencies import get_current_session
from auth.exceptions import Forbidden, NotFound
from auth.models import ClaimSet
from auth.policy import Action, Resource, can_act, can_write, list_scope, require
from workspace.models import CustomMap
from workspace.store import WorkspaceStore

logger = logging.getLogger("areagate.api.custom_maps")

router = APIRouter()

# Columns a PUT may explicitly reset to null.
_NULLABLE_FIELDS = frozenset({"image_data", "tile_url", "style_url", "bounds"})


def _require_write(actor: ClaimSet) -> None:
    decision = can_write(actor.role, Resource.CUSTOM_MAP)
    if not decision:
        raise Forbidden(decision.reason)


def _not_found() -> NotFound:
    return NotFound("Custom map not found.")


@router.post("/custom-maps", response_model=CustomMapResponse, status_code=201)
def create_custom_map(
    request: Request,
    body: CustomMapCreate,
    actor: ClaimSet = Depends(get_current_session),
) -> CustomMapResponse:
    store: WorkspaceStore = request.app.state.workspace

    _require_write(actor)
    group_id = body.group_id if body.group_id is not None else actor.group_id
    require(actor.role, actor.group_id, Action.CREATE, group_id, Resource.CUSTOM_MAP)

    cmap = CustomMap(
        name=body.name,
        type=body.type.value,
        group_id=group_id,
        image_data=body.image_data,
        image_width=body.image_width,
        image_height=body.image_height,
        available=body.available,
        tile_url=body.tile_url,
        style_url=body.style_url,
        bounds=body.bounds,
        cameras=[c.to_domain() for c in body.cameras],
    )
    map_id = store.create_custom_map(cmap)
    logger.info("Custom map id=%s created in group %s by %s", map_id, group_id, actor.username)
    return CustomMapResponse.from_custom_map(store.get_custom_map(map_id))


@router.get("/custom-maps", response_model=list[CustomMapResponse])
def list_custom_maps(
    request: Request,
    actor: ClaimSet = Depends(get_current_session),
) -> list[CustomMapResponse]:
    store: WorkspaceStore = request.app.state.workspace
    maps = store.list_custom_maps(group_id=list_scope(actor.role, actor.group_id))
    return [CustomMapResponse.from_custom_map(m) for m in maps]


@router.get("/custom-maps/{map_id}", response_model=CustomMapResponse)
def get_custom_map(
    request: Request,
    map_id: int,
    actor: ClaimSet = Depends(get_current_session),
) -> CustomMapResponse:
    store: WorkspaceStore = request.app.state.workspace
    cmap = store.get_custom_map(map_id)
    if cmap is None or not can_act(actor.role, actor.group_id, Action.READ, cmap.group_id, Resource.CUSTOM_MAP):
        raise _not_found()
    return CustomMapResponse.from_custom_map(cmap)


@router.put("/custom-maps/{map_id}", response_model=CustomMapResponse)
def update_custom_map(
    request: Request,
    map_id: int,
    body: CustomMapUpdate,
    actor: ClaimSet = Depends(get_current_session),
) -> CustomMapResponse:
    store: WorkspaceStore = request.app.state.workspace

    _require_write(actor)
    cmap = store.get_custom_map(map_id)
    if cmap is None:
        raise _not_found()
    require(actor.role, actor.group_id, Action.UPDATE, cmap.group_id, Resource.CUSTOM_MAP)

    fields = {
        k: v
        for k, v in body.model_dump(mode="json", exclude_unset=True, exclude={"cameras"}).items()
        if v is not None or k in _NULLABLE_FIELDS
    }
    cameras = [c.to_domain() for c in body.cameras] if body.cameras is not None else None
    if not fields and cameras is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    if not store.update_custom_map(map_id, cameras=cameras, **fields):
        raise _not_found()
    logger.info("Custom map id=%s updated by %s", map_id, actor.username)
    return CustomMapResponse.from_custom_map(store.get_custom_map(map_id))


@router.delete("/custom-maps/{map_id}", status_code=204)
def delete_custom_map(
    request: Request,
    map_id: int,
    actor: ClaimSet = Depends(get_current_session),
) -> Response:
    store: WorkspaceStore = request.app.state.workspace

    _require_write(actor)
    cmap = store.get_custom_map(map_id)
    if cmap is None:
        raise _not_found()
    require(actor.role, actor.group_id, Action.DELETE, cmap.group_id, Resource.CUSTOM_MAP)

    store.delete_custom_map(map_id)
    logger.info("Custom map id=%s deleted by %s", map_id, actor.username)
    return Response(status_code=204)
