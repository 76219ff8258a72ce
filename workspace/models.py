"""
workspace/models.py -- Domain dataclasses for area-scoped console resources.

These are pure data containers with zero logic. Authorization lives in
auth/policy.py, persistence in workspace/store.py, audit writing in
workspace/audit.py.

Every resource here belongs to exactly one group (area) through group_id,
which is what the policy engine compares against the actor's group.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ViewGroup:
    """A saved camera layout for one area.

    id is chosen by the client (not generated here). cameras is an
    order-irrelevant list of camera identifiers. Updates are last-write-wins;
    there is no version column.
    """

    id: str
    name: str
    group_id: int
    area_name: str
    is_hq: bool = False
    cameras: list[str] = field(default_factory=list)
    auto_rotation_interval: Optional[int] = None
    created_by: str = ""
    updated_by: str = ""
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class AuditRecord:
    """Immutable audit entry written for every view-group mutation.

    changed_by is the username from the actor's session, never a field of the
    resource. changes is a JSON object string describing what changed.
    Records are never updated or deleted -- only inserted.
    """

    view_group_id: str
    action: AuditAction
    changed_by: str
    changes: str
    created_at: str = ""
    id: Optional[int] = None


@dataclass
class UserPreference:
    """At most one row per user. default_view_id may be None (no default)."""

    user_id: int
    username: str
    default_view_id: Optional[str] = None
    updated_at: str = ""
    id: Optional[int] = None


@dataclass
class CameraPosition:
    """A camera placed on a custom map, with its field-of-view geometry."""

    camera_id: str
    camera_name: str = ""
    x: int = 0
    y: int = 0
    bearing: int = 0
    fov: int = 0
    range: int = 0
    custom_map_id: Optional[int] = None
    id: Optional[int] = None


@dataclass
class CustomMap:
    """A floor plan or tile map for one area.

    type is "image" (image_data holds the picture), "raster" (tile_url) or
    "vector" (style_url). bounds is an arbitrary JSON object describing the
    geographic extent, stored as text.
    """

    name: str
    type: str
    group_id: int
    image_data: Optional[str] = None
    image_width: int = 0
    image_height: int = 0
    available: bool = True
    tile_url: Optional[str] = None
    style_url: Optional[str] = None
    bounds: Optional[dict] = None
    cameras: list[CameraPosition] = field(default_factory=list)
    created_at: str = ""
    id: Optional[int] = None
