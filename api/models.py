"""
API request and response models for AreaGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
workspace/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: domain models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import ClaimSet, Role, User
from workspace.models import AuditRecord, CameraPosition, CustomMap, ViewGroup

# Identifiers are stripped; passwords never are.
_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"


# ---------------------------------------------------------------------------
# Auth and tokens
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login and POST /api/v1/tokens/generation."""

    username: _Name
    # Not stripped: leading/trailing spaces may be part of a password.
    password: str = Field(min_length=1, max_length=1024)


class SessionUser(BaseModel):
    """The identity carried by a session or magic-link token."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    group_id: int
    area_name: str
    role: Role

    @classmethod
    def from_claims(cls, claims: ClaimSet) -> "SessionUser":
        return cls(
            id=claims.user_id,
            username=claims.username,
            group_id=claims.group_id,
            area_name=claims.area_name,
            role=claims.role,
        )

    @classmethod
    def from_user(cls, user: User) -> "SessionUser":
        return cls(
            id=user.id,
            username=user.username,
            group_id=user.group_id,
            area_name=user.area_name,
            role=user.role,
        )


class LoginResponse(BaseModel):
    """Response for a successful login or magic-link redemption.

    access_token is the same session token set in the cookie, for API
    clients that send it as a Bearer header instead.
    """

    model_config = ConfigDict(frozen=True)

    user: SessionUser
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class SessionResponse(BaseModel):
    """Response for GET /api/v1/auth/session. user is None when signed out."""

    model_config = ConfigDict(frozen=True)

    user: Optional[SessionUser] = None
    expires_at: Optional[int] = None


class MagicLinkResponse(BaseModel):
    """A freshly minted magic-link token and the browser URL that redeems it."""

    model_config = ConfigDict(frozen=True)

    token: str
    login_link: str
    user_id: int
    expires_at: str


class TokenVerifyRequest(BaseModel):
    """Optional JSON body for POST /api/v1/tokens/verify (token may also be a query param)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: Optional[str] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    username: _Name
    password: str = Field(min_length=8, max_length=1024)
    group_id: int = Field(ge=0)
    area_name: _Name
    role: Role


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Omitted fields are left unchanged."""

    password: Optional[str] = Field(default=None, min_length=8, max_length=1024)
    group_id: Optional[int] = Field(default=None, ge=0)
    area_name: Optional[_Name] = None
    role: Optional[Role] = None


class UserResponse(BaseModel):
    """A user account. hashed_password is never part of the API contract."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    group_id: int
    area_name: str
    role: Role
    is_active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            group_id=user.group_id,
            area_name=user.area_name,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class DefaultViewUpdate(BaseModel):
    """Request body for PUT /api/v1/users/me/default-view. None clears the default."""

    model_config = ConfigDict(str_strip_whitespace=True)

    default_view_id: Optional[str] = Field(default=None, max_length=255)


class DefaultViewResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    default_view_id: Optional[str] = None
    updated_at: Optional[str] = None


# ---------------------------------------------------------------------------
# View groups
# ---------------------------------------------------------------------------


class ViewGroupCreate(BaseModel):
    """Request body for POST /api/v1/view-groups.

    group_id and area_name default to the caller's own area when omitted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    group_id: Optional[int] = Field(default=None, ge=0)
    area_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_hq: bool = False
    cameras: list[str] = Field(default_factory=list, max_length=500)
    auto_rotation_interval: Optional[int] = Field(default=None, ge=1)


class ViewGroupUpdate(BaseModel):
    """Request body for PUT /api/v1/view-groups/{id}.

    name is applied only when non-empty and different; cameras only when
    present. auto_rotation_interval is always written, so omitting it clears
    the interval.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    cameras: Optional[list[str]] = Field(default=None, max_length=500)
    auto_rotation_interval: Optional[int] = Field(default=None, ge=1)


class ViewGroupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    group_id: int
    area_name: str
    is_hq: bool
    cameras: list[str]
    auto_rotation_interval: Optional[int]
    created_by: str
    updated_by: str
    created_at: str
    updated_at: str

    @classmethod
    def from_view_group(cls, vg: ViewGroup) -> "ViewGroupResponse":
        return cls(
            id=vg.id,
            name=vg.name,
            group_id=vg.group_id,
            area_name=vg.area_name,
            is_hq=vg.is_hq,
            cameras=list(vg.cameras),
            auto_rotation_interval=vg.auto_rotation_interval,
            created_by=vg.created_by,
            updated_by=vg.updated_by,
            created_at=vg.created_at,
            updated_at=vg.updated_at,
        )


class ViewGroupMutationResponse(BaseModel):
    """Result of a view-group create/update/delete.

    audit_recorded is False when the mutation succeeded but its audit record
    could not be written.
    """

    model_config = ConfigDict(frozen=True)

    view_group: Optional[ViewGroupResponse] = None
    deleted_id: Optional[str] = None
    audit_recorded: bool


class AuditRecordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    view_group_id: str
    action: str
    changed_by: str
    changes: dict
    created_at: str

    @classmethod
    def from_record(cls, record: AuditRecord, changes: dict) -> "AuditRecordResponse":
        return cls(
            id=record.id,
            view_group_id=record.view_group_id,
            action=record.action.value,
            changed_by=record.changed_by,
            changes=changes,
            created_at=record.created_at,
        )


# ---------------------------------------------------------------------------
# Custom maps
# ---------------------------------------------------------------------------


class MapTypeEnum(str, Enum):
    image = "image"
    raster = "raster"
    vector = "vector"


class CameraPositionModel(BaseModel):
    """One camera placed on a custom map (request and response shape)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    camera_id: str = Field(min_length=1, max_length=255)
    camera_name: str = Field(default="", max_length=255)
    x: int = 0
    y: int = 0
    bearing: int = Field(default=0, ge=0, le=360)
    fov: int = Field(default=0, ge=0, le=360)
    range: int = Field(default=0, ge=0)

    def to_domain(self) -> CameraPosition:
        return CameraPosition(**self.model_dump())

    @classmethod
    def from_domain(cls, cam: CameraPosition) -> "CameraPositionModel":
        return cls(
            camera_id=cam.camera_id,
            camera_name=cam.camera_name,
            x=cam.x,
            y=cam.y,
            bearing=cam.bearing,
            fov=cam.fov,
            range=cam.range,
        )


class CustomMapCreate(BaseModel):
    """Request body for POST /api/v1/custom-maps. group_id defaults to the caller's area."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    type: MapTypeEnum = MapTypeEnum.image
    group_id: Optional[int] = Field(default=None, ge=0)
    image_data: Optional[str] = None
    image_width: int = Field(default=0, ge=0)
    image_height: int = Field(default=0, ge=0)
    available: bool = True
    tile_url: Optional[str] = Field(default=None, max_length=2048)
    style_url: Optional[str] = Field(default=None, max_length=2048)
    bounds: Optional[dict] = None
    cameras: list[CameraPositionModel] = Field(default_factory=list, max_length=500)


class CustomMapUpdate(BaseModel):
    """Request body for PUT /api/v1/custom-maps/{id}.

    Omitted fields are left unchanged. cameras, when present, replaces every
    camera position on the map.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[MapTypeEnum] = None
    image_data: Optional[str] = None
    image_width: Optional[int] = Field(default=None, ge=0)
    image_height: Optional[int] = Field(default=None, ge=0)
    available: Optional[bool] = None
    tile_url: Optional[str] = Field(default=None, max_length=2048)
    style_url: Optional[str] = Field(default=None, max_length=2048)
    bounds: Optional[dict] = None
    cameras: Optional[list[CameraPositionModel]] = Field(default=None, max_length=500)


class CustomMapResponse(BaseModel):
    """Custom map detail. The list endpoint omits image_data and cameras."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    type: str
    group_id: int
    image_data: Optional[str] = None
    image_width: int
    image_height: int
    available: bool
    tile_url: Optional[str] = None
    style_url: Optional[str] = None
    bounds: Optional[dict] = None
    cameras: list[CameraPositionModel] = Field(default_factory=list)
    created_at: str

    @classmethod
    def from_custom_map(cls, cmap: CustomMap) -> "CustomMapResponse":
        return cls(
            id=cmap.id,
            name=cmap.name,
            type=cmap.type,
            group_id=cmap.group_id,
            image_data=cmap.image_data,
            image_width=cmap.image_width,
            image_height=cmap.image_height,
            available=cmap.available,
            tile_url=cmap.tile_url,
            style_url=cmap.style_url,
            bounds=cmap.bounds,
            cameras=[CameraPositionModel.from_domain(c) for c in cmap.cameras],
            created_at=cmap.created_at,
        )
