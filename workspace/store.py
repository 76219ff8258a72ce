"""
workspace/store.py -- SQLAlchemy-backed persistence for console resources.

Uses SQLAlchemy Core (not ORM) so the dataclasses in workspace/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. WorkspaceStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Group scoping: every list method takes group_id. None means "all groups" and
is only ever passed for admins (see auth.policy.list_scope).

Audit trail: the store can append and read view_group_audit rows but has no
method that updates or deletes them.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = WorkspaceStore()                               # SQLite default
    store = WorkspaceStore("postgresql://user:pw@host/db") # PostgreSQL
    store.create_view_group(vg)
    groups = store.list_view_groups(group_id=7)
    store.close()
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from workspace.models import AuditAction, AuditRecord, CameraPosition, CustomMap, UserPreference, ViewGroup

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'areagate_workspace.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_view_groups = Table(
    "view_groups",
    metadata,
    Column("id", String(255), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("group_id", Integer, nullable=False, index=True),
    Column("area_name", String(255), nullable=False),
    Column("is_hq", Boolean, nullable=False, server_default="0"),
    Column("cameras", Text, nullable=False, server_default="[]"),  # JSON array serialized as text
    Column("auto_rotation_interval", Integer),
    Column("created_by", String(255), nullable=False),
    Column("updated_by", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_audit = Table(
    "view_group_audit",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("view_group_id", String(255), nullable=False, index=True),
    Column("action", String(10), nullable=False),
    Column("changed_by", String(255), nullable=False),
    Column("changes", Text, nullable=False),  # JSON object serialized as text
    Column("created_at", String(32), nullable=False),
)

_preferences = Table(
    "user_preferences",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, unique=True),
    Column("username", String(255), nullable=False, index=True),
    Column("default_view_id", String(255)),
    Column("updated_at", String(32), nullable=False),
)

_custom_maps = Table(
    "custom_maps",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("type", String(50), nullable=False),
    Column("group_id", Integer, nullable=False, index=True),
    Column("image_data", Text),
    Column("image_width", Integer, nullable=False, server_default="0"),
    Column("image_height", Integer, nullable=False, server_default="0"),
    Column("available", Boolean, nullable=False, server_default="1"),
    Column("tile_url", Text),
    Column("style_url", Text),
    Column("bounds", Text),  # JSON object serialized as text
    Column("created_at", String(32), nullable=False),
)

_camera_positions = Table(
    "camera_positions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("custom_map_id", Integer, nullable=False, index=True),
    Column("camera_id", String(255), nullable=False),
    Column("camera_name", String(255)),
    Column("x", Integer, nullable=False, server_default="0"),
    Column("y", Integer, nullable=False, server_default="0"),
    Column("bearing", Integer, nullable=False, server_default="0"),
    Column("fov", Integer, nullable=False, server_default="0"),
    Column("range", Integer, nullable=False, server_default="0"),
)

# Columns update_view_group() accepts.
_VIEW_GROUP_UPDATABLE: frozenset = frozenset({"name", "cameras", "auto_rotation_interval", "updated_by"})

_CUSTOM_MAP_UPDATABLE: frozenset = frozenset(
    {"name", "type", "image_data", "image_width", "image_height", "available", "tile_url", "style_url", "bounds"}
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode; set per-connection because PRAGMAs are not inherited."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _camera_values(map_id: int, cam: CameraPosition) -> dict:
    return {
        "custom_map_id": map_id,
        "camera_id": cam.camera_id,
        "camera_name": cam.camera_name,
        "x": cam.x,
        "y": cam.y,
        "bearing": cam.bearing,
        "fov": cam.fov,
        "range": cam.range,
    }


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class WorkspaceStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # View groups
    # ------------------------------------------------------------------

    def create_view_group(self, vg: ViewGroup) -> ViewGroup:
        """Insert a view group and return it with timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the id is already taken.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _view_groups.insert().values(
                    id=vg.id,
                    name=vg.name,
                    group_id=vg.group_id,
                    area_name=vg.area_name,
                    is_hq=vg.is_hq,
                    cameras=json.dumps(vg.cameras),
                    auto_rotation_interval=vg.auto_rotation_interval,
                    created_by=vg.created_by,
                    updated_by=vg.updated_by or vg.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        vg.created_at = vg.updated_at = now
        vg.updated_by = vg.updated_by or vg.created_by
        return vg

    def get_view_group(self, view_group_id: str) -> Optional[ViewGroup]:
        with self.engine.connect() as conn:
            row = conn.execute(_view_groups.select().where(_view_groups.c.id == view_group_id)).fetchone()
        return _row_to_view_group(row) if row is not None else None

    def list_view_groups(self, group_id: Optional[int] = None) -> list[ViewGroup]:
        """Return view groups newest first, limited to one group unless group_id is None."""
        query = _view_groups.select()
        if group_id is not None:
            query = query.where(_view_groups.c.group_id == group_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_view_groups.c.created_at.desc())).fetchall()
        return [_row_to_view_group(r) for r in rows]

    def update_view_group(self, view_group_id: str, **fields) -> bool:
        """Overwrite the given columns (last write wins). Returns True if a row changed.

        cameras is passed as a list and serialized here. updated_at is always
        refreshed.
        """
        unknown = set(fields) - _VIEW_GROUP_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown view group fields: {unknown!r}")
        values = dict(fields)
        if "cameras" in values:
            values["cameras"] = json.dumps(values["cameras"])
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_view_groups.update().where(_view_groups.c.id == view_group_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_view_group(self, view_group_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_view_groups.delete().where(_view_groups.c.id == view_group_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Audit trail (append-only)
    # ------------------------------------------------------------------

    def append_audit(self, record: AuditRecord) -> int:
        """Insert one audit row and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _audit.insert().values(
                    view_group_id=record.view_group_id,
                    action=AuditAction(record.action).value,
                    changed_by=record.changed_by,
                    changes=record.changes,
                    created_at=record.created_at or _now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_audit(self, view_group_id: str) -> list[AuditRecord]:
        """Return the audit trail for a view group, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _audit.select().where(_audit.c.view_group_id == view_group_id).order_by(_audit.c.id)
            ).fetchall()
        return [_row_to_audit(r) for r in rows]

    # ------------------------------------------------------------------
    # User preferences
    # ------------------------------------------------------------------

    def get_preference(self, user_id: int) -> Optional[UserPreference]:
        with self.engine.connect() as conn:
            row = conn.execute(_preferences.select().where(_preferences.c.user_id == user_id)).fetchone()
        return _row_to_preference(row) if row is not None else None

    def upsert_preference(self, user_id: int, username: str, default_view_id: Optional[str]) -> UserPreference:
        """Create the user's preference row or overwrite its default view."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _preferences.update()
                .where(_preferences.c.user_id == user_id)
                .values(default_view_id=default_view_id, username=username, updated_at=now)
            )
            if result.rowcount == 0:
                conn.execute(
                    _preferences.insert().values(
                        user_id=user_id,
                        username=username,
                        default_view_id=default_view_id,
                        updated_at=now,
                    )
                )
            conn.commit()
        return UserPreference(user_id=user_id, username=username, default_view_id=default_view_id, updated_at=now)

    # ------------------------------------------------------------------
    # Custom maps
    # ------------------------------------------------------------------

    def create_custom_map(self, cmap: CustomMap) -> int:
        """Insert a map and its camera positions in one transaction; return the map ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _custom_maps.insert().values(
                    name=cmap.name,
                    type=cmap.type,
                    group_id=cmap.group_id,
                    image_data=cmap.image_data,
                    image_width=cmap.image_width,
                    image_height=cmap.image_height,
                    available=cmap.available,
                    tile_url=cmap.tile_url,
                    style_url=cmap.style_url,
                    bounds=json.dumps(cmap.bounds) if cmap.bounds is not None else None,
                    created_at=now,
                )
            )
            map_id = result.inserted_primary_key[0]
            for cam in cmap.cameras:
                conn.execute(_camera_positions.insert().values(**_camera_values(map_id, cam)))
            conn.commit()
        return map_id

    def get_custom_map(self, map_id: int) -> Optional[CustomMap]:
        """Return a map with its camera positions, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_custom_maps.select().where(_custom_maps.c.id == map_id)).fetchone()
            if row is None:
                return None
            cams = conn.execute(
                _camera_positions.select()
                .where(_camera_positions.c.custom_map_id == map_id)
                .order_by(_camera_positions.c.id)
            ).fetchall()
        cmap = _row_to_custom_map(row)
        cmap.cameras = [_row_to_camera(c) for c in cams]
        return cmap

    def list_custom_maps(self, group_id: Optional[int] = None) -> list[CustomMap]:
        """Return maps newest first, without camera positions or image data."""
        query = select(*[c for c in _custom_maps.c if c.name != "image_data"])
        if group_id is not None:
            query = query.where(_custom_maps.c.group_id == group_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_custom_maps.c.created_at.desc(), _custom_maps.c.id.desc())).fetchall()
        return [_row_to_custom_map(r) for r in rows]

    def update_custom_map(self, map_id: int, cameras: Optional[list[CameraPosition]] = None, **fields) -> bool:
        """Update map columns and, when cameras is given, replace all its camera positions."""
        unknown = set(fields) - _CUSTOM_MAP_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown custom map fields: {unknown!r}")
        values = dict(fields)
        if "bounds" in values and values["bounds"] is not None:
            values["bounds"] = json.dumps(values["bounds"])
        with self.engine.connect() as conn:
            exists = conn.execute(select(_custom_maps.c.id).where(_custom_maps.c.id == map_id)).fetchone()
            if exists is None:
                return False
            if values:
                conn.execute(_custom_maps.update().where(_custom_maps.c.id == map_id).values(**values))
            if cameras is not None:
                conn.execute(_camera_positions.delete().where(_camera_positions.c.custom_map_id == map_id))
                for cam in cameras:
                    conn.execute(_camera_positions.insert().values(**_camera_values(map_id, cam)))
            conn.commit()
        return True

    def delete_custom_map(self, map_id: int) -> bool:
        """Delete a map and its camera positions."""
        with self.engine.connect() as conn:
            conn.execute(_camera_positions.delete().where(_camera_positions.c.custom_map_id == map_id))
            result = conn.execute(_custom_maps.delete().where(_custom_maps.c.id == map_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_view_group(row) -> ViewGroup:
    return ViewGroup(
        id=row.id,
        name=row.name,
        group_id=row.group_id,
        area_name=row.area_name,
        is_hq=bool(row.is_hq),
        cameras=json.loads(row.cameras) if row.cameras else [],
        auto_rotation_interval=row.auto_rotation_interval,
        created_by=row.created_by,
        updated_by=row.updated_by or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_audit(row) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        view_group_id=row.view_group_id,
        action=AuditAction(row.action),
        changed_by=row.changed_by,
        changes=row.changes,
        created_at=row.created_at,
    )


def _row_to_preference(row) -> UserPreference:
    return UserPreference(
        id=row.id,
        user_id=row.user_id,
        username=row.username,
        default_view_id=row.default_view_id,
        updated_at=row.updated_at,
    )


def _row_to_custom_map(row) -> CustomMap:
    # list_custom_maps() selects without image_data.
    image_data = getattr(row, "image_data", None)
    return CustomMap(
        id=row.id,
        name=row.name,
        type=row.type,
        group_id=row.group_id,
        image_data=image_data,
        image_width=row.image_width,
        image_height=row.image_height,
        available=bool(row.available),
        tile_url=row.tile_url,
        style_url=row.style_url,
        bounds=json.loads(row.bounds) if row.bounds else None,
        created_at=row.created_at,
    )


def _row_to_camera(row) -> CameraPosition:
    return CameraPosition(
        id=row.id,
        custom_map_id=row.custom_map_id,
        camera_id=row.camera_id,
        camera_name=row.camera_name or "",
        x=row.x,
        y=row.y,
        bearing=row.bearing,
        fov=row.fov,
        range=row.range,
    )
