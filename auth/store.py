"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as workspace/store.py).
UserStore is the repository; _row_to_user / _row_to_magic_link are the
mappers. Route, session and magic-link code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Users are soft-deleted (is_active = 0). Magic-link rows keep a snapshot of
  the identity they were minted for, and the username stays reserved so a new
  account can never inherit an old account's outstanding tokens.

Concurrency:
  Each method is one short transaction. mark_magic_link_used() only flips rows
  that are still unused, so the first redemption's used_at is the one that
  sticks; there is no other locking.

DB path: auth/areagate_auth.db unless a URL is passed in.

Layer rule: no imports from api/, web/, core/, or workspace/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import MagicLinkToken, Role, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'areagate_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("group_id", Integer, nullable=False, index=True),
    Column("area_name", String(255), nullable=False),
    Column("role", String(30), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_magic_links = Table(
    "magic_link_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", Text, nullable=False, unique=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("username", String(255), nullable=False),
    Column("group_id", Integer, nullable=False),
    Column("area_name", String(255), nullable=False),
    Column("role", String(30), nullable=False),
    Column("is_used", Integer, nullable=False, server_default="0"),
    Column("used_at", String(32)),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

# Columns update_user() accepts. Anything else is a programming error.
_USER_UPDATABLE: frozenset[str] = frozenset({"hashed_password", "group_id", "area_name", "role", "is_active"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and MagicLinkToken entities.

    Usage:
        store = UserStore()
        store.create_user(User(username="admin", role=Role.ADMIN, group_id=1,
                               area_name="HQ", hashed_password=hash_password("secret")))
        user = store.get_by_username("admin")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one active user exists."""
        with self.engine.connect() as conn:
            count = conn.execute(select(func.count()).select_from(_users).where(_users.c.is_active == 1)).scalar()
        return (count or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists,
        including usernames held by soft-deleted accounts.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    group_id=user.group_id,
                    area_name=user.area_name,
                    role=Role.parse(user.role).value,
                    created_at=now,
                    updated_at=now,
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive), active or not."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_active_by_username(self, username: str) -> User | None:
        user = self.get_by_username(username)
        return user if user is not None and user.is_active else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key, active or not."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, group_id: int | None = None) -> list[User]:
        """Return active users ordered by username, optionally limited to one group."""
        query = _users.select().where(_users.c.is_active == 1)
        if group_id is not None:
            query = query.where(_users.c.group_id == group_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update one or more user columns. Returns True if a row changed.

        Only keys in _USER_UPDATABLE are accepted; unknown keys raise
        ValueError rather than being silently ignored.
        """
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        values = dict(fields)
        if "role" in values:
            values["role"] = Role.parse(values["role"]).value
        if "is_active" in values:
            values["is_active"] = 1 if values["is_active"] else 0
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def deactivate_user(self, user_id: int) -> bool:
        """Soft-delete a user. Returns False if the user does not exist or is already inactive."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.is_active == 1))
                .values(is_active=0, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Magic-link tokens
    # ------------------------------------------------------------------

    def create_magic_link(self, record: MagicLinkToken) -> int:
        """Insert a magic-link token record and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _magic_links.insert().values(
                    token=record.token,
                    user_id=record.user_id,
                    username=record.username,
                    group_id=record.group_id,
                    area_name=record.area_name,
                    role=Role.parse(record.role).value,
                    is_used=1 if record.is_used else 0,
                    used_at=record.used_at,
                    expires_at=record.expires_at,
                    created_at=record.created_at or _now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_magic_link(self, token: str) -> MagicLinkToken | None:
        """Look up a magic-link record by exact token string."""
        with self.engine.connect() as conn:
            row = conn.execute(_magic_links.select().where(_magic_links.c.token == token)).fetchone()
        return _row_to_magic_link(row) if row is not None else None

    def mark_magic_link_used(self, record_id: int, used_at: str) -> bool:
        """Stamp first use on a magic-link record.

        Only rows with is_used = 0 are touched, so a later call is a no-op
        and returns False.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _magic_links.update()
                .where((_magic_links.c.id == record_id) & (_magic_links.c.is_used == 0))
                .values(is_used=1, used_at=used_at)
            )
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        group_id=row.group_id,
        area_name=row.area_name,
        role=Role.parse(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
        is_active=bool(row.is_active),
    )


def _row_to_magic_link(row) -> MagicLinkToken:
    return MagicLinkToken(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        username=row.username,
        group_id=row.group_id,
        area_name=row.area_name,
        role=Role.parse(row.role),
        is_used=bool(row.is_used),
        used_at=row.used_at,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
