"""Unit tests for auth/store.py and workspace/store.py -- repository methods.

Covers:
- UserStore: unique usernames, group-scoped listing, soft delete, field allowlist
- UserStore: magic-link first-use stamp only applies once
- WorkspaceStore: view group CRUD, newest-first ordering, group filter
- WorkspaceStore: preference upsert keeps one row per user
- WorkspaceStore: custom maps with camera positions replaced on update
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import MagicLinkToken, Role, User
from workspace.models import CameraPosition, CustomMap, ViewGroup

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user(username: str, group_id: int = 7, role: Role = Role.BASIC_USER) -> User:
    return User(username=username, role=role, group_id=group_id, area_name=f"Area {group_id}", hashed_password="h")


def _view_group(vg_id: str, group_id: int = 7, name: str = "Lobby") -> ViewGroup:
    return ViewGroup(
        id=vg_id,
        name=name,
        group_id=group_id,
        area_name=f"Area {group_id}",
        cameras=["cam-1", "cam-2"],
        created_by="alice",
    )


# ---------------------------------------------------------------------------
# UserStore
# ---------------------------------------------------------------------------


class TestUserStore:
    def test_has_users(self, user_store) -> None:
        assert user_store.has_users() is False
        user_store.create_user(_user("alice"))
        assert user_store.has_users() is True

    def test_duplicate_username_raises(self, user_store) -> None:
        user_store.create_user(_user("alice"))
        with pytest.raises(IntegrityError):
            user_store.create_user(_user("alice", group_id=9))

    def test_list_users_scoped_by_group(self, user_store) -> None:
        user_store.create_user(_user("bob", group_id=7))
        user_store.create_user(_user("alice", group_id=7))
        user_store.create_user(_user("dave", group_id=9))
        assert [u.username for u in user_store.list_users(group_id=7)] == ["alice", "bob"]
        assert len(user_store.list_users()) == 3

    def test_soft_delete_hides_user_but_keeps_username(self, user_store) -> None:
        uid = user_store.create_user(_user("alice"))
        assert user_store.deactivate_user(uid) is True
        assert user_store.deactivate_user(uid) is False
        assert user_store.get_active_by_username("alice") is None
        assert user_store.get_by_id(uid).is_active is False
        assert user_store.list_users() == []
        with pytest.raises(IntegrityError):
            user_store.create_user(_user("alice"))

    def test_update_user_fields(self, user_store) -> None:
        uid = user_store.create_user(_user("alice"))
        assert user_store.update_user(uid, role=Role.AREA_ADMIN, group_id=9) is True
        updated = user_store.get_by_id(uid)
        assert updated.role is Role.AREA_ADMIN
        assert updated.group_id == 9

    def test_update_user_rejects_unknown_fields(self, user_store) -> None:
        uid = user_store.create_user(_user("alice"))
        with pytest.raises(ValueError):
            user_store.update_user(uid, username="mallory")

    def test_magic_link_stamp_applies_once(self, user_store) -> None:
        uid = user_store.create_user(_user("bob"))
        record_id = user_store.create_magic_link(
            MagicLinkToken(
                token="a.b.c",
                user_id=uid,
                username="bob",
                group_id=7,
                area_name="Area 7",
                role=Role.BASIC_USER,
                expires_at="2100-01-01T00:00:00+00:00",
            )
        )
        assert user_store.mark_magic_link_used(record_id, "2024-01-01T00:00:00+00:00") is True
        assert user_store.mark_magic_link_used(record_id, "2024-06-01T00:00:00+00:00") is False
        record = user_store.get_magic_link("a.b.c")
        assert record.is_used is True
        assert record.used_at == "2024-01-01T00:00:00+00:00"
        assert record.id == record_id


# ---------------------------------------------------------------------------
# WorkspaceStore -- view groups and preferences
# ---------------------------------------------------------------------------


class TestViewGroups:
    def test_create_and_get(self, workspace_store) -> None:
        workspace_store.create_view_group(_view_group("vg-1"))
        vg = workspace_store.get_view_group("vg-1")
        assert vg.name == "Lobby"
        assert vg.cameras == ["cam-1", "cam-2"]
        assert vg.updated_by == "alice"
        assert vg.created_at == vg.updated_at

    def test_duplicate_id_raises(self, workspace_store) -> None:
        workspace_store.create_view_group(_view_group("vg-1"))
        with pytest.raises(IntegrityError):
            workspace_store.create_view_group(_view_group("vg-1"))

    def test_list_newest_first_and_scoped(self, workspace_store) -> None:
        workspace_store.create_view_group(_view_group("old", group_id=7))
        workspace_store.create_view_group(_view_group("other", group_id=9))
        workspace_store.create_view_group(_view_group("new", group_id=7))
        assert [vg.id for vg in workspace_store.list_view_groups(group_id=7)] == ["new", "old"]
        assert {vg.id for vg in workspace_store.list_view_groups()} == {"old", "other", "new"}

    def test_update_overwrites_given_fields(self, workspace_store) -> None:
        workspace_store.create_view_group(_view_group("vg-1"))
        assert workspace_store.update_view_group(
            "vg-1", name="Gate", cameras=["cam-9"], auto_rotation_interval=None, updated_by="root"
        )
        vg = workspace_store.get_view_group("vg-1")
        assert (vg.name, vg.cameras, vg.updated_by) == ("Gate", ["cam-9"], "root")

    def test_update_unknown_field_rejected(self, workspace_store) -> None:
        workspace_store.create_view_group(_view_group("vg-1"))
        with pytest.raises(ValueError):
            workspace_store.update_view_group("vg-1", group_id=9)

    def test_delete(self, workspace_store) -> None:
        workspace_store.create_view_group(_view_group("vg-1"))
        assert workspace_store.delete_view_group("vg-1") is True
        assert workspace_store.get_view_group("vg-1") is None
        assert workspace_store.delete_view_group("vg-1") is False

    def test_preference_upsert_keeps_one_row(self, workspace_store) -> None:
        assert workspace_store.get_preference(1) is None
        workspace_store.upsert_preference(1, "alice", "vg-1")
        workspace_store.upsert_preference(1, "alice", "vg-2")
        pref = workspace_store.get_preference(1)
        assert pref.default_view_id == "vg-2"
        workspace_store.upsert_preference(1, "alice", None)
        assert workspace_store.get_preference(1).default_view_id is None


# ---------------------------------------------------------------------------
# WorkspaceStore -- custom maps
# ---------------------------------------------------------------------------


class TestCustomMaps:
    def _map(self, group_id: int = 7) -> CustomMap:
        return CustomMap(
            name="Floor 1",
            type="image",
            group_id=group_id,
            image_data="data:image/png;base64,AAAA",
            image_width=800,
            image_height=600,
            bounds={"north": 1.5, "south": 1.0},
            cameras=[
                CameraPosition(camera_id="cam-1", camera_name="Door", x=10, y=20, bearing=90, fov=60, range=30),
                CameraPosition(camera_id="cam-2", x=5, y=5),
            ],
        )

    def test_create_and_get_with_cameras(self, workspace_store) -> None:
        map_id = workspace_store.create_custom_map(self._map())
        cmap = workspace_store.get_custom_map(map_id)
        assert cmap.name == "Floor 1"
        assert cmap.bounds == {"north": 1.5, "south": 1.0}
        assert [c.camera_id for c in cmap.cameras] == ["cam-1", "cam-2"]
        assert cmap.cameras[0].bearing == 90

    def test_list_omits_image_data(self, workspace_store) -> None:
        workspace_store.create_custom_map(self._map(group_id=7))
        workspace_store.create_custom_map(self._map(group_id=9))
        maps = workspace_store.list_custom_maps(group_id=7)
        assert len(maps) == 1
        assert maps[0].image_data is None
        assert maps[0].cameras == []

    def test_update_replaces_cameras(self, workspace_store) -> None:
        map_id = workspace_store.create_custom_map(self._map())
        assert workspace_store.update_custom_map(
            map_id, cameras=[CameraPosition(camera_id="cam-9")], name="Floor 2"
        )
        cmap = workspace_store.get_custom_map(map_id)
        assert cmap.name == "Floor 2"
        assert [c.camera_id for c in cmap.cameras] == ["cam-9"]

    def test_update_without_cameras_keeps_them(self, workspace_store) -> None:
        map_id = workspace_store.create_custom_map(self._map())
        workspace_store.update_custom_map(map_id, available=False)
        cmap = workspace_store.get_custom_map(map_id)
        assert cmap.available is False
        assert len(cmap.cameras) == 2

    def test_update_missing_map(self, workspace_store) -> None:
        assert workspace_store.update_custom_map(999, name="x") is False

    def test_delete_removes_cameras(self, workspace_store) -> None:
        map_id = workspace_store.create_custom_map(self._map())
        assert workspace_store.delete_custom_map(map_id) is True
        assert workspace_store.get_custom_map(map_id) is None
        # A new map must not inherit orphaned camera rows.
        new_id = workspace_store.create_custom_map(CustomMap(name="Empty", type="vector", group_id=7))
        assert workspace_store.get_custom_map(new_id).cameras == []
