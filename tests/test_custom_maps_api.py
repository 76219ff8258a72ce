"""
tests/test_custom_maps_api.py -- Integration tests for /api/v1/custom-maps.

Covers:
  - create defaults to the caller's area and stores camera positions
  - list omits image data and cameras; detail includes them
  - other-area maps are 404 on read, 403 on write
  - PUT replaces cameras only when given; nullable fields can be cleared
  - Basic Users cannot write
"""

from __future__ import annotations

from tests.conftest import ApiEnv

_CAMERAS = [
    {"camera_id": "cam-1", "camera_name": "Gate", "x": 10, "y": 20, "bearing": 90, "fov": 60, "range": 40},
    {"camera_id": "cam-2", "x": 5, "y": 5},
]


def _create(api_env: ApiEnv, actor: str = "alice", **body) -> dict:
    payload = {
        "name": "Floor plan",
        "type": "image",
        "image_data": "data:image/png;base64,AAAA",
        "image_width": 800,
        "image_height": 600,
        "cameras": _CAMERAS,
    }
    payload.update(body)
    resp = api_env.client.post("/api/v1/custom-maps", json=payload, headers=api_env.headers(actor))
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()


class TestCreateAndRead:
    def test_create_defaults_to_actor_group(self, api_env: ApiEnv) -> None:
        data = _create(api_env)
        assert data["group_id"] == 7
        assert [c["camera_id"] for c in data["cameras"]] == ["cam-1", "cam-2"]
        assert data["cameras"][0]["bearing"] == 90

    def test_list_is_light_and_scoped(self, api_env: ApiEnv) -> None:
        own = _create(api_env, actor="alice", name="North map")
        other = _create(api_env, actor="carol", name="South map")
        listed = api_env.client.get("/api/v1/custom-maps", headers=api_env.headers("bob")).json()
        ids = {m["id"] for m in listed}
        assert own["id"] in ids
        assert other["id"] not in ids
        entry = next(m for m in listed if m["id"] == own["id"])
        assert entry["image_data"] is None
        assert entry["cameras"] == []

    def test_detail_includes_image_and_cameras(self, api_env: ApiEnv) -> None:
        created = _create(api_env)
        resp = api_env.client.get(f"/api/v1/custom-maps/{created['id']}", headers=api_env.headers("bob"))
        assert resp.status_code == 200
        assert resp.json()["image_data"] == "data:image/png;base64,AAAA"
        assert len(resp.json()["cameras"]) == 2

    def test_other_area_read_is_404(self, api_env: ApiEnv) -> None:
        created = _create(api_env, actor="carol")
        resp = api_env.client.get(f"/api/v1/custom-maps/{created['id']}", headers=api_env.headers("alice"))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_tile_map_without_image(self, api_env: ApiEnv) -> None:
        data = _create(
            api_env,
            type="raster",
            image_data=None,
            tile_url="https://tiles.example/{z}/{x}/{y}.png",
            bounds={"north": 1.5, "south": 1.0, "east": 104.0, "west": 103.5},
            cameras=[],
        )
        assert data["type"] == "raster"
        assert data["bounds"]["east"] == 104.0

    def test_invalid_type_is_422(self, api_env: ApiEnv) -> None:
        resp = api_env.client.post(
            "/api/v1/custom-maps", json={"name": "x", "type": "satellite"}, headers=api_env.headers("alice")
        )
        assert resp.status_code == 422


class TestWrites:
    def test_basic_user_cannot_create(self, api_env: ApiEnv) -> None:
        resp = api_env.client.post("/api/v1/custom-maps", json={"name": "x"}, headers=api_env.headers("bob"))
        assert resp.status_code == 403

    def test_update_replaces_cameras(self, api_env: ApiEnv) -> None:
        created = _create(api_env)
        resp = api_env.client.put(
            f"/api/v1/custom-maps/{created['id']}",
            json={"name": "Renamed", "cameras": [{"camera_id": "cam-9"}]},
            headers=api_env.headers("alice"),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Renamed"
        assert [c["camera_id"] for c in resp.json()["cameras"]] == ["cam-9"]

    def test_update_without_cameras_keeps_them(self, api_env: ApiEnv) -> None:
        created = _create(api_env)
        resp = api_env.client.put(
            f"/api/v1/custom-maps/{created['id']}", json={"available": False}, headers=api_env.headers("alice")
        )
        assert resp.json()["available"] is False
        assert len(resp.json()["cameras"]) == 2

    def test_update_can_clear_image(self, api_env: ApiEnv) -> None:
        created = _create(api_env)
        resp = api_env.client.put(
            f"/api/v1/custom-maps/{created['id']}", json={"image_data": None}, headers=api_env.headers("alice")
        )
        assert resp.status_code == 200
        assert resp.json()["image_data"] is None

    def test_empty_update_is_400(self, api_env: ApiEnv) -> None:
        created = _create(api_env)
        resp = api_env.client.put(f"/api/v1/custom-maps/{created['id']}", json={}, headers=api_env.headers("alice"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_changes"

    def test_cross_area_update_is_403(self, api_env: ApiEnv) -> None:
        created = _create(api_env, actor="carol")
        resp = api_env.client.put(
            f"/api/v1/custom-maps/{created['id']}", json={"name": "x"}, headers=api_env.headers("alice")
        )
        assert resp.status_code == 403

    def test_delete(self, api_env: ApiEnv) -> None:
        created = _create(api_env)
        resp = api_env.client.delete(f"/api/v1/custom-maps/{created['id']}", headers=api_env.headers("alice"))
        assert resp.status_code == 204
        assert api_env.workspace.get_custom_map(created["id"]) is None

    def test_basic_user_cannot_delete(self, api_env: ApiEnv) -> None:
        created = _create(api_env)
        resp = api_env.client.delete(f"/api/v1/custom-maps/{created['id']}", headers=api_env.headers("bob"))
        assert resp.status_code == 403
        assert api_env.workspace.get_custom_map(created["id"]) is not None

    def test_delete_missing_is_404(self, api_env: ApiEnv) -> None:
        resp = api_env.client.delete("/api/v1/custom-maps/99999", headers=api_env.headers("root"))
        assert resp.status_code == 404
