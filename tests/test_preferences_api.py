"""
tests/test_preferences_api.py -- Integration tests for /api/v1/users/me/default-view.

Covers:
  - unset preference reads as null
  - every role can set a readable default view, and clear it
  - unknown and other-area view ids are both 404, with identical bodies
  - the /users/me route is not shadowed by /users/{user_id}
"""

from __future__ import annotations

from tests.conftest import ApiEnv

_URL = "/api/v1/users/me/default-view"


def _view_group(api_env: ApiEnv, vg_id: str, group_id: int, area: str) -> None:
    resp = api_env.client.post(
        "/api/v1/view-groups",
        json={"id": vg_id, "name": vg_id, "group_id": group_id, "area_name": area},
        headers=api_env.headers("root"),
    )
    assert resp.status_code == 201, resp.text


def test_unset_default_is_null(api_env: ApiEnv) -> None:
    resp = api_env.client.get(_URL, headers=api_env.headers("dave"))
    assert resp.status_code == 200
    assert resp.json() == {"user_id": api_env.users["dave"].id, "default_view_id": None, "updated_at": None}


def test_basic_user_sets_and_clears_default(api_env: ApiEnv) -> None:
    _view_group(api_env, "bob-home", 7, "North Gate")
    headers = api_env.headers("bob")

    resp = api_env.client.put(_URL, json={"default_view_id": "bob-home"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["default_view_id"] == "bob-home"
    assert api_env.client.get(_URL, headers=headers).json()["default_view_id"] == "bob-home"

    cleared = api_env.client.put(_URL, json={"default_view_id": None}, headers=headers)
    assert cleared.json()["default_view_id"] is None


def test_unknown_view_is_404(api_env: ApiEnv) -> None:
    resp = api_env.client.put(_URL, json={"default_view_id": "ghost"}, headers=api_env.headers("alice"))
    assert resp.status_code == 404


def test_other_area_view_looks_missing(api_env: ApiEnv) -> None:
    _view_group(api_env, "north-home", 7, "North Gate")
    headers = api_env.headers("dave")

    other = api_env.client.put(_URL, json={"default_view_id": "north-home"}, headers=headers)
    missing = api_env.client.put(_URL, json={"default_view_id": "no-such-view"}, headers=headers)
    direct = api_env.client.get("/api/v1/view-groups/north-home", headers=headers)

    assert other.status_code == missing.status_code == direct.status_code == 404
    assert other.json() == missing.json(), "Another area's view must look exactly like an unknown id"
    assert api_env.workspace.get_preference(api_env.users["dave"].id) is None


def test_requires_session(api_env: ApiEnv) -> None:
    assert api_env.client.get(_URL).status_code == 401
