"""
tests/test_audit.py -- Unit tests for workspace/audit.py.

Covers:
  - record() appends exactly one row with the given actor and changes
  - store failures are swallowed and reported as False (best effort)
  - serialize_changes() produces a JSON object and rejects unencodable values
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from workspace.audit import AuditRecorder, serialize_changes
from workspace.models import AuditAction


class TestRecord:
    def test_appends_one_row(self, workspace_store) -> None:
        recorder = AuditRecorder(workspace_store)
        assert recorder.record("vg-1", AuditAction.CREATE, "alice", serialize_changes({"name": "Lobby"})) is True
        rows = workspace_store.list_audit("vg-1")
        assert len(rows) == 1
        assert rows[0].action is AuditAction.CREATE
        assert rows[0].changed_by == "alice"
        assert json.loads(rows[0].changes) == {"name": "Lobby"}
        assert rows[0].created_at

    def test_rows_accumulate_in_order(self, workspace_store) -> None:
        recorder = AuditRecorder(workspace_store)
        for action in (AuditAction.CREATE, AuditAction.UPDATE, AuditAction.DELETE):
            recorder.record("vg-2", action, "root", "{}")
        assert [r.action for r in workspace_store.list_audit("vg-2")] == [
            AuditAction.CREATE,
            AuditAction.UPDATE,
            AuditAction.DELETE,
        ]

    def test_store_failure_is_swallowed(self, caplog) -> None:
        store = MagicMock()
        store.append_audit.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))
        recorder = AuditRecorder(store)
        with caplog.at_level("ERROR", logger="areagate.workspace.audit"):
            assert recorder.record("vg-3", AuditAction.UPDATE, "alice", "{}") is False
        assert "vg-3" in caplog.text
        store.append_audit.assert_called_once()


class TestSerializeChanges:
    def test_returns_json_object_string(self) -> None:
        assert json.loads(serialize_changes({"cameras": ["c1", "c2"], "autoRotationInterval": None})) == {
            "cameras": ["c1", "c2"],
            "autoRotationInterval": None,
        }

    def test_unencodable_value_raises(self) -> None:
        with pytest.raises(TypeError):
            serialize_changes({"when": object()})

    def test_nan_rejected(self) -> None:
        with pytest.raises(ValueError):
            serialize_changes({"ratio": float("nan")})

    def test_non_dict_rejected(self) -> None:
        with pytest.raises(TypeError):
            serialize_changes(["not", "a", "dict"])  # type: ignore[arg-type]
