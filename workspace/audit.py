"""
workspace/audit.py -- Best-effort audit trail for view-group mutations.

The change description is serialized by the caller (serialize_changes) BEFORE
the mutation is applied, so a change set that cannot be encoded aborts the
operation while nothing has been written yet.

Once the mutation has succeeded, record() never undoes or fails it: a store
error is logged and reported as False so the response can say
audit_recorded=false.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from workspace.models import AuditAction, AuditRecord
from workspace.store import WorkspaceStore

logger = logging.getLogger("areagate.workspace.audit")


def serialize_changes(changes: dict) -> str:
    """Encode a change set as a JSON object string.

    Raises TypeError/ValueError for values JSON cannot represent.
    """
    if not isinstance(changes, dict):
        raise TypeError("changes must be a dict")
    return json.dumps(changes, sort_keys=True, allow_nan=False)


class AuditRecorder:
    """Append audit rows for view-group mutations.

    Usage:
        changes = serialize_changes({"name": "Lobby"})
        ...apply mutation...
        recorded = recorder.record(view_group_id, AuditAction.UPDATE, actor.username, changes)
    """

    def __init__(self, store: WorkspaceStore) -> None:
        self._store = store

    def record(self, view_group_id: str, action: AuditAction, changed_by: str, changes: str) -> bool:
        record = AuditRecord(
            view_group_id=view_group_id,
            action=action,
            changed_by=changed_by,
            changes=changes,
        )
        try:
            self._store.append_audit(record)
        except SQLAlchemyError:
            logger.exception(
                "Audit write failed for view_group=%s action=%s by=%s",
                view_group_id,
                AuditAction(action).value,
                changed_by,
            )
            return False
        logger.info("Audit %s view_group=%s by=%s", AuditAction(action).value, view_group_id, changed_by)
        return True
