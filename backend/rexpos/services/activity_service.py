# Overview: Append-only activity log writes and reads.

from __future__ import annotations

from ..extensions import db
from ..models import ActivityLog
from .query_utils import paginate

"""
Activity Log Invariants

- Append-only: no updates, no deletes.
- Rows are written inside the caller's transaction; this module never commits.
- A log row is never the reason a business write fails: callers pass plain
  values and the row is only added to the session.
"""

ACTIONS = ("CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT")


def log_activity(
    *,
    action: str,
    module: str,
    store_id: int | None = None,
    user_id: int | None = None,
    record_id: int | None = None,
    changes: dict | None = None,
    ip_address: str | None = None,
) -> ActivityLog:
    if action not in ACTIONS:
        raise ValueError(f"Unknown activity action: {action}")

    entry = ActivityLog(
        user_id=user_id,
        store_id=store_id,
        action=action,
        module=module,
        record_id=record_id,
        changes=changes,
        ip_address=ip_address,
    )
    db.session.add(entry)
    return entry


def list_activity(
    *,
    store_id: int | None = None,
    module: str | None = None,
    user_id: int | None = None,
    action: str | None = None,
    page=None,
    page_size=None,
) -> dict:
    query = db.session.query(ActivityLog)
    if store_id is not None:
        query = query.filter(ActivityLog.store_id == store_id)
    if module:
        query = query.filter(ActivityLog.module == module)
    if user_id is not None:
        query = query.filter(ActivityLog.user_id == user_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    return paginate(query, page=page, page_size=page_size)
