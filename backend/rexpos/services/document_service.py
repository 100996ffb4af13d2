# Overview: Default document numbers for purchase orders, invoices and expenses.

from __future__ import annotations

from ..extensions import db
from rexpos.time_utils import epoch_millis


def next_document_number(*, model, column, store_id: int, prefix: str) -> str:
    """
    Timestamp-derived number, e.g. PO-1718000000000.

    Two documents created in the same millisecond get a -2, -3 ... suffix so
    the (store_id, number) unique constraint holds. Never commits.
    """
    base = f"{prefix}-{epoch_millis()}"
    candidate = base
    n = 1
    while db.session.query(model.id).filter(model.store_id == store_id, column == candidate).first():
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def number_in_use(*, model, column, store_id: int, number: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(model.id).filter(model.store_id == store_id, column == number)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.first() is not None
