# Overview: Shared list helpers: pagination envelope and case-insensitive search.

from __future__ import annotations

import math

from flask import current_app
from sqlalchemy import or_

from ..validation import coerce_int


def resolve_paging(page=None, page_size=None) -> tuple[int, int]:
    """
    Normalize 1-based page and pageSize.

    Missing values fall back to page 1 and DEFAULT_PAGE_SIZE; pageSize is
    clamped to MAX_PAGE_SIZE.
    """
    page = 1 if page in (None, "") else coerce_int(page, "page")
    if page_size in (None, ""):
        page_size = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    else:
        page_size = coerce_int(page_size, "pageSize")
    max_size = current_app.config.get("MAX_PAGE_SIZE", 1000)
    return max(page, 1), min(max(page_size, 1), max_size)


def search_filter(search: str | None, *columns):
    """OR of case-insensitive substring matches, or None when search is blank."""
    if search is None:
        return None
    term = str(search).strip()
    if not term:
        return None
    # LIKE wildcards in the term match literally
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return or_(*[col.ilike(pattern, escape="\\") for col in columns])


def paginate(query, *, page=None, page_size=None, serialize=None) -> dict:
    """Run a list query and wrap it in {data, total, page, pageSize, totalPages}."""
    page, page_size = resolve_paging(page, page_size)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    serialize = serialize or (lambda row: row.to_dict())
    return {
        "data": [serialize(row) for row in rows],
        "total": total,
        "page": page,
        "pageSize": page_size,
        "totalPages": math.ceil(total / page_size) if total else 0,
    }
