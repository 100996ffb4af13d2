# Overview: Dashboard figures, grouped sales reports and spreadsheet export.

from __future__ import annotations

import base64
from datetime import datetime, timedelta
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sale, SaleLine
from ..validation import ValidationError
from rexpos.time_utils import days_ago, parse_iso_datetime, parse_iso_range_end, to_utc_z, utcnow
from .store_service import require_store


GROUP_FORMATS = {
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
}

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

EXPORT_COLUMNS = (
    ("Period", "period"),
    ("Sales", "sales_count"),
    ("Items Sold", "items_sold"),
    ("Revenue", "revenue_cents"),
    ("Profit", "profit_cents"),
)


class ReportError(ValidationError):
    """Raised when report generation fails."""
    pass


def _parse_range(start, end) -> tuple[datetime | None, datetime | None, datetime | None]:
    """(start, end as given, exclusive upper bound); a bare end date covers that whole day."""
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
        end_before = parse_iso_range_end(end) if end else None
    except (AttributeError, TypeError, ValueError):
        raise ReportError("start and end must be ISO-8601 dates")
    if start_dt and end_before and start_dt >= end_before:
        raise ReportError("start must be before end")
    return start_dt, end_dt, end_before


def dashboard_stats(store_id: int) -> dict:
    """
    All-time revenue/profit/sales count, low-stock count, five latest sales and
    a seven-day revenue series (oldest day first, today last).
    """
    require_store(store_id)

    revenue, profit, sales_count = (
        db.session.query(
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.coalesce(func.sum(Sale.profit_cents), 0),
            func.count(Sale.id),
        )
        .filter(Sale.store_id == store_id)
        .one()
    )

    low_stock_count = (
        db.session.query(func.count(Product.id))
        .filter(
            Product.store_id == store_id,
            Product.is_active.is_(True),
            Product.stock_level <= Product.min_stock_level,
        )
        .scalar()
    )

    recent = (
        db.session.query(Sale)
        .filter(Sale.store_id == store_id)
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .limit(5)
        .all()
    )

    since = days_ago(6)
    buckets: dict = {}
    for i in range(7):
        buckets[(since + timedelta(days=i)).date()] = 0
    rows = (
        db.session.query(Sale.sale_date, Sale.total_cents)
        .filter(Sale.store_id == store_id, Sale.sale_date >= since)
        .all()
    )
    for sale_date, total in rows:
        day = sale_date.date()
        if day in buckets:
            buckets[day] += total

    return {
        "revenue_cents": int(revenue),
        "profit_cents": int(profit),
        "sales_count": int(sales_count),
        "low_stock_count": int(low_stock_count or 0),
        "recent_sales": [
            {
                "id": s.id,
                "invoice_number": s.invoice_number,
                "customer_name": s.customer_name,
                "sale_date": to_utc_z(s.sale_date),
                "total_cents": s.total_cents,
                "payment_status": s.payment_status,
            }
            for s in recent
        ],
        "chart": [
            {"date": day.isoformat(), "name": DAY_NAMES[day.weekday()], "sales_cents": total}
            for day, total in buckets.items()
        ],
    }


def sales_report(*, store_id: int, start=None, end=None, group_by: str = "day") -> dict:
    require_store(store_id)
    start_dt, end_dt, end_before = _parse_range(start, end)

    fmt = GROUP_FORMATS.get(group_by)
    if fmt is None:
        raise ReportError("group_by must be day or month")
    period_expr = func.strftime(fmt, Sale.sale_date)

    filters = [Sale.store_id == store_id]
    if start_dt:
        filters.append(Sale.sale_date >= start_dt)
    if end_before:
        filters.append(Sale.sale_date < end_before)

    totals = (
        db.session.query(
            period_expr.label("period"),
            func.count(Sale.id).label("sales_count"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue_cents"),
            func.coalesce(func.sum(Sale.profit_cents), 0).label("profit_cents"),
        )
        .filter(*filters)
        .group_by("period")
        .order_by("period")
        .all()
    )

    # Lines are summed separately so header totals are not multiplied by the join
    items = dict(
        db.session.query(period_expr.label("period"), func.coalesce(func.sum(SaleLine.quantity), 0))
        .join(SaleLine, SaleLine.sale_id == Sale.id)
        .filter(*filters)
        .group_by("period")
        .all()
    )

    rows = [
        {
            "period": row.period,
            "sales_count": int(row.sales_count),
            "items_sold": int(items.get(row.period, 0)),
            "revenue_cents": int(row.revenue_cents),
            "profit_cents": int(row.profit_cents),
        }
        for row in totals
    ]
    return {
        "store_id": store_id,
        "group_by": group_by,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": rows,
        "totals": {
            "sales_count": sum(r["sales_count"] for r in rows),
            "items_sold": sum(r["items_sold"] for r in rows),
            "revenue_cents": sum(r["revenue_cents"] for r in rows),
            "profit_cents": sum(r["profit_cents"] for r in rows),
        },
    }


def export_sales_report(*, store_id: int, start=None, end=None, group_by: str = "day") -> dict:
    """Render sales_report as an .xlsx workbook; returns {filename, content_base64, mimetype}."""
    store = require_store(store_id)
    report = sales_report(store_id=store_id, start=start, end=end, group_by=group_by)

    wb = Workbook()
    ws = wb.active
    ws.title = "Sales"
    ws.append([label for label, _ in EXPORT_COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for row in report["rows"]:
        ws.append([
            row["period"],
            row["sales_count"],
            row["items_sold"],
            row["revenue_cents"] / 100,
            row["profit_cents"] / 100,
        ])

    totals = report["totals"]
    ws.append([
        "Total",
        totals["sales_count"],
        totals["items_sold"],
        totals["revenue_cents"] / 100,
        totals["profit_cents"] / 100,
    ])
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)
    for row in ws.iter_rows(min_row=2, min_col=4, max_col=5):
        for cell in row:
            cell.number_format = "#,##0.00"

    buffer = BytesIO()
    wb.save(buffer)

    filename = f"sales-{store.code.lower()}-{group_by}-{utcnow().strftime('%Y%m%d')}.xlsx"
    return {
        "filename": filename,
        "mimetype": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "content_base64": base64.b64encode(buffer.getvalue()).decode("ascii"),
        "row_count": len(report["rows"]),
    }
