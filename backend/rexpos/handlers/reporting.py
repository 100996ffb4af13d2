# Overview: Bridge handlers for the activity log, dashboard and sales reports.

from __future__ import annotations

from ..bridge import bridge, int_param, param
from ..services import activity_service, reporting_service


@bridge.register("activityLogs.getAll", paged=True)
def list_activity_logs(payload: dict):
    return activity_service.list_activity(
        store_id=int_param(payload, "storeId"),
        module=param(payload, "module"),
        user_id=int_param(payload, "filterUserId"),
        action=param(payload, "action"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("dashboard.getStats")
def dashboard_stats(payload: dict):
    return reporting_service.dashboard_stats(int_param(payload, "storeId", required=True))


@bridge.register("reports.sales")
def sales_report(payload: dict):
    return reporting_service.sales_report(
        store_id=int_param(payload, "storeId", required=True),
        start=param(payload, "start"),
        end=param(payload, "end"),
        group_by=param(payload, "groupBy", "day"),
    )


@bridge.register("reports.exportSales")
def export_sales(payload: dict):
    return reporting_service.export_sales_report(
        store_id=int_param(payload, "storeId", required=True),
        start=param(payload, "start"),
        end=param(payload, "end"),
        group_by=param(payload, "groupBy", "day"),
    )
