"""
Dashboard figures, grouped sales reports and the spreadsheet export.
"""

import base64
from io import BytesIO

import pytest
from openpyxl import load_workbook

from rexpos.models import ActivityLog
from rexpos.services import activity_service, reporting_service, sales_service
from rexpos.services.reporting_service import ReportError
from rexpos.time_utils import utcnow


@pytest.fixture
def sold(store, make_product):
    """Three sales over two days in May 2024 and one in June."""
    product = make_product(stock_level=100)

    def sell(quantity, when):
        return sales_service.checkout(store.id, {
            "items": [{"product_id": product.id, "quantity": quantity}],
            "sale_date": when,
        })

    sell(1, "2024-05-01T09:00:00Z")
    sell(2, "2024-05-01T15:30:00Z")
    sell(3, "2024-05-02T11:00:00Z")
    sell(4, "2024-06-10T12:00:00Z")
    return product


class TestSalesReport:

    def test_group_by_day(self, store, sold):
        report = reporting_service.sales_report(store_id=store.id, group_by="day")
        assert [r["period"] for r in report["rows"]] == ["2024-05-01", "2024-05-02", "2024-06-10"]

        first = report["rows"][0]
        assert first["sales_count"] == 2
        assert first["items_sold"] == 3
        assert first["revenue_cents"] == 4500
        assert first["profit_cents"] == 1500

        assert report["totals"]["items_sold"] == 10
        assert report["totals"]["revenue_cents"] == 15000

    def test_group_by_month_with_range(self, store, sold):
        report = reporting_service.sales_report(
            store_id=store.id, group_by="month", start="2024-05-01", end="2024-05-31T23:59:59Z",
        )
        assert report["rows"] == [{
            "period": "2024-05",
            "sales_count": 3,
            "items_sold": 6,
            "revenue_cents": 9000,
            "profit_cents": 3000,
        }]
        assert report["start"] == "2024-05-01T00:00:00Z"

    def test_same_day_range_includes_that_day(self, store, sold):
        report = reporting_service.sales_report(store_id=store.id, start="2024-05-01", end="2024-05-01")
        assert [r["period"] for r in report["rows"]] == ["2024-05-01"]
        assert report["totals"]["sales_count"] == 2
        assert report["end"] == "2024-05-01T00:00:00Z"

        export = reporting_service.export_sales_report(store_id=store.id, start="2024-05-02", end="2024-05-02")
        assert export["row_count"] == 1

    def test_invalid_group_by(self, store):
        with pytest.raises(ReportError, match="group_by"):
            reporting_service.sales_report(store_id=store.id, group_by="week")

    def test_inverted_range(self, store):
        with pytest.raises(ReportError, match="start must be before end"):
            reporting_service.sales_report(store_id=store.id, start="2024-06-01", end="2024-05-01")

    def test_bad_date(self, store):
        with pytest.raises(ReportError, match="ISO-8601"):
            reporting_service.sales_report(store_id=store.id, start="yesterday")

    def test_export_workbook(self, store, sold):
        export = reporting_service.export_sales_report(store_id=store.id, group_by="month")
        assert export["filename"].startswith("sales-main-month-")
        assert export["filename"].endswith(".xlsx")
        assert export["row_count"] == 2

        wb = load_workbook(BytesIO(base64.b64decode(export["content_base64"])))
        ws = wb["Sales"]
        rows = list(ws.iter_rows(values_only=True))
        assert rows[0] == ("Period", "Sales", "Items Sold", "Revenue", "Profit")
        assert rows[1] == ("2024-05", 3, 6, 90, 30)
        assert rows[-1] == ("Total", 4, 10, 150, 50)


class TestDashboard:

    def test_stats_and_chart(self, store, make_product):
        product = make_product(stock_level=10, min_stock_level=20)
        sales_service.checkout(store.id, {"items": [{"product_id": product.id, "quantity": 2}]})

        stats = reporting_service.dashboard_stats(store.id)
        assert stats["revenue_cents"] == 3000
        assert stats["profit_cents"] == 1000
        assert stats["sales_count"] == 1
        assert stats["low_stock_count"] == 1
        assert len(stats["recent_sales"]) == 1

        chart = stats["chart"]
        assert len(chart) == 7
        assert chart[-1]["date"] == utcnow().date().isoformat()
        assert chart[-1]["sales_cents"] == 3000
        assert sum(day["sales_cents"] for day in chart) == 3000

    def test_empty_store(self, store):
        stats = reporting_service.dashboard_stats(store.id)
        assert stats["revenue_cents"] == 0
        assert stats["recent_sales"] == []
        assert all(day["sales_cents"] == 0 for day in stats["chart"])


class TestActivityLog:

    def test_list_filters_by_module(self, store, product):
        result = activity_service.list_activity(store_id=store.id, module="products")
        assert result["total"] == 1
        assert result["data"][0]["action"] == "CREATE"

    def test_unknown_action_rejected(self, db_session):
        with pytest.raises(ValueError):
            activity_service.log_activity(action="PURGE", module="x")
        assert db_session.query(ActivityLog).count() == 0
