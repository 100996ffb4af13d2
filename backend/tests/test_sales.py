"""
Checkout, payment and sale reversal tests.
"""

import pytest

from rexpos.extensions import db
from rexpos.models import Sale
from rexpos.services import catalog_service, sales_service, store_service
from rexpos.services.sales_service import SaleError
from rexpos.services.stock_service import InsufficientStockError, get_stock_level
from rexpos.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def stocked(make_product):
    """Product with 10 on hand, cost 1000, price 1500."""
    return make_product(stock_level=10)


def _cart(product, quantity=2, **extra):
    return [{"product_id": product.id, "quantity": quantity, **extra}]


class TestCheckout:

    def test_cash_sale_is_paid_and_decrements_stock(self, store, stocked, admin_user):
        sale = sales_service.checkout(store.id, {
            "items": _cart(stocked, 2),
            "customer_name": "Ali",
            "payment_method": "Cash",
        }, cashier_id=admin_user.id)

        assert sale.invoice_number.startswith("INV-")
        assert sale.subtotal_cents == 3000
        assert sale.total_cents == 3000
        assert sale.profit_cents == 1000
        assert sale.paid_cents == 3000
        assert sale.payment_status == "PAID"
        assert sale.sold_by_id == admin_user.id
        assert [p.amount_cents for p in sale.payments] == [3000]
        assert sale.lines[0].cost_price_cents == 1000
        assert get_stock_level(store.id, stocked.id) == 8

    def test_credit_sale_starts_pending_without_payments(self, store, stocked):
        sale = sales_service.checkout(store.id, {
            "items": _cart(stocked, 2),
            "payment_method": "Credit",
        })
        assert sale.paid_cents == 0
        assert sale.payment_status == "PENDING"
        assert sale.payments == []
        assert sale.balance_due_cents == 3000

    @pytest.mark.parametrize("discount, expected_profit", [(0, 80), (20, 60)])
    def test_profit_subtracts_order_discount_once(self, store, make_product, discount, expected_profit):
        phone = make_product(buying_price_cents=60, selling_price_cents=100, stock_level=5)
        cable = make_product(buying_price_cents=50, selling_price_cents=50, stock_level=5)
        sale = sales_service.checkout(store.id, {
            "items": [{"product_id": phone.id, "quantity": 2}, {"product_id": cable.id, "quantity": 1}],
            "discount_cents": discount,
        })
        assert sale.profit_cents == expected_profit
        assert get_stock_level(store.id, phone.id) == 3
        assert get_stock_level(store.id, cable.id) == 4

    def test_percent_discount_reduces_total_and_profit(self, store, stocked):
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 2), "discount_percent": 10})
        assert sale.discount_cents == 300
        assert sale.total_cents == 2700
        assert sale.profit_cents == 700

    def test_fixed_discount_wins_over_percent(self, store, stocked):
        sale = sales_service.checkout(store.id, {
            "items": _cart(stocked, 2), "discount_cents": 100, "discount_percent": 50,
        })
        assert sale.discount_cents == 100
        assert sale.total_cents == 2900

    def test_discount_percent_checked_even_with_fixed_discount(self, store, stocked):
        with pytest.raises(ValidationError, match="discount_percent"):
            sales_service.checkout(store.id, {
                "items": _cart(stocked, 2), "discount_cents": 100, "discount_percent": 150,
            })
        assert get_stock_level(store.id, stocked.id) == 10

    def test_line_price_override_and_discount(self, store, stocked):
        sale = sales_service.checkout(store.id, {
            "items": _cart(stocked, 3, selling_price_cents=1400, discount_cents=200),
        })
        line = sale.lines[0]
        assert line.total_cents == 4000
        assert line.profit_cents == 1000
        assert sale.total_cents == 4000

    def test_tax_defaults_to_store_rate(self, store, stocked):
        store_service.update_store(store.id, {"settings": {"tax_rate_bps": 1700}})
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 2)})
        assert sale.tax_cents == 510
        assert sale.total_cents == 3510

    def test_explicit_tax_is_used_as_given(self, store, stocked):
        store_service.update_store(store.id, {"settings": {"tax_rate_bps": 1700}})
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 2), "tax_cents": 0})
        assert sale.tax_cents == 0

    def test_supplied_aggregates_must_match(self, store, stocked):
        with pytest.raises(ValidationError, match="total_cents mismatch"):
            sales_service.checkout(store.id, {"items": _cart(stocked, 2), "total_cents": 2500})
        assert get_stock_level(store.id, stocked.id) == 10
        assert db.session.query(Sale).count() == 0

    def test_matching_aggregates_are_accepted(self, store, stocked):
        sale = sales_service.checkout(store.id, {
            "items": _cart(stocked, 2),
            "subtotal_cents": 3000, "total_cents": 3000, "profit_cents": 1000,
        })
        assert sale.total_cents == 3000

    def test_empty_cart_rejected(self, store):
        with pytest.raises(SaleError, match="Cart is empty"):
            sales_service.checkout(store.id, {"items": []})

    def test_unknown_payment_method_rejected(self, store, stocked):
        with pytest.raises(ValidationError, match="Invalid payment_method"):
            sales_service.checkout(store.id, {"items": _cart(stocked), "payment_method": "Bitcoin"})

    def test_inactive_product_rejected(self, store, stocked):
        catalog_service.update_product(stocked.id, {"is_active": False})
        with pytest.raises(SaleError, match="inactive"):
            sales_service.checkout(store.id, {"items": _cart(stocked)})

    def test_product_in_other_store_not_found(self, other_store, stocked):
        with pytest.raises(NotFoundError):
            sales_service.checkout(other_store.id, {"items": _cart(stocked)})

    def test_overselling_allowed_by_default(self, store, stocked):
        sales_service.checkout(store.id, {"items": _cart(stocked, 12)})
        assert get_stock_level(store.id, stocked.id) == -2

    def test_overselling_rejected_when_negative_stock_disabled(self, app, store, stocked, make_product):
        app.config["ALLOW_NEGATIVE_STOCK"] = False
        plenty = make_product(stock_level=50)

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.checkout(store.id, {
                "items": _cart(plenty, 5) + _cart(stocked, 11),
            })

        assert exc_info.value.code == "CONFLICT"
        assert exc_info.value.details == {"product_id": stocked.id, "requested_quantity": 11, "on_hand": 10}
        assert get_stock_level(store.id, stocked.id) == 10
        assert get_stock_level(store.id, plenty.id) == 50
        assert db.session.query(Sale).count() == 0

    def test_duplicate_invoice_number_conflicts(self, store, stocked):
        sales_service.checkout(store.id, {"items": _cart(stocked, 1), "invoice_number": "INV-1"})
        with pytest.raises(ConflictError):
            sales_service.checkout(store.id, {"items": _cart(stocked, 1), "invoice_number": "INV-1"})
        assert get_stock_level(store.id, stocked.id) == 9

    def test_customer_object_is_flattened(self, store, stocked):
        sale = sales_service.checkout(store.id, {
            "items": _cart(stocked, 1),
            "customer": {"name": "Sara", "phone": "0300-5555555"},
        })
        assert sale.customer_name == "Sara"
        assert sale.customer_phone == "0300-5555555"

    def test_inactive_store_cannot_sell(self, store, stocked):
        store_service.toggle_store_status(store.id)
        with pytest.raises(ValidationError):
            sales_service.checkout(store.id, {"items": _cart(stocked, 1)})


class TestPayments:

    def test_payments_move_credit_sale_to_paid(self, store, stocked):
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 2), "payment_method": "Credit"})

        sale = sales_service.record_payment(sale.id, {"amount_cents": 1000, "method": "Cash"})
        assert sale.payment_status == "PARTIAL"
        assert sale.paid_cents == 1000

        sale = sales_service.record_payment(sale.id, {"amount_cents": 2000, "method": "Card"})
        assert sale.payment_status == "PAID"
        assert [p.method for p in sale.payments] == ["Cash", "Card"]

    def test_overpayment_rejected(self, store, stocked):
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 2), "payment_method": "Credit"})
        with pytest.raises(SaleError, match="exceeds balance") as exc_info:
            sales_service.record_payment(sale.id, {"amount_cents": 5000})
        assert exc_info.value.details["balance_due_cents"] == 3000

    def test_zero_payment_rejected(self, store, stocked):
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 2), "payment_method": "Credit"})
        with pytest.raises(SaleError):
            sales_service.record_payment(sale.id, {"amount_cents": 0})


class TestSaleRecords:

    def test_delete_restores_stock(self, store, stocked):
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 4)})
        sale_id = sale.id
        sales_service.delete_sale(sale_id, store_id=store.id)

        assert get_stock_level(store.id, stocked.id) == 10
        assert db.session.get(Sale, sale_id) is None

    def test_list_filters_and_searches(self, store, stocked):
        sales_service.checkout(store.id, {"items": _cart(stocked, 1), "customer_name": "Bilal"})
        sales_service.checkout(store.id, {
            "items": _cart(stocked, 1), "customer_name": "Zara", "payment_method": "Credit",
        })

        pending = sales_service.list_sales(store.id, payment_status="PENDING")
        assert pending["total"] == 1
        assert pending["data"][0]["customer_name"] == "Zara"

        found = sales_service.list_sales(store.id, search="bil")
        assert [row["customer_name"] for row in found["data"]] == ["Bilal"]

    def test_date_only_end_covers_whole_day(self, store, stocked):
        sales_service.checkout(store.id, {"items": _cart(stocked, 1), "sale_date": "2024-05-01T15:30:00Z"})
        sales_service.checkout(store.id, {"items": _cart(stocked, 1), "sale_date": "2024-05-02T00:00:00Z"})

        same_day = sales_service.list_sales(store.id, start="2024-05-01", end="2024-05-01")
        assert same_day["total"] == 1

        exact = sales_service.list_sales(store.id, start="2024-05-01", end="2024-05-01T15:30:00Z")
        assert exact["total"] == 1

    def test_list_rejects_bad_dates(self, store):
        with pytest.raises(SaleError):
            sales_service.list_sales(store.id, start="not-a-date")

    def test_get_sale_scoped_to_store(self, store, other_store, stocked):
        sale = sales_service.checkout(store.id, {"items": _cart(stocked, 1)})
        assert sales_service.get_sale(sale.id, store_id=store.id).id == sale.id
        with pytest.raises(NotFoundError):
            sales_service.get_sale(sale.id, store_id=other_store.id)
