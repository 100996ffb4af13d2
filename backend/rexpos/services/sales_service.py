"""
Sales Service - point-of-sale checkout

A sale is written once, at checkout, together with the stock decrements for
every line. After that only payments are appended. Deleting a sale puts its
quantities back into stock.

PRICING (integer minor units):
- line total  = selling * qty - line discount
- line profit = (selling - cost) * qty - line discount, cost snapshotted from
  the product's buying price at checkout
- order discount = discount_cents if > 0, else subtotal * discount_percent / 100
- total  = subtotal - discount + tax
- profit = sum(line profit) - discount (the order discount is taken once)

PAYMENT: Credit sales start with nothing collected (PENDING); every other
method is collected in full (PAID) and written to the payment history.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Product, Sale, SaleLine, SalePayment
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_amount,
    coerce_int,
    coerce_quantity,
    require_choice,
)
from rexpos.time_utils import parse_iso_datetime, parse_iso_range_end, utcnow
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number, number_in_use
from .pricing import check_aggregate, check_percent, effective_discount
from .query_utils import paginate, search_filter
from .stock_service import adjust_stock
from .store_service import require_store


PAYMENT_METHODS = ("Cash", "Card", "Bank Transfer", "Installment", "Credit")
PAYMENT_STATUSES = ("PAID", "PENDING", "PARTIAL")
CREDIT = "Credit"


class SaleError(ValidationError):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _optional_amount(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    if value in (None, ""):
        return None
    return coerce_amount(value, key)


def _parse_date(value, field: str) -> datetime | None:
    if value in (None, "") or isinstance(value, datetime):
        return value or None
    if not isinstance(value, str):
        raise SaleError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise SaleError(f"{field} must be an ISO-8601 datetime")


def _parse_range_end(value) -> datetime | None:
    """Exclusive upper bound; a bare date includes the whole day."""
    if isinstance(value, datetime):
        return value + timedelta(microseconds=1)
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise SaleError("end must be an ISO-8601 datetime")
    try:
        return parse_iso_range_end(value)
    except ValueError:
        raise SaleError("end must be an ISO-8601 datetime")


def _parse_cart(raw_lines) -> list[dict]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise SaleError("Cart is empty")

    lines = []
    for index, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            raise SaleError(f"Item {index} is invalid")
        if raw.get("product_id") in (None, ""):
            raise SaleError(f"Item {index}: product_id is required")
        lines.append({
            "line_number": index,
            "product_id": coerce_int(raw["product_id"], f"items[{index}].product_id"),
            "quantity": coerce_quantity(raw.get("quantity"), f"items[{index}].quantity"),
            "selling_price_cents": _optional_amount(raw, "selling_price_cents"),
            "discount_cents": _optional_amount(raw, "discount_cents") or 0,
            "total_cents": _optional_amount(raw, "total_cents"),
        })
    return lines


def _customer_fields(payload: dict) -> dict:
    customer = payload.get("customer") or {}
    if not isinstance(customer, dict):
        raise SaleError("customer must be an object")
    fields = {}
    for key in ("name", "phone", "email"):
        value = payload.get(f"customer_{key}", customer.get(key))
        fields[f"customer_{key}"] = str(value).strip() if value not in (None, "") else None
    return fields


def _build_sale_lines(cart: list[dict], products: dict[int, Product]) -> list[SaleLine]:
    sale_lines = []
    for item in cart:
        product = products[item["product_id"]]
        if not product.is_active:
            raise SaleError(f"Product {product.name} is inactive", details={"product_id": product.id})

        selling = item["selling_price_cents"]
        if selling is None:
            selling = product.selling_price_cents
        cost = product.buying_price_cents
        quantity = item["quantity"]
        discount = item["discount_cents"]

        total = selling * quantity - discount
        if total < 0:
            raise SaleError(f"Item {item['line_number']}: discount exceeds line amount")
        check_aggregate(f"items[{item['line_number']}].total_cents", item["total_cents"], total)

        sale_lines.append(SaleLine(
            line_number=item["line_number"],
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            cost_price_cents=cost,
            selling_price_cents=selling,
            discount_cents=discount,
            total_cents=total,
            profit_cents=(selling - cost) * quantity - discount,
        ))
    return sale_lines


def checkout(store_id: int, payload: dict, *, cashier_id: int | None = None) -> Sale:
    """
    Create a sale from a cart and decrement stock, as one transaction.

    payload: items [{product_id, quantity, selling_price_cents?, discount_cents?}],
    customer fields, discount_cents / discount_percent, tax_cents (defaults to the
    store's tax rate), payment_method, notes, optional invoice_number and
    sale_date. Caller-supplied subtotal/total/profit aggregates are checked.
    """
    payload = payload or {}
    store = require_store(store_id, active_only=True)
    cart = _parse_cart(payload.get("items"))

    payment_method = payload.get("payment_method") or "Cash"
    require_choice(payment_method, PAYMENT_METHODS, "payment_method")

    discount_cents = _optional_amount(payload, "discount_cents") or 0
    discount_percent = payload.get("discount_percent")
    if discount_percent in (None, ""):
        discount_percent = None
    else:
        discount_percent = check_percent(coerce_int(discount_percent, "discount_percent"))
    tax_cents = _optional_amount(payload, "tax_cents")
    supplied = {k: _optional_amount(payload, k) for k in ("subtotal_cents", "total_cents", "profit_cents")}

    sale_date = _parse_date(payload.get("sale_date"), "sale_date")

    notes = payload.get("notes") or None
    invoice_number = payload.get("invoice_number") or None
    customer = _customer_fields(payload)
    allow_negative = current_app.config.get("ALLOW_NEGATIVE_STOCK", True)

    def _op():
        ids = {item["product_id"] for item in cart}
        products = {
            p.id: p
            for p in db.session.query(Product).filter(Product.store_id == store_id, Product.id.in_(ids)).all()
        }
        missing = sorted(ids - set(products))
        if missing:
            raise NotFoundError(f"Products not found in this store: {', '.join(str(m) for m in missing)}")

        sale_lines = _build_sale_lines(cart, products)
        subtotal = sum(line.total_cents for line in sale_lines)
        discount = effective_discount(subtotal, discount_cents, discount_percent)
        if discount > subtotal:
            raise SaleError("Discount cannot exceed the subtotal")
        tax = tax_cents
        if tax is None:
            tax = ((subtotal - discount) * store.tax_rate_bps + 5000) // 10000
        total = subtotal - discount + tax
        profit = sum(line.profit_cents for line in sale_lines) - discount

        check_aggregate("subtotal_cents", supplied["subtotal_cents"], subtotal)
        check_aggregate("total_cents", supplied["total_cents"], total)
        check_aggregate("profit_cents", supplied["profit_cents"], profit)

        if invoice_number:
            if number_in_use(model=Sale, column=Sale.invoice_number, store_id=store_id, number=invoice_number):
                raise ConflictError(f"Invoice {invoice_number} already exists")
            number = invoice_number
        else:
            number = next_document_number(model=Sale, column=Sale.invoice_number, store_id=store_id, prefix="INV")

        is_credit = payment_method == CREDIT
        sale = Sale(
            store_id=store_id,
            invoice_number=number,
            sale_date=sale_date or utcnow(),
            subtotal_cents=subtotal,
            discount_cents=discount,
            discount_percent=discount_percent,
            tax_cents=tax,
            total_cents=total,
            paid_cents=0 if is_credit else total,
            payment_status="PENDING" if is_credit else "PAID",
            payment_method=payment_method,
            profit_cents=profit,
            notes=notes,
            sold_by_id=cashier_id,
            **customer,
        )
        sale.lines = sale_lines
        if not is_credit:
            sale.payments = [SalePayment(amount_cents=total, method=payment_method, recorded_by_id=cashier_id)]
        db.session.add(sale)
        db.session.flush()

        quantities: dict[int, int] = {}
        for line in sale_lines:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
        for product_id, quantity in sorted(quantities.items()):
            adjust_stock(store_id, product_id, -quantity, allow_negative=allow_negative)

        log_activity(action="CREATE", module="sales", store_id=store_id, user_id=cashier_id,
                     record_id=sale.id, changes={"invoice_number": sale.invoice_number, "total_cents": total})
        db.session.commit()
        current_app.logger.info(
            "Sale %s recorded in store %s: %d lines, total %s, %s",
            sale.invoice_number, store_id, len(sale_lines), total, sale.payment_status,
        )
        return sale

    return run_with_retry(_op)


def record_payment(sale_id: int, payload: dict, *, store_id: int | None = None,
                   user_id: int | None = None) -> Sale:
    """Append a payment; overpayment is rejected."""
    payload = payload or {}
    amount = coerce_amount(payload.get("amount_cents"), "amount_cents")
    if amount <= 0:
        raise SaleError("amount_cents must be greater than 0")
    method = payload.get("method") or "Cash"
    require_choice(method, PAYMENT_METHODS, "method")
    notes = payload.get("notes") or None

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None or (store_id is not None and sale.store_id != store_id):
            raise NotFoundError("Sale not found")

        balance = sale.total_cents - sale.paid_cents
        if amount > balance:
            raise SaleError(
                "Payment exceeds balance due",
                details={"balance_due_cents": balance, "amount_cents": amount},
            )

        sale.payments.append(SalePayment(amount_cents=amount, method=method, notes=notes, recorded_by_id=user_id))
        sale.paid_cents += amount
        sale.payment_status = "PAID" if sale.paid_cents >= sale.total_cents else "PARTIAL"

        log_activity(action="UPDATE", module="sales", store_id=sale.store_id, user_id=user_id,
                     record_id=sale.id, changes={"payment_cents": amount, "payment_status": sale.payment_status})
        db.session.commit()
        current_app.logger.info("Payment of %s recorded on sale %s", amount, sale.invoice_number)
        return sale

    return run_with_retry(_op)


def delete_sale(sale_id: int, *, store_id: int | None = None, user_id: int | None = None) -> None:
    """Restore stock for every line, then remove the sale."""
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None or (store_id is not None and sale.store_id != store_id):
            raise NotFoundError("Sale not found")

        restored: dict[int, int] = {}
        for line in sale.lines:
            restored[line.product_id] = restored.get(line.product_id, 0) + line.quantity
        for product_id, quantity in sorted(restored.items()):
            adjust_stock(sale.store_id, product_id, quantity)

        log_activity(action="DELETE", module="sales", store_id=sale.store_id, user_id=user_id,
                     record_id=sale.id,
                     changes={"invoice_number": sale.invoice_number,
                              "stock_restored": {str(k): v for k, v in restored.items()}})
        invoice_number = sale.invoice_number
        db.session.delete(sale)
        db.session.commit()
        current_app.logger.info("Sale %s deleted; stock restored for %d products", invoice_number, len(restored))

    run_with_retry(_op)


def get_sale(sale_id: int, *, store_id: int | None = None) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None or (store_id is not None and sale.store_id != store_id):
        raise NotFoundError("Sale not found")
    return sale


def list_sales(store_id: int, *, search=None, payment_status=None, start=None, end=None,
               page=None, page_size=None) -> dict:
    require_store(store_id)
    query = db.session.query(Sale).filter(Sale.store_id == store_id)
    if payment_status:
        query = query.filter(Sale.payment_status == require_choice(payment_status, PAYMENT_STATUSES, "payment_status"))
    start_dt = _parse_date(start, "start")
    end_before = _parse_range_end(end)
    if start_dt is not None:
        query = query.filter(Sale.sale_date >= start_dt)
    if end_before is not None:
        query = query.filter(Sale.sale_date < end_before)
    condition = search_filter(search, Sale.invoice_number, Sale.customer_name)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    return paginate(query, page=page, page_size=page_size,
                    serialize=lambda sale: sale.to_dict(include_lines=False))
