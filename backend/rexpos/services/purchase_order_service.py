# Overview: Purchase orders and the stock/price side effects they drive.

"""
Purchase Order Service

LIFECYCLE:
1. DRAFT: Created, still being negotiated
2. CONFIRMED: Sent to / accepted by the supplier
3. RECEIVED: Goods counted in; received_at/received_by stamped
4. CANCELLED: Reachable from any other state; terminal

STOCK (status is advisory, it does not gate inventory):
- create: every line adds its quantity to the product and overwrites the
  product's buying price (and selling price when the line carries one > 0)
- update: per product, delta = sum(new qty) - sum(old qty) is applied as one
  atomic increment; pricing is re-applied for every line in the new items
- delete: every line's quantity is taken back out; prices are left as they are

ATOMICITY: each of create/update/delete is a single transaction. The order
row and all product increments commit together or not at all.

TOTALS: line and order aggregates are always recomputed from the lines. A
caller-supplied aggregate that disagrees is rejected.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderLine
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    blank_to_none,
    coerce_amount,
    coerce_int,
    coerce_quantity,
    require_choice,
    validate_payload,
)
from rexpos.time_utils import to_utc_z, utcnow
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number, number_in_use
from .pricing import check_aggregate, check_percent, effective_discount
from .query_utils import paginate, search_filter
from .stock_service import adjust_stock
from .store_service import require_store
from .supplier_service import get_supplier


STATUS_DRAFT = "DRAFT"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"
STATUSES = (STATUS_DRAFT, STATUS_CONFIRMED, STATUS_RECEIVED, STATUS_CANCELLED)

ALLOWED_TRANSITIONS = {
    STATUS_DRAFT: {STATUS_CONFIRMED, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_RECEIVED, STATUS_CANCELLED},
    STATUS_RECEIVED: {STATUS_CANCELLED},
    STATUS_CANCELLED: set(),
}

PAYMENT_METHODS = ("Cash", "Card", "Bank Transfer", "Cheque", "Credit")

PO_HEADER_POLICY = ModelValidationPolicy(
    writable_fields={
        "po_number", "supplier_id", "purchase_date", "status",
        "discount_cents", "discount_percent", "tax_cents", "shipping_cents",
        "paid_cents", "payment_method", "notes",
    },
    required_on_create={"supplier_id"},
    amount_fields={"discount_cents", "tax_cents", "shipping_cents", "paid_cents"},
)


class PurchaseOrderError(ValidationError):
    """Raised for purchase order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _strip_blank_header(payload: dict) -> dict:
    """po_number and status are optional but not nullable; blank means not given."""
    payload = blank_to_none(payload)
    for key in ("po_number", "status"):
        if key in payload and payload[key] is None:
            payload.pop(key)
    return payload


def _parse_items(raw_items) -> list[dict]:
    """Validate line payloads and compute each line's total_cost_cents."""
    if not isinstance(raw_items, list) or not raw_items:
        raise PurchaseOrderError("Purchase order must have at least one item")

    items = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise PurchaseOrderError(f"Item {index} is invalid")
        if raw.get("product_id") in (None, ""):
            raise PurchaseOrderError(f"Item {index}: product_id is required")
        if raw.get("unit_cost_cents") in (None, ""):
            raise PurchaseOrderError(f"Item {index}: unit_cost_cents is required")

        quantity = coerce_quantity(raw.get("quantity"), f"items[{index}].quantity")
        unit_cost = coerce_amount(raw["unit_cost_cents"], f"items[{index}].unit_cost_cents")
        discount = coerce_amount(raw.get("discount_cents") or 0, f"items[{index}].discount_cents")
        selling = raw.get("selling_price_cents")
        if selling in ("",):
            selling = None
        if selling is not None:
            selling = coerce_amount(selling, f"items[{index}].selling_price_cents")

        total_cost = quantity * unit_cost - discount
        if total_cost < 0:
            raise PurchaseOrderError(f"Item {index}: discount exceeds line cost")
        supplied_total = raw.get("total_cost_cents")
        if supplied_total not in (None, ""):
            check_aggregate(f"items[{index}].total_cost_cents",
                            coerce_amount(supplied_total, "total_cost_cents"), total_cost)

        items.append({
            "line_number": index,
            "product_id": coerce_int(raw["product_id"], f"items[{index}].product_id"),
            "quantity": quantity,
            "unit_cost_cents": unit_cost,
            "selling_price_cents": selling,
            "discount_cents": discount,
            "total_cost_cents": total_cost,
        })
    return items


def _load_products(store_id: int, items: list[dict]) -> dict[int, Product]:
    ids = {item["product_id"] for item in items}
    products = (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.id.in_(ids))
        .all()
    )
    found = {p.id: p for p in products}
    missing = sorted(ids - set(found))
    if missing:
        raise NotFoundError(f"Products not found in this store: {', '.join(str(m) for m in missing)}")
    return found


def _quantities_by_product(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        product_id = line["product_id"] if isinstance(line, dict) else line.product_id
        quantity = line["quantity"] if isinstance(line, dict) else line.quantity
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


def _prices_by_product(items: list[dict]) -> dict[int, tuple[int, int | None]]:
    """(buying, selling) per product; when a product repeats, the last line wins."""
    prices: dict[int, tuple[int, int | None]] = {}
    for item in items:
        selling = item["selling_price_cents"]
        prices[item["product_id"]] = (item["unit_cost_cents"], selling if selling and selling > 0 else None)
    return prices


def _apply_totals(order: PurchaseOrder, supplied: dict, *, explicit_discount: bool) -> None:
    subtotal = sum(line.total_cost_cents for line in order.lines)
    # A fixed discount replaces any stored percentage; a stored percentage
    # keeps following the subtotal until then
    if explicit_discount:
        order.discount_percent = None
    fixed = order.discount_cents if explicit_discount or not order.discount_percent else 0
    discount = effective_discount(subtotal, fixed, order.discount_percent)
    total = subtotal + (order.tax_cents or 0) + (order.shipping_cents or 0) - discount
    if total < 0:
        raise PurchaseOrderError("Discount cannot exceed the order total")

    check_aggregate("subtotal_cents", supplied.get("subtotal_cents"), subtotal)
    check_aggregate("total_cents", supplied.get("total_cents"), total)

    order.subtotal_cents = subtotal
    order.discount_cents = discount
    order.total_cents = total

    paid = order.paid_cents or 0
    if paid > total:
        raise PurchaseOrderError("paid_cents cannot exceed total_cents")
    if paid == 0:
        order.payment_status = "UNPAID"
    elif paid < total:
        order.payment_status = "PARTIAL"
    else:
        order.payment_status = "PAID"


def _supplied_aggregates(payload: dict) -> dict:
    supplied = {}
    for key in ("subtotal_cents", "total_cents"):
        if payload.get(key) not in (None, ""):
            supplied[key] = coerce_amount(payload[key], key)
    return supplied


def _build_lines(items: list[dict], products: dict[int, Product]) -> list[PurchaseOrderLine]:
    return [
        PurchaseOrderLine(
            line_number=item["line_number"],
            product_id=item["product_id"],
            product_name=products[item["product_id"]].name,
            quantity=item["quantity"],
            unit_cost_cents=item["unit_cost_cents"],
            selling_price_cents=item["selling_price_cents"],
            discount_cents=item["discount_cents"],
            total_cost_cents=item["total_cost_cents"],
        )
        for item in items
    ]


def _mark_received(order: PurchaseOrder, user_id: int | None) -> None:
    order.received_at = utcnow()
    order.received_by_id = user_id
    for line in order.lines:
        line.received_quantity = line.quantity


def _transition(order: PurchaseOrder, new_status: str, user_id: int | None) -> bool:
    """Returns False when new_status equals the current one (no-op)."""
    require_choice(new_status, STATUSES, "status")
    if new_status == order.status:
        return False
    if new_status not in ALLOWED_TRANSITIONS[order.status]:
        raise PurchaseOrderError(
            f"Cannot change purchase order status from {order.status} to {new_status}",
            details={"from": order.status, "to": new_status},
        )
    order.status = new_status
    if new_status == STATUS_RECEIVED:
        _mark_received(order, user_id)
    return True


def get_purchase_order(order_id: int, *, store_id: int | None = None) -> PurchaseOrder:
    order = db.session.get(PurchaseOrder, order_id)
    if order is None or (store_id is not None and order.store_id != store_id):
        raise NotFoundError("Purchase order not found")
    return order


def list_purchase_orders(store_id: int, *, status=None, supplier_id=None, search=None,
                         page=None, page_size=None) -> dict:
    require_store(store_id)
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.store_id == store_id)
    if status:
        query = query.filter(PurchaseOrder.status == require_choice(status, STATUSES, "status"))
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    condition = search_filter(search, PurchaseOrder.po_number)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(PurchaseOrder.purchase_date.desc(), PurchaseOrder.id.desc())
    return paginate(query, page=page, page_size=page_size,
                    serialize=lambda order: order.to_dict(include_lines=False))


def create_purchase_order(store_id: int, payload: dict, *, user_id: int | None = None) -> PurchaseOrder:
    """
    Insert the order and receive its lines into stock in one transaction.

    Raises PurchaseOrderError / ValidationError on bad input, NotFoundError
    for a supplier or product outside the store, ConflictError on a
    duplicate po_number.
    """
    require_store(store_id)
    payload = _strip_blank_header(payload)
    header = validate_payload(model=PurchaseOrder, payload=payload, policy=PO_HEADER_POLICY, partial=False)
    check_percent(header.get("discount_percent"))
    items = _parse_items(payload.get("items"))
    supplied = _supplied_aggregates(payload)
    status = header.pop("status", None) or STATUS_DRAFT
    require_choice(status, STATUSES, "status")
    if header.get("payment_method") is not None:
        require_choice(header["payment_method"], PAYMENT_METHODS, "payment_method")

    def _op():
        get_supplier(header["supplier_id"], store_id=store_id)
        products = _load_products(store_id, items)

        po_number = header.get("po_number")
        if po_number:
            if number_in_use(model=PurchaseOrder, column=PurchaseOrder.po_number,
                             store_id=store_id, number=po_number):
                raise ConflictError(f"Purchase order {po_number} already exists")
        else:
            po_number = next_document_number(model=PurchaseOrder, column=PurchaseOrder.po_number,
                                              store_id=store_id, prefix="PO")

        fields = {k: v for k, v in header.items() if k != "po_number"}
        order = PurchaseOrder(store_id=store_id, po_number=po_number, status=status,
                              created_by_id=user_id, **fields)
        order.lines = _build_lines(items, products)
        _apply_totals(order, supplied, explicit_discount=bool(header.get("discount_cents")))
        if status == STATUS_RECEIVED:
            _mark_received(order, user_id)

        db.session.add(order)
        db.session.flush()

        prices = _prices_by_product(items)
        for product_id, quantity in _quantities_by_product(items).items():
            buying, selling = prices[product_id]
            adjust_stock(store_id, product_id, quantity,
                         buying_price_cents=buying, selling_price_cents=selling)

        log_activity(action="CREATE", module="purchase_orders", store_id=store_id, user_id=user_id,
                     record_id=order.id, changes={"po_number": order.po_number, "total_cents": order.total_cents})
        db.session.commit()
        current_app.logger.info(
            "Purchase order %s created in store %s: %d lines, total %s",
            order.po_number, store_id, len(items), order.total_cents,
        )
        return order

    return run_with_retry(_op)


def update_purchase_order(order_id: int, payload: dict, *, store_id: int | None = None,
                          user_id: int | None = None) -> PurchaseOrder:
    """
    Apply a header patch and, when `items` is present, replace the lines.

    Stock moves by the per-product difference between the old and the new
    lines only; unchanged lines cause no stock change at all.
    """
    payload = _strip_blank_header(payload)
    header = validate_payload(model=PurchaseOrder, payload=payload, policy=PO_HEADER_POLICY, partial=True)
    check_percent(header.get("discount_percent"))
    items = _parse_items(payload["items"]) if "items" in payload and payload["items"] is not None else None
    supplied = _supplied_aggregates(payload)
    new_status = header.pop("status", None)
    if header.get("payment_method") is not None:
        require_choice(header["payment_method"], PAYMENT_METHODS, "payment_method")

    def _op():
        order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
        if order is None or (store_id is not None and order.store_id != store_id):
            raise NotFoundError("Purchase order not found")
        if order.status == STATUS_CANCELLED:
            raise PurchaseOrderError("Cancelled purchase orders cannot be edited")

        if "supplier_id" in header:
            get_supplier(header["supplier_id"], store_id=order.store_id)
        if header.get("po_number") and header["po_number"] != order.po_number:
            if number_in_use(model=PurchaseOrder, column=PurchaseOrder.po_number, store_id=order.store_id,
                             number=header["po_number"], exclude_id=order.id):
                raise ConflictError(f"Purchase order {header['po_number']} already exists")

        deltas: dict[int, int] = {}
        prices: dict[int, tuple[int, int | None]] = {}
        if items is not None:
            products = _load_products(order.store_id, items)
            old = _quantities_by_product(order.lines)
            new = _quantities_by_product(items)
            for product_id in set(old) | set(new):
                deltas[product_id] = new.get(product_id, 0) - old.get(product_id, 0)
            prices = _prices_by_product(items)

            order.lines = []
            db.session.flush()
            order.lines = _build_lines(items, products)

        for key, value in header.items():
            setattr(order, key, value)
        if new_status:
            _transition(order, new_status, user_id)
        _apply_totals(order, supplied, explicit_discount=bool(header.get("discount_cents")))
        db.session.flush()

        for product_id in sorted(set(deltas) | set(prices)):
            buying, selling = prices.get(product_id, (None, None))
            delta = deltas.get(product_id, 0)
            if delta == 0 and buying is None:
                continue
            adjust_stock(order.store_id, product_id, delta,
                         buying_price_cents=buying, selling_price_cents=selling)

        log_activity(action="UPDATE", module="purchase_orders", store_id=order.store_id, user_id=user_id,
                     record_id=order.id,
                     changes={"fields": sorted(header.keys()),
                              "stock_deltas": {str(k): v for k, v in deltas.items() if v}})
        db.session.commit()
        current_app.logger.info(
            "Purchase order %s updated: %d products changed stock",
            order.po_number, sum(1 for v in deltas.values() if v),
        )
        return order

    return run_with_retry(_op)


def update_purchase_order_status(order_id: int, status: str, *, store_id: int | None = None,
                                 user_id: int | None = None) -> PurchaseOrder:
    if not status:
        raise PurchaseOrderError("status is required")

    def _op():
        order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
        if order is None or (store_id is not None and order.store_id != store_id):
            raise NotFoundError("Purchase order not found")

        previous = order.status
        if not _transition(order, status, user_id):
            return order

        log_activity(action="UPDATE", module="purchase_orders", store_id=order.store_id, user_id=user_id,
                     record_id=order.id, changes={"status": {"from": previous, "to": status}})
        db.session.commit()
        current_app.logger.info("Purchase order %s: %s -> %s", order.po_number, previous, status)
        return order

    return run_with_retry(_op)


def delete_purchase_order(order_id: int, *, store_id: int | None = None, user_id: int | None = None) -> None:
    """Take every line's quantity back out of stock, then remove the order."""
    def _op():
        order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
        if order is None or (store_id is not None and order.store_id != store_id):
            raise NotFoundError("Purchase order not found")

        reversed_qty = _quantities_by_product(order.lines)
        for product_id, quantity in sorted(reversed_qty.items()):
            adjust_stock(order.store_id, product_id, -quantity)

        log_activity(action="DELETE", module="purchase_orders", store_id=order.store_id, user_id=user_id,
                     record_id=order.id,
                     changes={"po_number": order.po_number,
                              "stock_reversed": {str(k): v for k, v in reversed_qty.items()}})
        po_number = order.po_number
        db.session.delete(order)
        db.session.commit()
        current_app.logger.info("Purchase order %s deleted; stock reversed for %d products",
                                po_number, len(reversed_qty))

    run_with_retry(_op)


def get_last_supply(store_id: int, product_id: int) -> dict | None:
    """Most recent purchase of a product: who supplied it and at what unit cost."""
    require_store(store_id)
    row = (
        db.session.query(PurchaseOrderLine, PurchaseOrder)
        .join(PurchaseOrder, PurchaseOrderLine.purchase_order_id == PurchaseOrder.id)
        .filter(PurchaseOrder.store_id == store_id, PurchaseOrderLine.product_id == product_id)
        .order_by(PurchaseOrder.purchase_date.desc(), PurchaseOrder.id.desc(), PurchaseOrderLine.line_number.desc())
        .first()
    )
    if row is None:
        return None
    line, order = row
    return {
        "supplier": order.supplier.to_summary() if order.supplier else None,
        "lastCost": line.unit_cost_cents,
        "purchaseDate": to_utc_z(order.purchase_date),
        "poNumber": order.po_number,
    }

