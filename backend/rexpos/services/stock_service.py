# Overview: The single write path for Product.stock_level and cost/selling prices.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product
from ..validation import ConflictError, NotFoundError

"""
Stock Invariants

- stock_level changes only through adjust_stock, called by the purchase order
  workflow and by checkout/sale reversal.
- Every change is one UPDATE ... SET stock_level = stock_level + :delta, so
  concurrent writers never lose an update (no read-modify-write).
- adjust_stock never commits; the calling workflow owns the transaction.
"""


class InsufficientStockError(ConflictError):
    """Raised when a decrement would take stock below zero and that is not allowed."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def adjust_stock(
    store_id: int,
    product_id: int,
    delta: int,
    *,
    buying_price_cents: int | None = None,
    selling_price_cents: int | None = None,
    allow_negative: bool = True,
) -> None:
    """
    Atomically add delta to a product's stock and optionally overwrite prices.

    With allow_negative=False a decrement only matches while enough stock is on
    hand, so the check and the write are one statement.

    Raises NotFoundError if the product does not exist in this store and
    InsufficientStockError when allow_negative=False and stock would drop below 0.
    """
    values = {
        Product.stock_level: Product.stock_level + delta,
        Product.version_id: Product.version_id + 1,
    }
    if buying_price_cents is not None:
        values[Product.buying_price_cents] = buying_price_cents
    if selling_price_cents is not None:
        values[Product.selling_price_cents] = selling_price_cents

    query = db.session.query(Product).filter(Product.id == product_id, Product.store_id == store_id)
    if not allow_negative and delta < 0:
        query = query.filter(Product.stock_level + delta >= 0)

    matched = query.update(values, synchronize_session=False)
    if matched == 0:
        if not allow_negative and delta < 0:
            on_hand = get_stock_level(store_id, product_id)
            raise InsufficientStockError(
                f"Insufficient stock for product {product_id}",
                details={"product_id": product_id, "requested_quantity": -delta, "on_hand": on_hand},
            )
        raise NotFoundError(f"Product {product_id} not found")

    if delta < 0:
        level = db.session.query(Product.stock_level).filter(Product.id == product_id).scalar()
        if level is not None and level < 0:
            current_app.logger.warning(
                "Stock for product %s in store %s is negative (%s)", product_id, store_id, level
            )


def get_stock_level(store_id: int, product_id: int) -> int:
    level = (
        db.session.query(Product.stock_level)
        .filter(Product.id == product_id, Product.store_id == store_id)
        .scalar()
    )
    if level is None:
        raise NotFoundError(f"Product {product_id} not found")
    return level
