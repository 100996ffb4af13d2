# Overview: Supplier records that purchase orders are raised against.

from __future__ import annotations

from ..extensions import db
from ..models import PurchaseOrder, Supplier
from ..validation import (
    GuardError,
    ModelValidationPolicy,
    NotFoundError,
    blank_to_none,
    validate_payload,
)
from .activity_service import log_activity
from .concurrency import run_with_retry
from .query_utils import paginate, search_filter
from .store_service import require_store


SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "contact_person", "phone", "email", "address", "city", "tax_number",
        "credit_limit_cents", "opening_balance_cents", "is_active",
    },
    required_on_create={"name"},
    amount_fields={"credit_limit_cents", "opening_balance_cents"},
)


def get_supplier(supplier_id: int, *, store_id: int | None = None) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None or (store_id is not None and supplier.store_id != store_id):
        raise NotFoundError("Supplier not found")
    return supplier


def list_suppliers(store_id: int, *, search=None, include_inactive: bool = False,
                   page=None, page_size=None) -> dict:
    require_store(store_id)
    query = db.session.query(Supplier).filter(Supplier.store_id == store_id)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    condition = search_filter(search, Supplier.name, Supplier.contact_person, Supplier.phone)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate(query, page=page, page_size=page_size)


def create_supplier(store_id: int, payload: dict, *, user_id: int | None = None) -> Supplier:
    require_store(store_id)
    patch = validate_payload(model=Supplier, payload=blank_to_none(payload), policy=SUPPLIER_POLICY, partial=False)

    def _op():
        supplier = Supplier(store_id=store_id, **patch)
        # A new supplier starts owed exactly its opening balance
        supplier.current_balance_cents = patch.get("opening_balance_cents") or 0
        db.session.add(supplier)
        db.session.flush()
        log_activity(action="CREATE", module="suppliers", store_id=store_id, user_id=user_id,
                     record_id=supplier.id, changes={"name": supplier.name})
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def update_supplier(supplier_id: int, payload: dict, *, store_id: int | None = None,
                    user_id: int | None = None) -> Supplier:
    patch = validate_payload(model=Supplier, payload=blank_to_none(payload), policy=SUPPLIER_POLICY, partial=True)

    def _op():
        supplier = get_supplier(supplier_id, store_id=store_id)
        for key, value in patch.items():
            setattr(supplier, key, value)
        log_activity(action="UPDATE", module="suppliers", store_id=supplier.store_id, user_id=user_id,
                     record_id=supplier.id, changes={"fields": sorted(patch.keys())})
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def delete_supplier(supplier_id: int, *, store_id: int | None = None, user_id: int | None = None) -> None:
    def _op():
        supplier = get_supplier(supplier_id, store_id=store_id)
        if db.session.query(PurchaseOrder.id).filter(PurchaseOrder.supplier_id == supplier.id).first():
            raise GuardError("Cannot delete supplier with purchase orders")
        log_activity(action="DELETE", module="suppliers", store_id=supplier.store_id, user_id=user_id,
                     record_id=supplier.id, changes={"name": supplier.name})
        db.session.delete(supplier)
        db.session.commit()

    run_with_retry(_op)
