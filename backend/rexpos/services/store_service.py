from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Store
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    validate_payload,
)
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry
from .query_utils import paginate, search_filter


class StoreError(ValidationError):
    """Raised when store operations fail."""
    pass


STORE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "code", "address", "phone", "email",
        "currency", "tax_rate_bps", "timezone", "logo_url", "is_active",
    },
    required_on_create={"name", "code", "address", "phone", "email"},
)

SETTINGS_FIELDS = ("currency", "tax_rate_bps", "timezone", "logo_url")


def _flatten_settings(payload: dict) -> dict:
    """Stores arrive with a nested settings object; columns are flat."""
    data = dict(payload or {})
    settings = data.pop("settings", None) or {}
    if not isinstance(settings, dict):
        raise StoreError("settings must be an object")
    for key in SETTINGS_FIELDS:
        if key in settings and key not in data:
            data[key] = settings[key]
    return data


def _normalize(patch: dict) -> dict:
    if "code" in patch and patch["code"]:
        patch["code"] = patch["code"].upper()
    if "tax_rate_bps" in patch and patch["tax_rate_bps"] is not None:
        if not 0 <= patch["tax_rate_bps"] <= 10000:
            raise StoreError("tax_rate_bps must be between 0 and 10000")
    return patch


def require_store(store_id, *, active_only: bool = False) -> Store:
    """Resolve a store id passed by the client. Every scoped operation starts here."""
    if store_id in (None, ""):
        raise ValidationError("storeId is required")
    store = db.session.get(Store, coerce_int(store_id, "storeId"))
    if store is None:
        raise NotFoundError("Store not found")
    if active_only and not store.is_active:
        raise StoreError("Store is inactive")
    return store


def list_stores(*, search=None, include_inactive: bool = False, page=None, page_size=None) -> dict:
    query = db.session.query(Store)
    if not include_inactive:
        query = query.filter(Store.is_active.is_(True))
    condition = search_filter(search, Store.name, Store.code)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(Store.name.asc(), Store.id.asc())
    return paginate(query, page=page, page_size=page_size)


def get_store(store_id: int) -> Store:
    return require_store(store_id)


def create_store(payload: dict, *, user_id: int | None = None) -> Store:
    data = _flatten_settings(payload)
    patch = _normalize(validate_payload(model=Store, payload=data, policy=STORE_POLICY, partial=False))
    patch.setdefault("currency", current_app.config.get("DEFAULT_CURRENCY", "PKR"))
    patch.setdefault("timezone", current_app.config.get("DEFAULT_TIMEZONE", "Asia/Karachi"))

    def _op():
        if db.session.query(Store).filter_by(code=patch["code"]).first():
            raise ConflictError(f"Store code {patch['code']} already exists")

        store = Store(**patch)
        db.session.add(store)
        db.session.flush()
        log_activity(action="CREATE", module="stores", store_id=store.id, user_id=user_id,
                     record_id=store.id, changes={"code": store.code, "name": store.name})
        db.session.commit()
        current_app.logger.info("Store %s created (id=%s)", store.code, store.id)
        return store

    return run_with_retry(_op)


def update_store(store_id: int, payload: dict, *, user_id: int | None = None) -> Store:
    data = _flatten_settings(payload)
    patch = _normalize(validate_payload(model=Store, payload=data, policy=STORE_POLICY, partial=True))

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError("Store not found")

        if "code" in patch and patch["code"] != store.code:
            if db.session.query(Store).filter(Store.code == patch["code"], Store.id != store_id).first():
                raise ConflictError(f"Store code {patch['code']} already exists")

        for key, value in patch.items():
            setattr(store, key, value)

        log_activity(action="UPDATE", module="stores", store_id=store.id, user_id=user_id,
                     record_id=store.id, changes={"fields": sorted(patch.keys())})
        db.session.commit()
        return store

    return run_with_retry(_op)


def toggle_store_status(store_id: int, *, user_id: int | None = None) -> Store:
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError("Store not found")
        store.is_active = not store.is_active
        log_activity(action="UPDATE", module="stores", store_id=store.id, user_id=user_id,
                     record_id=store.id, changes={"is_active": store.is_active})
        db.session.commit()
        return store

    return run_with_retry(_op)
