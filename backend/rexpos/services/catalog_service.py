# Overview: Category, brand and product master data for a store.

"""
Catalog Service

STORE SCOPING: every category, brand and product belongs to exactly one store;
references across stores (a product pointing at another store's category) are
rejected as NOT_FOUND.

DELETE GUARDS:
- Category: refused while it has subcategories or products
- Brand: refused while products reference it
- Product: hard delete when no purchase order or sale line references it,
  otherwise soft delete (is_active = False) so history stays readable

Stock is not writable here after creation; see stock_service.
"""

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import Brand, Category, Product, PurchaseOrderLine, SaleLine
from ..validation import (
    ConflictError,
    GuardError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    blank_to_none,
    validate_payload,
)
from .activity_service import log_activity
from .concurrency import run_with_retry
from .query_utils import paginate, search_filter
from .store_service import require_store


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "description", "image_url", "parent_id", "is_active", "display_order"},
    required_on_create={"name"},
)

BRAND_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "logo_url", "description", "website", "is_active"},
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "category_id", "brand_id", "description",
        "specifications", "images", "unit", "buying_price_cents", "selling_price_cents",
        "stock_level", "min_stock_level", "warranty_months", "is_active",
    },
    required_on_create={"sku", "name", "category_id"},
    amount_fields={"buying_price_cents", "selling_price_cents"},
)

# Opening stock may be given on create; afterwards only stock_service moves it.
PRODUCT_MUTABLE_FIELDS = PRODUCT_POLICY.writable_fields - {"stock_level"}

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim leading/trailing '-'."""
    return _NON_ALNUM.sub("-", (name or "").lower()).strip("-")


def _apply_slug(patch: dict) -> dict:
    if patch.get("slug"):
        patch["slug"] = slugify(patch["slug"])
    elif patch.get("name"):
        patch["slug"] = slugify(patch["name"])
    if "slug" in patch and not patch["slug"]:
        raise ValidationError("name must contain at least one letter or digit")
    return patch


# --- Categories -------------------------------------------------------------

def _get_category(category_id: int, store_id: int | None = None) -> Category:
    category = db.session.get(Category, category_id)
    if category is None or (store_id is not None and category.store_id != store_id):
        raise NotFoundError("Category not found")
    return category


def _assert_no_cycle(category: Category, parent_id: int | None) -> None:
    """Walk the new parent's ancestor chain; reaching the category itself means a cycle."""
    if parent_id is None:
        return
    if category.id is not None and parent_id == category.id:
        raise ValidationError("Category cannot be its own parent")

    visited: set[int] = set()
    current_id = parent_id
    while current_id is not None:
        if current_id in visited:
            raise ValidationError("Category hierarchy already contains a cycle")
        visited.add(current_id)
        if category.id is not None and current_id == category.id:
            raise ValidationError("Category cannot be moved under its own descendant")
        current = db.session.get(Category, current_id)
        if current is None:
            break
        current_id = current.parent_id


def list_categories(store_id: int, *, include_inactive: bool = False, parent_id=None) -> list[Category]:
    require_store(store_id)
    query = db.session.query(Category).filter(Category.store_id == store_id)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    if parent_id is not None:
        query = query.filter(Category.parent_id == parent_id)
    return query.order_by(Category.display_order.asc(), Category.name.asc()).all()


def create_category(store_id: int, payload: dict, *, user_id: int | None = None) -> Category:
    require_store(store_id)
    patch = _apply_slug(validate_payload(
        model=Category, payload=blank_to_none(payload), policy=CATEGORY_POLICY, partial=False
    ))

    def _op():
        if patch.get("parent_id") is not None:
            _get_category(patch["parent_id"], store_id)

        category = Category(store_id=store_id, **patch)
        db.session.add(category)
        db.session.flush()
        log_activity(action="CREATE", module="categories", store_id=store_id, user_id=user_id,
                     record_id=category.id, changes={"name": category.name, "slug": category.slug})
        db.session.commit()
        return category

    return run_with_retry(_op)


def update_category(category_id: int, payload: dict, *, store_id: int | None = None,
                    user_id: int | None = None) -> Category:
    patch = _apply_slug(validate_payload(
        model=Category, payload=blank_to_none(payload), policy=CATEGORY_POLICY, partial=True
    ))

    def _op():
        category = _get_category(category_id, store_id)
        if "parent_id" in patch:
            if patch["parent_id"] is not None:
                _get_category(patch["parent_id"], category.store_id)
            _assert_no_cycle(category, patch["parent_id"])

        for key, value in patch.items():
            setattr(category, key, value)

        log_activity(action="UPDATE", module="categories", store_id=category.store_id, user_id=user_id,
                     record_id=category.id, changes={"fields": sorted(patch.keys())})
        db.session.commit()
        return category

    return run_with_retry(_op)


def delete_category(category_id: int, *, store_id: int | None = None, user_id: int | None = None) -> None:
    def _op():
        category = _get_category(category_id, store_id)

        child_count = db.session.query(Category).filter(Category.parent_id == category.id).count()
        if child_count > 0:
            raise GuardError("Cannot delete category with subcategories")

        product_count = db.session.query(Product).filter(Product.category_id == category.id).count()
        if product_count > 0:
            raise GuardError("Cannot delete category assigned to products")

        log_activity(action="DELETE", module="categories", store_id=category.store_id, user_id=user_id,
                     record_id=category.id, changes={"name": category.name})
        db.session.delete(category)
        db.session.commit()

    run_with_retry(_op)


# --- Brands -----------------------------------------------------------------

def _get_brand(brand_id: int, store_id: int | None = None) -> Brand:
    brand = db.session.get(Brand, brand_id)
    if brand is None or (store_id is not None and brand.store_id != store_id):
        raise NotFoundError("Brand not found")
    return brand


def list_brands(store_id: int, *, include_inactive: bool = False) -> list[Brand]:
    require_store(store_id)
    query = db.session.query(Brand).filter(Brand.store_id == store_id)
    if not include_inactive:
        query = query.filter(Brand.is_active.is_(True))
    return query.order_by(Brand.name.asc()).all()


def create_brand(store_id: int, payload: dict, *, user_id: int | None = None) -> Brand:
    require_store(store_id)
    patch = _apply_slug(validate_payload(
        model=Brand, payload=blank_to_none(payload), policy=BRAND_POLICY, partial=False
    ))

    def _op():
        brand = Brand(store_id=store_id, **patch)
        db.session.add(brand)
        db.session.flush()
        log_activity(action="CREATE", module="brands", store_id=store_id, user_id=user_id,
                     record_id=brand.id, changes={"name": brand.name, "slug": brand.slug})
        db.session.commit()
        return brand

    return run_with_retry(_op)


def update_brand(brand_id: int, payload: dict, *, store_id: int | None = None,
                 user_id: int | None = None) -> Brand:
    patch = _apply_slug(validate_payload(
        model=Brand, payload=blank_to_none(payload), policy=BRAND_POLICY, partial=True
    ))

    def _op():
        brand = _get_brand(brand_id, store_id)
        for key, value in patch.items():
            setattr(brand, key, value)
        log_activity(action="UPDATE", module="brands", store_id=brand.store_id, user_id=user_id,
                     record_id=brand.id, changes={"fields": sorted(patch.keys())})
        db.session.commit()
        return brand

    return run_with_retry(_op)


def delete_brand(brand_id: int, *, store_id: int | None = None, user_id: int | None = None) -> None:
    def _op():
        brand = _get_brand(brand_id, store_id)

        product_count = db.session.query(Product).filter(Product.brand_id == brand.id).count()
        if product_count > 0:
            raise GuardError("Cannot delete brand assigned to products")

        log_activity(action="DELETE", module="brands", store_id=brand.store_id, user_id=user_id,
                     record_id=brand.id, changes={"name": brand.name})
        db.session.delete(brand)
        db.session.commit()

    run_with_retry(_op)


# --- Products ---------------------------------------------------------------

def _normalize_product(patch: dict) -> dict:
    if patch.get("sku"):
        patch["sku"] = patch["sku"].upper()
    for key in ("stock_level", "min_stock_level", "warranty_months"):
        if patch.get(key) is not None and patch[key] < 0:
            if key == "stock_level":
                raise ValidationError("Opening stock_level cannot be negative")
            raise ValidationError(f"{key} must be >= 0")
    images = patch.get("images")
    if images is not None and not isinstance(images, list):
        raise ValidationError("images must be a list")
    specs = patch.get("specifications")
    if specs is not None and not isinstance(specs, dict):
        raise ValidationError("specifications must be an object")
    return patch


def _check_product_refs(store_id: int, patch: dict) -> None:
    if patch.get("category_id") is not None:
        _get_category(patch["category_id"], store_id)
    if patch.get("brand_id") is not None:
        _get_brand(patch["brand_id"], store_id)


def _check_product_unique(store_id: int, patch: dict, *, exclude_id: int | None = None) -> None:
    if patch.get("sku"):
        query = db.session.query(Product.id).filter(Product.store_id == store_id, Product.sku == patch["sku"])
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError(f"SKU {patch['sku']} already exists in this store")
    if patch.get("barcode"):
        query = db.session.query(Product.id).filter(
            Product.store_id == store_id, Product.barcode == patch["barcode"]
        )
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError(f"Barcode {patch['barcode']} already exists in this store")


def get_product(product_id: int, *, store_id: int | None = None) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or (store_id is not None and product.store_id != store_id):
        raise NotFoundError("Product not found")
    return product


def get_product_by_sku(store_id: int, sku: str) -> Product | None:
    if not sku:
        raise ValidationError("sku is required")
    return (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.sku == str(sku).strip().upper())
        .first()
    )


def get_product_by_barcode(store_id: int, barcode: str) -> Product | None:
    if not barcode:
        raise ValidationError("barcode is required")
    return (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.barcode == str(barcode).strip())
        .first()
    )


def list_products(
    store_id: int,
    *,
    search=None,
    category_id=None,
    brand_id=None,
    include_inactive: bool = False,
    low_stock: bool = False,
    page=None,
    page_size=None,
) -> dict:
    require_store(store_id)
    query = db.session.query(Product).filter(Product.store_id == store_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if brand_id is not None:
        query = query.filter(Product.brand_id == brand_id)
    if low_stock:
        query = query.filter(Product.stock_level <= Product.min_stock_level)
    condition = search_filter(search, Product.name, Product.sku, Product.barcode)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, page_size=page_size)


def create_product(store_id: int, payload: dict, *, user_id: int | None = None) -> Product:
    require_store(store_id)
    patch = _normalize_product(validate_payload(
        model=Product, payload=blank_to_none(payload), policy=PRODUCT_POLICY, partial=False
    ))

    def _op():
        _check_product_refs(store_id, patch)
        _check_product_unique(store_id, patch)

        product = Product(store_id=store_id, **patch)
        db.session.add(product)
        db.session.flush()
        log_activity(action="CREATE", module="products", store_id=store_id, user_id=user_id,
                     record_id=product.id, changes={"sku": product.sku, "name": product.name})
        db.session.commit()
        return product

    return run_with_retry(_op)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def update_product(product_id: int, payload: dict, *, store_id: int | None = None,
                   user_id: int | None = None) -> Product:
    patch = _normalize_product(validate_payload(
        model=Product, payload=blank_to_none(payload), policy=PRODUCT_POLICY, partial=True
    ))
    if "stock_level" in patch:
        patch.pop("stock_level")
        current_app.logger.info("Ignoring stock_level on product %s update", product_id)

    def _op():
        product = get_product(product_id, store_id=store_id)
        _check_product_refs(product.store_id, patch)
        _check_product_unique(product.store_id, patch, exclude_id=product.id)

        apply_product_patch(product, patch)
        log_activity(action="UPDATE", module="products", store_id=product.store_id, user_id=user_id,
                     record_id=product.id, changes={"fields": sorted(patch.keys())})
        db.session.commit()
        return product

    return run_with_retry(_op)


def delete_product(product_id: int, *, store_id: int | None = None, user_id: int | None = None) -> dict:
    """Returns {"id", "soft_deleted"}."""
    def _op():
        product = get_product(product_id, store_id=store_id)

        referenced = (
            db.session.query(PurchaseOrderLine.id).filter(PurchaseOrderLine.product_id == product.id).first()
            or db.session.query(SaleLine.id).filter(SaleLine.product_id == product.id).first()
        )

        log_activity(action="DELETE", module="products", store_id=product.store_id, user_id=user_id,
                     record_id=product.id, changes={"sku": product.sku, "soft": bool(referenced)})
        if referenced:
            product.is_active = False
        else:
            db.session.delete(product)
        db.session.commit()
        return {"id": product_id, "soft_deleted": bool(referenced)}

    return run_with_retry(_op)
