# Overview: Bridge handlers for categories, brands, products and suppliers.

from __future__ import annotations

from ..bridge import bool_param, bridge, dict_param, int_param, param, require_param
from ..services import catalog_service, supplier_service


def _store(payload: dict) -> int:
    return int_param(payload, "storeId", required=True)


# --- categories ---------------------------------------------------------------

@bridge.register("categories.getAll")
def list_categories(payload: dict):
    return catalog_service.list_categories(
        _store(payload),
        include_inactive=bool_param(payload, "includeInactive"),
        parent_id=int_param(payload, "parentId"),
    )


@bridge.register("categories.create")
def create_category(payload: dict):
    return catalog_service.create_category(_store(payload), dict_param(payload),
                                           user_id=int_param(payload, "userId"))


@bridge.register("categories.update")
def update_category(payload: dict):
    return catalog_service.update_category(
        int_param(payload, "id", required=True), dict_param(payload),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("categories.delete")
def delete_category(payload: dict):
    category_id = int_param(payload, "id", required=True)
    catalog_service.delete_category(category_id, store_id=int_param(payload, "storeId"),
                                    user_id=int_param(payload, "userId"))
    return {"id": category_id}


# --- brands -------------------------------------------------------------------

@bridge.register("brands.getAll")
def list_brands(payload: dict):
    return catalog_service.list_brands(_store(payload), include_inactive=bool_param(payload, "includeInactive"))


@bridge.register("brands.create")
def create_brand(payload: dict):
    return catalog_service.create_brand(_store(payload), dict_param(payload), user_id=int_param(payload, "userId"))


@bridge.register("brands.update")
def update_brand(payload: dict):
    return catalog_service.update_brand(
        int_param(payload, "id", required=True), dict_param(payload),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("brands.delete")
def delete_brand(payload: dict):
    brand_id = int_param(payload, "id", required=True)
    catalog_service.delete_brand(brand_id, store_id=int_param(payload, "storeId"),
                                 user_id=int_param(payload, "userId"))
    return {"id": brand_id}


# --- products -----------------------------------------------------------------

@bridge.register("products.getAll", paged=True)
def list_products(payload: dict):
    return catalog_service.list_products(
        _store(payload),
        search=param(payload, "search"),
        category_id=int_param(payload, "categoryId"),
        brand_id=int_param(payload, "brandId"),
        include_inactive=bool_param(payload, "includeInactive"),
        low_stock=bool_param(payload, "lowStock"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("products.getById")
def get_product(payload: dict):
    return catalog_service.get_product(int_param(payload, "id", required=True),
                                       store_id=int_param(payload, "storeId"))


@bridge.register("products.getBySku")
def get_product_by_sku(payload: dict):
    return catalog_service.get_product_by_sku(_store(payload), require_param(payload, "sku"))


@bridge.register("products.getByBarcode")
def get_product_by_barcode(payload: dict):
    return catalog_service.get_product_by_barcode(_store(payload), require_param(payload, "barcode"))


@bridge.register("products.create")
def create_product(payload: dict):
    return catalog_service.create_product(_store(payload), dict_param(payload), user_id=int_param(payload, "userId"))


@bridge.register("products.update")
def update_product(payload: dict):
    return catalog_service.update_product(
        int_param(payload, "id", required=True), dict_param(payload),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("products.delete")
def delete_product(payload: dict):
    return catalog_service.delete_product(int_param(payload, "id", required=True),
                                          store_id=int_param(payload, "storeId"),
                                          user_id=int_param(payload, "userId"))


# --- suppliers ----------------------------------------------------------------

@bridge.register("suppliers.getAll", paged=True)
def list_suppliers(payload: dict):
    return supplier_service.list_suppliers(
        _store(payload),
        search=param(payload, "search"),
        include_inactive=bool_param(payload, "includeInactive"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("suppliers.create")
def create_supplier(payload: dict):
    return supplier_service.create_supplier(_store(payload), dict_param(payload), user_id=int_param(payload, "userId"))


@bridge.register("suppliers.update")
def update_supplier(payload: dict):
    return supplier_service.update_supplier(
        int_param(payload, "id", required=True), dict_param(payload),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("suppliers.delete")
def delete_supplier(payload: dict):
    supplier_id = int_param(payload, "id", required=True)
    supplier_service.delete_supplier(supplier_id, store_id=int_param(payload, "storeId"),
                                     user_id=int_param(payload, "userId"))
    return {"id": supplier_id}
