# Overview: Bridge handlers for purchase orders.

from __future__ import annotations

from ..bridge import bridge, dict_param, int_param, param, require_param
from ..services import purchase_order_service


@bridge.register("purchaseOrders.getAll", paged=True)
def list_purchase_orders(payload: dict):
    return purchase_order_service.list_purchase_orders(
        int_param(payload, "storeId", required=True),
        status=param(payload, "status"),
        supplier_id=int_param(payload, "supplierId"),
        search=param(payload, "search"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("purchaseOrders.getById")
def get_purchase_order(payload: dict):
    return purchase_order_service.get_purchase_order(int_param(payload, "id", required=True),
                                                     store_id=int_param(payload, "storeId"))


@bridge.register("purchaseOrders.create")
def create_purchase_order(payload: dict):
    return purchase_order_service.create_purchase_order(
        int_param(payload, "storeId", required=True), dict_param(payload), user_id=int_param(payload, "userId")
    )


@bridge.register("purchaseOrders.update")
def update_purchase_order(payload: dict):
    return purchase_order_service.update_purchase_order(
        int_param(payload, "id", required=True), dict_param(payload),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("purchaseOrders.updateStatus")
def update_purchase_order_status(payload: dict):
    return purchase_order_service.update_purchase_order_status(
        int_param(payload, "id", required=True), require_param(payload, "status"),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("purchaseOrders.delete")
def delete_purchase_order(payload: dict):
    order_id = int_param(payload, "id", required=True)
    purchase_order_service.delete_purchase_order(order_id, store_id=int_param(payload, "storeId"),
                                                 user_id=int_param(payload, "userId"))
    return {"id": order_id}


@bridge.register("purchaseOrders.getLastSupply")
def get_last_supply(payload: dict):
    return purchase_order_service.get_last_supply(
        int_param(payload, "storeId", required=True), int_param(payload, "productId", required=True)
    )
