# Overview: Bridge handlers for checkout and sale records.

from __future__ import annotations

from ..bridge import bridge, dict_param, int_param, param
from ..services import sales_service


@bridge.register("sales.getAll", paged=True)
def list_sales(payload: dict):
    return sales_service.list_sales(
        int_param(payload, "storeId", required=True),
        search=param(payload, "search"),
        payment_status=param(payload, "paymentStatus"),
        start=param(payload, "start"),
        end=param(payload, "end"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("sales.getById")
def get_sale(payload: dict):
    return sales_service.get_sale(int_param(payload, "id", required=True), store_id=int_param(payload, "storeId"))


@bridge.register("sales.create")
def create_sale(payload: dict):
    return sales_service.checkout(
        int_param(payload, "storeId", required=True), dict_param(payload), cashier_id=int_param(payload, "userId")
    )


@bridge.register("sales.recordPayment")
def record_payment(payload: dict):
    return sales_service.record_payment(
        int_param(payload, "id", required=True), dict_param(payload),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("sales.delete")
def delete_sale(payload: dict):
    sale_id = int_param(payload, "id", required=True)
    sales_service.delete_sale(sale_id, store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"))
    return {"id": sale_id}
