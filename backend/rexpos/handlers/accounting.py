# Overview: Bridge handlers for accounts, expenses and journal transactions.

from __future__ import annotations

from ..bridge import bool_param, bridge, dict_param, int_param, param
from ..services import accounting_service


@bridge.register("accounts.getAll", paged=True)
def list_accounts(payload: dict):
    return accounting_service.list_accounts(
        int_param(payload, "storeId", required=True),
        search=param(payload, "search"),
        account_type=param(payload, "accountType"),
        include_inactive=bool_param(payload, "includeInactive", default=True),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("accounts.create")
def create_account(payload: dict):
    return accounting_service.create_account(
        int_param(payload, "storeId", required=True), dict_param(payload), user_id=int_param(payload, "userId")
    )


@bridge.register("accounts.update")
def update_account(payload: dict):
    return accounting_service.update_account(
        int_param(payload, "id", required=True), dict_param(payload),
        store_id=int_param(payload, "storeId"), user_id=int_param(payload, "userId"),
    )


@bridge.register("accounts.delete")
def delete_account(payload: dict):
    account_id = int_param(payload, "id", required=True)
    accounting_service.delete_account(account_id, store_id=int_param(payload, "storeId"),
                                      user_id=int_param(payload, "userId"))
    return {"id": account_id}


@bridge.register("expenses.getAll", paged=True)
def list_expenses(payload: dict):
    return accounting_service.list_expenses(
        int_param(payload, "storeId", required=True),
        search=param(payload, "search"),
        category=param(payload, "category"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("expenses.create")
def create_expense(payload: dict):
    return accounting_service.create_expense(
        int_param(payload, "storeId", required=True), dict_param(payload), user_id=int_param(payload, "userId")
    )


@bridge.register("transactions.getAll", paged=True)
def list_transactions(payload: dict):
    return accounting_service.list_transactions(
        int_param(payload, "storeId", required=True),
        reference_type=param(payload, "referenceType"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("transactions.create")
def create_transaction(payload: dict):
    return accounting_service.create_transaction(
        int_param(payload, "storeId", required=True), dict_param(payload), user_id=int_param(payload, "userId")
    )
