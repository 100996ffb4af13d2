# Overview: Chart of accounts, expenses and journal transactions for a store.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Account, Expense, Transaction, TransactionEntry
from ..validation import (
    ConflictError,
    GuardError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    blank_to_none,
    coerce_amount,
    coerce_int,
    require_choice,
    validate_payload,
)
from rexpos.time_utils import epoch_millis
from .activity_service import log_activity
from .concurrency import run_with_retry
from .query_utils import paginate, search_filter
from .store_service import require_store

"""
Accounting Invariants

- Account codes are unique within a store.
- Creating an expense lowers the linked account's current balance in the
  same transaction (atomic decrement, no read-modify-write).
- A journal transaction has at least two entries, every entry's account
  belongs to the transaction's store, and debits equal credits.
"""

ACCOUNT_TYPES = ("ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE")
EXPENSE_CATEGORIES = ("Rent", "Utilities", "Salary", "Marketing", "Maintenance", "Other")
ENTRY_TYPES = ("DEBIT", "CREDIT")

ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={"account_code", "account_name", "account_type", "parent_id", "is_active"},
    required_on_create={"account_code", "account_name", "account_type"},
)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={
        "expense_date", "category", "amount_cents", "payment_method",
        "description", "receipt_url", "account_id",
    },
    required_on_create={"category", "amount_cents", "description"},
    amount_fields={"amount_cents"},
)


class AccountingError(ValidationError):
    """Raised for accounting rule violations."""
    pass


def _get_account(account_id: int, store_id: int | None = None) -> Account:
    account = db.session.get(Account, account_id)
    if account is None or (store_id is not None and account.store_id != store_id):
        raise NotFoundError("Account not found")
    return account


def account_summary(store_id: int) -> dict:
    """Balance totals per headline account type, over all accounts of the store."""
    rows = (
        db.session.query(Account.account_type, func.coalesce(func.sum(Account.current_balance_cents), 0))
        .filter(Account.store_id == store_id)
        .group_by(Account.account_type)
        .all()
    )
    totals = {account_type: int(total) for account_type, total in rows}
    return {
        "totalAssets": totals.get("ASSET", 0),
        "totalRevenue": totals.get("REVENUE", 0),
        "totalExpenses": totals.get("EXPENSE", 0),
    }


def list_accounts(store_id: int, *, search=None, account_type=None, include_inactive: bool = True,
                  page=None, page_size=None) -> dict:
    require_store(store_id)
    query = db.session.query(Account).filter(Account.store_id == store_id)
    if account_type:
        query = query.filter(Account.account_type == require_choice(account_type, ACCOUNT_TYPES, "account_type"))
    if not include_inactive:
        query = query.filter(Account.is_active.is_(True))
    condition = search_filter(search, Account.account_name)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(Account.account_code.asc(), Account.id.asc())
    result = paginate(query, page=page, page_size=page_size)
    result["summary"] = account_summary(store_id)
    return result


def create_account(store_id: int, payload: dict, *, user_id: int | None = None) -> Account:
    require_store(store_id)
    payload = blank_to_none(payload)
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=False)
    require_choice(patch["account_type"], ACCOUNT_TYPES, "account_type")
    balance_raw = payload.get("balance_cents", payload.get("opening_balance_cents"))
    balance = coerce_amount(balance_raw, "balance_cents", allow_negative=True) if balance_raw is not None else 0

    def _op():
        if db.session.query(Account.id).filter_by(store_id=store_id, account_code=patch["account_code"]).first():
            raise ConflictError(f"Account code {patch['account_code']} already exists")
        if patch.get("parent_id") is not None:
            _get_account(patch["parent_id"], store_id)

        account = Account(store_id=store_id, opening_balance_cents=balance, current_balance_cents=balance, **patch)
        db.session.add(account)
        db.session.flush()
        log_activity(action="CREATE", module="accounts", store_id=store_id, user_id=user_id,
                     record_id=account.id, changes={"account_code": account.account_code, "balance_cents": balance})
        db.session.commit()
        return account

    return run_with_retry(_op)


def update_account(account_id: int, payload: dict, *, store_id: int | None = None,
                   user_id: int | None = None) -> Account:
    patch = validate_payload(model=Account, payload=blank_to_none(payload), policy=ACCOUNT_POLICY, partial=True)
    if "account_type" in patch:
        require_choice(patch["account_type"], ACCOUNT_TYPES, "account_type")

    def _op():
        account = _get_account(account_id, store_id)
        if "account_code" in patch and patch["account_code"] != account.account_code:
            clash = (
                db.session.query(Account.id)
                .filter(Account.store_id == account.store_id, Account.account_code == patch["account_code"],
                        Account.id != account.id)
                .first()
            )
            if clash:
                raise ConflictError(f"Account code {patch['account_code']} already exists")
        if patch.get("parent_id") is not None:
            if patch["parent_id"] == account.id:
                raise AccountingError("Account cannot be its own parent")
            _get_account(patch["parent_id"], account.store_id)

        for key, value in patch.items():
            setattr(account, key, value)
        log_activity(action="UPDATE", module="accounts", store_id=account.store_id, user_id=user_id,
                     record_id=account.id, changes={"fields": sorted(patch.keys())})
        db.session.commit()
        return account

    return run_with_retry(_op)


def delete_account(account_id: int, *, store_id: int | None = None, user_id: int | None = None) -> None:
    def _op():
        account = _get_account(account_id, store_id)
        has_expenses = db.session.query(Expense.id).filter(Expense.account_id == account.id).first()
        has_entries = db.session.query(TransactionEntry.id).filter(TransactionEntry.account_id == account.id).first()
        if has_expenses or has_entries:
            raise GuardError("Cannot delete account with existing transactions")

        log_activity(action="DELETE", module="accounts", store_id=account.store_id, user_id=user_id,
                     record_id=account.id, changes={"account_code": account.account_code})
        db.session.delete(account)
        db.session.commit()

    run_with_retry(_op)


def list_expenses(store_id: int, *, search=None, category=None, page=None, page_size=None) -> dict:
    require_store(store_id)
    query = db.session.query(Expense).filter(Expense.store_id == store_id)
    if category:
        query = query.filter(Expense.category == require_choice(category, EXPENSE_CATEGORIES, "category"))
    condition = search_filter(search, Expense.description)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(Expense.expense_date.desc(), Expense.id.desc())
    return paginate(query, page=page, page_size=page_size)


def create_expense(store_id: int, payload: dict, *, user_id: int | None = None) -> Expense:
    """Record an expense and draw its amount from the linked account."""
    require_store(store_id)
    patch = validate_payload(model=Expense, payload=blank_to_none(payload), policy=EXPENSE_POLICY, partial=False)
    require_choice(patch["category"], EXPENSE_CATEGORIES, "category")
    if patch["amount_cents"] <= 0:
        raise AccountingError("amount_cents must be greater than 0")

    def _op():
        count = db.session.query(func.count(Expense.id)).filter(Expense.store_id == store_id).scalar() or 0
        expense = Expense(
            store_id=store_id,
            expense_number=f"EXP-{epoch_millis()}-{count + 1}",
            created_by_id=user_id,
            **patch,
        )
        db.session.add(expense)

        if patch.get("account_id") is not None:
            _get_account(patch["account_id"], store_id)
            (
                db.session.query(Account)
                .filter(Account.id == patch["account_id"])
                .update(
                    {Account.current_balance_cents: Account.current_balance_cents - patch["amount_cents"]},
                    synchronize_session=False,
                )
            )

        db.session.flush()
        log_activity(action="CREATE", module="expenses", store_id=store_id, user_id=user_id,
                     record_id=expense.id,
                     changes={"expense_number": expense.expense_number, "amount_cents": expense.amount_cents})
        db.session.commit()
        current_app.logger.info("Expense %s recorded: %s", expense.expense_number, expense.amount_cents)
        return expense

    return run_with_retry(_op)


def list_transactions(store_id: int, *, reference_type=None, page=None, page_size=None) -> dict:
    require_store(store_id)
    query = db.session.query(Transaction).filter(Transaction.store_id == store_id)
    if reference_type:
        query = query.filter(Transaction.reference_type == reference_type)
    query = query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    return paginate(query, page=page, page_size=page_size)


def _parse_entries(raw_entries) -> list[dict]:
    if not isinstance(raw_entries, list) or len(raw_entries) < 2:
        raise AccountingError("A transaction needs at least two entries")
    entries = []
    for index, raw in enumerate(raw_entries, start=1):
        if not isinstance(raw, dict):
            raise AccountingError(f"Entry {index} is invalid")
        amount = coerce_amount(raw.get("amount_cents"), f"entries[{index}].amount_cents")
        if amount <= 0:
            raise AccountingError(f"Entry {index}: amount_cents must be greater than 0")
        entries.append({
            "account_id": coerce_int(raw.get("account_id"), f"entries[{index}].account_id"),
            "entry_type": require_choice(raw.get("entry_type"), ENTRY_TYPES, "entry_type"),
            "amount_cents": amount,
        })
    return entries


def create_transaction(store_id: int, payload: dict, *, user_id: int | None = None) -> Transaction:
    require_store(store_id)
    payload = blank_to_none(payload)
    entries = _parse_entries(payload.get("entries"))
    description = (payload.get("description") or "").strip()
    if not description:
        raise ValidationError("Missing required fields: description")

    debits = sum(e["amount_cents"] for e in entries if e["entry_type"] == "DEBIT")
    credits = sum(e["amount_cents"] for e in entries if e["entry_type"] == "CREDIT")
    if debits != credits:
        raise AccountingError(f"Debits ({debits}) must equal credits ({credits})")

    header = validate_payload(
        model=Transaction,
        payload={k: v for k, v in payload.items() if v is not None},
        policy=ModelValidationPolicy(writable_fields={"transaction_date", "reference_type", "reference_id"}),
        partial=True,
    )

    def _op():
        account_ids = {e["account_id"] for e in entries}
        found = {
            a.id for a in
            db.session.query(Account).filter(Account.store_id == store_id, Account.id.in_(account_ids)).all()
        }
        missing = sorted(account_ids - found)
        if missing:
            raise NotFoundError(f"Accounts not found in this store: {', '.join(str(m) for m in missing)}")

        txn = Transaction(store_id=store_id, description=description, total_cents=debits,
                          created_by_id=user_id, **header)
        txn.entries = [TransactionEntry(**e) for e in entries]
        db.session.add(txn)
        db.session.flush()
        log_activity(action="CREATE", module="transactions", store_id=store_id, user_id=user_id,
                     record_id=txn.id, changes={"total_cents": debits, "entries": len(entries)})
        db.session.commit()
        return txn

    return run_with_retry(_op)
