"""
Accounts, expenses and journal transactions.
"""

import pytest

from rexpos.extensions import db
from rexpos.models import Account
from rexpos.services import accounting_service
from rexpos.services.accounting_service import AccountingError
from rexpos.validation import ConflictError, GuardError, NotFoundError, ValidationError


@pytest.fixture
def cash_account(store):
    return accounting_service.create_account(store.id, {
        "account_code": "1000", "account_name": "Cash in Hand", "account_type": "ASSET",
        "balance_cents": 100000,
    })


@pytest.fixture
def revenue_account(store):
    return accounting_service.create_account(store.id, {
        "account_code": "4000", "account_name": "Sales Revenue", "account_type": "REVENUE",
    })


class TestAccounts:

    def test_opening_balance_sets_current_balance(self, cash_account):
        assert cash_account.opening_balance_cents == 100000
        assert cash_account.current_balance_cents == 100000

    def test_duplicate_code_conflicts(self, store, cash_account):
        with pytest.raises(ConflictError):
            accounting_service.create_account(store.id, {
                "account_code": "1000", "account_name": "Again", "account_type": "ASSET",
            })

    def test_unknown_type_rejected(self, store):
        with pytest.raises(ValidationError, match="Invalid account_type"):
            accounting_service.create_account(store.id, {
                "account_code": "9", "account_name": "Odd", "account_type": "MAGIC",
            })

    def test_list_includes_summary(self, store, cash_account, revenue_account):
        result = accounting_service.list_accounts(store.id)
        assert result["total"] == 2
        assert result["summary"] == {"totalAssets": 100000, "totalRevenue": 0, "totalExpenses": 0}

    def test_account_cannot_be_its_own_parent(self, cash_account):
        with pytest.raises(AccountingError):
            accounting_service.update_account(cash_account.id, {"parent_id": cash_account.id})


class TestExpenses:

    def test_expense_draws_from_linked_account(self, store, cash_account):
        expense = accounting_service.create_expense(store.id, {
            "category": "Rent", "amount_cents": 25000, "description": "May rent",
            "account_id": cash_account.id,
        })
        assert expense.expense_number.startswith("EXP-")
        assert expense.expense_number.endswith("-1")

        account = db.session.get(Account, cash_account.id)
        assert account.current_balance_cents == 75000

    def test_invalid_category_rejected(self, store):
        with pytest.raises(ValidationError, match="Invalid category"):
            accounting_service.create_expense(store.id, {
                "category": "Snacks", "amount_cents": 100, "description": "x",
            })

    def test_account_with_expenses_cannot_be_deleted(self, store, cash_account):
        accounting_service.create_expense(store.id, {
            "category": "Utilities", "amount_cents": 100, "description": "Power",
            "account_id": cash_account.id,
        })
        with pytest.raises(GuardError, match="Cannot delete account with existing transactions"):
            accounting_service.delete_account(cash_account.id)

    def test_list_filters_by_category(self, store):
        accounting_service.create_expense(store.id, {"category": "Rent", "amount_cents": 100, "description": "a"})
        accounting_service.create_expense(store.id, {"category": "Salary", "amount_cents": 200, "description": "b"})
        result = accounting_service.list_expenses(store.id, category="Salary")
        assert [e["amount_cents"] for e in result["data"]] == [200]


class TestTransactions:

    def test_balanced_transaction_is_recorded(self, store, cash_account, revenue_account):
        txn = accounting_service.create_transaction(store.id, {
            "description": "Cash sales",
            "reference_type": "sale",
            "entries": [
                {"account_id": cash_account.id, "entry_type": "DEBIT", "amount_cents": 5000},
                {"account_id": revenue_account.id, "entry_type": "CREDIT", "amount_cents": 5000},
            ],
        })
        assert txn.total_cents == 5000
        assert len(txn.entries) == 2
        assert accounting_service.list_transactions(store.id, reference_type="sale")["total"] == 1

    def test_unbalanced_transaction_rejected(self, store, cash_account, revenue_account):
        with pytest.raises(AccountingError, match="must equal credits"):
            accounting_service.create_transaction(store.id, {
                "description": "Broken",
                "entries": [
                    {"account_id": cash_account.id, "entry_type": "DEBIT", "amount_cents": 5000},
                    {"account_id": revenue_account.id, "entry_type": "CREDIT", "amount_cents": 4000},
                ],
            })

    def test_single_entry_rejected(self, store, cash_account):
        with pytest.raises(AccountingError, match="at least two entries"):
            accounting_service.create_transaction(store.id, {
                "description": "Lonely",
                "entries": [{"account_id": cash_account.id, "entry_type": "DEBIT", "amount_cents": 1}],
            })

    def test_account_from_other_store_not_found(self, store, other_store, cash_account):
        foreign = accounting_service.create_account(other_store.id, {
            "account_code": "4000", "account_name": "Branch Revenue", "account_type": "REVENUE",
        })
        with pytest.raises(NotFoundError):
            accounting_service.create_transaction(store.id, {
                "description": "Cross-store",
                "entries": [
                    {"account_id": cash_account.id, "entry_type": "DEBIT", "amount_cents": 10},
                    {"account_id": foreign.id, "entry_type": "CREDIT", "amount_cents": 10},
                ],
            })

    def test_account_with_entries_cannot_be_deleted(self, store, cash_account, revenue_account):
        accounting_service.create_transaction(store.id, {
            "description": "Owner deposit",
            "entries": [
                {"account_id": cash_account.id, "entry_type": "DEBIT", "amount_cents": 10},
                {"account_id": revenue_account.id, "entry_type": "CREDIT", "amount_cents": 10},
            ],
        })
        with pytest.raises(GuardError):
            accounting_service.delete_account(revenue_account.id, store_id=store.id)
