from __future__ import annotations

from ..extensions import db
from rexpos.time_utils import to_utc_z, utcnow


class Account(db.Model):
    """Chart-of-accounts entry. current_balance_cents moves with expenses."""
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("store_id", "account_code", name="uq_accounts_store_code"),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    account_code = db.Column(db.String(32), nullable=False)
    account_name = db.Column(db.String(255), nullable=False)
    # ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE
    account_type = db.Column(db.String(16), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_summary(self) -> dict:
        return {"id": self.id, "account_code": self.account_code, "account_name": self.account_name}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "account_code": self.account_code,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "parent_id": self.parent_id,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.UniqueConstraint("store_id", "expense_number", name="uq_expenses_store_number"),
        db.Index("ix_expenses_store_date", "store_id", "expense_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    expense_number = db.Column(db.String(64), nullable=False)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    category = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="Cash")
    description = db.Column(db.Text, nullable=False)
    receipt_url = db.Column(db.String(512), nullable=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "expense_number": self.expense_number,
            "expense_date": to_utc_z(self.expense_date),
            "category": self.category,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "description": self.description,
            "receipt_url": self.receipt_url,
            "account_id": self.account_id,
            "account": self.account.to_summary() if self.account else None,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
        }


class Transaction(db.Model):
    """
    Double-entry journal transaction.

    INVARIANT: at least two entries, all against accounts of this store, and
    sum(DEBIT) == sum(CREDIT). total_cents is the debit side.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_store_date", "store_id", "transaction_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    entries = db.relationship(
        "TransactionEntry",
        back_populates="transaction",
        order_by="TransactionEntry.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "total_cents": self.total_cents,
            "created_by_id": self.created_by_id,
            "entries": [e.to_dict() for e in self.entries],
            "created_at": to_utc_z(self.created_at),
        }


class TransactionEntry(db.Model):
    __tablename__ = "transaction_entries"

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    # DEBIT, CREDIT
    entry_type = db.Column(db.String(8), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("Transaction", back_populates="entries")
    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account": self.account.to_summary() if self.account else None,
            "entry_type": self.entry_type,
            "amount_cents": self.amount_cents,
        }
