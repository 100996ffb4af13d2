from .tenancy import Store, UserStore
from .auth import User, Role
from .catalog import Category, Brand, Product
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderLine
from .sales import Sale, SaleLine, SalePayment
from .accounting import Account, Expense, Transaction, TransactionEntry
from .activity import ActivityLog

__all__ = [
    'Store', 'UserStore',
    'User', 'Role',
    'Category', 'Brand', 'Product',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderLine',
    'Sale', 'SaleLine', 'SalePayment',
    'Account', 'Expense', 'Transaction', 'TransactionEntry',
    'ActivityLog',
]
