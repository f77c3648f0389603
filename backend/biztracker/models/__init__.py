from .customers import Customer
from .inventory import Item
from .sales import Sale, SaleItem, Debt, PaymentHistory
from .expenses import Expense
from .activity import ActivityLog

__all__ = [
    'Customer',
    'Item',
    'Sale', 'SaleItem', 'Debt', 'PaymentHistory',
    'Expense',
    'ActivityLog',
]
