from .auth import User
from .customers import Customer
from .inventory import Product, StockMovement
from .sales import Transaction, TransactionItem

__all__ = [
    'User',
    'Customer',
    'Product', 'StockMovement',
    'Transaction', 'TransactionItem',
]
