from .catalog import Product, ProductSetItem, ProductYear, ProductPriceHistory
from .students import Student
from .transactions import Transaction, TransactionItem, TransactionItemComponent
from .transfers import TransferBranch, BranchStock, StockTransfer, StockTransferItem
from .audit import AuditLog

__all__ = [
    'Product', 'ProductSetItem', 'ProductYear', 'ProductPriceHistory',
    'Student',
    'Transaction', 'TransactionItem', 'TransactionItemComponent',
    'TransferBranch', 'BranchStock', 'StockTransfer', 'StockTransferItem',
    'AuditLog',
]
