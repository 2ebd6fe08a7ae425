from .customers import Customer, Payment
from .inventory import Product
from .sales import Sale, SaleItem, Refund
from .allocations import Allocation, AllocationHistory
from .suppliers import Supplier, Restock, RestockLine, SupplierCredit, SupplierPayment
from .pocket_money import PocketMoneyTransaction
from .audit import AuditEvent

__all__ = [
    'Customer', 'Payment',
    'Product',
    'Sale', 'SaleItem', 'Refund',
    'Allocation', 'AllocationHistory',
    'Supplier', 'Restock', 'RestockLine', 'SupplierCredit', 'SupplierPayment',
    'PocketMoneyTransaction',
    'AuditEvent',
]
