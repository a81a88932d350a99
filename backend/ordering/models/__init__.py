from .catalog import Company, Product
from .cycle import CutoffCycle, DocumentSequence
from .orders import SaleOrder, SaleOrderItem
from .purchasing import PurchaseOrder, PurchaseOrderItem, PurchaseLedger, PurchaseLedgerItem
from .audit import AuditEvent

__all__ = [
    'Company', 'Product',
    'CutoffCycle', 'DocumentSequence',
    'SaleOrder', 'SaleOrderItem',
    'PurchaseOrder', 'PurchaseOrderItem', 'PurchaseLedger', 'PurchaseLedgerItem',
    'AuditEvent',
]
