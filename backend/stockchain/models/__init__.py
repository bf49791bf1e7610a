from .stock import StockEntry, StockSummary
from .requests import StockRequest, StockRequestItem
from .approvals import SalesApprovalHistory, SalesApprovalItem
from .invoices import Invoice, InvoiceLine
from .activity import ActivityEvent

__all__ = [
    'StockEntry', 'StockSummary',
    'StockRequest', 'StockRequestItem',
    'SalesApprovalHistory', 'SalesApprovalItem',
    'Invoice', 'InvoiceLine',
    'ActivityEvent',
]
