from .tenancy import Company, Project
from .auth import User, SessionToken
from .materials import Material, StockRecord, StockBatch, StockMovement, MaterialRequest
from .procurement import (
    Vendor,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderApproval,
    PurchaseOrderDelivery,
    PurchaseOrderDeliveryLine,
)
from .finance import Account, Transaction, PaymentRequest
from .labour import Worker, AttendanceEntry, WorkerAdvance, WorkerSettlement
from .documents import TimelineEntry, DocumentSequence

__all__ = [
    'Company', 'Project',
    'User', 'SessionToken',
    'Material', 'StockRecord', 'StockBatch', 'StockMovement', 'MaterialRequest',
    'Vendor', 'PurchaseOrder', 'PurchaseOrderLine', 'PurchaseOrderApproval',
    'PurchaseOrderDelivery', 'PurchaseOrderDeliveryLine',
    'Account', 'Transaction', 'PaymentRequest',
    'Worker', 'AttendanceEntry', 'WorkerAdvance', 'WorkerSettlement',
    'TimelineEntry', 'DocumentSequence',
]
