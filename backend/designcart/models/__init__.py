# Database models
from designcart.models.user import User
from designcart.models.order import Order, OrderStatus
from designcart.models.bill_record import BillRecord
from designcart.models.invoice_counter import InvoiceCounter
from designcart.models.audit_log import AuditLog

__all__ = [
    "User",
    "Order",
    "OrderStatus",
    "BillRecord",
    "InvoiceCounter",
    "AuditLog",
]
