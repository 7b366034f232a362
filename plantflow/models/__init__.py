from .base import TimestampMixin, UUIDMixin
from .customer import Customer
from .audit import AuditLog
from .sales_order import (
    SalesOrder, SalesOrderItem, SalesOrderRejection, SalesOrderItemRejection,
    OrderStatus, Department, ItemStatus, ItemType,
)
from .design import DesignOrder, DesignOrderStatus, Quotation, QuotationItem
from .purchase import (
    PurchaseOrder, PurchaseOrderItem, GRN, GRNItem, GrnExcessApproval,
    POStatus, POItemStatus, GRNStatus, GRNItemStatus, ExcessApprovalStatus,
)
from .stock import LedgerEntry, StockBalance, StockAnnotation, Direction, PostingType
from .quality import QCInspection, QCInspectionItem
from .shipment import (
    ShipmentOrder, ShipmentTracking, DeliveryChallan, DeliveryChallanItem,
    ShipmentReturn, ShipmentReturnItem, ShipmentStatus, ShipmentSource,
)
from .notification import NotificationOutbox, OutboxStatus

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Master
    "Customer",
    # Audit
    "AuditLog",
    # Sales order
    "SalesOrder", "SalesOrderItem", "SalesOrderRejection", "SalesOrderItemRejection",
    "OrderStatus", "Department", "ItemStatus", "ItemType",
    # Design
    "DesignOrder", "DesignOrderStatus", "Quotation", "QuotationItem",
    # Purchase
    "PurchaseOrder", "PurchaseOrderItem", "GRN", "GRNItem", "GrnExcessApproval",
    "POStatus", "POItemStatus", "GRNStatus", "GRNItemStatus", "ExcessApprovalStatus",
    # Stock
    "LedgerEntry", "StockBalance", "StockAnnotation", "Direction", "PostingType",
    # Quality
    "QCInspection", "QCInspectionItem",
    # Shipment
    "ShipmentOrder", "ShipmentTracking", "DeliveryChallan", "DeliveryChallanItem",
    "ShipmentReturn", "ShipmentReturnItem", "ShipmentStatus", "ShipmentSource",
    # Notification
    "NotificationOutbox", "OutboxStatus",
]
