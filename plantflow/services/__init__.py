# Services Package
from .stock_service import StockLedgerService
from .inventory_posting_service import InventoryPostingService
from .po_balance_service import POBalanceService
from .grn_service import GRNService
from .purchase_order_service import PurchaseOrderService
from .design_service import DesignOrderService, QuotationService
from .sales_order_service import SalesOrderService
from .shipment_service import ShipmentService
from .quality_service import FinalQCService, QCInspectionService
from .notification_service import OutboxService
from . import order_workflow

__all__ = [
    "StockLedgerService",
    "InventoryPostingService",
    "POBalanceService",
    "GRNService",
    "PurchaseOrderService",
    "DesignOrderService",
    "QuotationService",
    "SalesOrderService",
    "ShipmentService",
    "FinalQCService",
    "QCInspectionService",
    "OutboxService",
    "order_workflow",
]
