from .grn import GRNCreate, GRNItemCreate, GRNItemUpdate, ExcessApprovalRequest, ExcessRejectionRequest
from .purchase import PurchaseOrderCreate, PurchaseOrderItemCreate, PurchaseOrderResponse, PurchaseOrderItemResponse
from .sales_order import (
    SalesOrderCreate, SalesOrderItemCreate, SalesOrderResponse, SalesOrderItemResponse,
    AcceptRequest, RejectRequest, StatusUpdate, BulkAcceptRequest, BulkIdsRequest,
    BulkRejectRequest, BulkStatusUpdate, ItemStatusUpdate, BulkItemStatusUpdate,
    WorkflowDecisionResponse, AcceptResponse, FinalQCRequest,
)
from .shipment import (
    ShipmentStatusUpdate, ShipmentPlanningUpdate, TrackingCreate,
    ReturnCreate, ReturnItemCreate, ReturnStatusUpdate,
)
from .stock import StockAdjustmentRequest, StockBalanceResponse, LedgerEntryResponse
