"""
Sales Order Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from uuid import UUID
from decimal import Decimal


class SalesOrderItemCreate(BaseModel):
    item_code: str
    description: Optional[str] = None
    drawing_no: Optional[str] = None
    item_type: Optional[str] = None  # Inferred from the item code when omitted
    quantity: int = 1
    unit: str = "NOS"
    unit_rate: Decimal = Decimal("0")
    warehouse: Optional[str] = None


class SalesOrderCreate(BaseModel):
    so_number: Optional[str] = None
    customer_id: Optional[UUID] = None
    customer_po_number: Optional[str] = None
    project_name: Optional[str] = None
    production_priority: str = "NORMAL"
    target_dispatch_date: Optional[date] = None
    material_available: bool = False
    items: List[SalesOrderItemCreate] = []


class AcceptRequest(BaseModel):
    department: str
    user_id: Optional[UUID] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None
    user_id: Optional[UUID] = None


class StatusUpdate(BaseModel):
    status: str
    user_id: Optional[UUID] = None
    remarks: Optional[str] = None


class BulkAcceptRequest(BaseModel):
    order_ids: List[UUID] = Field(..., min_length=1)
    department: str
    user_id: Optional[UUID] = None


class BulkIdsRequest(BaseModel):
    order_ids: List[UUID] = Field(..., min_length=1)
    user_id: Optional[UUID] = None


class BulkRejectRequest(BaseModel):
    order_ids: List[UUID] = Field(..., min_length=1)
    reason: str
    user_id: Optional[UUID] = None


class BulkStatusUpdate(BaseModel):
    order_ids: List[UUID] = Field(..., min_length=1)
    status: str
    user_id: Optional[UUID] = None
    remarks: Optional[str] = None


class ItemStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None
    user_id: Optional[UUID] = None


class BulkItemStatusUpdate(BaseModel):
    item_ids: List[UUID] = Field(..., min_length=1)
    status: str
    reason: Optional[str] = None
    user_id: Optional[UUID] = None


class SalesOrderItemResponse(BaseModel):
    id: UUID
    item_code: str
    description: Optional[str]
    drawing_no: Optional[str]
    item_type: str
    quantity: int
    unit: Optional[str]
    unit_rate: Optional[Decimal]
    warehouse: Optional[str]
    status: Optional[str]

    class Config:
        from_attributes = True


class SalesOrderResponse(BaseModel):
    id: UUID
    so_number: str
    customer_id: Optional[UUID]
    customer_po_number: Optional[str]
    quotation_id: Optional[UUID]
    project_name: Optional[str]
    status: str
    current_department: str
    request_accepted: bool
    material_available: bool
    production_priority: Optional[str]
    target_dispatch_date: Optional[date]
    created_at: datetime
    items: List[SalesOrderItemResponse] = []

    class Config:
        from_attributes = True


class WorkflowDecisionResponse(BaseModel):
    status: str
    department: str
    side_effects: List[str] = []
    applied: bool
    reason: Optional[str] = None


class AcceptResponse(BaseModel):
    order: SalesOrderResponse
    decision: WorkflowDecisionResponse


class FinalQCRequest(BaseModel):
    status: str  # PASSED, FAILED
    remarks: Optional[str] = None
    passed_qty: Optional[int] = None
    failed_qty: Optional[int] = None
    user_id: Optional[UUID] = None
