"""
Purchase Order Schemas
"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime
from uuid import UUID
from decimal import Decimal


class PurchaseOrderItemCreate(BaseModel):
    item_code: str
    description: Optional[str] = None
    unit: str = "NOS"
    quantity: int
    unit_rate: Decimal = Decimal("0")
    warehouse: Optional[str] = None


class PurchaseOrderCreate(BaseModel):
    po_number: Optional[str] = None
    vendor_name: Optional[str] = None
    po_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[PurchaseOrderItemCreate] = []


class PurchaseOrderItemResponse(BaseModel):
    id: UUID
    item_code: str
    description: Optional[str]
    unit: Optional[str]
    quantity: int
    unit_rate: Optional[Decimal]
    warehouse: Optional[str]
    status: str

    class Config:
        from_attributes = True


class PurchaseOrderResponse(BaseModel):
    id: UUID
    po_number: str
    vendor_name: Optional[str]
    po_date: Optional[date]
    status: str
    notes: Optional[str]
    created_at: datetime
    items: List[PurchaseOrderItemResponse] = []

    class Config:
        from_attributes = True
