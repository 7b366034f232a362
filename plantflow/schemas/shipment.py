"""
Shipment Schemas
"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import date
from uuid import UUID
from decimal import Decimal


class ShipmentStatusUpdate(BaseModel):
    status: str
    user_id: Optional[UUID] = None
    remarks: Optional[str] = None


class ShipmentPlanningUpdate(BaseModel):
    transporter: Optional[str] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_contact: Optional[str] = None
    planned_dispatch_date: Optional[date] = None
    dispatch_target_date: Optional[date] = None
    priority: Optional[str] = None
    shipping_address: Optional[str] = None


class TrackingCreate(BaseModel):
    status: Optional[str] = None
    location: Optional[str] = None
    remarks: Optional[str] = None


class ReturnItemCreate(BaseModel):
    item_code: str
    quantity: int
    warehouse: Optional[str] = None


class ReturnCreate(BaseModel):
    reason: Optional[str] = None
    items: List[ReturnItemCreate] = []


class ReturnStatusUpdate(BaseModel):
    status: str
    condition_status: Optional[str] = None  # GOOD, DAMAGED
    pickup_date: Optional[date] = None
    received_date: Optional[date] = None
    refund_amount: Optional[Decimal] = None
