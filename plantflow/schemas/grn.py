"""
GRN Schemas

Request bodies use the camelCase field names of the receiving UI; snake_case
names are accepted as well.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date
from uuid import UUID


class GRNItemCreate(BaseModel):
    po_item_id: Optional[UUID] = Field(None, alias="poItemId")
    item_code: Optional[str] = Field(None, alias="itemCode")
    po_qty: Optional[int] = Field(None, alias="poQty")
    received_qty: Optional[int] = Field(None, alias="receivedQty")
    accepted_qty: int = Field(0, alias="acceptedQty")
    rejected_qty: int = Field(0, alias="rejectedQty")
    remarks: Optional[str] = None

    class Config:
        populate_by_name = True


class GRNCreate(BaseModel):
    po_id: UUID = Field(..., alias="poId")
    receipt_id: Optional[str] = Field(None, alias="receiptId")
    grn_date: Optional[date] = Field(None, alias="grnDate")
    notes: Optional[str] = None
    items: List[GRNItemCreate] = []

    class Config:
        populate_by_name = True


class GRNItemUpdate(BaseModel):
    received_qty: Optional[int] = Field(None, alias="receivedQty")
    accepted_qty: Optional[int] = Field(None, alias="acceptedQty")
    rejected_qty: Optional[int] = Field(None, alias="rejectedQty")
    remarks: Optional[str] = None

    class Config:
        populate_by_name = True


class ExcessApprovalRequest(BaseModel):
    approval_notes: Optional[str] = Field(None, alias="approvalNotes")

    class Config:
        populate_by_name = True


class ExcessRejectionRequest(BaseModel):
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")

    class Config:
        populate_by_name = True
