"""
Stock Schemas
"""
from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime
from uuid import UUID


class StockAdjustmentRequest(BaseModel):
    item_code: str
    warehouse: Optional[str] = None
    quantity: int
    remarks: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("quantity cannot be zero")
        return v


class StockBalanceResponse(BaseModel):
    item_code: str
    warehouse: str
    current_balance: int
    last_movement_at: Optional[datetime]

    class Config:
        from_attributes = True


class LedgerEntryResponse(BaseModel):
    id: UUID
    item_code: str
    warehouse: str
    direction: str
    posting_type: str
    quantity: int
    reference_type: Optional[str]
    reference_id: Optional[str]
    reference_number: Optional[str]
    balance_after: int
    remarks: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
