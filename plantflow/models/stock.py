"""
Stock Ledger Models
"""
import enum

from sqlalchemy import Column, String, Integer, DateTime, Text, Uuid, UniqueConstraint, Index
from plantflow.core import Base
from .base import UUIDMixin, utcnow


class Direction(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class PostingType(str, enum.Enum):
    INWARD = "INWARD"
    OUTWARD = "OUTWARD"
    ADJUSTMENT = "ADJUSTMENT"
    REJECTION = "REJECTION"
    RETURN = "RETURN"


class LedgerEntry(Base, UUIDMixin):
    """Immutable stock movement"""
    __tablename__ = "stock_ledger"

    item_code = Column(String(100), nullable=False)
    warehouse = Column(String(100), nullable=False)

    # Movement info
    direction = Column(String(20), nullable=False)  # IN, OUT, ADJUSTMENT
    posting_type = Column(String(20), nullable=False)  # INWARD, OUTWARD, ADJUSTMENT, RETURN
    quantity = Column(Integer, nullable=False)  # Positive for IN/OUT, signed for ADJUSTMENT

    # Reference
    reference_type = Column(String(30))  # GRN, SHIPMENT, RETURN, MANUAL
    reference_id = Column(String(50))
    reference_number = Column(String(50))

    balance_after = Column(Integer, nullable=False)

    # Metadata
    remarks = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_by = Column(Uuid)

    __table_args__ = (
        Index("ix_stock_ledger_item_wh", item_code, warehouse),
        Index("ix_stock_ledger_reference", reference_type, reference_id),
    )


class StockBalance(Base, UUIDMixin):
    """Cached running balance; always equals the signed ledger sum for its pair"""
    __tablename__ = "stock_balance"

    item_code = Column(String(100), nullable=False)
    warehouse = Column(String(100), nullable=False)
    current_balance = Column(Integer, nullable=False, default=0)
    last_movement_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("item_code", "warehouse", name="uq_stock_balance_item_wh"),
    )


class StockAnnotation(Base, UUIDMixin):
    """Audit-only posting that never moves stock on hand (e.g. GRN rejections)"""
    __tablename__ = "stock_annotation"

    item_code = Column(String(100), nullable=False, index=True)
    warehouse = Column(String(100), nullable=False)
    posting_type = Column(String(20), nullable=False)  # REJECTION
    quantity = Column(Integer, nullable=False)
    reference_type = Column(String(30))
    reference_id = Column(String(50))
    remarks = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
