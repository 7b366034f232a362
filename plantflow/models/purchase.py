"""
Purchase Order & Goods Receipt Models
"""
import enum

from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, ForeignKey, Text, Numeric, Uuid
from sqlalchemy.orm import relationship
from plantflow.core import Base
from .base import UUIDMixin, TimestampMixin


class POStatus(str, enum.Enum):
    ORDERED = "ORDERED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    COMPLETED = "COMPLETED"


class POItemStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    EXCESS = "EXCESS"


class GRNStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PARTIAL = "PARTIAL"
    EXCESS = "EXCESS"
    REJECTED = "REJECTED"


class GRNItemStatus(str, enum.Enum):
    RECEIVED = "RECEIVED"
    EXCESS_ACCEPTED = "EXCESS_ACCEPTED"
    APPROVED = "APPROVED"
    ACCEPTED = "ACCEPTED"
    PASSED = "PASSED"
    SHORTAGE = "SHORTAGE"
    REJECTED = "REJECTED"


class ExcessApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PurchaseOrder(Base, UUIDMixin, TimestampMixin):
    """Purchase Order header"""
    __tablename__ = "purchase_order"

    po_number = Column(String(50), unique=True, nullable=False)
    vendor_name = Column(String(200))
    po_date = Column(Date)
    status = Column(String(30), default=POStatus.ORDERED.value, nullable=False)
    notes = Column(Text)

    items = relationship("PurchaseOrderItem", back_populates="purchase_order", cascade="all, delete-orphan")
    grns = relationship("GRN", back_populates="purchase_order")


class PurchaseOrderItem(Base, UUIDMixin, TimestampMixin):
    """
    Purchase Order line.

    The received balance is never stored here; it is always derived from
    the GRN items that reference the line. `status` is a projection written
    back by the PO balance service.
    """
    __tablename__ = "purchase_order_item"

    purchase_order_id = Column(Uuid, ForeignKey("purchase_order.id"), nullable=False, index=True)
    item_code = Column(String(100), nullable=False, index=True)
    description = Column(Text)
    unit = Column(String(20), default="NOS")
    quantity = Column(Integer, nullable=False)
    unit_rate = Column(Numeric(12, 2), default=0)
    warehouse = Column(String(100))
    status = Column(String(20), default=POItemStatus.OPEN.value, nullable=False)

    purchase_order = relationship("PurchaseOrder", back_populates="items")
    grn_items = relationship("GRNItem", back_populates="po_item")


class GRN(Base, UUIDMixin, TimestampMixin):
    """Goods Receipt Note header"""
    __tablename__ = "grn"

    grn_number = Column(String(50), unique=True, nullable=False)
    purchase_order_id = Column(Uuid, ForeignKey("purchase_order.id"), nullable=False, index=True)
    receipt_id = Column(String(50))  # Gate-entry / PO receipt reference
    grn_date = Column(Date)
    status = Column(String(20), default=GRNStatus.PENDING.value, nullable=False)
    notes = Column(Text)

    purchase_order = relationship("PurchaseOrder", back_populates="grns")
    items = relationship("GRNItem", back_populates="grn", cascade="all, delete-orphan")


class GRNItem(Base, UUIDMixin, TimestampMixin):
    """GRN line referencing exactly one PO line"""
    __tablename__ = "grn_item"

    grn_id = Column(Uuid, ForeignKey("grn.id"), nullable=False, index=True)
    po_item_id = Column(Uuid, ForeignKey("purchase_order_item.id"), nullable=False, index=True)

    po_qty = Column(Integer, nullable=False, default=0)  # Quantity expected on this receipt
    received_qty = Column(Integer, nullable=False, default=0)
    accepted_qty = Column(Integer, nullable=False, default=0)
    rejected_qty = Column(Integer, nullable=False, default=0)
    shortage_qty = Column(Integer, nullable=False, default=0)
    overage_qty = Column(Integer, nullable=False, default=0)

    status = Column(String(20), default=GRNItemStatus.RECEIVED.value, nullable=False, index=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    remarks = Column(Text)

    grn = relationship("GRN", back_populates="items")
    po_item = relationship("PurchaseOrderItem", back_populates="grn_items")
    excess_approval = relationship("GrnExcessApproval", back_populates="grn_item", uselist=False, cascade="all, delete-orphan")


class GrnExcessApproval(Base, UUIDMixin, TimestampMixin):
    """Decision record for quantity received above the expected quantity"""
    __tablename__ = "grn_excess_approval"

    grn_item_id = Column(Uuid, ForeignKey("grn_item.id"), unique=True, nullable=False)
    excess_qty = Column(Integer, nullable=False)
    status = Column(String(20), default=ExcessApprovalStatus.PENDING.value, nullable=False)
    approval_notes = Column(Text)
    rejection_reason = Column(Text)
    approved_at = Column(DateTime(timezone=True))
    rejected_at = Column(DateTime(timezone=True))

    grn_item = relationship("GRNItem", back_populates="excess_approval")
