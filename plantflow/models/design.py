"""
Design Order & Quotation Models
"""
import enum

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, Numeric, Uuid
from sqlalchemy.orm import relationship
from plantflow.core import Base
from .base import UUIDMixin, TimestampMixin


class DesignOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    IN_DESIGN = "IN_DESIGN"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class DesignOrder(Base, UUIDMixin, TimestampMixin):
    """One design order per sales order"""
    __tablename__ = "design_order"

    design_order_number = Column(String(50), unique=True, nullable=False)
    sales_order_id = Column(Uuid, ForeignKey("sales_order.id"), unique=True, nullable=False)
    status = Column(String(20), default=DesignOrderStatus.DRAFT.value, nullable=False)
    start_date = Column(DateTime(timezone=True))
    completion_date = Column(DateTime(timezone=True))

    sales_order = relationship("SalesOrder")


class Quotation(Base, UUIDMixin, TimestampMixin):
    """Price quotation raised once the design is approved"""
    __tablename__ = "quotation"

    quotation_number = Column(String(50), unique=True, nullable=False)
    sales_order_id = Column(Uuid, ForeignKey("sales_order.id"), index=True)
    status = Column(String(20), default="DRAFT", nullable=False)
    total_amount = Column(Numeric(14, 2), default=0)
    notes = Column(Text)

    items = relationship("QuotationItem", back_populates="quotation", cascade="all, delete-orphan")


class QuotationItem(Base, UUIDMixin):
    __tablename__ = "quotation_item"

    quotation_id = Column(Uuid, ForeignKey("quotation.id"), nullable=False, index=True)
    item_code = Column(String(100), nullable=False)
    description = Column(Text)
    quantity = Column(Integer, default=1, nullable=False)
    unit = Column(String(20))
    unit_rate = Column(Numeric(12, 2), default=0)
    amount = Column(Numeric(14, 2), default=0)

    quotation = relationship("Quotation", back_populates="items")
