"""
Sales Order Models
"""
import enum

from sqlalchemy import Column, String, Integer, Boolean, Date, ForeignKey, Text, Numeric, Uuid, DateTime
from sqlalchemy.orm import relationship
from plantflow.core import Base
from .base import UUIDMixin, TimestampMixin, utcnow


class OrderStatus(str, enum.Enum):
    CREATED = "CREATED"
    DESIGN_IN_REVIEW = "DESIGN_IN_REVIEW"
    DESIGN_QUERY = "DESIGN_QUERY"
    DESIGN_APPROVED = "DESIGN_APPROVED"
    PROCUREMENT_IN_PROGRESS = "PROCUREMENT_IN_PROGRESS"
    MATERIAL_PURCHASE_IN_PROGRESS = "MATERIAL_PURCHASE_IN_PROGRESS"
    MATERIAL_READY = "MATERIAL_READY"
    IN_PRODUCTION = "IN_PRODUCTION"
    PRODUCTION_COMPLETED = "PRODUCTION_COMPLETED"
    QC_IN_PROGRESS = "QC_IN_PROGRESS"
    QC_APPROVED = "QC_APPROVED"
    QC_REJECTED = "QC_REJECTED"
    READY_FOR_SHIPMENT = "READY_FOR_SHIPMENT"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class Department(str, enum.Enum):
    SALES = "SALES"
    INVENTORY = "INVENTORY"
    DESIGN_ENG = "DESIGN_ENG"
    PROCUREMENT = "PROCUREMENT"
    PRODUCTION = "PRODUCTION"
    QUALITY = "QUALITY"
    SHIPMENT = "SHIPMENT"


class ItemStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class ItemType(str, enum.Enum):
    FG = "FG"     # Finished goods
    SA = "SA"     # Sub assembly
    SFG = "SFG"   # Semi finished goods
    RM = "RM"     # Raw material


class SalesOrder(Base, UUIDMixin, TimestampMixin):
    """Sales Order moving through department ownership"""
    __tablename__ = "sales_order"

    so_number = Column(String(50), unique=True, nullable=False)
    customer_id = Column(Uuid, ForeignKey("customer.id"))
    customer_po_number = Column(String(100))
    quotation_id = Column(Uuid, ForeignKey("quotation.id", use_alter=True))
    project_name = Column(String(200))

    # Workflow
    status = Column(String(40), default=OrderStatus.CREATED.value, nullable=False, index=True)
    current_department = Column(String(30), default=Department.DESIGN_ENG.value, nullable=False, index=True)
    request_accepted = Column(Boolean, default=False, nullable=False)
    material_available = Column(Boolean, default=False, nullable=False)

    production_priority = Column(String(20), default="NORMAL")
    target_dispatch_date = Column(Date)

    created_by = Column(Uuid)

    # Relationships
    customer = relationship("Customer", back_populates="sales_orders")
    items = relationship("SalesOrderItem", back_populates="sales_order", cascade="all, delete-orphan")
    rejections = relationship("SalesOrderRejection", back_populates="sales_order", cascade="all, delete-orphan")
    quotation = relationship("Quotation", foreign_keys=[quotation_id])


class SalesOrderItem(Base, UUIDMixin, TimestampMixin):
    """Sales Order Line"""
    __tablename__ = "sales_order_item"

    sales_order_id = Column(Uuid, ForeignKey("sales_order.id"), nullable=False, index=True)
    item_code = Column(String(100), nullable=False)
    description = Column(Text)
    drawing_no = Column(String(100))
    item_type = Column(String(5), default=ItemType.FG.value, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit = Column(String(20), default="NOS")
    unit_rate = Column(Numeric(12, 2), default=0)
    warehouse = Column(String(100))

    status = Column(String(20), default=ItemStatus.PENDING.value)

    # Relationships
    sales_order = relationship("SalesOrder", back_populates="items")
    rejections = relationship("SalesOrderItemRejection", back_populates="item", cascade="all, delete-orphan")


class SalesOrderRejection(Base, UUIDMixin):
    """Immutable reason log for order / design rejections"""
    __tablename__ = "sales_order_rejection"

    sales_order_id = Column(Uuid, ForeignKey("sales_order.id"), nullable=False, index=True)
    rejection_type = Column(String(20), nullable=False)  # REQUEST, DESIGN
    from_status = Column(String(40))
    from_department = Column(String(30))
    reason = Column(Text)
    rejected_by = Column(Uuid)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    sales_order = relationship("SalesOrder", back_populates="rejections")


class SalesOrderItemRejection(Base, UUIDMixin):
    """Immutable reason log for item rejections"""
    __tablename__ = "sales_order_item_rejection"

    sales_order_item_id = Column(Uuid, ForeignKey("sales_order_item.id"), nullable=False, index=True)
    reason = Column(Text)
    rejected_by = Column(Uuid)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    item = relationship("SalesOrderItem", back_populates="rejections")
