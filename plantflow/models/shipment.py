"""
Shipment, Delivery Challan & Return Models
"""
import enum

from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Text, Numeric, Uuid
from sqlalchemy.orm import relationship
from plantflow.core import Base
from .base import UUIDMixin, TimestampMixin, utcnow


class ShipmentStatus(str, enum.Enum):
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    ACCEPTED = "ACCEPTED"
    PLANNING = "PLANNING"
    PLANNED = "PLANNED"
    READY_TO_DISPATCH = "READY_TO_DISPATCH"
    DISPATCHED = "DISPATCHED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CLOSED = "CLOSED"
    # Return sub-chain
    RETURN_INITIATED = "RETURN_INITIATED"
    RETURN_PICKUP_ASSIGNED = "RETURN_PICKUP_ASSIGNED"
    RETURN_IN_TRANSIT = "RETURN_IN_TRANSIT"
    RETURN_RECEIVED = "RETURN_RECEIVED"
    RETURN_COMPLETED = "RETURN_COMPLETED"
    # Terminal
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class ShipmentSource(str, enum.Enum):
    SALES_ORDER = "SALES_ORDER"
    QC_RETURN = "QC_RETURN"


class ShipmentOrder(Base, UUIDMixin, TimestampMixin):
    """Dispatch of one sales order, or a vendor return raised from QC"""
    __tablename__ = "shipment_order"

    shipment_code = Column(String(50), unique=True, nullable=False)
    source_type = Column(String(20), default=ShipmentSource.SALES_ORDER.value, nullable=False)
    sales_order_id = Column(Uuid, ForeignKey("sales_order.id"), index=True)
    qc_inspection_id = Column(Uuid, ForeignKey("qc_inspection.id"), index=True)

    status = Column(String(30), default=ShipmentStatus.PENDING_ACCEPTANCE.value, nullable=False, index=True)
    priority = Column(String(20), default="NORMAL")

    # Point-in-time customer snapshot
    customer_id = Column(Uuid, ForeignKey("customer.id"))
    customer_name = Column(String(200))
    customer_phone = Column(String(30))
    customer_email = Column(String(200))
    shipping_address = Column(Text)
    billing_address = Column(Text)

    # Planning
    transporter = Column(String(100))
    vehicle_number = Column(String(30))
    driver_name = Column(String(100))
    driver_contact = Column(String(30))
    planned_dispatch_date = Column(Date)
    dispatch_target_date = Column(Date)

    dispatched_at = Column(DateTime(timezone=True))
    actual_delivery_date = Column(DateTime(timezone=True))

    # Relationships
    sales_order = relationship("SalesOrder")
    qc_inspection = relationship("QCInspection")
    tracking = relationship("ShipmentTracking", back_populates="shipment", cascade="all, delete-orphan")
    challans = relationship("DeliveryChallan", back_populates="shipment", cascade="all, delete-orphan")
    returns = relationship("ShipmentReturn", back_populates="shipment", cascade="all, delete-orphan")


class ShipmentTracking(Base, UUIDMixin):
    __tablename__ = "shipment_tracking"

    shipment_id = Column(Uuid, ForeignKey("shipment_order.id"), nullable=False, index=True)
    status = Column(String(30))
    location = Column(String(200))
    remarks = Column(Text)
    recorded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    shipment = relationship("ShipmentOrder", back_populates="tracking")


class DeliveryChallan(Base, UUIDMixin, TimestampMixin):
    """Dispatch document created when a shipment leaves the plant"""
    __tablename__ = "delivery_challan"

    challan_number = Column(String(50), unique=True, nullable=False)
    shipment_id = Column(Uuid, ForeignKey("shipment_order.id"), nullable=False, index=True)
    customer_id = Column(Uuid, ForeignKey("customer.id"))
    customer_name = Column(String(200))
    shipping_address = Column(Text)
    challan_date = Column(DateTime(timezone=True), default=utcnow)
    delivery_status = Column(String(20), default="IN_TRANSIT")
    receiver_name = Column(String(100))
    receiver_mobile = Column(String(30))

    shipment = relationship("ShipmentOrder", back_populates="challans")
    items = relationship("DeliveryChallanItem", back_populates="challan", cascade="all, delete-orphan")


class DeliveryChallanItem(Base, UUIDMixin):
    __tablename__ = "delivery_challan_item"

    challan_id = Column(Uuid, ForeignKey("delivery_challan.id"), nullable=False, index=True)
    item_code = Column(String(100), nullable=False)
    description = Column(Text)
    quantity = Column(Integer, nullable=False)
    unit = Column(String(20))
    warehouse = Column(String(100))

    challan = relationship("DeliveryChallan", back_populates="items")


class ShipmentReturn(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "shipment_return"

    return_code = Column(String(50), unique=True, nullable=False)
    shipment_id = Column(Uuid, ForeignKey("shipment_order.id"), nullable=False, index=True)
    sales_order_id = Column(Uuid, ForeignKey("sales_order.id"))
    reason = Column(Text)
    status = Column(String(30), default=ShipmentStatus.RETURN_INITIATED.value, nullable=False)
    condition_status = Column(String(20))  # GOOD, DAMAGED
    pickup_date = Column(Date)
    received_date = Column(Date)
    refund_amount = Column(Numeric(12, 2))

    shipment = relationship("ShipmentOrder", back_populates="returns")
    items = relationship("ShipmentReturnItem", back_populates="shipment_return", cascade="all, delete-orphan")


class ShipmentReturnItem(Base, UUIDMixin):
    __tablename__ = "shipment_return_item"

    return_id = Column(Uuid, ForeignKey("shipment_return.id"), nullable=False, index=True)
    item_code = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    warehouse = Column(String(100))

    shipment_return = relationship("ShipmentReturn", back_populates="items")
