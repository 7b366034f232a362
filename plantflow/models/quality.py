"""
Incoming-material QC Inspection Models
"""
from sqlalchemy import Column, String, Integer, Date, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship
from plantflow.core import Base
from .base import UUIDMixin, TimestampMixin

class QCInspection(Base, UUIDMixin, TimestampMixin):
    """QC inspection of received material"""
    __tablename__ = "qc_inspection"

    inspection_number = Column(String(50), unique=True, nullable=False)
    grn_id = Column(Uuid, ForeignKey("grn.id"), index=True)
    vendor_name = Column(String(200))
    inspection_date = Column(Date)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, PASSED, FAILED
    remarks = Column(Text)

    grn = relationship("GRN")
    items = relationship("QCInspectionItem", back_populates="inspection", cascade="all, delete-orphan")

class QCInspectionItem(Base, UUIDMixin):
    __tablename__ = "qc_inspection_item"

    qc_inspection_id = Column(Uuid, ForeignKey("qc_inspection.id"), nullable=False, index=True)
    grn_item_id = Column(Uuid, ForeignKey("grn_item.id"))
    item_code = Column(String(100), nullable=False)
    description = Column(Text)
    quantity = Column(Integer, nullable=False, default=0)
    unit = Column(String(20), default="NOS")
    warehouse = Column(String(100))

    inspection = relationship("QCInspection", back_populates="items")
