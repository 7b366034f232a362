"""
Customer Models
"""
from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship
from plantflow.core import Base
from .base import UUIDMixin, TimestampMixin

class Customer(Base, UUIDMixin, TimestampMixin):
    """Customer / buying company"""
    __tablename__ = "customer"

    company_code = Column(String(30), unique=True)
    company_name = Column(String(200), nullable=False)
    phone = Column(String(30))
    email = Column(String(200))
    billing_address = Column(Text)
    shipping_address = Column(Text)

    # Relationships
    sales_orders = relationship("SalesOrder", back_populates="customer")
