"""
Audit Log Model
"""
from sqlalchemy import Column, String, DateTime, Text, Uuid, JSON
from plantflow.core import Base
from .base import UUIDMixin, utcnow

class AuditLog(Base, UUIDMixin):
    """Audit Log for tracking status changes (append-only)"""
    __tablename__ = "audit_log"

    table_name = Column(String(100), nullable=False, index=True)
    record_id = Column(String(50), nullable=False, index=True)

    action = Column(String(20), nullable=False)  # STATUS_CHANGE, ACCEPT, REJECT, DELETE

    performed_by = Column(Uuid)
    performed_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    # Before/After data
    before_data = Column(JSON)
    after_data = Column(JSON)

    remarks = Column(Text)
