"""
Notification Outbox Model
"""
import enum

from sqlalchemy import Column, String, Integer, DateTime, Text, JSON
from plantflow.core import Base
from .base import UUIDMixin, TimestampMixin


class OutboxStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationOutbox(Base, UUIDMixin, TimestampMixin):
    """Notification committed together with the state change that caused it"""
    __tablename__ = "notification_outbox"

    event_type = Column(String(50), nullable=False)  # DELIVERY_CHALLAN_DISPATCHED
    aggregate_type = Column(String(30), nullable=False)
    aggregate_id = Column(String(50), nullable=False, index=True)
    payload = Column(JSON)

    status = Column(String(20), default=OutboxStatus.PENDING.value, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    sent_at = Column(DateTime(timezone=True))
