"""
Notification Outbox Service

Notifications are written to the outbox in the same transaction as the
state change that causes them and delivered afterwards, either right after
commit or by the background dispatcher. Delivery failures are recorded on
the outbox row and never reach the code that committed the change.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from uuid import UUID
import logging

from jinja2 import Environment, PackageLoader, select_autoescape
from sqlalchemy.orm import Session

from plantflow.core import settings, transaction, NotFoundError
from plantflow.models import NotificationOutbox, OutboxStatus, DeliveryChallan

logger = logging.getLogger(__name__)

DELIVERY_CHALLAN_DISPATCHED = "DELIVERY_CHALLAN_DISPATCHED"

templates = Environment(
    loader=PackageLoader("plantflow", "templates"),
    autoescape=select_autoescape(["html"]),
)


class LoggingNotifier:
    """Default notifier: writes the message to the log instead of mailing it"""

    def send(self, recipient: Optional[str], subject: str, body: str) -> None:
        logger.info(f"Notification from {settings.NOTIFICATION_SENDER} to {recipient or '-'}: {subject} ({len(body)} chars)")


_notifier = LoggingNotifier()


def get_notifier():
    return _notifier


def set_notifier(notifier) -> None:
    """Swap the delivery backend (e.g. an SMTP client)"""
    global _notifier
    _notifier = notifier


class OutboxService:

    @staticmethod
    def enqueue(
        db: Session,
        event_type: str,
        aggregate_type: str,
        aggregate_id,
        payload: Optional[Dict] = None
    ) -> NotificationOutbox:
        """Add a pending notification to the caller's transaction"""
        row = NotificationOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            payload=payload or {},
            status=OutboxStatus.PENDING.value,
            attempts=0
        )
        db.add(row)
        return row

    @staticmethod
    def render_challan(db: Session, challan_id: UUID) -> str:
        challan = db.get(DeliveryChallan, challan_id)
        if not challan:
            raise NotFoundError("DeliveryChallan", challan_id)
        template = templates.get_template("delivery_challan.html")
        return template.render(
            challan=challan,
            shipment=challan.shipment,
            items=challan.items,
            sender=settings.NOTIFICATION_SENDER,
        )

    @staticmethod
    def _deliver(db: Session, row: NotificationOutbox) -> None:
        if row.event_type == DELIVERY_CHALLAN_DISPATCHED:
            body = OutboxService.render_challan(db, UUID(row.aggregate_id))
            subject = f"Delivery challan {row.payload.get('challan_number')} dispatched"
        else:
            body = str(row.payload)
            subject = row.event_type
        get_notifier().send(row.payload.get("recipient"), subject, body)

    @staticmethod
    def dispatch_pending(db: Session, limit: int = 50, ids: Optional[Iterable[UUID]] = None) -> Dict[str, int]:
        """Deliver pending notifications; each row is committed on its own"""
        query = db.query(NotificationOutbox).filter(NotificationOutbox.status == OutboxStatus.PENDING.value)
        if ids is not None:
            query = query.filter(NotificationOutbox.id.in_(list(ids)))
        rows: List[NotificationOutbox] = query.order_by(NotificationOutbox.created_at).limit(limit).all()

        sent = failed = 0
        for row in rows:
            with transaction(db):
                try:
                    OutboxService._deliver(db, row)
                except Exception as e:
                    row.attempts = (row.attempts or 0) + 1
                    row.last_error = str(e)[:1000]
                    if row.attempts >= settings.OUTBOX_MAX_ATTEMPTS:
                        row.status = OutboxStatus.FAILED.value
                    failed += 1
                    logger.error(f"Outbox {row.id} ({row.event_type}) attempt {row.attempts} failed: {e}")
                else:
                    row.attempts = (row.attempts or 0) + 1
                    row.status = OutboxStatus.SENT.value
                    row.sent_at = datetime.now(timezone.utc)
                    row.last_error = None
                    sent += 1

        if rows:
            logger.info(f"Outbox dispatch: {sent} sent, {failed} failed")
        return {"sent": sent, "failed": failed}

    @staticmethod
    def dispatch_with_engine(bind, ids: Optional[Iterable[UUID]] = None) -> Dict[str, int]:
        """Deliver from a fresh session; used for work scheduled after a request"""
        db = Session(bind=bind, autoflush=False)
        try:
            return OutboxService.dispatch_pending(db, ids=ids)
        except Exception:
            logger.exception("Outbox dispatch failed")
            return {"sent": 0, "failed": 0}
        finally:
            db.close()

    @staticmethod
    def delete_pending_for(db: Session, aggregate_type: str, aggregate_ids: Iterable) -> int:
        ids = [str(i) for i in aggregate_ids]
        if not ids:
            return 0
        return db.query(NotificationOutbox).filter(
            NotificationOutbox.aggregate_type == aggregate_type,
            NotificationOutbox.aggregate_id.in_(ids),
            NotificationOutbox.status == OutboxStatus.PENDING.value
        ).delete(synchronize_session=False)
