"""
Purchase Order Service
"""
from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from plantflow.core import transaction, ValidationError, NotFoundError, ConflictError
from plantflow.models import PurchaseOrder, PurchaseOrderItem, POStatus, POItemStatus
from plantflow.schemas.purchase import PurchaseOrderCreate

logger = logging.getLogger(__name__)


class PurchaseOrderService:

    @staticmethod
    def create_purchase_order(db: Session, data: PurchaseOrderCreate) -> PurchaseOrder:
        errors = []
        if not data.items:
            errors.append({"field": "items", "message": "At least one item is required"})
        for index, item in enumerate(data.items):
            if item.quantity <= 0:
                errors.append({"field": f"items[{index}].quantity", "message": "quantity must be positive"})
        if errors:
            raise ValidationError(errors)

        po_number = data.po_number or f"PO-{datetime.now(timezone.utc):%Y%m%d}-{uuid4().hex[:6].upper()}"

        with transaction(db):
            if db.query(PurchaseOrder).filter(PurchaseOrder.po_number == po_number).first():
                raise ConflictError(f"Purchase order {po_number} already exists")

            po = PurchaseOrder(
                po_number=po_number,
                vendor_name=data.vendor_name,
                po_date=data.po_date or date.today(),
                status=POStatus.ORDERED.value,
                notes=data.notes
            )
            for item in data.items:
                po.items.append(PurchaseOrderItem(
                    item_code=item.item_code,
                    description=item.description,
                    unit=item.unit,
                    quantity=item.quantity,
                    unit_rate=item.unit_rate,
                    warehouse=item.warehouse,
                    status=POItemStatus.OPEN.value
                ))
            db.add(po)
            db.flush()

        logger.info(f"Created purchase order {po.po_number} with {len(po.items)} items")
        return po

    @staticmethod
    def get_purchase_order(db: Session, po_id: UUID) -> PurchaseOrder:
        po = db.get(PurchaseOrder, po_id)
        if not po:
            raise NotFoundError("PurchaseOrder", po_id)
        return po

    @staticmethod
    def list_purchase_orders(
        db: Session,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 50
    ) -> List[PurchaseOrder]:
        query = db.query(PurchaseOrder)
        if status:
            query = query.filter(PurchaseOrder.status == status)
        return query.order_by(PurchaseOrder.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
