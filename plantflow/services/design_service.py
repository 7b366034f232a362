"""
Design Order & Quotation Service
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from plantflow.core import transaction, ValidationError, NotFoundError
from plantflow.models import (
    SalesOrder, DesignOrder, DesignOrderStatus, Quotation, QuotationItem,
)

logger = logging.getLogger(__name__)


class DesignOrderService:

    @staticmethod
    def create_design_order(
        db: Session,
        sales_order_id: UUID,
        status: str = DesignOrderStatus.IN_DESIGN.value
    ) -> DesignOrder:
        """Create the design order for a sales order, or reuse the existing one"""
        with transaction(db):
            design_order = db.query(DesignOrder).filter(
                DesignOrder.sales_order_id == sales_order_id
            ).first()

            if design_order:
                if design_order.status in (DesignOrderStatus.DRAFT.value, DesignOrderStatus.REJECTED.value) \
                        and status == DesignOrderStatus.IN_DESIGN.value:
                    design_order.status = status
                    design_order.start_date = design_order.start_date or datetime.now(timezone.utc)
                return design_order

            design_order = DesignOrder(
                design_order_number=f"DO-{datetime.now(timezone.utc):%Y%m%d}-{uuid4().hex[:6].upper()}",
                sales_order_id=sales_order_id,
                status=status,
                start_date=datetime.now(timezone.utc) if status == DesignOrderStatus.IN_DESIGN.value else None
            )
            db.add(design_order)
            db.flush()

        logger.info(f"Design order {design_order.design_order_number} opened for sales order {sales_order_id}")
        return design_order

    @staticmethod
    def complete_design_order(db: Session, sales_order_id: UUID) -> DesignOrder:
        with transaction(db):
            design_order = DesignOrderService.create_design_order(
                db, sales_order_id, DesignOrderStatus.COMPLETED.value
            )
            design_order.status = DesignOrderStatus.COMPLETED.value
            design_order.completion_date = datetime.now(timezone.utc)
            db.flush()
        return design_order

    @staticmethod
    def update_design_order_status(db: Session, design_order_id: UUID, status: str) -> DesignOrder:
        if status not in {s.value for s in DesignOrderStatus}:
            raise ValidationError([{"field": "status", "message": f"Unknown design order status: {status}"}])

        with transaction(db):
            design_order = db.get(DesignOrder, design_order_id)
            if not design_order:
                raise NotFoundError("DesignOrder", design_order_id)
            design_order.status = status
            if status == DesignOrderStatus.COMPLETED.value:
                design_order.completion_date = datetime.now(timezone.utc)
            db.flush()
        return design_order

    @staticmethod
    def get_design_order_for_sales_order(db: Session, sales_order_id: UUID) -> Optional[DesignOrder]:
        return db.query(DesignOrder).filter(DesignOrder.sales_order_id == sales_order_id).first()

    @staticmethod
    def list_design_orders(db: Session, status: Optional[str] = None) -> List[DesignOrder]:
        query = db.query(DesignOrder)
        if status:
            query = query.filter(DesignOrder.status == status)
        return query.order_by(DesignOrder.created_at.desc()).all()


class QuotationService:

    @staticmethod
    def create_from_sales_order(db: Session, order: SalesOrder) -> Quotation:
        """Draft quotation priced from the order lines; reuses a linked quotation"""
        with transaction(db):
            if order.quotation_id:
                quotation = db.get(Quotation, order.quotation_id)
                if quotation:
                    return quotation

            quotation = Quotation(
                quotation_number=f"QT-{datetime.now(timezone.utc):%Y%m%d}-{uuid4().hex[:6].upper()}",
                sales_order_id=order.id,
                status="DRAFT"
            )
            total = Decimal("0")
            for item in order.items:
                rate = Decimal(item.unit_rate or 0)
                amount = rate * item.quantity
                total += amount
                quotation.items.append(QuotationItem(
                    item_code=item.item_code,
                    description=item.description,
                    quantity=item.quantity,
                    unit=item.unit,
                    unit_rate=rate,
                    amount=amount
                ))
            quotation.total_amount = total
            db.add(quotation)
            db.flush()

            order.quotation_id = quotation.id

        logger.info(f"Quotation {quotation.quotation_number} drafted for {order.so_number}")
        return quotation
