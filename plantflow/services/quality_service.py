"""
Quality Services - final QC of finished orders and incoming-material inspections
"""
from datetime import date, datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from plantflow.core import transaction, ValidationError, NotFoundError, ConflictError
from plantflow.models import (
    SalesOrder, GRN, QCInspection, QCInspectionItem, OrderStatus, Department,
)
from .shipment_service import ShipmentService

logger = logging.getLogger(__name__)

FINAL_QC_PASSED = "PASSED"
FINAL_QC_FAILED = "FAILED"

# Orders that may be signed off by final QC
FINAL_QC_STATUSES = (
    OrderStatus.PRODUCTION_COMPLETED.value,
    OrderStatus.QC_IN_PROGRESS.value,
    OrderStatus.QC_REJECTED.value,
    OrderStatus.QC_APPROVED.value,
    OrderStatus.READY_FOR_SHIPMENT.value,
)


class FinalQCService:

    @staticmethod
    def list_orders_for_final_qc(db: Session) -> List[SalesOrder]:
        return db.query(SalesOrder).filter(
            SalesOrder.current_department == Department.QUALITY.value,
            SalesOrder.status.in_(FINAL_QC_STATUSES)
        ).order_by(SalesOrder.created_at).all()

    @staticmethod
    def complete_final_qc(
        db: Session,
        order_id: UUID,
        status: str,
        remarks: Optional[str] = None,
        passed_qty: Optional[int] = None,
        failed_qty: Optional[int] = None,
        user_id: Optional[UUID] = None
    ) -> Dict:
        """
        Record the final QC outcome. PASSED hands the order to shipment and
        opens its shipment order; FAILED keeps it in quality as QC_REJECTED.
        """
        status = (status or "").upper()
        if status not in (FINAL_QC_PASSED, FINAL_QC_FAILED):
            raise ValidationError([{"field": "status", "message": "status must be PASSED or FAILED"}])

        with transaction(db):
            order = db.query(SalesOrder).filter(SalesOrder.id == order_id).with_for_update().first()
            if not order:
                raise NotFoundError("SalesOrder", order_id)
            if order.status not in FINAL_QC_STATUSES:
                raise ConflictError(f"Sales order {order.so_number} is not awaiting final QC (status {order.status})")

            note = f"Final QC {status}"
            if passed_qty is not None or failed_qty is not None:
                note += f" (passed {passed_qty or 0}, failed {failed_qty or 0})"
            if remarks:
                note += f": {remarks}"

            shipment = None
            if status == FINAL_QC_PASSED:
                ShipmentService._set_order_status(
                    db, order, OrderStatus.READY_FOR_SHIPMENT.value, Department.SHIPMENT.value, user_id, note
                )
                shipment = ShipmentService.get_for_sales_order(db, order.id)
                if shipment is None:
                    shipment = ShipmentService.create_for_sales_order(db, order)
            else:
                ShipmentService._set_order_status(
                    db, order, OrderStatus.QC_REJECTED.value, Department.QUALITY.value, user_id, note
                )
            db.flush()

        logger.info(f"{order.so_number}: {note}")
        return {"order": order, "shipment": shipment}

    @staticmethod
    def create_shipment_order(db: Session, order_id: UUID, user_id: Optional[UUID] = None) -> Dict:
        """Open the shipment for an order explicitly; one shipment per order"""
        with transaction(db):
            order = db.query(SalesOrder).filter(SalesOrder.id == order_id).with_for_update().first()
            if not order:
                raise NotFoundError("SalesOrder", order_id)
            existing = ShipmentService.get_for_sales_order(db, order.id)
            if existing:
                raise ConflictError(
                    f"Sales order {order.so_number} already has shipment {existing.shipment_code}",
                    details={"shipment_id": str(existing.id)},
                )

            ShipmentService._set_order_status(
                db, order, OrderStatus.READY_FOR_SHIPMENT.value, Department.SHIPMENT.value,
                user_id, "Shipment order created"
            )
            shipment = ShipmentService.create_for_sales_order(db, order)
            db.flush()
        return {"order": order, "shipment": shipment}


class QCInspectionService:

    @staticmethod
    def create_inspection(
        db: Session,
        items: List[Dict],
        grn_id: Optional[UUID] = None,
        vendor_name: Optional[str] = None,
        remarks: Optional[str] = None
    ) -> QCInspection:
        """Inspection of received material; items carry item_code, quantity and optionally warehouse"""
        if not items:
            raise ValidationError([{"field": "items", "message": "At least one item is required"}])

        with transaction(db):
            grn = None
            if grn_id:
                grn = db.get(GRN, grn_id)
                if not grn:
                    raise NotFoundError("GRN", grn_id)

            inspection = QCInspection(
                inspection_number=f"QC-{datetime.now(timezone.utc):%Y%m%d}-{uuid4().hex[:6].upper()}",
                grn_id=grn.id if grn else None,
                vendor_name=vendor_name or (grn.purchase_order.vendor_name if grn else None),
                inspection_date=date.today(),
                remarks=remarks
            )
            for item in items:
                inspection.items.append(QCInspectionItem(
                    grn_item_id=item.get("grn_item_id"),
                    item_code=item["item_code"],
                    description=item.get("description"),
                    quantity=item.get("quantity", 0),
                    unit=item.get("unit", "NOS"),
                    warehouse=item.get("warehouse")
                ))
            db.add(inspection)
            db.flush()
        return inspection

    @staticmethod
    def get_inspection(db: Session, inspection_id: UUID) -> QCInspection:
        inspection = db.get(QCInspection, inspection_id)
        if not inspection:
            raise NotFoundError("QCInspection", inspection_id)
        return inspection
