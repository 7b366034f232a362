"""
Shipment Service - shipment lifecycle, dispatch and returns

Status changes run through `update_shipment_status`, which applies the side
effect registered for the target status inside the same transaction. The
dispatch notification is written to the outbox and delivered after commit.
"""
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from plantflow.core import settings, transaction, after_commit, ValidationError, NotFoundError, ConflictError
from plantflow.models import (
    ShipmentOrder, ShipmentTracking, DeliveryChallan, DeliveryChallanItem,
    ShipmentReturn, ShipmentReturnItem, ShipmentStatus, ShipmentSource,
    SalesOrder, QCInspection, AuditLog,
    OrderStatus, Department, ItemStatus, ItemType,
)
from plantflow.schemas.shipment import ShipmentPlanningUpdate, ReturnCreate, ReturnStatusUpdate
from .inventory_posting_service import InventoryPostingService, RETURN_REFERENCE
from .stock_service import StockLedgerService
from .notification_service import OutboxService, DELIVERY_CHALLAN_DISPATCHED

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({
    ShipmentStatus.CLOSED.value,
    ShipmentStatus.REJECTED.value,
    ShipmentStatus.CANCELLED.value,
    ShipmentStatus.RETURN_COMPLETED.value,
})

# Statuses at or past dispatch, including the whole return chain
DISPATCHED_STATUSES = frozenset({
    ShipmentStatus.DISPATCHED.value,
    ShipmentStatus.IN_TRANSIT.value,
    ShipmentStatus.OUT_FOR_DELIVERY.value,
    ShipmentStatus.DELIVERED.value,
    ShipmentStatus.CLOSED.value,
    ShipmentStatus.RETURN_INITIATED.value,
    ShipmentStatus.RETURN_PICKUP_ASSIGNED.value,
    ShipmentStatus.RETURN_IN_TRANSIT.value,
    ShipmentStatus.RETURN_RECEIVED.value,
    ShipmentStatus.RETURN_COMPLETED.value,
})

RETURN_STATUSES = (
    ShipmentStatus.RETURN_INITIATED.value,
    ShipmentStatus.RETURN_PICKUP_ASSIGNED.value,
    ShipmentStatus.RETURN_IN_TRANSIT.value,
    ShipmentStatus.RETURN_RECEIVED.value,
    ShipmentStatus.RETURN_COMPLETED.value,
)

PLANNING_STATUSES = frozenset({
    ShipmentStatus.ACCEPTED.value,
    ShipmentStatus.PLANNING.value,
})

# A shipment cannot re-enter these once stock has left
PRE_DISPATCH_STATUSES = frozenset({
    ShipmentStatus.PENDING_ACCEPTANCE.value,
    ShipmentStatus.ACCEPTED.value,
    ShipmentStatus.PLANNING.value,
    ShipmentStatus.PLANNED.value,
    ShipmentStatus.READY_TO_DISPATCH.value,
})


def _code(prefix: str) -> str:
    return f"{prefix}-{datetime.now(timezone.utc):%Y%m%d}-{uuid4().hex[:6].upper()}"


class ShipmentService:

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get(db: Session, shipment_id: UUID, lock: bool = False) -> ShipmentOrder:
        query = db.query(ShipmentOrder).filter(ShipmentOrder.id == shipment_id)
        if lock:
            query = query.with_for_update()
        shipment = query.first()
        if not shipment:
            raise NotFoundError("ShipmentOrder", shipment_id)
        return shipment

    @staticmethod
    def _track(shipment: ShipmentOrder, status: str, remarks: Optional[str] = None, location: Optional[str] = None) -> None:
        shipment.tracking.append(ShipmentTracking(status=status, remarks=remarks, location=location))

    @staticmethod
    def _set_order_status(
        db: Session,
        order: SalesOrder,
        status: str,
        department: str,
        user_id: Optional[UUID] = None,
        remarks: Optional[str] = None
    ) -> None:
        before = {"status": order.status, "current_department": order.current_department}
        if department != order.current_department:
            order.request_accepted = False
        order.status = status
        order.current_department = department
        db.add(AuditLog(
            table_name="sales_order",
            record_id=str(order.id),
            action="STATUS_CHANGE",
            performed_by=user_id,
            before_data=before,
            after_data={"status": status, "current_department": department},
            remarks=remarks
        ))

    @staticmethod
    def resolve_items(shipment: ShipmentOrder) -> List[Dict]:
        """Lines that leave the plant with this shipment"""
        lines = []
        if shipment.source_type == ShipmentSource.QC_RETURN.value:
            inspection = shipment.qc_inspection
            for item in (inspection.items if inspection else []):
                if item.quantity and item.quantity > 0:
                    lines.append({
                        "item_code": item.item_code,
                        "description": item.description,
                        "quantity": item.quantity,
                        "unit": item.unit,
                        "warehouse": item.warehouse or settings.DEFAULT_WAREHOUSE,
                    })
            return lines

        order = shipment.sales_order
        for item in (order.items if order else []):
            if item.item_type != ItemType.FG.value or item.status == ItemStatus.REJECTED.value:
                continue
            lines.append({
                "item_code": item.item_code,
                "description": item.description,
                "quantity": item.quantity,
                "unit": item.unit,
                "warehouse": item.warehouse or settings.DEFAULT_WAREHOUSE,
            })
        return lines

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    def create_for_sales_order(db: Session, order: SalesOrder) -> ShipmentOrder:
        """New shipment awaiting acceptance, with a customer snapshot taken now"""
        customer = order.customer
        shipment = ShipmentOrder(
            shipment_code=_code("SHP"),
            source_type=ShipmentSource.SALES_ORDER.value,
            sales_order_id=order.id,
            status=ShipmentStatus.PENDING_ACCEPTANCE.value,
            priority=order.production_priority or "NORMAL",
            customer_id=customer.id if customer else None,
            customer_name=customer.company_name if customer else None,
            customer_phone=customer.phone if customer else None,
            customer_email=customer.email if customer else None,
            shipping_address=customer.shipping_address if customer else None,
            billing_address=customer.billing_address if customer else None,
            dispatch_target_date=order.target_dispatch_date
        )
        ShipmentService._track(shipment, shipment.status, "Shipment order created")
        db.add(shipment)
        db.flush()
        logger.info(f"Shipment {shipment.shipment_code} created for {order.so_number}")
        return shipment

    @staticmethod
    def get_for_sales_order(db: Session, sales_order_id: UUID) -> Optional[ShipmentOrder]:
        return db.query(ShipmentOrder).filter(ShipmentOrder.sales_order_id == sales_order_id).first()

    @staticmethod
    def create_qc_return_shipment(db: Session, qc_inspection_id: UUID) -> ShipmentOrder:
        """Vendor return of material raised from an incoming QC inspection"""
        with transaction(db):
            inspection = db.get(QCInspection, qc_inspection_id)
            if not inspection:
                raise NotFoundError("QCInspection", qc_inspection_id)
            existing = db.query(ShipmentOrder).filter(ShipmentOrder.qc_inspection_id == inspection.id).first()
            if existing:
                raise ConflictError(
                    f"QC inspection {inspection.inspection_number} already has shipment {existing.shipment_code}"
                )

            shipment = ShipmentOrder(
                shipment_code=_code("SHP-QC"),
                source_type=ShipmentSource.QC_RETURN.value,
                qc_inspection_id=inspection.id,
                status=ShipmentStatus.PENDING_ACCEPTANCE.value,
                customer_name=inspection.vendor_name
            )
            ShipmentService._track(shipment, shipment.status, f"Return to vendor for {inspection.inspection_number}")
            db.add(shipment)
            db.flush()
        return shipment

    # ------------------------------------------------------------------
    # Status machine
    # ------------------------------------------------------------------

    @staticmethod
    def _on_accepted(db: Session, shipment: ShipmentOrder, user_id: Optional[UUID]) -> None:
        if shipment.sales_order:
            ShipmentService._set_order_status(
                db, shipment.sales_order,
                OrderStatus.READY_FOR_SHIPMENT.value, Department.SHIPMENT.value,
                user_id, f"Shipment {shipment.shipment_code} accepted"
            )

    @staticmethod
    def _on_dispatched(db: Session, shipment: ShipmentOrder, user_id: Optional[UUID]) -> None:
        lines = ShipmentService.resolve_items(shipment)
        if not lines:
            raise ConflictError(f"Shipment {shipment.shipment_code} has no line items to dispatch")

        InventoryPostingService.post_dispatch(db, shipment, lines, created_by=user_id)

        challan = DeliveryChallan(
            challan_number=_code("DC"),
            customer_id=shipment.customer_id,
            customer_name=shipment.customer_name,
            shipping_address=shipment.shipping_address,
            delivery_status="IN_TRANSIT"
        )
        for line in lines:
            challan.items.append(DeliveryChallanItem(
                item_code=line["item_code"],
                description=line["description"],
                quantity=line["quantity"],
                unit=line["unit"],
                warehouse=line["warehouse"]
            ))
        shipment.challans.append(challan)
        shipment.dispatched_at = datetime.now(timezone.utc)
        db.flush()

        OutboxService.enqueue(
            db, DELIVERY_CHALLAN_DISPATCHED, "DELIVERY_CHALLAN", challan.id,
            payload={
                "shipment_id": str(shipment.id),
                "shipment_code": shipment.shipment_code,
                "challan_number": challan.challan_number,
                "recipient": shipment.customer_email,
            }
        )

    @staticmethod
    def _on_delivered(db: Session, shipment: ShipmentOrder, user_id: Optional[UUID]) -> None:
        shipment.actual_delivery_date = datetime.now(timezone.utc)
        for challan in shipment.challans:
            challan.delivery_status = "DELIVERED"

    @staticmethod
    def _side_effects() -> Dict[str, Callable]:
        return {
            ShipmentStatus.ACCEPTED.value: ShipmentService._on_accepted,
            ShipmentStatus.DISPATCHED.value: ShipmentService._on_dispatched,
            ShipmentStatus.DELIVERED.value: ShipmentService._on_delivered,
        }

    @staticmethod
    def update_shipment_status(
        db: Session,
        shipment_id: UUID,
        new_status: str,
        user_id: Optional[UUID] = None,
        remarks: Optional[str] = None,
        notify_after_commit: bool = True
    ) -> ShipmentOrder:
        """
        Move a shipment to a new status.

        ACCEPTED readies the sales order for shipment, DISPATCHED issues stock
        and the delivery challan, DELIVERED stamps the delivery date. Any
        failure rolls the whole change back.
        """
        new_status = getattr(new_status, "value", new_status)
        if new_status not in {s.value for s in ShipmentStatus}:
            raise ValidationError([{"field": "status", "message": f"Unknown shipment status: {new_status}"}])

        with transaction(db):
            shipment = ShipmentService._get(db, shipment_id, lock=True)
            current = shipment.status

            if current in TERMINAL_STATUSES:
                raise ConflictError(f"Shipment {shipment.shipment_code} is {current} and can no longer change")
            already_dispatched = shipment.dispatched_at is not None or current in DISPATCHED_STATUSES
            if new_status == ShipmentStatus.DISPATCHED.value and already_dispatched:
                raise ConflictError(f"Shipment {shipment.shipment_code} was already dispatched (status {current})")
            if new_status in PRE_DISPATCH_STATUSES and already_dispatched:
                raise ConflictError(
                    f"Shipment {shipment.shipment_code} has been dispatched and cannot move back to {new_status}"
                )

            shipment.status = new_status
            effect = ShipmentService._side_effects().get(new_status)
            if effect:
                effect(db, shipment, user_id)

            ShipmentService._track(shipment, new_status, remarks or f"Status changed from {current}")
            db.flush()

            if new_status == ShipmentStatus.DISPATCHED.value and notify_after_commit:
                after_commit(db, lambda: OutboxService.dispatch_pending(db))

        logger.info(f"Shipment {shipment.shipment_code}: {current} -> {new_status}")
        return shipment

    # ------------------------------------------------------------------
    # Planning & tracking
    # ------------------------------------------------------------------

    @staticmethod
    def update_shipment_planning(db: Session, shipment_id: UUID, data: ShipmentPlanningUpdate) -> ShipmentOrder:
        with transaction(db):
            shipment = ShipmentService._get(db, shipment_id, lock=True)
            if shipment.status in TERMINAL_STATUSES or shipment.status in DISPATCHED_STATUSES:
                raise ConflictError(f"Shipment {shipment.shipment_code} can no longer be planned (status {shipment.status})")

            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(shipment, field, value)

            if shipment.status in PLANNING_STATUSES:
                previous = shipment.status
                shipment.status = ShipmentStatus.PLANNED.value
                ShipmentService._track(shipment, shipment.status, f"Planning saved (was {previous})")
            db.flush()
        return shipment

    @staticmethod
    def add_tracking(
        db: Session,
        shipment_id: UUID,
        status: Optional[str] = None,
        location: Optional[str] = None,
        remarks: Optional[str] = None
    ) -> ShipmentTracking:
        with transaction(db):
            shipment = ShipmentService._get(db, shipment_id)
            entry = ShipmentTracking(status=status or shipment.status, location=location, remarks=remarks)
            shipment.tracking.append(entry)
            db.flush()
        return entry

    @staticmethod
    def get_tracking(db: Session, shipment_id: UUID) -> List[ShipmentTracking]:
        ShipmentService._get(db, shipment_id)
        return db.query(ShipmentTracking).filter(
            ShipmentTracking.shipment_id == shipment_id
        ).order_by(ShipmentTracking.recorded_at).all()

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    @staticmethod
    def initiate_return(db: Session, shipment_id: UUID, data: ReturnCreate) -> ShipmentReturn:
        with transaction(db):
            shipment = ShipmentService._get(db, shipment_id, lock=True)
            if shipment.dispatched_at is None:
                raise ConflictError(f"Shipment {shipment.shipment_code} has not been dispatched")
            if shipment.status in TERMINAL_STATUSES:
                raise ConflictError(f"Shipment {shipment.shipment_code} is {shipment.status}")

            if data.items:
                lines = [i.model_dump() for i in data.items]
            else:
                challan = shipment.challans[-1] if shipment.challans else None
                lines = [
                    {"item_code": i.item_code, "quantity": i.quantity, "warehouse": i.warehouse}
                    for i in (challan.items if challan else [])
                ]
            if not lines:
                raise ValidationError([{"field": "items", "message": "Nothing to return"}])

            shipment_return = ShipmentReturn(
                return_code=_code("RET"),
                sales_order_id=shipment.sales_order_id,
                reason=data.reason,
                status=ShipmentStatus.RETURN_INITIATED.value
            )
            for line in lines:
                shipment_return.items.append(ShipmentReturnItem(
                    item_code=line["item_code"],
                    quantity=line["quantity"],
                    warehouse=line.get("warehouse") or settings.DEFAULT_WAREHOUSE
                ))
            shipment.returns.append(shipment_return)
            shipment.status = ShipmentStatus.RETURN_INITIATED.value
            ShipmentService._track(shipment, shipment.status, data.reason)
            db.flush()

        logger.info(f"Return {shipment_return.return_code} initiated for {shipment.shipment_code}")
        return shipment_return

    @staticmethod
    def _unposted_return_lines(db: Session, shipment_return: ShipmentReturn) -> List[Dict]:
        """Returned quantity per item and warehouse that is not yet back on the ledger"""
        wanted: Dict[Tuple[str, str], int] = {}
        for item in shipment_return.items:
            key = (item.item_code, item.warehouse or settings.DEFAULT_WAREHOUSE)
            wanted[key] = wanted.get(key, 0) + (item.quantity or 0)

        lines = []
        for (item_code, warehouse), quantity in wanted.items():
            posted = StockLedgerService.posted_quantity(
                db, RETURN_REFERENCE, str(shipment_return.id), item_code, warehouse
            )
            if quantity - posted > 0:
                lines.append({"item_code": item_code, "quantity": quantity - posted, "warehouse": warehouse})
        return lines

    @staticmethod
    def update_return_status(db: Session, return_id: UUID, data: ReturnStatusUpdate) -> ShipmentReturn:
        """Advance a return; goods received in GOOD condition go back into stock"""
        if data.status not in RETURN_STATUSES:
            raise ValidationError([{"field": "status", "message": f"Unknown return status: {data.status}"}])

        with transaction(db):
            shipment_return = db.query(ShipmentReturn).filter(ShipmentReturn.id == return_id).with_for_update().first()
            if not shipment_return:
                raise NotFoundError("ShipmentReturn", return_id)
            if shipment_return.status == ShipmentStatus.RETURN_COMPLETED.value:
                raise ConflictError(f"Return {shipment_return.return_code} is already completed")

            shipment_return.status = data.status
            if data.condition_status is not None:
                shipment_return.condition_status = data.condition_status
            if data.pickup_date is not None:
                shipment_return.pickup_date = data.pickup_date
            if data.received_date is not None:
                shipment_return.received_date = data.received_date
            if data.refund_amount is not None:
                shipment_return.refund_amount = data.refund_amount

            if (data.status == ShipmentStatus.RETURN_RECEIVED.value
                    and shipment_return.condition_status == "GOOD"):
                lines = ShipmentService._unposted_return_lines(db, shipment_return)
                if lines:
                    InventoryPostingService.post_return_receipt(db, shipment_return, lines)

            shipment = shipment_return.shipment
            shipment.status = data.status
            ShipmentService._track(shipment, data.status, f"Return {shipment_return.return_code}")
            db.flush()
        return shipment_return

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    @staticmethod
    def purge(db: Session, shipment: ShipmentOrder) -> None:
        """Delete a shipment with its tracking, challans, returns and unsent notifications"""
        OutboxService.delete_pending_for(db, "DELIVERY_CHALLAN", [c.id for c in shipment.challans])
        db.delete(shipment)

    @staticmethod
    def delete_shipment_order(db: Session, shipment_id: UUID, user_id: Optional[UUID] = None) -> Dict:
        """
        Remove a shipment. If it never reached dispatch, the sales order goes
        back to PRODUCTION_COMPLETED under QUALITY. Stock already issued stays
        on the ledger.
        """
        with transaction(db):
            shipment = ShipmentService._get(db, shipment_id, lock=True)
            reached_dispatch = shipment.status in DISPATCHED_STATUSES or shipment.dispatched_at is not None
            code = shipment.shipment_code

            order_reverted = False
            if shipment.sales_order and not reached_dispatch:
                ShipmentService._set_order_status(
                    db, shipment.sales_order,
                    OrderStatus.PRODUCTION_COMPLETED.value, Department.QUALITY.value,
                    user_id, f"Shipment {code} deleted"
                )
                order_reverted = True

            ShipmentService.purge(db, shipment)
            db.flush()

        logger.info(f"Deleted shipment {code} (order reverted: {order_reverted})")
        return {"deleted": str(shipment_id), "shipment_code": code, "order_reverted": order_reverted}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def list_shipments(
        db: Session,
        status: Optional[str] = None,
        source_type: Optional[str] = None,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[ShipmentOrder], int]:
        query = db.query(ShipmentOrder)
        if status:
            query = query.filter(ShipmentOrder.status == status)
        if source_type:
            query = query.filter(ShipmentOrder.source_type == source_type)
        total = query.count()
        shipments = query.order_by(ShipmentOrder.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return shipments, total

    @staticmethod
    def get_shipment(db: Session, shipment_id: UUID) -> Dict:
        shipment = ShipmentService._get(db, shipment_id)
        return {
            **ShipmentService.serialize(shipment),
            "items": ShipmentService.resolve_items(shipment),
            "challans": [
                {
                    "id": str(c.id),
                    "challan_number": c.challan_number,
                    "delivery_status": c.delivery_status,
                    "items": [{"item_code": i.item_code, "quantity": i.quantity, "warehouse": i.warehouse} for i in c.items],
                }
                for c in shipment.challans
            ],
            "returns": [
                {"id": str(r.id), "return_code": r.return_code, "status": r.status, "condition_status": r.condition_status}
                for r in shipment.returns
            ],
        }

    @staticmethod
    def serialize(shipment: ShipmentOrder) -> Dict:
        return {
            "id": str(shipment.id),
            "shipment_code": shipment.shipment_code,
            "source_type": shipment.source_type,
            "sales_order_id": str(shipment.sales_order_id) if shipment.sales_order_id else None,
            "so_number": shipment.sales_order.so_number if shipment.sales_order else None,
            "qc_inspection_id": str(shipment.qc_inspection_id) if shipment.qc_inspection_id else None,
            "status": shipment.status,
            "priority": shipment.priority,
            "customer_name": shipment.customer_name,
            "customer_phone": shipment.customer_phone,
            "customer_email": shipment.customer_email,
            "shipping_address": shipment.shipping_address,
            "transporter": shipment.transporter,
            "vehicle_number": shipment.vehicle_number,
            "driver_name": shipment.driver_name,
            "planned_dispatch_date": shipment.planned_dispatch_date.isoformat() if shipment.planned_dispatch_date else None,
            "dispatch_target_date": shipment.dispatch_target_date.isoformat() if shipment.dispatch_target_date else None,
            "dispatched_at": shipment.dispatched_at.isoformat() if shipment.dispatched_at else None,
            "actual_delivery_date": shipment.actual_delivery_date.isoformat() if shipment.actual_delivery_date else None,
        }
