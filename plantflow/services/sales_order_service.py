"""
Sales Order Service - order creation and department workflow
"""
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from plantflow.core import transaction, ValidationError, NotFoundError, ConflictError
from plantflow.models import (
    SalesOrder, SalesOrderItem, SalesOrderRejection, SalesOrderItemRejection, AuditLog,
    DesignOrder, Quotation, ShipmentOrder, Customer,
    OrderStatus, Department, ItemStatus, ItemType,
)
from plantflow.schemas.sales_order import SalesOrderCreate
from .order_workflow import (
    AcceptanceDecision, CREATE_DESIGN_ORDER, STATUS_DEPARTMENT, resolve_acceptance,
)
from .design_service import DesignOrderService, QuotationService
from .shipment_service import ShipmentService

logger = logging.getLogger(__name__)

# Longest prefix first so SFG- is not read as FG
ITEM_TYPE_PREFIXES = (ItemType.SFG, ItemType.FG, ItemType.SA, ItemType.RM)

# Statuses from which an order may still be approved or sent back to design
DESIGN_STAGES = frozenset({
    OrderStatus.CREATED.value,
    OrderStatus.DESIGN_IN_REVIEW.value,
    OrderStatus.DESIGN_QUERY.value,
    OrderStatus.DESIGN_APPROVED.value,
})


def infer_item_type(item_code: str) -> str:
    code = (item_code or "").strip().upper()
    for item_type in ITEM_TYPE_PREFIXES:
        if code.startswith(item_type.value):
            return item_type.value
    return ItemType.FG.value


class SalesOrderService:

    @staticmethod
    def _audit(
        db: Session,
        order: SalesOrder,
        action: str,
        before: dict,
        performed_by: Optional[UUID] = None,
        remarks: Optional[str] = None
    ) -> None:
        db.add(AuditLog(
            table_name="sales_order",
            record_id=str(order.id),
            action=action,
            performed_by=performed_by,
            before_data=before,
            after_data={"status": order.status, "current_department": order.current_department},
            remarks=remarks
        ))

    @staticmethod
    def _snapshot(order: SalesOrder) -> dict:
        return {"status": order.status, "current_department": order.current_department}

    @staticmethod
    def _get_for_update(db: Session, order_id: UUID) -> SalesOrder:
        order = db.query(SalesOrder).filter(SalesOrder.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError("SalesOrder", order_id)
        return order

    @staticmethod
    def _get_many_for_update(db: Session, order_ids: Sequence[UUID]) -> List[SalesOrder]:
        """Load every order of a batch or fail the whole batch"""
        orders = db.query(SalesOrder).filter(SalesOrder.id.in_(list(order_ids))).with_for_update().all()
        found = {o.id: o for o in orders}
        for order_id in order_ids:
            if order_id not in found:
                raise NotFoundError("SalesOrder", order_id)
        return [found[order_id] for order_id in dict.fromkeys(order_ids)]

    @staticmethod
    def _accept_pending_items(order: SalesOrder) -> int:
        count = 0
        for item in order.items:
            if item.status in (None, ItemStatus.PENDING.value):
                item.status = ItemStatus.ACCEPTED.value
                count += 1
        return count

    @staticmethod
    def _validate_status(status: str) -> str:
        status = getattr(status, "value", status)
        if status not in STATUS_DEPARTMENT:
            raise ValidationError([{"field": "status", "message": f"Unknown order status: {status}"}])
        return status

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def get_sales_order(db: Session, order_id: UUID) -> SalesOrder:
        order = db.get(SalesOrder, order_id)
        if not order:
            raise NotFoundError("SalesOrder", order_id)
        return order

    @staticmethod
    def list_sales_orders(
        db: Session,
        status: Optional[str] = None,
        department: Optional[str] = None,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[SalesOrder], int]:
        query = db.query(SalesOrder)
        if status:
            query = query.filter(SalesOrder.status == status)
        if department:
            query = query.filter(SalesOrder.current_department == department)
        total = query.count()
        orders = query.order_by(SalesOrder.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return orders, total

    @staticmethod
    def get_incoming_orders(db: Session, department: str) -> List[SalesOrder]:
        """Orders handed to a department that it has not picked up yet"""
        return db.query(SalesOrder).filter(
            SalesOrder.current_department == department,
            SalesOrder.request_accepted.is_(False)
        ).order_by(SalesOrder.created_at).all()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    def create_sales_order(db: Session, data: SalesOrderCreate, created_by: Optional[UUID] = None) -> SalesOrder:
        errors = []
        if not data.items:
            errors.append({"field": "items", "message": "At least one item is required"})
        for index, item in enumerate(data.items):
            if item.quantity <= 0:
                errors.append({"field": f"items[{index}].quantity", "message": "quantity must be positive"})
            if item.item_type and item.item_type not in {t.value for t in ItemType}:
                errors.append({"field": f"items[{index}].item_type", "message": f"Unknown item type: {item.item_type}"})
        if errors:
            raise ValidationError(errors)

        with transaction(db):
            if data.customer_id and not db.get(Customer, data.customer_id):
                raise NotFoundError("Customer", data.customer_id)

            so_number = data.so_number or f"SO-{datetime.now(timezone.utc):%Y%m%d}-{uuid4().hex[:6].upper()}"
            if db.query(SalesOrder).filter(SalesOrder.so_number == so_number).first():
                raise ConflictError(f"Sales order {so_number} already exists")

            order = SalesOrder(
                so_number=so_number,
                customer_id=data.customer_id,
                customer_po_number=data.customer_po_number,
                project_name=data.project_name,
                status=OrderStatus.CREATED.value,
                current_department=STATUS_DEPARTMENT[OrderStatus.CREATED.value],
                request_accepted=False,
                material_available=data.material_available,
                production_priority=data.production_priority,
                target_dispatch_date=data.target_dispatch_date,
                created_by=created_by
            )
            for item in data.items:
                order.items.append(SalesOrderItem(
                    item_code=item.item_code,
                    description=item.description,
                    drawing_no=item.drawing_no,
                    item_type=item.item_type or infer_item_type(item.item_code),
                    quantity=item.quantity,
                    unit=item.unit,
                    unit_rate=item.unit_rate,
                    warehouse=item.warehouse,
                    status=ItemStatus.PENDING.value
                ))
            db.add(order)
            db.flush()

        logger.info(f"Created sales order {order.so_number} with {len(order.items)} items")
        return order

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_acceptance(
        db: Session,
        order: SalesOrder,
        department: str,
        user_id: Optional[UUID] = None
    ) -> AcceptanceDecision:
        decision = resolve_acceptance(
            order.current_department, order.status, department, order.material_available
        )
        before = SalesOrderService._snapshot(order)
        order.request_accepted = True

        if not decision.applied:
            logger.warning(f"Acceptance of {order.so_number} by {department} ignored: {decision.reason}")
            return decision

        order.status = decision.status
        order.current_department = decision.department

        for effect in decision.side_effects:
            if effect == CREATE_DESIGN_ORDER:
                DesignOrderService.create_design_order(db, order.id)

        SalesOrderService._audit(db, order, "ACCEPT", before, user_id, remarks=f"Accepted by {department}")
        logger.info(f"{order.so_number}: {before['status']} -> {order.status} ({order.current_department})")
        return decision

    @staticmethod
    def accept_request(
        db: Session,
        order_id: UUID,
        department: str,
        user_id: Optional[UUID] = None
    ) -> Tuple[SalesOrder, AcceptanceDecision]:
        """Department picks up an order; status moves per the hand-off table"""
        with transaction(db):
            order = SalesOrderService._get_for_update(db, order_id)
            decision = SalesOrderService._apply_acceptance(db, order, department, user_id)
            db.flush()
        return order, decision

    @staticmethod
    def bulk_accept_requests(
        db: Session,
        order_ids: Sequence[UUID],
        department: str,
        user_id: Optional[UUID] = None
    ) -> List[Tuple[SalesOrder, AcceptanceDecision]]:
        results = []
        with transaction(db):
            for order in SalesOrderService._get_many_for_update(db, order_ids):
                decision = SalesOrderService._apply_acceptance(db, order, department, user_id)
                SalesOrderService._accept_pending_items(order)
                results.append((order, decision))
            db.flush()
        return results

    # ------------------------------------------------------------------
    # Rejection
    # ------------------------------------------------------------------

    @staticmethod
    def _reject(
        db: Session,
        order: SalesOrder,
        rejection_type: str,
        reason: Optional[str],
        user_id: Optional[UUID]
    ) -> None:
        before = SalesOrderService._snapshot(order)
        db.add(SalesOrderRejection(
            sales_order_id=order.id,
            rejection_type=rejection_type,
            from_status=order.status,
            from_department=order.current_department,
            reason=reason,
            rejected_by=user_id
        ))
        order.status = OrderStatus.DESIGN_QUERY.value
        order.current_department = Department.SALES.value
        order.request_accepted = False
        SalesOrderService._audit(db, order, "REJECT", before, user_id, remarks=reason)
        logger.info(f"{order.so_number} rejected ({rejection_type}) from {before['status']}")

    @staticmethod
    def reject_request(
        db: Session,
        order_id: UUID,
        reason: Optional[str] = None,
        user_id: Optional[UUID] = None
    ) -> SalesOrder:
        """Send the order back to sales; items are left as they are"""
        with transaction(db):
            order = SalesOrderService._get_for_update(db, order_id)
            SalesOrderService._reject(db, order, "REQUEST", reason, user_id)
            db.flush()
        return order

    @staticmethod
    def reject_design(
        db: Session,
        order_id: UUID,
        reason: str,
        user_id: Optional[UUID] = None
    ) -> SalesOrder:
        if not reason or not reason.strip():
            raise ValidationError([{"field": "reason", "message": "A rejection reason is required"}])

        with transaction(db):
            order = SalesOrderService._get_for_update(db, order_id)
            SalesOrderService._reject(db, order, "DESIGN", reason, user_id)
            db.flush()
        return order

    @staticmethod
    def bulk_reject_designs(
        db: Session,
        order_ids: Sequence[UUID],
        reason: str,
        user_id: Optional[UUID] = None
    ) -> List[SalesOrder]:
        if not reason or not reason.strip():
            raise ValidationError([{"field": "reason", "message": "A rejection reason is required"}])

        with transaction(db):
            orders = SalesOrderService._get_many_for_update(db, order_ids)
            for order in orders:
                SalesOrderService._reject(db, order, "DESIGN", reason, user_id)
            db.flush()
        return orders

    # ------------------------------------------------------------------
    # Design approval
    # ------------------------------------------------------------------

    @staticmethod
    def _require_design_stage(order: SalesOrder, action: str) -> None:
        if order.status not in DESIGN_STAGES:
            raise ConflictError(
                f"{order.so_number} is {order.status} and cannot be {action}",
                details={"status": order.status},
            )

    @staticmethod
    def _approve_design(db: Session, order: SalesOrder, user_id: Optional[UUID]) -> None:
        SalesOrderService._require_design_stage(order, "design approved")
        before = SalesOrderService._snapshot(order)
        order.status = OrderStatus.DESIGN_APPROVED.value
        order.current_department = Department.PROCUREMENT.value
        order.request_accepted = False
        SalesOrderService._accept_pending_items(order)
        DesignOrderService.complete_design_order(db, order.id)
        QuotationService.create_from_sales_order(db, order)
        SalesOrderService._audit(db, order, "STATUS_CHANGE", before, user_id, remarks="Design approved")

    @staticmethod
    def approve_design_and_create_quotation(
        db: Session,
        order_id: UUID,
        user_id: Optional[UUID] = None
    ) -> SalesOrder:
        """Approve the design, hand the order to procurement and draft its quotation"""
        with transaction(db):
            order = SalesOrderService._get_for_update(db, order_id)
            SalesOrderService._approve_design(db, order, user_id)
            db.flush()
        logger.info(f"Design approved for {order.so_number}, quotation {order.quotation_id}")
        return order

    @staticmethod
    def bulk_approve_designs(
        db: Session,
        order_ids: Sequence[UUID],
        user_id: Optional[UUID] = None
    ) -> List[SalesOrder]:
        with transaction(db):
            orders = SalesOrderService._get_many_for_update(db, order_ids)
            for order in orders:
                SalesOrderService._approve_design(db, order, user_id)
            db.flush()
        return orders

    @staticmethod
    def send_order_to_design(db: Session, order_id: UUID, user_id: Optional[UUID] = None) -> SalesOrder:
        """Re-submit an order (typically after a design query) for design review"""
        with transaction(db):
            order = SalesOrderService._get_for_update(db, order_id)
            SalesOrderService._require_design_stage(order, "sent to design")
            before = SalesOrderService._snapshot(order)
            order.status = OrderStatus.DESIGN_IN_REVIEW.value
            order.current_department = Department.DESIGN_ENG.value
            order.request_accepted = False
            SalesOrderService._audit(db, order, "STATUS_CHANGE", before, user_id, remarks="Sent to design")
            db.flush()
        return order

    # ------------------------------------------------------------------
    # Manual status changes
    # ------------------------------------------------------------------

    @staticmethod
    def _set_status(
        db: Session,
        order: SalesOrder,
        status: str,
        user_id: Optional[UUID],
        remarks: Optional[str]
    ) -> None:
        before = SalesOrderService._snapshot(order)
        department = STATUS_DEPARTMENT[status]
        if department != order.current_department:
            order.request_accepted = False
        order.status = status
        order.current_department = department
        SalesOrderService._audit(db, order, "STATUS_CHANGE", before, user_id, remarks)

    @staticmethod
    def update_sales_order_status(
        db: Session,
        order_id: UUID,
        status: str,
        user_id: Optional[UUID] = None,
        remarks: Optional[str] = None
    ) -> SalesOrder:
        status = SalesOrderService._validate_status(status)
        with transaction(db):
            order = SalesOrderService._get_for_update(db, order_id)
            SalesOrderService._set_status(db, order, status, user_id, remarks)
            db.flush()
        logger.info(f"{order.so_number} status set to {status}")
        return order

    @staticmethod
    def bulk_update_status(
        db: Session,
        order_ids: Sequence[UUID],
        status: str,
        user_id: Optional[UUID] = None,
        remarks: Optional[str] = None
    ) -> List[SalesOrder]:
        status = SalesOrderService._validate_status(status)
        with transaction(db):
            orders = SalesOrderService._get_many_for_update(db, order_ids)
            for order in orders:
                SalesOrderService._set_status(db, order, status, user_id, remarks)
                SalesOrderService._accept_pending_items(order)
            db.flush()
        return orders

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    @staticmethod
    def _set_item_status(
        db: Session,
        item: SalesOrderItem,
        status: str,
        reason: Optional[str],
        user_id: Optional[UUID]
    ) -> None:
        item.status = status
        if status == ItemStatus.REJECTED.value:
            item.rejections.append(SalesOrderItemRejection(reason=reason, rejected_by=user_id))

    @staticmethod
    def _validate_item_status(status: str) -> str:
        status = getattr(status, "value", status)
        if status not in {s.value for s in ItemStatus}:
            raise ValidationError([{"field": "status", "message": f"Unknown item status: {status}"}])
        return status

    @staticmethod
    def update_sales_order_item_status(
        db: Session,
        item_id: UUID,
        status: str,
        reason: Optional[str] = None,
        user_id: Optional[UUID] = None
    ) -> SalesOrderItem:
        status = SalesOrderService._validate_item_status(status)
        with transaction(db):
            item = db.query(SalesOrderItem).filter(SalesOrderItem.id == item_id).with_for_update().first()
            if not item:
                raise NotFoundError("SalesOrderItem", item_id)
            SalesOrderService._set_item_status(db, item, status, reason, user_id)
            db.flush()
        return item

    @staticmethod
    def bulk_update_item_status(
        db: Session,
        item_ids: Sequence[UUID],
        status: str,
        reason: Optional[str] = None,
        user_id: Optional[UUID] = None
    ) -> List[SalesOrderItem]:
        status = SalesOrderService._validate_item_status(status)
        with transaction(db):
            items = db.query(SalesOrderItem).filter(SalesOrderItem.id.in_(list(item_ids))).with_for_update().all()
            found = {i.id: i for i in items}
            for item_id in item_ids:
                if item_id not in found:
                    raise NotFoundError("SalesOrderItem", item_id)
            for item in items:
                SalesOrderService._set_item_status(db, item, status, reason, user_id)
            db.flush()
        return items

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    @staticmethod
    def delete_sales_order(db: Session, order_id: UUID, cascade: bool = False) -> dict:
        """
        Hard-delete an order. Orders with design orders, quotations or
        shipments are only removed when cascade is requested.
        """
        with transaction(db):
            order = SalesOrderService._get_for_update(db, order_id)

            design_orders = db.query(DesignOrder).filter(DesignOrder.sales_order_id == order.id).all()
            quotations = db.query(Quotation).filter(Quotation.sales_order_id == order.id).all()
            shipments = db.query(ShipmentOrder).filter(ShipmentOrder.sales_order_id == order.id).all()

            children = {
                "design_orders": len(design_orders),
                "quotations": len(quotations),
                "shipments": len(shipments),
            }
            if any(children.values()) and not cascade:
                raise ConflictError(
                    f"Sales order {order.so_number} has dependent records",
                    details=children,
                )

            order.quotation_id = None
            db.flush()
            for shipment in shipments:
                ShipmentService.purge(db, shipment)
            for record in [*design_orders, *quotations]:
                db.delete(record)
            so_number = order.so_number
            db.add(AuditLog(
                table_name="sales_order",
                record_id=str(order.id),
                action="DELETE",
                before_data={"so_number": so_number, "status": order.status},
                remarks="Cascade delete" if cascade else None
            ))
            db.delete(order)
            db.flush()

        logger.info(f"Deleted sales order {so_number} (cascade={cascade})")
        return {"deleted": str(order_id), "so_number": so_number, "removed": children}
