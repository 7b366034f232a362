"""
PO Balance Service

Received quantities on a purchase order are never stored on the PO itself.
They are always derived from the GRN items that reference each line, and the
PO/line statuses are projections written back from the same calculation.
"""
from typing import Dict, Iterable, List, Optional
from uuid import UUID
import logging

from sqlalchemy import func, case
from sqlalchemy.orm import Session

from plantflow.core import transaction, NotFoundError
from plantflow.models import (
    PurchaseOrder, PurchaseOrderItem, GRN, GRNItem,
    POStatus, POItemStatus, GRNItemStatus,
)

logger = logging.getLogger(__name__)

# GRN item statuses whose accepted quantity counts against the PO line
ACCEPTED_STATUSES = (
    GRNItemStatus.RECEIVED.value,
    GRNItemStatus.EXCESS_ACCEPTED.value,
    GRNItemStatus.APPROVED.value,
    GRNItemStatus.ACCEPTED.value,
    GRNItemStatus.PASSED.value,
    GRNItemStatus.SHORTAGE.value,
)


def derive_item_status(balance_qty: int) -> str:
    if balance_qty > 0:
        return POItemStatus.OPEN.value
    if balance_qty == 0:
        return POItemStatus.CLOSED.value
    return POItemStatus.EXCESS.value


def derive_po_status(item_statuses: Iterable[str]) -> str:
    statuses = list(item_statuses)
    if statuses and all(s == POItemStatus.CLOSED.value for s in statuses):
        return POStatus.COMPLETED.value
    if any(s == POItemStatus.OPEN.value for s in statuses):
        return POStatus.PARTIALLY_RECEIVED.value
    return POStatus.ORDERED.value


class POBalanceService:

    @staticmethod
    def _receipt_totals(db: Session, po_item_ids: List[UUID]) -> Dict[UUID, Dict[str, int]]:
        """Aggregate GRN quantities per PO line in one query"""
        if not po_item_ids:
            return {}

        # Pending GRN rows must be visible to the aggregate
        db.flush()

        rows = db.query(
            GRNItem.po_item_id,
            func.coalesce(func.sum(case(
                (GRNItem.status.in_(ACCEPTED_STATUSES), GRNItem.accepted_qty), else_=0
            )), 0).label("total_accepted"),
            func.coalesce(func.sum(case(
                (GRNItem.status == GRNItemStatus.REJECTED.value, GRNItem.rejected_qty), else_=0
            )), 0).label("total_rejected"),
            func.coalesce(func.sum(GRNItem.received_qty), 0).label("total_received"),
            func.coalesce(func.sum(GRNItem.shortage_qty), 0).label("total_shortage"),
            func.count(GRNItem.id).label("grn_count"),
        ).filter(
            GRNItem.po_item_id.in_(po_item_ids)
        ).group_by(GRNItem.po_item_id).all()

        return {
            row.po_item_id: {
                "total_accepted": int(row.total_accepted),
                "total_rejected": int(row.total_rejected),
                "total_received": int(row.total_received),
                "total_shortage": int(row.total_shortage),
                "grn_count": int(row.grn_count),
            }
            for row in rows
        }

    @staticmethod
    def _line_balance(po_item: PurchaseOrderItem, totals: Optional[Dict[str, int]]) -> Dict:
        totals = totals or {}
        total_accepted = totals.get("total_accepted", 0)
        balance_qty = po_item.quantity - total_accepted
        return {
            "po_item_id": str(po_item.id),
            "item_code": po_item.item_code,
            "description": po_item.description,
            "unit": po_item.unit,
            "warehouse": po_item.warehouse,
            "po_qty": po_item.quantity,
            "total_accepted": total_accepted,
            "total_rejected": totals.get("total_rejected", 0),
            "total_received": totals.get("total_received", 0),
            "total_shortage": totals.get("total_shortage", 0),
            "grn_count": totals.get("grn_count", 0),
            "balance_qty": balance_qty,
            "status": derive_item_status(balance_qty),
        }

    @staticmethod
    def calculate_item_balance(db: Session, po_item_id: UUID) -> Dict:
        """Balance of a single PO line"""
        po_item = db.get(PurchaseOrderItem, po_item_id)
        if not po_item:
            raise NotFoundError("PurchaseOrderItem", po_item_id)

        totals = POBalanceService._receipt_totals(db, [po_item.id])
        return POBalanceService._line_balance(po_item, totals.get(po_item.id))

    @staticmethod
    def open_quantity(db: Session, po_item_id: UUID, exclude_grn_item_id: Optional[UUID] = None) -> int:
        """
        Quantity still expected on a PO line, never below zero.

        The line row is locked so concurrent receipts against it queue up;
        `exclude_grn_item_id` leaves out the GRN line being corrected.
        """
        po_item = db.query(PurchaseOrderItem).filter(
            PurchaseOrderItem.id == po_item_id
        ).with_for_update().first()
        if not po_item:
            raise NotFoundError("PurchaseOrderItem", po_item_id)

        db.flush()
        query = db.query(func.coalesce(func.sum(GRNItem.accepted_qty), 0)).filter(
            GRNItem.po_item_id == po_item_id,
            GRNItem.status.in_(ACCEPTED_STATUSES)
        )
        if exclude_grn_item_id is not None:
            query = query.filter(GRNItem.id != exclude_grn_item_id)
        return max(0, po_item.quantity - int(query.scalar() or 0))

    @staticmethod
    def calculate_po_balance(db: Session, po_id: UUID, lock: bool = False) -> Dict:
        """Per-line balances, PO totals and the derived overall status"""
        query = db.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)
        if lock:
            query = query.with_for_update()
        po = query.first()
        if not po:
            raise NotFoundError("PurchaseOrder", po_id)

        item_query = db.query(PurchaseOrderItem).filter(PurchaseOrderItem.purchase_order_id == po.id)
        if lock:
            item_query = item_query.with_for_update()
        po_items = item_query.order_by(PurchaseOrderItem.created_at, PurchaseOrderItem.item_code).all()

        totals = POBalanceService._receipt_totals(db, [i.id for i in po_items])
        lines = [POBalanceService._line_balance(i, totals.get(i.id)) for i in po_items]

        return {
            "po_id": str(po.id),
            "po_number": po.po_number,
            "vendor_name": po.vendor_name,
            "current_status": po.status,
            "status": derive_po_status(line["status"] for line in lines),
            "total_po_qty": sum(line["po_qty"] for line in lines),
            "total_accepted": sum(line["total_accepted"] for line in lines),
            "total_rejected": sum(line["total_rejected"] for line in lines),
            "total_balance": sum(line["balance_qty"] for line in lines),
            "items": lines,
        }

    @staticmethod
    def update_po_status(db: Session, po_id: UUID) -> Dict:
        """
        Re-read totals under row locks and write the derived line and PO
        statuses back. Values that did not change are left alone, so calling
        this repeatedly without new receipts writes nothing.
        """
        with transaction(db):
            balance = POBalanceService.calculate_po_balance(db, po_id, lock=True)

            po = db.get(PurchaseOrder, po_id)
            items_by_id = {str(i.id): i for i in po.items}
            changed_lines = 0
            for line in balance["items"]:
                po_item = items_by_id.get(line["po_item_id"])
                if po_item is not None and po_item.status != line["status"]:
                    po_item.status = line["status"]
                    changed_lines += 1

            previous = po.status
            status_changed = previous != balance["status"]
            if status_changed:
                po.status = balance["status"]
                logger.info(f"PO {po.po_number} status {previous} -> {po.status}")
            db.flush()

        return {
            "po_id": str(po_id),
            "previous_status": previous,
            "new_status": balance["status"],
            "changed": status_changed or changed_lines > 0,
            "balance": balance,
        }

    @staticmethod
    def get_po_receipt_history(db: Session, po_id: UUID, po_item_id: Optional[UUID] = None) -> List[Dict]:
        """GRN lines received against a PO, oldest first"""
        if not db.get(PurchaseOrder, po_id):
            raise NotFoundError("PurchaseOrder", po_id)

        query = db.query(GRNItem, GRN, PurchaseOrderItem).join(
            GRN, GRNItem.grn_id == GRN.id
        ).join(
            PurchaseOrderItem, GRNItem.po_item_id == PurchaseOrderItem.id
        ).filter(PurchaseOrderItem.purchase_order_id == po_id)
        if po_item_id:
            query = query.filter(GRNItem.po_item_id == po_item_id)

        history = []
        for grn_item, grn, po_item in query.order_by(GRN.created_at, GRNItem.created_at).all():
            history.append({
                "grn_id": str(grn.id),
                "grn_number": grn.grn_number,
                "grn_date": grn.grn_date.isoformat() if grn.grn_date else None,
                "grn_item_id": str(grn_item.id),
                "po_item_id": str(po_item.id),
                "item_code": po_item.item_code,
                "po_qty": grn_item.po_qty,
                "received_qty": grn_item.received_qty,
                "accepted_qty": grn_item.accepted_qty,
                "rejected_qty": grn_item.rejected_qty,
                "shortage_qty": grn_item.shortage_qty,
                "overage_qty": grn_item.overage_qty,
                "status": grn_item.status,
            })
        return history

    @staticmethod
    def get_po_balance_by_number(db: Session, po_number: str) -> Dict:
        po = db.query(PurchaseOrder).filter(PurchaseOrder.po_number == po_number).first()
        if not po:
            raise NotFoundError("PurchaseOrder", po_number)
        return POBalanceService.calculate_po_balance(db, po.id)
