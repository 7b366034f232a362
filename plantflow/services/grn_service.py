"""
GRN Service - goods receipt write path

Each GRN line is classified against the quantity expected on the PO line.
Quantity above the expectation is held for an explicit excess decision and
only counts against the PO once approved. Every write re-derives the GRN
header status, syncs stock for the touched lines and refreshes the PO status
in the same transaction.
"""
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from plantflow.core import settings, transaction, ValidationError, NotFoundError, ConflictError
from plantflow.models import (
    PurchaseOrder, PurchaseOrderItem, GRN, GRNItem, GrnExcessApproval,
    GRNStatus, GRNItemStatus, ExcessApprovalStatus, POItemStatus, PostingType,
)
from plantflow.schemas.grn import GRNCreate, GRNItemUpdate
from .stock_service import StockLedgerService
from .inventory_posting_service import InventoryPostingService, GRN_REFERENCE
from .po_balance_service import POBalanceService

logger = logging.getLogger(__name__)

# Item statuses that make a GRN count as fully approved
APPROVED_ITEM_STATUSES = frozenset({
    GRNItemStatus.APPROVED.value,
    GRNItemStatus.EXCESS_ACCEPTED.value,
    GRNItemStatus.RECEIVED.value,
    GRNItemStatus.ACCEPTED.value,
    GRNItemStatus.PASSED.value,
})


def classify_receipt(po_qty: int, received_qty: int, accepted_qty: int, rejected_qty: int) -> Dict:
    """
    Split one receipt into stored accepted, held excess and shortage.

    accepted is capped at po_qty; whatever is left of the overage after
    acceptance and rejection is held pending an excess decision. The
    remainder is shortage, so accepted + rejected + held + shortage always
    equals received.
    """
    overage = max(0, received_qty - po_qty)
    accepted = min(accepted_qty, po_qty)
    held = min(overage, max(0, received_qty - accepted - rejected_qty))
    shortage = received_qty - accepted - rejected_qty - held

    if held > 0:
        status = GRNItemStatus.RECEIVED.value
    elif accepted == 0 and rejected_qty > 0:
        status = GRNItemStatus.REJECTED.value
    elif received_qty < po_qty:
        status = GRNItemStatus.SHORTAGE.value
    else:
        status = GRNItemStatus.APPROVED.value

    return {
        "accepted_qty": accepted,
        "rejected_qty": rejected_qty,
        "held_qty": held,
        "shortage_qty": shortage,
        "overage_qty": overage,
        "status": status,
    }


def has_pending_excess(grn_item: GRNItem) -> bool:
    approval = grn_item.excess_approval
    return approval is not None and approval.status == ExcessApprovalStatus.PENDING.value


def calculate_grn_status(items: Sequence[GRNItem]) -> str:
    """Header status derived from the lines"""
    if not items:
        return GRNStatus.PENDING.value
    if any(has_pending_excess(i) for i in items):
        return GRNStatus.EXCESS.value
    statuses = [i.status for i in items]
    if any(s == GRNItemStatus.SHORTAGE.value for s in statuses):
        return GRNStatus.PARTIAL.value
    if all(s == GRNItemStatus.REJECTED.value for s in statuses):
        return GRNStatus.REJECTED.value
    if all(s in APPROVED_ITEM_STATUSES for s in statuses):
        return GRNStatus.APPROVED.value
    return GRNStatus.PARTIAL.value


class GRNService:

    @staticmethod
    def collect_input_errors(
        po_qty: Optional[int],
        received_qty: Optional[int],
        accepted_qty: Optional[int],
        rejected_qty: Optional[int],
        prefix: str = ""
    ) -> List[Dict[str, str]]:
        errors = []
        for field, value in (
            ("poQty", po_qty),
            ("receivedQty", received_qty),
            ("acceptedQty", accepted_qty),
            ("rejectedQty", rejected_qty),
        ):
            if value is not None and value < 0:
                errors.append({"field": f"{prefix}{field}", "message": f"{field} cannot be negative"})

        if received_qty is not None and min(received_qty, accepted_qty or 0, rejected_qty or 0) >= 0:
            if (accepted_qty or 0) + (rejected_qty or 0) > received_qty:
                errors.append({
                    "field": f"{prefix}acceptedQty",
                    "message": "acceptedQty + rejectedQty cannot exceed receivedQty",
                })
        return errors

    @staticmethod
    def validate_grn_item_input(
        po_qty: Optional[int],
        received_qty: Optional[int],
        accepted_qty: Optional[int],
        rejected_qty: Optional[int]
    ) -> None:
        """Raise ValidationError listing every violation"""
        errors = GRNService.collect_input_errors(po_qty, received_qty, accepted_qty, rejected_qty)
        if errors:
            raise ValidationError(errors)

    @staticmethod
    def _resolve_po_item(po: PurchaseOrder, po_item_id: Optional[UUID], item_code: Optional[str]) -> Optional[PurchaseOrderItem]:
        if po_item_id:
            return next((i for i in po.items if i.id == po_item_id), None)
        matches = [i for i in po.items if i.item_code == item_code]
        open_matches = [i for i in matches if i.status == POItemStatus.OPEN.value]
        return (open_matches or matches or [None])[0]

    @staticmethod
    def _sync_stock(db: Session, grn: GRN, po_item: PurchaseOrderItem) -> None:
        """
        Bring the ledger in line with the GRN's current quantities for one
        PO line. Only the difference from what was already posted is moved,
        so repeated calls never double-post.
        """
        warehouse = po_item.warehouse or settings.DEFAULT_WAREHOUSE
        lines = [
            gi for gi in grn.items
            if gi.po_item.item_code == po_item.item_code
            and (gi.po_item.warehouse or settings.DEFAULT_WAREHOUSE) == warehouse
        ]
        target_accepted = sum(gi.accepted_qty for gi in lines)
        target_rejected = sum(gi.rejected_qty for gi in lines)

        posted = StockLedgerService.posted_quantity(
            db, GRN_REFERENCE, str(grn.id), po_item.item_code, warehouse
        )
        recorded_rejection = StockLedgerService.annotated_quantity(
            db, PostingType.REJECTION.value, GRN_REFERENCE, str(grn.id), po_item.item_code
        )

        accept_delta = target_accepted - posted
        reject_delta = max(0, target_rejected - recorded_rejection)

        if accept_delta > 0 or reject_delta > 0:
            InventoryPostingService.post_inventory_from_grn(
                db, grn.id, po_item.id, max(0, accept_delta), reject_delta, reference=grn.grn_number
            )
        if accept_delta < 0:
            InventoryPostingService.reverse_grn_posting(db, grn.id, po_item, -accept_delta, reference=grn.grn_number)

    @staticmethod
    def _refresh(db: Session, grn: GRN, po_items: Sequence[PurchaseOrderItem]) -> Dict:
        db.flush()
        for po_item in {i.id: i for i in po_items}.values():
            GRNService._sync_stock(db, grn, po_item)
        grn.status = calculate_grn_status(grn.items)
        return POBalanceService.update_po_status(db, grn.purchase_order_id)

    @staticmethod
    def _apply_figures(grn_item: GRNItem, figures: Dict) -> None:
        grn_item.accepted_qty = figures["accepted_qty"]
        grn_item.rejected_qty = figures["rejected_qty"]
        grn_item.shortage_qty = figures["shortage_qty"]
        grn_item.overage_qty = figures["overage_qty"]
        grn_item.status = figures["status"]
        grn_item.is_approved = figures["status"] == GRNItemStatus.APPROVED.value

        held = figures["held_qty"]
        approval = grn_item.excess_approval
        if held > 0:
            if approval is None:
                grn_item.excess_approval = GrnExcessApproval(
                    excess_qty=held, status=ExcessApprovalStatus.PENDING.value
                )
            elif approval.status == ExcessApprovalStatus.PENDING.value:
                approval.excess_qty = held
            else:
                raise ConflictError(
                    f"Excess decision already recorded for GRN item {grn_item.id}",
                    details={"approval_status": approval.status},
                )
        elif approval is not None and approval.status == ExcessApprovalStatus.PENDING.value:
            grn_item.excess_approval = None

    @staticmethod
    def _expected_quantity(
        db: Session,
        po_item: PurchaseOrderItem,
        requested: int,
        grn_item_id: Optional[UUID] = None
    ) -> int:
        """Quantity a receipt may fill, capped at what is still open on the PO line"""
        open_qty = POBalanceService.open_quantity(db, po_item.id, exclude_grn_item_id=grn_item_id)
        if requested > open_qty:
            logger.warning(
                f"Expected quantity {requested} for {po_item.item_code} capped at open balance {open_qty}"
            )
            return open_qty
        return requested

    @staticmethod
    def create_grn_with_items(db: Session, data: GRNCreate) -> Dict:
        """Create a GRN header and its lines against one PO"""
        with transaction(db):
            po = db.get(PurchaseOrder, data.po_id)
            if not po:
                raise NotFoundError("PurchaseOrder", data.po_id)

            errors = []
            resolved = []
            for index, item in enumerate(data.items):
                prefix = f"items[{index}]."
                po_item = GRNService._resolve_po_item(po, item.po_item_id, item.item_code)
                if po_item is None:
                    errors.append({
                        "field": f"{prefix}poItemId",
                        "message": f"No line on PO {po.po_number} matches {item.po_item_id or item.item_code}",
                    })
                    continue

                po_qty = item.po_qty
                if po_qty is None:
                    po_qty = max(0, POBalanceService.calculate_item_balance(db, po_item.id)["balance_qty"])
                received = item.received_qty
                if received is None:
                    received = (item.accepted_qty or 0) + (item.rejected_qty or 0)

                errors.extend(GRNService.collect_input_errors(
                    po_qty, received, item.accepted_qty, item.rejected_qty, prefix=prefix
                ))
                resolved.append((item, po_item, po_qty, received))

            if not data.items:
                errors.append({"field": "items", "message": "At least one item is required"})
            if errors:
                raise ValidationError(errors)

            grn = GRN(
                grn_number=f"GRN-{datetime.now(timezone.utc):%Y%m%d}-{uuid4().hex[:6].upper()}",
                purchase_order_id=po.id,
                receipt_id=data.receipt_id,
                grn_date=data.grn_date or date.today(),
                status=GRNStatus.PENDING.value,
                notes=data.notes
            )
            db.add(grn)

            for item, po_item, po_qty, received in resolved:
                # Earlier lines of this GRN are flushed, so they count against the line too
                expected = GRNService._expected_quantity(db, po_item, po_qty)
                grn_item = GRNItem(
                    po_item=po_item,
                    po_qty=expected,
                    received_qty=received,
                    remarks=item.remarks
                )
                GRNService._apply_figures(grn_item, classify_receipt(
                    expected, received, item.accepted_qty or 0, item.rejected_qty or 0
                ))
                grn.items.append(grn_item)

            po_result = GRNService._refresh(db, grn, [r[1] for r in resolved])

        logger.info(f"GRN {grn.grn_number} created on PO {po.po_number} with {len(grn.items)} items, status {grn.status}")
        return {
            **GRNService.serialize_grn(grn),
            "po_status": po_result["new_status"],
        }

    @staticmethod
    def _get_item(db: Session, grn_item_id: UUID, lock: bool = False) -> GRNItem:
        query = db.query(GRNItem).filter(GRNItem.id == grn_item_id)
        if lock:
            query = query.with_for_update()
        grn_item = query.first()
        if not grn_item:
            raise NotFoundError("GRNItem", grn_item_id)
        return grn_item

    @staticmethod
    def update_grn_item(db: Session, grn_item_id: UUID, data: GRNItemUpdate) -> Dict:
        """Correct the quantities of one GRN line and re-derive everything downstream"""
        with transaction(db):
            grn_item = GRNService._get_item(db, grn_item_id, lock=True)
            held = grn_item.excess_approval.excess_qty if has_pending_excess(grn_item) else 0

            received = data.received_qty if data.received_qty is not None else grn_item.received_qty
            accepted = data.accepted_qty if data.accepted_qty is not None else grn_item.accepted_qty + held
            rejected = data.rejected_qty if data.rejected_qty is not None else grn_item.rejected_qty

            GRNService.validate_grn_item_input(grn_item.po_qty, received, accepted, rejected)

            if any(v is not None for v in (data.received_qty, data.accepted_qty, data.rejected_qty)):
                expected = GRNService._expected_quantity(db, grn_item.po_item, grn_item.po_qty, grn_item.id)
                grn_item.po_qty = expected
                grn_item.received_qty = received
                GRNService._apply_figures(
                    grn_item, classify_receipt(expected, received, accepted, rejected)
                )
            if data.remarks is not None:
                grn_item.remarks = data.remarks

            grn = grn_item.grn
            po_result = GRNService._refresh(db, grn, [grn_item.po_item])

        return {
            "grn_item": GRNService.serialize_item(grn_item),
            "grn_status": grn.status,
            "po_status": po_result["new_status"],
        }

    @staticmethod
    def _pending_approval(grn_item: GRNItem) -> GrnExcessApproval:
        approval = grn_item.excess_approval
        if approval is None or grn_item.overage_qty <= 0:
            raise ConflictError(f"GRN item {grn_item.id} has no excess quantity awaiting a decision")
        if approval.status != ExcessApprovalStatus.PENDING.value:
            raise ConflictError(
                f"Excess on GRN item {grn_item.id} was already {approval.status.lower()}",
                details={"approval_status": approval.status},
            )
        return approval

    @staticmethod
    def approve_excess_grn_item(db: Session, grn_item_id: UUID, notes: Optional[str] = None) -> Dict:
        """Accept the held excess: it joins accepted_qty and is posted to stock"""
        with transaction(db):
            grn_item = GRNService._get_item(db, grn_item_id, lock=True)
            approval = GRNService._pending_approval(grn_item)

            grn_item.accepted_qty += approval.excess_qty
            grn_item.status = GRNItemStatus.EXCESS_ACCEPTED.value
            grn_item.is_approved = True
            approval.status = ExcessApprovalStatus.APPROVED.value
            approval.approval_notes = notes
            approval.approved_at = datetime.now(timezone.utc)

            grn = grn_item.grn
            po_result = GRNService._refresh(db, grn, [grn_item.po_item])

        logger.info(f"Excess {approval.excess_qty} approved on GRN item {grn_item.id}")
        return {
            "grn_item": GRNService.serialize_item(grn_item),
            "approved_excess": approval.excess_qty,
            "grn_status": grn.status,
            "po_status": po_result["new_status"],
        }

    @staticmethod
    def reject_excess_grn_item(db: Session, grn_item_id: UUID, reason: Optional[str] = None) -> Dict:
        """Reject the held excess: it joins rejected_qty and never reaches stock"""
        with transaction(db):
            grn_item = GRNService._get_item(db, grn_item_id, lock=True)
            approval = GRNService._pending_approval(grn_item)

            grn_item.rejected_qty += approval.excess_qty
            approval.status = ExcessApprovalStatus.REJECTED.value
            approval.rejection_reason = reason
            approval.rejected_at = datetime.now(timezone.utc)

            grn = grn_item.grn
            po_result = GRNService._refresh(db, grn, [grn_item.po_item])

        logger.info(f"Excess {approval.excess_qty} rejected on GRN item {grn_item.id}")
        return {
            "grn_item": GRNService.serialize_item(grn_item),
            "rejected_excess": approval.excess_qty,
            "grn_status": grn.status,
            "po_status": po_result["new_status"],
        }

    @staticmethod
    def delete_grn_item(db: Session, grn_item_id: UUID) -> Dict:
        """Remove a GRN line; stock already posted for it is reversed"""
        with transaction(db):
            grn_item = GRNService._get_item(db, grn_item_id, lock=True)
            grn = grn_item.grn
            po_item = grn_item.po_item

            grn.items.remove(grn_item)
            po_result = GRNService._refresh(db, grn, [po_item])

        logger.info(f"GRN item {grn_item_id} deleted from {grn.grn_number}")
        return {
            "deleted": str(grn_item_id),
            "grn_status": grn.status,
            "po_status": po_result["new_status"],
        }

    @staticmethod
    def get_grn(db: Session, grn_id: UUID) -> Dict:
        grn = db.get(GRN, grn_id)
        if not grn:
            raise NotFoundError("GRN", grn_id)
        return GRNService.serialize_grn(grn)

    @staticmethod
    def get_grn_summary(db: Session, grn_id: UUID) -> Dict:
        """Quantity totals across all lines of a GRN"""
        grn = db.get(GRN, grn_id)
        if not grn:
            raise NotFoundError("GRN", grn_id)

        items = grn.items
        return {
            "grn_id": str(grn.id),
            "grn_number": grn.grn_number,
            "status": grn.status,
            "total_items": len(items),
            "total_po_qty": sum(i.po_qty for i in items),
            "total_received": sum(i.received_qty for i in items),
            "total_accepted": sum(i.accepted_qty for i in items),
            "total_rejected": sum(i.rejected_qty for i in items),
            "total_shortage": sum(i.shortage_qty for i in items),
            "total_overage": sum(i.overage_qty for i in items),
            "pending_excess": sum(i.excess_approval.excess_qty for i in items if has_pending_excess(i)),
            "approved_items": sum(1 for i in items if i.is_approved),
        }

    @staticmethod
    def serialize_item(grn_item: GRNItem) -> Dict:
        approval = grn_item.excess_approval
        return {
            "id": str(grn_item.id),
            "grn_id": str(grn_item.grn_id),
            "po_item_id": str(grn_item.po_item_id),
            "item_code": grn_item.po_item.item_code if grn_item.po_item else None,
            "po_qty": grn_item.po_qty,
            "received_qty": grn_item.received_qty,
            "accepted_qty": grn_item.accepted_qty,
            "rejected_qty": grn_item.rejected_qty,
            "shortage_qty": grn_item.shortage_qty,
            "overage_qty": grn_item.overage_qty,
            "status": grn_item.status,
            "is_approved": grn_item.is_approved,
            "remarks": grn_item.remarks,
            "excess_approval": {
                "id": str(approval.id) if approval.id else None,
                "excess_qty": approval.excess_qty,
                "status": approval.status,
            } if approval else None,
        }

    @staticmethod
    def serialize_grn(grn: GRN) -> Dict:
        return {
            "id": str(grn.id),
            "grn_number": grn.grn_number,
            "purchase_order_id": str(grn.purchase_order_id),
            "receipt_id": grn.receipt_id,
            "grn_date": grn.grn_date.isoformat() if grn.grn_date else None,
            "status": grn.status,
            "notes": grn.notes,
            "items": [GRNService.serialize_item(i) for i in grn.items],
        }
