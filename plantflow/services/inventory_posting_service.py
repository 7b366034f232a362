"""
Inventory Posting Service - turns business documents into ledger movements
"""
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from plantflow.core import settings, transaction, NotFoundError
from plantflow.models import PurchaseOrderItem, Direction, PostingType
from .stock_service import StockLedgerService

logger = logging.getLogger(__name__)

GRN_REFERENCE = "GRN"
SHIPMENT_REFERENCE = "SHIPMENT"
RETURN_REFERENCE = "RETURN"


class InventoryPostingService:

    @staticmethod
    def post_inventory_from_grn(
        db: Session,
        grn_id: UUID,
        po_item_id: UUID,
        accepted_qty: int,
        rejected_qty: int = 0,
        reference: Optional[str] = None,
        created_by: Optional[UUID] = None
    ) -> Dict:
        """
        Post a GRN receipt: accepted quantity goes IN to stock, rejected
        quantity is recorded as a REJECTION annotation and never moves stock.
        """
        with transaction(db):
            po_item = db.get(PurchaseOrderItem, po_item_id)
            if not po_item:
                raise NotFoundError("PurchaseOrderItem", po_item_id)

            warehouse = po_item.warehouse or settings.DEFAULT_WAREHOUSE
            label = reference or str(grn_id)
            entry = None
            annotation = None

            if accepted_qty > 0:
                entry = StockLedgerService.post_movement(
                    db, po_item.item_code, warehouse, Direction.IN.value, accepted_qty,
                    posting_type=PostingType.INWARD.value,
                    reference_type=GRN_REFERENCE,
                    reference_id=str(grn_id),
                    reference_number=reference,
                    remarks=f"Accepted against GRN {label}",
                    created_by=created_by
                )

            if rejected_qty > 0:
                annotation = StockLedgerService.annotate(
                    db, po_item.item_code, warehouse, PostingType.REJECTION.value, rejected_qty,
                    reference_type=GRN_REFERENCE,
                    reference_id=str(grn_id),
                    remarks=f"Rejected against GRN {label}"
                )

        return {
            "item_code": po_item.item_code,
            "warehouse": warehouse,
            "accepted_posted": accepted_qty if entry else 0,
            "rejected_recorded": rejected_qty if annotation else 0,
            "balance_after": entry.balance_after if entry else None,
        }

    @staticmethod
    def reverse_grn_posting(
        db: Session,
        grn_id: UUID,
        po_item: PurchaseOrderItem,
        quantity: int,
        reference: Optional[str] = None
    ):
        """Take back stock previously posted for a GRN (correction or deletion)"""
        return StockLedgerService.post_movement(
            db, po_item.item_code, po_item.warehouse or settings.DEFAULT_WAREHOUSE,
            Direction.ADJUSTMENT.value, -quantity,
            posting_type=PostingType.ADJUSTMENT.value,
            reference_type=GRN_REFERENCE,
            reference_id=str(grn_id),
            reference_number=reference,
            remarks=f"Reversal against GRN {reference or grn_id}"
        )

    @staticmethod
    def post_dispatch(db: Session, shipment, lines: List[Dict], created_by: Optional[UUID] = None) -> List:
        """One OUT entry per dispatched line"""
        entries = []
        with transaction(db):
            for line in lines:
                entries.append(StockLedgerService.post_movement(
                    db, line["item_code"], line.get("warehouse"), Direction.OUT.value, line["quantity"],
                    posting_type=PostingType.OUTWARD.value,
                    reference_type=SHIPMENT_REFERENCE,
                    reference_id=str(shipment.id),
                    reference_number=shipment.shipment_code,
                    remarks=f"Dispatched on shipment {shipment.shipment_code}",
                    created_by=created_by
                ))
        logger.info(f"Posted {len(entries)} dispatch movements for shipment {shipment.shipment_code}")
        return entries

    @staticmethod
    def post_return_receipt(db: Session, shipment_return, lines: List[Dict], created_by: Optional[UUID] = None) -> List:
        """IN entries of posting type RETURN for goods received back"""
        entries = []
        with transaction(db):
            for line in lines:
                entries.append(StockLedgerService.post_movement(
                    db, line["item_code"], line.get("warehouse"), Direction.IN.value, line["quantity"],
                    posting_type=PostingType.RETURN.value,
                    reference_type=RETURN_REFERENCE,
                    reference_id=str(shipment_return.id),
                    reference_number=shipment_return.return_code,
                    remarks=f"Returned on {shipment_return.return_code}",
                    created_by=created_by
                ))
        logger.info(f"Posted {len(entries)} return movements for {shipment_return.return_code}")
        return entries
