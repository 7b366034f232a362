"""
Purchase Orders API
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from plantflow.core import get_db
from plantflow.schemas.purchase import PurchaseOrderCreate, PurchaseOrderResponse
from plantflow.services.purchase_order_service import PurchaseOrderService
from plantflow.services.po_balance_service import POBalanceService

router = APIRouter(prefix="/purchase-orders", tags=["Purchase Orders"])


@router.post("", response_model=PurchaseOrderResponse, status_code=201)
def create_purchase_order(request: PurchaseOrderCreate, db: Session = Depends(get_db)):
    return PurchaseOrderService.create_purchase_order(db, request)


@router.get("")
def list_purchase_orders(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    orders = PurchaseOrderService.list_purchase_orders(db, status, page, per_page)
    return {
        "purchase_orders": [
            {
                "id": str(po.id),
                "po_number": po.po_number,
                "vendor_name": po.vendor_name,
                "status": po.status,
                "po_date": po.po_date.isoformat() if po.po_date else None,
            }
            for po in orders
        ]
    }


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
def get_purchase_order(po_id: UUID, db: Session = Depends(get_db)):
    return PurchaseOrderService.get_purchase_order(db, po_id)


@router.get("/{po_id}/receipts")
def get_receipt_history(po_id: UUID, po_item_id: Optional[UUID] = Query(None), db: Session = Depends(get_db)):
    return {"po_id": str(po_id), "receipts": POBalanceService.get_po_receipt_history(db, po_id, po_item_id)}


@router.post("/{po_id}/refresh-status")
def refresh_po_status(po_id: UUID, db: Session = Depends(get_db)):
    return POBalanceService.update_po_status(db, po_id)
