"""
GRN Items API - goods receipt against purchase orders
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from plantflow.core import get_db
from plantflow.schemas.grn import GRNCreate, GRNItemUpdate, ExcessApprovalRequest, ExcessRejectionRequest
from plantflow.services.grn_service import GRNService
from plantflow.services.po_balance_service import POBalanceService

router = APIRouter(prefix="/grn-items", tags=["GRN"])


@router.post("/create-with-items", status_code=201)
def create_grn_with_items(request: GRNCreate, db: Session = Depends(get_db)):
    """
    Create a GRN with its lines, post accepted stock and refresh the PO status
    """
    return GRNService.create_grn_with_items(db, request)


@router.patch("/{grn_item_id}")
def update_grn_item(grn_item_id: UUID, request: GRNItemUpdate, db: Session = Depends(get_db)):
    return GRNService.update_grn_item(db, grn_item_id, request)


@router.delete("/{grn_item_id}")
def delete_grn_item(grn_item_id: UUID, db: Session = Depends(get_db)):
    return GRNService.delete_grn_item(db, grn_item_id)


@router.post("/{grn_item_id}/approve-excess")
def approve_excess(grn_item_id: UUID, request: Optional[ExcessApprovalRequest] = None, db: Session = Depends(get_db)):
    notes = request.approval_notes if request else None
    return GRNService.approve_excess_grn_item(db, grn_item_id, notes)


@router.post("/{grn_item_id}/reject-excess")
def reject_excess(grn_item_id: UUID, request: Optional[ExcessRejectionRequest] = None, db: Session = Depends(get_db)):
    reason = request.rejection_reason if request else None
    return GRNService.reject_excess_grn_item(db, grn_item_id, reason)


@router.get("/po/{po_id}/balance")
def get_po_balance(po_id: UUID, db: Session = Depends(get_db)):
    return POBalanceService.calculate_po_balance(db, po_id)


@router.get("/po-number/{po_number}/balance")
def get_po_balance_by_number(po_number: str, db: Session = Depends(get_db)):
    return POBalanceService.get_po_balance_by_number(db, po_number)


@router.get("/po-item/{po_item_id}/balance")
def get_po_item_balance(po_item_id: UUID, db: Session = Depends(get_db)):
    return POBalanceService.calculate_item_balance(db, po_item_id)


@router.get("/grn/{grn_id}")
def get_grn(grn_id: UUID, db: Session = Depends(get_db)):
    return GRNService.get_grn(db, grn_id)


@router.get("/grn/{grn_id}/summary")
def get_grn_summary(grn_id: UUID, db: Session = Depends(get_db)):
    return GRNService.get_grn_summary(db, grn_id)
