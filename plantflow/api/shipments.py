"""
Shipments API - shipment orders, planning, tracking and returns
"""
from fastapi import APIRouter, Depends, BackgroundTasks, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from plantflow.core import get_db
from plantflow.models import ShipmentStatus
from plantflow.schemas.shipment import (
    ShipmentStatusUpdate, ShipmentPlanningUpdate, TrackingCreate, ReturnCreate, ReturnStatusUpdate,
)
from plantflow.services.shipment_service import ShipmentService
from plantflow.services.notification_service import OutboxService

router = APIRouter(prefix="/shipments", tags=["Shipments"])


@router.get("/orders")
def list_shipments(
    status: Optional[str] = Query(None),
    source_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    shipments, total = ShipmentService.list_shipments(db, status, source_type, page, per_page)
    return {
        "shipments": [ShipmentService.serialize(s) for s in shipments],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.get("/orders/{shipment_id}")
def get_shipment(shipment_id: UUID, db: Session = Depends(get_db)):
    return ShipmentService.get_shipment(db, shipment_id)


@router.patch("/orders/{shipment_id}/status")
def update_shipment_status(
    shipment_id: UUID,
    request: ShipmentStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """
    Change shipment status. Dispatch notifications are sent once the
    response has gone out.
    """
    shipment = ShipmentService.update_shipment_status(
        db, shipment_id, request.status, request.user_id, request.remarks, notify_after_commit=False
    )
    if shipment.status == ShipmentStatus.DISPATCHED.value:
        background_tasks.add_task(OutboxService.dispatch_with_engine, db.get_bind())
    return ShipmentService.serialize(shipment)


@router.patch("/orders/{shipment_id}/planning")
def update_planning(shipment_id: UUID, request: ShipmentPlanningUpdate, db: Session = Depends(get_db)):
    return ShipmentService.serialize(ShipmentService.update_shipment_planning(db, shipment_id, request))


@router.delete("/orders/{shipment_id}")
def delete_shipment(shipment_id: UUID, db: Session = Depends(get_db)):
    return ShipmentService.delete_shipment_order(db, shipment_id)


@router.post("/qc-returns/{qc_inspection_id}", status_code=201)
def create_qc_return_shipment(qc_inspection_id: UUID, db: Session = Depends(get_db)):
    return ShipmentService.serialize(ShipmentService.create_qc_return_shipment(db, qc_inspection_id))


# ===================== TRACKING =====================

@router.get("/orders/{shipment_id}/tracking")
def get_tracking(shipment_id: UUID, db: Session = Depends(get_db)):
    entries = ShipmentService.get_tracking(db, shipment_id)
    return {
        "tracking": [
            {
                "status": t.status,
                "location": t.location,
                "remarks": t.remarks,
                "recorded_at": t.recorded_at.isoformat() if t.recorded_at else None,
            }
            for t in entries
        ]
    }


@router.post("/orders/{shipment_id}/tracking", status_code=201)
def add_tracking(shipment_id: UUID, request: TrackingCreate, db: Session = Depends(get_db)):
    entry = ShipmentService.add_tracking(db, shipment_id, request.status, request.location, request.remarks)
    return {"id": str(entry.id), "status": entry.status, "location": entry.location, "remarks": entry.remarks}


# ===================== RETURNS =====================

@router.post("/orders/{shipment_id}/returns", status_code=201)
def initiate_return(shipment_id: UUID, request: ReturnCreate, db: Session = Depends(get_db)):
    shipment_return = ShipmentService.initiate_return(db, shipment_id, request)
    return {
        "id": str(shipment_return.id),
        "return_code": shipment_return.return_code,
        "status": shipment_return.status,
        "items": [{"item_code": i.item_code, "quantity": i.quantity} for i in shipment_return.items],
    }


@router.patch("/returns/{return_id}/status")
def update_return_status(return_id: UUID, request: ReturnStatusUpdate, db: Session = Depends(get_db)):
    shipment_return = ShipmentService.update_return_status(db, return_id, request)
    return {
        "id": str(shipment_return.id),
        "return_code": shipment_return.return_code,
        "status": shipment_return.status,
        "condition_status": shipment_return.condition_status,
    }
