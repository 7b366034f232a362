"""
Final QC API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from plantflow.core import get_db
from plantflow.schemas.sales_order import FinalQCRequest, SalesOrderResponse
from plantflow.services.quality_service import FinalQCService
from plantflow.services.shipment_service import ShipmentService

router = APIRouter(prefix="/final-qc", tags=["Final QC"])


def _result(result: dict) -> dict:
    shipment = result["shipment"]
    return {
        "order": SalesOrderResponse.model_validate(result["order"]).model_dump(mode="json"),
        "shipment": ShipmentService.serialize(shipment) if shipment else None,
    }


@router.get("/orders")
def list_orders(db: Session = Depends(get_db)):
    orders = FinalQCService.list_orders_for_final_qc(db)
    return {
        "orders": [
            {"id": str(o.id), "so_number": o.so_number, "status": o.status, "project_name": o.project_name}
            for o in orders
        ]
    }


@router.post("/orders/{order_id}/complete")
def complete_final_qc(order_id: UUID, request: FinalQCRequest, db: Session = Depends(get_db)):
    return _result(FinalQCService.complete_final_qc(
        db, order_id, request.status, request.remarks, request.passed_qty, request.failed_qty, request.user_id
    ))


@router.post("/orders/{order_id}/create-shipment", status_code=201)
def create_shipment(order_id: UUID, db: Session = Depends(get_db)):
    return _result(FinalQCService.create_shipment_order(db, order_id))
