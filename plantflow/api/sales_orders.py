"""
Sales Orders API - creation and department workflow
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from plantflow.core import get_db
from plantflow.schemas.sales_order import (
    SalesOrderCreate, SalesOrderResponse, AcceptRequest, RejectRequest, StatusUpdate,
    BulkAcceptRequest, BulkIdsRequest, BulkRejectRequest, BulkStatusUpdate,
    ItemStatusUpdate, BulkItemStatusUpdate,
)
from plantflow.services.sales_order_service import SalesOrderService

router = APIRouter(prefix="/sales-orders", tags=["Sales Orders"])


def _order(order) -> dict:
    return SalesOrderResponse.model_validate(order).model_dump(mode="json")


@router.post("", status_code=201)
def create_sales_order(request: SalesOrderCreate, db: Session = Depends(get_db)):
    return _order(SalesOrderService.create_sales_order(db, request))


@router.get("")
def list_sales_orders(
    status: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    orders, total = SalesOrderService.list_sales_orders(db, status, department, page, per_page)
    return {
        "orders": [
            {
                "id": str(o.id),
                "so_number": o.so_number,
                "project_name": o.project_name,
                "status": o.status,
                "current_department": o.current_department,
                "request_accepted": o.request_accepted,
            }
            for o in orders
        ],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.get("/incoming/{department}")
def incoming_orders(department: str, db: Session = Depends(get_db)):
    orders = SalesOrderService.get_incoming_orders(db, department.upper())
    return {"orders": [_order(o) for o in orders]}


# ===================== BULK =====================

@router.post("/bulk/accept")
def bulk_accept(request: BulkAcceptRequest, db: Session = Depends(get_db)):
    results = SalesOrderService.bulk_accept_requests(db, request.order_ids, request.department, request.user_id)
    return {"results": [{"order": _order(o), "decision": d.to_dict()} for o, d in results]}


@router.post("/bulk/approve-design")
def bulk_approve_designs(request: BulkIdsRequest, db: Session = Depends(get_db)):
    orders = SalesOrderService.bulk_approve_designs(db, request.order_ids, request.user_id)
    return {"orders": [_order(o) for o in orders]}


@router.post("/bulk/reject-design")
def bulk_reject_designs(request: BulkRejectRequest, db: Session = Depends(get_db)):
    orders = SalesOrderService.bulk_reject_designs(db, request.order_ids, request.reason, request.user_id)
    return {"orders": [_order(o) for o in orders]}


@router.patch("/bulk/status")
def bulk_update_status(request: BulkStatusUpdate, db: Session = Depends(get_db)):
    orders = SalesOrderService.bulk_update_status(db, request.order_ids, request.status, request.user_id, request.remarks)
    return {"orders": [_order(o) for o in orders]}


@router.patch("/items/bulk/status")
def bulk_update_item_status(request: BulkItemStatusUpdate, db: Session = Depends(get_db)):
    items = SalesOrderService.bulk_update_item_status(db, request.item_ids, request.status, request.reason, request.user_id)
    return {"items": [{"id": str(i.id), "item_code": i.item_code, "status": i.status} for i in items]}


@router.patch("/items/{item_id}/status")
def update_item_status(item_id: UUID, request: ItemStatusUpdate, db: Session = Depends(get_db)):
    item = SalesOrderService.update_sales_order_item_status(db, item_id, request.status, request.reason, request.user_id)
    return {"id": str(item.id), "item_code": item.item_code, "status": item.status}


# ===================== SINGLE ORDER =====================

@router.get("/{order_id}")
def get_sales_order(order_id: UUID, db: Session = Depends(get_db)):
    return _order(SalesOrderService.get_sales_order(db, order_id))


@router.post("/{order_id}/accept")
def accept_request(order_id: UUID, request: AcceptRequest, db: Session = Depends(get_db)):
    """
    Department takes ownership. Transitions that do not apply to the order's
    current status are reported in the decision instead of failing.
    """
    order, decision = SalesOrderService.accept_request(db, order_id, request.department, request.user_id)
    return {"order": _order(order), "decision": decision.to_dict()}


@router.post("/{order_id}/reject")
def reject_request(order_id: UUID, request: Optional[RejectRequest] = None, db: Session = Depends(get_db)):
    request = request or RejectRequest()
    return _order(SalesOrderService.reject_request(db, order_id, request.reason, request.user_id))


@router.post("/{order_id}/reject-design")
def reject_design(order_id: UUID, request: RejectRequest, db: Session = Depends(get_db)):
    return _order(SalesOrderService.reject_design(db, order_id, request.reason, request.user_id))


@router.post("/{order_id}/approve-design")
def approve_design(order_id: UUID, db: Session = Depends(get_db)):
    return _order(SalesOrderService.approve_design_and_create_quotation(db, order_id))


@router.post("/{order_id}/send-to-design")
def send_to_design(order_id: UUID, db: Session = Depends(get_db)):
    return _order(SalesOrderService.send_order_to_design(db, order_id))


@router.patch("/{order_id}/status")
def update_status(order_id: UUID, request: StatusUpdate, db: Session = Depends(get_db)):
    return _order(SalesOrderService.update_sales_order_status(
        db, order_id, request.status, request.user_id, request.remarks
    ))


@router.delete("/{order_id}")
def delete_sales_order(order_id: UUID, cascade: bool = Query(False), db: Session = Depends(get_db)):
    return SalesOrderService.delete_sales_order(db, order_id, cascade)
