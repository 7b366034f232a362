"""
Stock API - balances, ledger and manual adjustments
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from plantflow.core import get_db
from plantflow.schemas.stock import StockAdjustmentRequest, LedgerEntryResponse
from plantflow.services.stock_service import StockLedgerService

router = APIRouter(prefix="/stock", tags=["Stock"])


@router.get("/balances")
def get_balances(
    warehouse: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    return {"balances": StockLedgerService.get_stock_summary(db, warehouse, search)}


@router.get("/balances/{item_code}")
def get_item_balance(item_code: str, warehouse: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return {
        "item_code": item_code,
        "warehouse": warehouse,
        "current_balance": StockLedgerService.get_balance(db, item_code, warehouse),
    }


@router.get("/ledger")
def get_ledger(
    item_code: Optional[str] = Query(None),
    warehouse: Optional[str] = Query(None),
    reference_type: Optional[str] = Query(None),
    reference_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    entries = StockLedgerService.get_ledger(db, item_code, warehouse, reference_type, reference_id, limit)
    return {"entries": [LedgerEntryResponse.model_validate(e).model_dump(mode="json") for e in entries]}


@router.post("/adjustments", status_code=201)
def adjust_stock(request: StockAdjustmentRequest, db: Session = Depends(get_db)):
    entry = StockLedgerService.adjust_stock(db, request.item_code, request.warehouse, request.quantity, request.remarks)
    return LedgerEntryResponse.model_validate(entry).model_dump(mode="json")


@router.get("/verify")
def verify_balances(db: Session = Depends(get_db)):
    mismatches = StockLedgerService.verify_balances(db)
    return {"consistent": not mismatches, "mismatches": mismatches}


@router.post("/recompute/{item_code}")
def recompute_balance(item_code: str, warehouse: Optional[str] = Query(None), db: Session = Depends(get_db)):
    balance = StockLedgerService.recompute_balance(db, item_code, warehouse)
    return {"item_code": balance.item_code, "warehouse": balance.warehouse, "current_balance": balance.current_balance}
