"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from plantflow.api.sales_orders import router as sales_orders_router
from plantflow.api.purchase_orders import router as purchase_orders_router
from plantflow.api.grn_items import router as grn_items_router
from plantflow.api.shipments import router as shipments_router
from plantflow.api.final_qc import router as final_qc_router
from plantflow.api.stock import router as stock_router

api_router = APIRouter(tags=["API"])

api_router.include_router(sales_orders_router)
api_router.include_router(purchase_orders_router)
api_router.include_router(grn_items_router)
api_router.include_router(shipments_router)
api_router.include_router(final_qc_router)
api_router.include_router(stock_router)


@api_router.get("/status")
def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}
