"""
HTTP layer: routing, response bodies and error mapping
"""
from uuid import uuid4

from plantflow.models import NotificationOutbox


def create_po(client, quantity=50):
    response = client.post("/api/purchase-orders", json={
        "vendor_name": "Steel Traders",
        "items": [{"item_code": "RM-PLATE-10", "quantity": quantity}],
    })
    assert response.status_code == 201
    return response.json()


def create_order(client, *item_codes, **fields):
    response = client.post("/api/sales-orders", json={
        "project_name": "Control Panel Line",
        "items": [{"item_code": code, "quantity": 2} for code in (item_codes or ("FG-PANEL-01",))],
        **fields,
    })
    assert response.status_code == 201
    return response.json()


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/api/status").json()["status"] == "ok"


def test_grn_excess_flow(client):
    po = create_po(client, quantity=50)
    assert po["status"] == "ORDERED"

    response = client.post("/api/grn-items/create-with-items", json={
        "poId": po["id"],
        "items": [{"poItemId": po["items"][0]["id"], "poQty": 50, "receivedQty": 55, "acceptedQty": 55}],
    })
    assert response.status_code == 201
    grn = response.json()
    assert grn["status"] == "EXCESS"
    grn_item_id = grn["items"][0]["id"]

    response = client.post(f"/api/grn-items/{grn_item_id}/approve-excess", json={"approvalNotes": "OK by buyer"})
    assert response.status_code == 200
    assert response.json()["po_status"] == "ORDERED"

    balance = client.get(f"/api/grn-items/po/{po['id']}/balance").json()
    assert balance["items"][0]["status"] == "EXCESS"
    assert balance["items"][0]["balance_qty"] == -5

    assert client.get("/api/stock/balances/RM-PLATE-10").json()["current_balance"] == 55
    assert client.get("/api/stock/verify").json() == {"consistent": True, "mismatches": []}

    response = client.post(f"/api/grn-items/{grn_item_id}/reject-excess")
    assert response.status_code == 409
    assert response.json()["error"] == "CONFLICT"

    receipts = client.get(f"/api/purchase-orders/{po['id']}/receipts").json()["receipts"]
    assert [r["accepted_qty"] for r in receipts] == [55]


def test_validation_error_body(client):
    po = create_po(client, quantity=100)

    response = client.post("/api/grn-items/create-with-items", json={
        "poId": po["id"],
        "items": [{"poItemId": po["items"][0]["id"], "receivedQty": 100, "acceptedQty": 60, "rejectedQty": 50}],
    })

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"][0]["field"] == "items[0].acceptedQty"


def test_not_found_body(client):
    order_id = str(uuid4())

    response = client.get(f"/api/sales-orders/{order_id}")

    assert response.status_code == 404
    assert response.json()["details"] == {"entity": "SalesOrder", "id": order_id}


def test_request_schema_errors(client):
    response = client.post("/api/stock/adjustments", json={"item_code": "RM-PLATE-10", "quantity": 0})
    assert response.status_code == 422


def test_acceptance_decisions(client):
    order = create_order(client)
    assert (order["status"], order["current_department"]) == ("CREATED", "DESIGN_ENG")
    assert order["items"][0]["item_type"] == "FG"

    response = client.post(f"/api/sales-orders/{order['id']}/accept", json={"department": "QC"})
    assert response.status_code == 200
    decision = response.json()["decision"]
    assert decision["applied"] is False
    assert decision["reason"]

    response = client.post(f"/api/sales-orders/{order['id']}/accept", json={"department": "DESIGN_ENG"})
    body = response.json()
    assert body["decision"]["side_effects"] == ["CREATE_DESIGN_ORDER"]
    assert body["order"]["status"] == "DESIGN_IN_REVIEW"


def test_bulk_accept_rejects_unknown_ids(client):
    order = create_order(client)

    response = client.post("/api/sales-orders/bulk/accept", json={
        "order_ids": [order["id"], str(uuid4())], "department": "DESIGN_ENG",
    })

    assert response.status_code == 404
    assert client.get(f"/api/sales-orders/{order['id']}").json()["status"] == "CREATED"


def test_delete_requires_cascade(client):
    order = create_order(client)
    assert client.post(f"/api/sales-orders/{order['id']}/approve-design").json()["status"] == "DESIGN_APPROVED"

    response = client.delete(f"/api/sales-orders/{order['id']}")
    assert response.status_code == 409
    assert response.json()["details"]["quotations"] == 1

    response = client.delete(f"/api/sales-orders/{order['id']}", params={"cascade": "true"})
    assert response.status_code == 200
    assert client.get(f"/api/sales-orders/{order['id']}").status_code == 404


def test_dispatch_over_http(client, db):
    order = create_order(client, "FG-PANEL-01", "RM-PLATE-10")
    client.patch(f"/api/sales-orders/{order['id']}/status", json={"status": "PRODUCTION_COMPLETED"})

    response = client.post(f"/api/final-qc/orders/{order['id']}/complete", json={"status": "PASSED"})
    assert response.status_code == 200
    shipment = response.json()["shipment"]
    assert shipment["status"] == "PENDING_ACCEPTANCE"

    response = client.post("/api/stock/adjustments", json={"item_code": "FG-PANEL-01", "quantity": 5})
    assert response.status_code == 201

    response = client.patch(f"/api/shipments/orders/{shipment['id']}/status", json={"status": "DISPATCHED"})
    assert response.status_code == 200
    assert response.json()["dispatched_at"] is not None

    detail = client.get(f"/api/shipments/orders/{shipment['id']}").json()
    assert [c["items"][0]["item_code"] for c in detail["challans"]] == ["FG-PANEL-01"]
    assert client.get("/api/stock/balances/FG-PANEL-01").json()["current_balance"] == 3

    # Delivered by the background task once the response was produced
    assert db.query(NotificationOutbox).one().status == "SENT"

    response = client.patch(f"/api/shipments/orders/{shipment['id']}/status", json={"status": "DISPATCHED"})
    assert response.status_code == 409

    ledger = client.get("/api/stock/ledger", params={"reference_type": "SHIPMENT"}).json()["entries"]
    assert [(e["direction"], e["quantity"]) for e in ledger] == [("OUT", 2)]
