"""
Stock ledger: movements, balance projection and reconciliation
"""
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.orm import Query

from plantflow.core import settings, ValidationError, ConflictError
from plantflow.models import LedgerEntry, StockBalance, StockAnnotation, Direction, PostingType
from plantflow.services import StockLedgerService, InventoryPostingService

WH = "MAIN STORE"


def test_movements_update_balance_and_ledger(db):
    StockLedgerService.post_movement(db, "RM-BOLT-M8", WH, Direction.IN.value, 40, reference_type="MANUAL")
    StockLedgerService.post_movement(db, "RM-BOLT-M8", WH, Direction.OUT.value, 15, reference_type="MANUAL")
    entry = StockLedgerService.adjust_stock(db, "RM-BOLT-M8", WH, -5, remarks="Cycle count")

    assert StockLedgerService.get_balance(db, "RM-BOLT-M8", WH) == 20
    assert entry.balance_after == 20
    assert entry.posting_type == PostingType.ADJUSTMENT.value
    assert entry.reference_type == "MANUAL"
    assert StockLedgerService.ledger_sum(db, "RM-BOLT-M8", WH) == 20
    assert db.query(LedgerEntry).count() == 3


def test_default_warehouse_and_posting_type(db):
    entry = StockLedgerService.post_movement(db, "RM-NUT-M8", None, "IN", 12)

    assert entry.warehouse == settings.DEFAULT_WAREHOUSE
    assert entry.posting_type == PostingType.INWARD.value
    assert StockLedgerService.get_balance(db, "RM-NUT-M8") == 12


def test_balances_are_kept_per_warehouse(db):
    StockLedgerService.post_movement(db, "RM-PIPE", "MAIN STORE", "IN", 10)
    StockLedgerService.post_movement(db, "RM-PIPE", "SHOP FLOOR", "IN", 3)

    balances = StockLedgerService.get_balances(db, item_code="RM-PIPE")
    assert [(b.warehouse, b.current_balance) for b in balances] == [("MAIN STORE", 10), ("SHOP FLOOR", 3)]


@pytest.mark.parametrize("direction, quantity, field", [
    ("IN", 0, "quantity"),
    ("OUT", -4, "quantity"),
    ("ADJUSTMENT", 0, "quantity"),
    ("SIDEWAYS", 5, "direction"),
])
def test_invalid_movements_are_rejected(db, direction, quantity, field):
    with pytest.raises(ValidationError) as exc:
        StockLedgerService.post_movement(db, "RM-BOLT-M8", WH, direction, quantity)

    assert [e["field"] for e in exc.value.errors] == [field]
    assert db.query(LedgerEntry).count() == 0


def test_negative_stock_allowed_by_default(db):
    entry = StockLedgerService.post_movement(db, "FG-PANEL-01", WH, "OUT", 2)

    assert entry.balance_after == -2
    assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == -2


def test_negative_stock_blocked_when_disallowed(db, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_NEGATIVE_STOCK", False)
    StockLedgerService.post_movement(db, "FG-PANEL-01", WH, "IN", 5)

    with pytest.raises(ConflictError) as exc:
        StockLedgerService.post_movement(db, "FG-PANEL-01", WH, "OUT", 8)

    assert exc.value.details["current_balance"] == 5
    assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == 5
    assert db.query(LedgerEntry).count() == 1


def test_nested_movements_roll_back_together(db, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_NEGATIVE_STOCK", False)
    StockLedgerService.post_movement(db, "FG-PANEL-01", WH, "IN", 3)

    shipment = SimpleNamespace(id=uuid4(), shipment_code="SHP-TEST")
    with pytest.raises(ConflictError):
        InventoryPostingService.post_dispatch(db, shipment, [
            {"item_code": "FG-PANEL-01", "warehouse": WH, "quantity": 2},
            {"item_code": "FG-PANEL-01", "warehouse": WH, "quantity": 2},
        ])

    # The first line fitted, but the batch is all or nothing
    assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == 3
    assert db.query(LedgerEntry).filter(LedgerEntry.reference_type == "SHIPMENT").count() == 0


def test_balance_row_created_concurrently_is_reused(db, monkeypatch):
    StockLedgerService.post_movement(db, "RM-BOLT-M8", WH, "IN", 10)

    # The first lookup misses the row, as when another transaction inserts it in between
    original_first = Query.first
    missed = []

    def first_missing_balance_once(query):
        if not missed and query.column_descriptions[0]["entity"] is StockBalance:
            missed.append(True)
            return None
        return original_first(query)

    monkeypatch.setattr(Query, "first", first_missing_balance_once)

    entry = StockLedgerService.post_movement(db, "RM-BOLT-M8", WH, "IN", 5)

    assert missed == [True]
    assert entry.balance_after == 15
    assert db.query(StockBalance).count() == 1
    assert StockLedgerService.get_balance(db, "RM-BOLT-M8", WH) == 15
    assert StockLedgerService.verify_balances(db) == []


def test_verify_and_recompute_balance(db):
    StockLedgerService.post_movement(db, "RM-WIRE", WH, "IN", 30)
    StockLedgerService.post_movement(db, "RM-WIRE", WH, "OUT", 10)
    assert StockLedgerService.verify_balances(db) == []

    # Simulate a drifted cache
    balance = db.query(StockBalance).filter(StockBalance.item_code == "RM-WIRE").one()
    balance.current_balance = 99
    db.commit()

    mismatches = StockLedgerService.verify_balances(db)
    assert mismatches == [{
        "item_code": "RM-WIRE", "warehouse": WH, "current_balance": 99, "ledger_total": 20,
    }]

    rebuilt = StockLedgerService.recompute_balance(db, "RM-WIRE", WH)
    assert rebuilt.current_balance == 20
    assert StockLedgerService.verify_balances(db) == []


def test_grn_rejection_is_annotation_only(db, make_po):
    po = make_po(("RM-PLATE-10", 10))
    line = po.items[0]

    result = InventoryPostingService.post_inventory_from_grn(db, po.id, line.id, 6, 4, reference="GRN-T1")

    assert result["accepted_posted"] == 6
    assert result["rejected_recorded"] == 4
    assert StockLedgerService.get_balance(db, "RM-PLATE-10") == 6
    annotation = db.query(StockAnnotation).one()
    assert annotation.posting_type == PostingType.REJECTION.value
    assert annotation.quantity == 4
    # Rejections never appear on the ledger
    assert db.query(LedgerEntry).count() == 1


def test_stock_summary_search(db):
    StockLedgerService.post_movement(db, "RM-BOLT-M8", WH, "IN", 1)
    StockLedgerService.post_movement(db, "FG-PANEL-01", WH, "IN", 2)

    summary = StockLedgerService.get_stock_summary(db, search="bolt")
    assert [row["item_code"] for row in summary] == ["RM-BOLT-M8"]
    assert summary[0]["current_balance"] == 1
