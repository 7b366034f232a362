"""
Final QC hand-off, shipment lifecycle, dispatch posting and the
notification outbox
"""
import pytest

from plantflow.core import settings, ValidationError, ConflictError
from plantflow.models import (
    DeliveryChallan, LedgerEntry, NotificationOutbox, SalesOrder, ShipmentOrder, ShipmentTracking,
)
from plantflow.schemas import ReturnCreate, ReturnStatusUpdate, ShipmentPlanningUpdate
from plantflow.services import (
    FinalQCService, OutboxService, QCInspectionService, SalesOrderService, ShipmentService, StockLedgerService,
)
from plantflow.services.notification_service import set_notifier
from plantflow.services.order_workflow import STATUS_DEPARTMENT

WH = "MAIN STORE"


class RecordingNotifier:

    def __init__(self):
        self.sent = []

    def send(self, recipient, subject, body):
        self.sent.append((recipient, subject, body))


class BrokenNotifier:

    def send(self, recipient, subject, body):
        raise ConnectionError("SMTP relay refused connection")


@pytest.fixture
def qc_passed(db, make_order, customer):
    """Factory: order taken through production and final QC, with its shipment"""
    def _make(*item_codes, quantities=None):
        order = make_order(*(item_codes or ("FG-PANEL-01",)), customer_id=customer.id, quantities=quantities)
        SalesOrderService.update_sales_order_status(db, order.id, "PRODUCTION_COMPLETED")
        result = FinalQCService.complete_final_qc(db, order.id, "PASSED", remarks="All panels tested")
        return result["order"], result["shipment"]
    return _make


class TestFinalQC:

    def test_pass_opens_shipment(self, db, qc_passed):
        order, shipment = qc_passed()

        assert (order.status, order.current_department) == ("READY_FOR_SHIPMENT", "SHIPMENT")
        assert order.request_accepted is False
        assert shipment.status == "PENDING_ACCEPTANCE"
        assert shipment.customer_name == "Acme Fabrication"
        assert shipment.customer_email == "stores@acme.example"
        assert FinalQCService.list_orders_for_final_qc(db) == []

        with pytest.raises(ConflictError):
            FinalQCService.create_shipment_order(db, order.id)

    def test_fail_keeps_order_in_quality(self, db, make_order):
        order = make_order()
        SalesOrderService.update_sales_order_status(db, order.id, "QC_IN_PROGRESS")

        result = FinalQCService.complete_final_qc(db, order.id, "failed", passed_qty=1, failed_qty=1)

        assert result["shipment"] is None
        assert (result["order"].status, result["order"].current_department) == ("QC_REJECTED", "QUALITY")
        assert db.query(ShipmentOrder).count() == 0
        assert [o.id for o in FinalQCService.list_orders_for_final_qc(db)] == [order.id]

    def test_order_must_await_qc(self, db, make_order):
        order = make_order()

        with pytest.raises(ConflictError):
            FinalQCService.complete_final_qc(db, order.id, "PASSED")
        with pytest.raises(ValidationError):
            FinalQCService.complete_final_qc(db, order.id, "MAYBE")


class TestStatusMachine:

    def test_acceptance_readies_sales_order(self, db, qc_passed):
        order, shipment = qc_passed()
        SalesOrderService.update_sales_order_status(db, order.id, "QC_APPROVED")

        shipment = ShipmentService.update_shipment_status(db, shipment.id, "ACCEPTED")

        assert shipment.status == "ACCEPTED"
        order = db.get(SalesOrder, order.id)
        assert (order.status, order.current_department) == ("READY_FOR_SHIPMENT", "SHIPMENT")

    def test_planning_moves_to_planned(self, db, qc_passed):
        _, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "ACCEPTED")

        shipment = ShipmentService.update_shipment_planning(db, shipment.id, ShipmentPlanningUpdate(
            transporter="Blue Dart Surface", vehicle_number="MH12AB1234",
        ))

        assert shipment.status == "PLANNED"
        assert shipment.transporter == "Blue Dart Surface"

    def test_unknown_status(self, db, qc_passed):
        _, shipment = qc_passed()

        with pytest.raises(ValidationError):
            ShipmentService.update_shipment_status(db, shipment.id, "TELEPORTED")

    def test_terminal_status_is_final(self, db, qc_passed):
        _, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "CANCELLED")

        with pytest.raises(ConflictError):
            ShipmentService.update_shipment_status(db, shipment.id, "ACCEPTED")

    def test_tracking_log(self, db, qc_passed):
        _, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "ACCEPTED")
        ShipmentService.add_tracking(db, shipment.id, location="Gate 2", remarks="Loading")

        statuses = [t.status for t in ShipmentService.get_tracking(db, shipment.id)]
        assert statuses[0] == "PENDING_ACCEPTANCE"
        assert statuses.count("ACCEPTED") == 2


class TestDispatch:

    def test_dispatch_posts_stock_and_notifies(self, db, qc_passed):
        notifier = RecordingNotifier()
        set_notifier(notifier)
        _, shipment = qc_passed("FG-PANEL-01", "RM-PLATE-10")
        StockLedgerService.post_movement(db, "FG-PANEL-01", WH, "IN", 5)

        shipment = ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        assert shipment.dispatched_at is not None
        assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == 3
        # Raw material lines never leave with the shipment
        assert StockLedgerService.get_balance(db, "RM-PLATE-10", WH) == 0
        entry = db.query(LedgerEntry).filter(LedgerEntry.reference_type == "SHIPMENT").one()
        assert (entry.direction, entry.quantity, entry.reference_id) == ("OUT", 2, str(shipment.id))

        challan = db.query(DeliveryChallan).one()
        assert [(i.item_code, i.quantity) for i in challan.items] == [("FG-PANEL-01", 2)]

        row = db.query(NotificationOutbox).one()
        assert (row.status, row.attempts, row.aggregate_id) == ("SENT", 1, str(challan.id))
        recipient, subject, body = notifier.sent[0]
        assert recipient == "stores@acme.example"
        assert challan.challan_number in subject
        assert "FG-PANEL-01" in body

    def test_rejected_items_are_not_shipped(self, db, qc_passed):
        order, shipment = qc_passed("FG-PANEL-01", "FG-PANEL-02")
        rejected = next(i for i in order.items if i.item_code == "FG-PANEL-02")
        SalesOrderService.update_sales_order_item_status(db, rejected.id, "REJECTED", reason="Damaged")

        lines = ShipmentService.resolve_items(db.get(ShipmentOrder, shipment.id))

        assert [line["item_code"] for line in lines] == ["FG-PANEL-01"]

    def test_redispatch_is_rejected(self, db, qc_passed):
        _, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")
        ShipmentService.update_shipment_status(db, shipment.id, "IN_TRANSIT")

        with pytest.raises(ConflictError):
            ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        assert db.query(LedgerEntry).count() == 1
        assert db.query(DeliveryChallan).count() == 1

    def test_each_finished_line_leaves_once(self, db, qc_passed):
        _, shipment = qc_passed("FG-PANEL-01", "FG-PANEL-02", quantities={"FG-PANEL-01": 10, "FG-PANEL-02": 5})

        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        entries = db.query(LedgerEntry).filter(LedgerEntry.reference_type == "SHIPMENT").all()
        assert sorted((e.item_code, e.direction, e.quantity) for e in entries) == [
            ("FG-PANEL-01", "OUT", 10),
            ("FG-PANEL-02", "OUT", 5),
        ]
        challan = db.query(DeliveryChallan).one()
        assert sorted((i.item_code, i.quantity) for i in challan.items) == [("FG-PANEL-01", 10), ("FG-PANEL-02", 5)]
        assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == -10
        assert StockLedgerService.get_balance(db, "FG-PANEL-02", WH) == -5

    def test_dispatched_shipment_cannot_step_back(self, db, qc_passed):
        _, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        with pytest.raises(ConflictError):
            ShipmentService.update_shipment_status(db, shipment.id, "READY_TO_DISPATCH")

        assert db.get(ShipmentOrder, shipment.id).status == "DISPATCHED"
        assert db.query(LedgerEntry).filter(LedgerEntry.reference_type == "SHIPMENT").count() == 1
        assert db.query(DeliveryChallan).count() == 1
        assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == -2

    def test_delivered_order_is_not_readied_again(self, db, qc_passed):
        order, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")
        ShipmentService.update_shipment_status(db, shipment.id, "DELIVERED")
        SalesOrderService.update_sales_order_status(db, order.id, "DELIVERED")

        with pytest.raises(ConflictError):
            ShipmentService.update_shipment_status(db, shipment.id, "ACCEPTED")

        order = db.get(SalesOrder, order.id)
        assert (order.status, order.current_department) == ("DELIVERED", STATUS_DEPARTMENT["DELIVERED"])
        assert db.get(ShipmentOrder, shipment.id).status == "DELIVERED"

    def test_nothing_to_dispatch(self, db, qc_passed):
        _, shipment = qc_passed("RM-PLATE-10", "SA-HINGE")

        with pytest.raises(ConflictError):
            ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        assert db.get(ShipmentOrder, shipment.id).status == "PENDING_ACCEPTANCE"
        assert db.query(LedgerEntry).count() == 0
        assert db.query(NotificationOutbox).count() == 0

    def test_notifier_failure_keeps_dispatch(self, db, qc_passed, monkeypatch):
        set_notifier(BrokenNotifier())
        _, shipment = qc_passed()

        shipment = ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        assert db.get(ShipmentOrder, shipment.id).status == "DISPATCHED"
        row = db.query(NotificationOutbox).one()
        assert (row.status, row.attempts) == ("PENDING", 1)
        assert "SMTP relay" in row.last_error

        monkeypatch.setattr(settings, "OUTBOX_MAX_ATTEMPTS", 2)
        assert OutboxService.dispatch_pending(db) == {"sent": 0, "failed": 1}
        assert db.query(NotificationOutbox).one().status == "FAILED"

    def test_qc_return_to_vendor(self, db):
        inspection = QCInspectionService.create_inspection(
            db, [{"item_code": "RM-PLATE-10", "quantity": 3}], vendor_name="Steel Traders"
        )
        shipment = ShipmentService.create_qc_return_shipment(db, inspection.id)
        assert shipment.source_type == "QC_RETURN"

        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        assert StockLedgerService.get_balance(db, "RM-PLATE-10", WH) == -3
        with pytest.raises(ConflictError):
            ShipmentService.create_qc_return_shipment(db, inspection.id)


class TestDeletion:

    def test_delete_before_dispatch_reverts_order(self, db, qc_passed):
        order, shipment = qc_passed()

        result = ShipmentService.delete_shipment_order(db, shipment.id)

        assert result["order_reverted"] is True
        order = db.get(SalesOrder, order.id)
        assert (order.status, order.current_department) == ("PRODUCTION_COMPLETED", "QUALITY")
        assert db.query(ShipmentOrder).count() == 0
        assert db.query(ShipmentTracking).count() == 0

    def test_delete_after_dispatch_keeps_order_and_stock(self, db, qc_passed):
        order, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED", notify_after_commit=False)
        assert db.query(NotificationOutbox).one().status == "PENDING"

        result = ShipmentService.delete_shipment_order(db, shipment.id)

        assert result["order_reverted"] is False
        assert db.get(SalesOrder, order.id).status == "READY_FOR_SHIPMENT"
        assert db.query(DeliveryChallan).count() == 0
        assert db.query(NotificationOutbox).count() == 0
        assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == -2


class TestReturns:

    def test_return_must_follow_dispatch(self, db, qc_passed):
        _, shipment = qc_passed()

        with pytest.raises(ConflictError):
            ShipmentService.initiate_return(db, shipment.id, ReturnCreate(reason="Wrong address"))

    def test_good_return_restocks_once(self, db, qc_passed):
        _, shipment = qc_passed()
        StockLedgerService.post_movement(db, "FG-PANEL-01", WH, "IN", 5)
        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")

        shipment_return = ShipmentService.initiate_return(db, shipment.id, ReturnCreate(reason="Customer refused"))
        assert [(i.item_code, i.quantity) for i in shipment_return.items] == [("FG-PANEL-01", 2)]

        received = ReturnStatusUpdate(status="RETURN_RECEIVED", condition_status="GOOD")
        ShipmentService.update_return_status(db, shipment_return.id, received)
        ShipmentService.update_return_status(db, shipment_return.id, received)

        assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == 5
        assert db.query(LedgerEntry).filter(LedgerEntry.posting_type == "RETURN").count() == 1

        ShipmentService.update_return_status(db, shipment_return.id, ReturnStatusUpdate(status="RETURN_COMPLETED"))
        with pytest.raises(ConflictError):
            ShipmentService.update_shipment_status(db, shipment.id, "CLOSED")

    def test_return_received_twice_restocks_once(self, db, qc_passed):
        _, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")
        shipment_return = ShipmentService.initiate_return(db, shipment.id, ReturnCreate(reason="Customer refused"))

        ShipmentService.update_return_status(db, shipment_return.id, ReturnStatusUpdate(
            status="RETURN_RECEIVED", condition_status="GOOD",
        ))
        ShipmentService.update_return_status(db, shipment_return.id, ReturnStatusUpdate(status="RETURN_IN_TRANSIT"))
        ShipmentService.update_return_status(db, shipment_return.id, ReturnStatusUpdate(status="RETURN_RECEIVED"))

        assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == 0
        assert db.query(LedgerEntry).filter(LedgerEntry.posting_type == "RETURN").count() == 1

    def test_damaged_return_is_not_restocked(self, db, qc_passed):
        _, shipment = qc_passed()
        ShipmentService.update_shipment_status(db, shipment.id, "DISPATCHED")
        shipment_return = ShipmentService.initiate_return(db, shipment.id, ReturnCreate())

        ShipmentService.update_return_status(db, shipment_return.id, ReturnStatusUpdate(
            status="RETURN_RECEIVED", condition_status="DAMAGED",
        ))

        assert StockLedgerService.get_balance(db, "FG-PANEL-01", WH) == -2
