"""
Sales order department hand-off: transition table and the service applying it
"""
from uuid import uuid4

import pytest

from plantflow.core import ValidationError, NotFoundError, ConflictError
from plantflow.models import (
    AuditLog, DesignOrder, Quotation, SalesOrder, SalesOrderRejection, SalesOrderItemRejection,
    OrderStatus, Department,
)
from plantflow.services import DesignOrderService, SalesOrderService
from plantflow.services.order_workflow import (
    CREATE_DESIGN_ORDER, STATUS_DEPARTMENT, resolve_acceptance, normalize_department,
)
from plantflow.services.sales_order_service import infer_item_type


@pytest.mark.parametrize("department, status, material, expected", [
    ("INVENTORY", "CREATED", False, ("DESIGN_IN_REVIEW", "DESIGN_ENG")),
    ("DESIGN_ENG", "CREATED", False, ("DESIGN_IN_REVIEW", "DESIGN_ENG")),
    ("DESIGN_ENG", "DESIGN_IN_REVIEW", False, ("DESIGN_IN_REVIEW", "DESIGN_ENG")),
    ("PROCUREMENT", "DESIGN_APPROVED", True, ("MATERIAL_READY", "PRODUCTION")),
    ("PROCUREMENT", "DESIGN_APPROVED", False, ("MATERIAL_PURCHASE_IN_PROGRESS", "PROCUREMENT")),
    ("PROCUREMENT", "PROCUREMENT_IN_PROGRESS", True, ("MATERIAL_READY", "PRODUCTION")),
    ("PRODUCTION", "MATERIAL_READY", False, ("PRODUCTION_COMPLETED", "QUALITY")),
    ("PRODUCTION", "IN_PRODUCTION", False, ("PRODUCTION_COMPLETED", "QUALITY")),
    ("QUALITY", "PRODUCTION_COMPLETED", False, ("QC_IN_PROGRESS", "QUALITY")),
    ("QC", "QC_REJECTED", False, ("QC_IN_PROGRESS", "QUALITY")),
    ("SHIPMENT", "QC_APPROVED", False, ("READY_FOR_SHIPMENT", "SHIPMENT")),
    ("SHIPMENT", "READY_FOR_DISPATCH", False, ("READY_FOR_SHIPMENT", "SHIPMENT")),
])
def test_transition_table(department, status, material, expected):
    decision = resolve_acceptance(STATUS_DEPARTMENT[status], status, department, material)

    assert decision.applied is True
    assert (decision.status, decision.department) == expected


def test_design_handoff_requests_design_order():
    decision = resolve_acceptance("DESIGN_ENG", "CREATED", "INVENTORY")
    assert decision.side_effects == (CREATE_DESIGN_ORDER,)

    decision = resolve_acceptance("QUALITY", "MATERIAL_READY", "PRODUCTION")
    assert decision.side_effects == ()


@pytest.mark.parametrize("department", ["SALES", "WAREHOUSE", "", None])
def test_unknown_pairs_are_no_ops(department):
    decision = resolve_acceptance("DESIGN_ENG", "CREATED", department)

    assert decision.applied is False
    assert decision.status == "CREATED"
    assert decision.department == "DESIGN_ENG"
    assert decision.reason


def test_every_pair_resolves_to_a_known_state():
    statuses = {s.value for s in OrderStatus}
    departments = {d.value for d in Department}

    for department in [*departments, "QC"]:
        for status in statuses:
            for material in (True, False):
                decision = resolve_acceptance(STATUS_DEPARTMENT[status], status, department, material)
                assert decision.status in statuses
                assert decision.department in departments
                assert STATUS_DEPARTMENT[decision.status] == decision.department


def test_department_aliases():
    assert normalize_department("qc") == "QUALITY"
    assert normalize_department(Department.SHIPMENT) == "SHIPMENT"
    assert normalize_department(" procurement ") == "PROCUREMENT"


@pytest.mark.parametrize("code, expected", [
    ("SFG-FRAME-2", "SFG"),
    ("FG-PANEL-01", "FG"),
    ("SA-HINGE", "SA"),
    ("RM-PLATE-10", "RM"),
    ("XYZ-999", "FG"),
])
def test_item_type_inference(code, expected):
    assert infer_item_type(code) == expected


class TestAcceptance:

    def test_design_acceptance_opens_design_order(self, db, make_order):
        order = make_order()

        order, decision = SalesOrderService.accept_request(db, order.id, "DESIGN_ENG")

        assert decision.applied is True
        assert order.status == "DESIGN_IN_REVIEW"
        assert order.current_department == "DESIGN_ENG"
        assert order.request_accepted is True
        design_order = DesignOrderService.get_design_order_for_sales_order(db, order.id)
        assert design_order.status == "IN_DESIGN"
        audit = db.query(AuditLog).filter(AuditLog.record_id == str(order.id)).one()
        assert audit.action == "ACCEPT"
        assert audit.before_data == {"status": "CREATED", "current_department": "DESIGN_ENG"}

    def test_design_order_is_reused(self, db, make_order):
        order = make_order()

        SalesOrderService.accept_request(db, order.id, "INVENTORY")
        SalesOrderService.accept_request(db, order.id, "DESIGN_ENG")

        assert db.query(DesignOrder).filter(DesignOrder.sales_order_id == order.id).count() == 1

    def test_procurement_respects_material_flag(self, db, make_order):
        short = make_order(material_available=False)
        stocked = make_order(material_available=True)

        short, _ = SalesOrderService.accept_request(db, short.id, "PROCUREMENT")
        stocked, _ = SalesOrderService.accept_request(db, stocked.id, "PROCUREMENT")

        assert (short.status, short.current_department) == ("MATERIAL_PURCHASE_IN_PROGRESS", "PROCUREMENT")
        assert (stocked.status, stocked.current_department) == ("MATERIAL_READY", "PRODUCTION")

    def test_no_op_still_marks_request_accepted(self, db, make_order):
        order = make_order()

        order, decision = SalesOrderService.accept_request(db, order.id, "SHIPMENT")

        assert decision.applied is False
        assert order.status == "CREATED"
        assert order.request_accepted is True
        assert db.query(AuditLog).count() == 0

    def test_failed_side_effect_rolls_back(self, db, make_order, monkeypatch):
        order = make_order()

        def fail(*args, **kwargs):
            raise RuntimeError("design service unavailable")

        monkeypatch.setattr(DesignOrderService, "create_design_order", staticmethod(fail))

        with pytest.raises(RuntimeError):
            SalesOrderService.accept_request(db, order.id, "DESIGN_ENG")

        order = db.get(SalesOrder, order.id)
        assert order.status == "CREATED"
        assert order.request_accepted is False
        assert db.query(AuditLog).count() == 0
        assert db.query(DesignOrder).count() == 0

    def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            SalesOrderService.accept_request(db, uuid4(), "DESIGN_ENG")

    def test_bulk_accept_accepts_items(self, db, make_order):
        orders = [make_order("FG-PANEL-01", "RM-PLATE-10"), make_order()]

        results = SalesOrderService.bulk_accept_requests(db, [o.id for o in orders], "DESIGN_ENG")

        assert [decision.status for _, decision in results] == ["DESIGN_IN_REVIEW", "DESIGN_IN_REVIEW"]
        for order, _ in results:
            assert {i.status for i in order.items} == {"ACCEPTED"}

    def test_bulk_with_missing_id_writes_nothing(self, db, make_order):
        order = make_order()

        with pytest.raises(NotFoundError):
            SalesOrderService.bulk_accept_requests(db, [order.id, uuid4()], "DESIGN_ENG")

        order = db.get(SalesOrder, order.id)
        assert order.status == "CREATED"
        assert {i.status for i in order.items} == {"PENDING"}
        assert db.query(DesignOrder).count() == 0


class TestRejectionAndApproval:

    def test_reject_design_requires_reason(self, db, make_order):
        order = make_order()

        with pytest.raises(ValidationError) as exc:
            SalesOrderService.reject_design(db, order.id, "  ")

        assert exc.value.errors[0]["field"] == "reason"

    def test_reject_design_returns_order_to_sales(self, db, make_order):
        order = make_order()
        SalesOrderService.accept_request(db, order.id, "DESIGN_ENG")

        order = SalesOrderService.reject_design(db, order.id, "Drawing revision missing")

        assert (order.status, order.current_department) == ("DESIGN_QUERY", "SALES")
        assert order.request_accepted is False
        rejection = db.query(SalesOrderRejection).one()
        assert rejection.rejection_type == "DESIGN"
        assert rejection.from_status == "DESIGN_IN_REVIEW"
        assert {i.status for i in order.items} == {"PENDING"}

    def test_resubmit_after_query(self, db, make_order):
        order = make_order()
        SalesOrderService.reject_request(db, order.id, "Customer PO missing")

        order = SalesOrderService.send_order_to_design(db, order.id)

        assert (order.status, order.current_department) == ("DESIGN_IN_REVIEW", "DESIGN_ENG")
        assert order.request_accepted is False

    def test_approve_design_creates_quotation(self, db, make_order):
        order = make_order("FG-PANEL-01", "SA-HINGE")
        SalesOrderService.accept_request(db, order.id, "DESIGN_ENG")

        order = SalesOrderService.approve_design_and_create_quotation(db, order.id)

        assert (order.status, order.current_department) == ("DESIGN_APPROVED", "PROCUREMENT")
        assert order.request_accepted is False
        assert {i.status for i in order.items} == {"ACCEPTED"}
        assert DesignOrderService.get_design_order_for_sales_order(db, order.id).status == "COMPLETED"
        quotation = db.get(Quotation, order.quotation_id)
        assert quotation.status == "DRAFT"
        assert sorted(i.item_code for i in quotation.items) == ["FG-PANEL-01", "SA-HINGE"]

    def test_approval_reuses_linked_quotation(self, db, make_order):
        order = make_order()
        first = SalesOrderService.approve_design_and_create_quotation(db, order.id).quotation_id

        SalesOrderService.send_order_to_design(db, order.id)
        order = SalesOrderService.approve_design_and_create_quotation(db, order.id)

        assert order.quotation_id == first
        assert db.query(Quotation).count() == 1

    @pytest.mark.parametrize("status", ["MATERIAL_READY", "DISPATCHED", "CLOSED"])
    def test_design_actions_need_a_design_stage(self, db, make_order, status):
        order = make_order()
        SalesOrderService.update_sales_order_status(db, order.id, status)

        with pytest.raises(ConflictError) as exc:
            SalesOrderService.approve_design_and_create_quotation(db, order.id)
        assert exc.value.details == {"status": status}
        with pytest.raises(ConflictError):
            SalesOrderService.send_order_to_design(db, order.id)

        order = db.get(SalesOrder, order.id)
        assert order.status == status
        assert order.quotation_id is None
        assert db.query(Quotation).count() == 0

    def test_bulk_approval_is_all_or_nothing(self, db, make_order):
        ready = make_order()
        shipped = make_order()
        SalesOrderService.update_sales_order_status(db, shipped.id, "DISPATCHED")

        with pytest.raises(ConflictError):
            SalesOrderService.bulk_approve_designs(db, [ready.id, shipped.id])

        assert db.get(SalesOrder, ready.id).status == "CREATED"
        assert db.query(Quotation).count() == 0

    def test_bulk_reject(self, db, make_order):
        orders = [make_order(), make_order()]

        SalesOrderService.bulk_reject_designs(db, [o.id for o in orders], "Out of scope")

        assert db.query(SalesOrderRejection).count() == 2
        assert {o.status for o in db.query(SalesOrder).all()} == {"DESIGN_QUERY"}


class TestStatusUpdates:

    def test_manual_status_sets_department_and_audits(self, db, make_order):
        order = make_order()
        user_id = uuid4()

        order = SalesOrderService.update_sales_order_status(
            db, order.id, "IN_PRODUCTION", user_id=user_id, remarks="Shop floor start"
        )

        assert order.current_department == "PRODUCTION"
        audit = db.query(AuditLog).one()
        assert audit.action == "STATUS_CHANGE"
        assert audit.performed_by == user_id
        assert audit.remarks == "Shop floor start"
        assert audit.after_data == {"status": "IN_PRODUCTION", "current_department": "PRODUCTION"}

    def test_unknown_status(self, db, make_order):
        order = make_order()

        with pytest.raises(ValidationError):
            SalesOrderService.update_sales_order_status(db, order.id, "LOST_IN_SPACE")

    def test_item_rejection_is_logged(self, db, make_order):
        order = make_order("FG-PANEL-01", "FG-PANEL-02")
        items = {i.item_code: i.id for i in order.items}

        SalesOrderService.update_sales_order_item_status(db, items["FG-PANEL-01"], "REJECTED", reason="Obsolete drawing")
        SalesOrderService.bulk_update_item_status(db, [items["FG-PANEL-02"]], "ACCEPTED")

        assert {i.item_code: i.status for i in db.get(SalesOrder, order.id).items} == {
            "FG-PANEL-01": "REJECTED", "FG-PANEL-02": "ACCEPTED",
        }
        assert db.query(SalesOrderItemRejection).one().reason == "Obsolete drawing"


class TestDeletion:

    def test_plain_delete(self, db, make_order):
        order = make_order()

        result = SalesOrderService.delete_sales_order(db, order.id)

        assert result["deleted"] == str(order.id)
        assert db.query(SalesOrder).count() == 0

    def test_children_block_delete_without_cascade(self, db, make_order):
        order = make_order()
        SalesOrderService.approve_design_and_create_quotation(db, order.id)

        with pytest.raises(ConflictError) as exc:
            SalesOrderService.delete_sales_order(db, order.id)

        assert exc.value.details == {"design_orders": 1, "quotations": 1, "shipments": 0}
        assert db.query(SalesOrder).count() == 1

    def test_cascade_delete(self, db, make_order):
        order = make_order()
        SalesOrderService.approve_design_and_create_quotation(db, order.id)

        result = SalesOrderService.delete_sales_order(db, order.id, cascade=True)

        assert result["removed"]["quotations"] == 1
        assert db.query(SalesOrder).count() == 0
        assert db.query(DesignOrder).count() == 0
        assert db.query(Quotation).count() == 0
