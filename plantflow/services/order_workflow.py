"""
Sales order department hand-off rules.

The acceptance transitions are kept as data keyed by (department, status).
`resolve_acceptance` is a pure function over that table; callers apply the
returned decision inside their own transaction.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from plantflow.models import OrderStatus, Department

CREATE_DESIGN_ORDER = "CREATE_DESIGN_ORDER"

DEPARTMENT_ALIASES = {
    "QC": Department.QUALITY.value,
}


@dataclass(frozen=True)
class Transition:
    status: str
    department: str
    side_effects: Tuple[str, ...] = ()
    # Used instead of status/department when material is not yet available
    shortfall_status: Optional[str] = None
    shortfall_department: Optional[str] = None


@dataclass(frozen=True)
class AcceptanceDecision:
    status: str
    department: str
    side_effects: Tuple[str, ...] = field(default_factory=tuple)
    applied: bool = True
    reason: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "status": self.status,
            "department": self.department,
            "side_effects": list(self.side_effects),
            "applied": self.applied,
            "reason": self.reason,
        }


def _rows(department: Department, statuses: Iterable[OrderStatus], transition: Transition) -> Dict:
    return {(department.value, s.value): transition for s in statuses}


ACCEPT_TRANSITIONS: Dict[Tuple[str, str], Transition] = {
    **_rows(
        Department.INVENTORY,
        [OrderStatus.CREATED],
        Transition(OrderStatus.DESIGN_IN_REVIEW.value, Department.DESIGN_ENG.value, (CREATE_DESIGN_ORDER,)),
    ),
    **_rows(
        Department.DESIGN_ENG,
        [OrderStatus.CREATED, OrderStatus.DESIGN_IN_REVIEW],
        Transition(OrderStatus.DESIGN_IN_REVIEW.value, Department.DESIGN_ENG.value, (CREATE_DESIGN_ORDER,)),
    ),
    **_rows(
        Department.PROCUREMENT,
        [OrderStatus.CREATED, OrderStatus.DESIGN_IN_REVIEW,
         OrderStatus.DESIGN_APPROVED, OrderStatus.PROCUREMENT_IN_PROGRESS],
        Transition(
            OrderStatus.MATERIAL_READY.value, Department.PRODUCTION.value,
            shortfall_status=OrderStatus.MATERIAL_PURCHASE_IN_PROGRESS.value,
            shortfall_department=Department.PROCUREMENT.value,
        ),
    ),
    **_rows(
        Department.PRODUCTION,
        [OrderStatus.MATERIAL_READY, OrderStatus.IN_PRODUCTION],
        Transition(OrderStatus.PRODUCTION_COMPLETED.value, Department.QUALITY.value),
    ),
    **_rows(
        Department.QUALITY,
        [OrderStatus.PRODUCTION_COMPLETED, OrderStatus.QC_IN_PROGRESS, OrderStatus.QC_REJECTED],
        Transition(OrderStatus.QC_IN_PROGRESS.value, Department.QUALITY.value),
    ),
    **_rows(
        Department.SHIPMENT,
        [OrderStatus.READY_FOR_SHIPMENT, OrderStatus.QC_APPROVED, OrderStatus.READY_FOR_DISPATCH],
        Transition(OrderStatus.READY_FOR_SHIPMENT.value, Department.SHIPMENT.value),
    ),
}

# Owning department for every status, used by manual status updates
STATUS_DEPARTMENT: Dict[str, str] = {
    OrderStatus.CREATED.value: Department.DESIGN_ENG.value,
    OrderStatus.DESIGN_IN_REVIEW.value: Department.DESIGN_ENG.value,
    OrderStatus.DESIGN_QUERY.value: Department.SALES.value,
    OrderStatus.DESIGN_APPROVED.value: Department.PROCUREMENT.value,
    OrderStatus.PROCUREMENT_IN_PROGRESS.value: Department.PROCUREMENT.value,
    OrderStatus.MATERIAL_PURCHASE_IN_PROGRESS.value: Department.PROCUREMENT.value,
    OrderStatus.MATERIAL_READY.value: Department.PRODUCTION.value,
    OrderStatus.IN_PRODUCTION.value: Department.PRODUCTION.value,
    OrderStatus.PRODUCTION_COMPLETED.value: Department.QUALITY.value,
    OrderStatus.QC_IN_PROGRESS.value: Department.QUALITY.value,
    OrderStatus.QC_APPROVED.value: Department.SHIPMENT.value,
    OrderStatus.QC_REJECTED.value: Department.QUALITY.value,
    OrderStatus.READY_FOR_SHIPMENT.value: Department.SHIPMENT.value,
    OrderStatus.READY_FOR_DISPATCH.value: Department.SHIPMENT.value,
    OrderStatus.DISPATCHED.value: Department.SHIPMENT.value,
    OrderStatus.DELIVERED.value: Department.SHIPMENT.value,
    OrderStatus.CLOSED.value: Department.SALES.value,
    OrderStatus.CANCELLED.value: Department.SALES.value,
}


def normalize_department(department: Optional[str]) -> str:
    code = getattr(department, "value", department) or ""
    code = code.strip().upper()
    return DEPARTMENT_ALIASES.get(code, code)


def resolve_acceptance(
    current_department: str,
    current_status: str,
    accepting_department: str,
    material_available: bool = False
) -> AcceptanceDecision:
    """
    Decide what accepting an order means for the given department.

    Pairs missing from the table leave status and department unchanged; the
    decision then carries applied=False and the reason.
    """
    department = normalize_department(accepting_department)
    transition = ACCEPT_TRANSITIONS.get((department, current_status))

    if transition is None:
        reason = f"{department or 'UNKNOWN'} cannot take over an order in {current_status}"
        if current_department and current_department != department:
            reason += f" owned by {current_department}"
        return AcceptanceDecision(
            status=current_status,
            department=current_department,
            applied=False,
            reason=reason,
        )

    if transition.shortfall_status and not material_available:
        return AcceptanceDecision(
            status=transition.shortfall_status,
            department=transition.shortfall_department,
            side_effects=transition.side_effects,
        )

    return AcceptanceDecision(
        status=transition.status,
        department=transition.department,
        side_effects=transition.side_effects,
    )
