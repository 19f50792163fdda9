"""Ranking of alternative suppliers for a rejected purchase order.

Each signal contributes a fixed share of a 0-100 priority score:

* recent delivery performance (last five orders in the past 90 days)
* specialisation in the materials being reassigned
* location match with the project
* current availability
* number of communication channels the supplier can be reached on
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.core.workflow.states import OrderStatus
from procurement.models.models import PurchaseOrder, PurchaseOrderItem, Supplier


PERFORMANCE_WEIGHT = 30
SPECIALIZATION_WEIGHT = 25
PROXIMITY_WEIGHT = 15
AVAILABILITY_WEIGHT = 20
COMMUNICATION_WEIGHT = 10

PERFORMANCE_WINDOW_DAYS = 90
PERFORMANCE_SAMPLE_SIZE = 5
SPECIALIST_MIN_ORDERS = 3

_SUCCESSFUL_STATUSES = (
    OrderStatus.ORDER_ACCEPTED.value,
    OrderStatus.READY_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
)
_UNANSWERED_STATUSES = (OrderStatus.ORDER_SENT.value,)


@dataclass
class SupplierScore:
    supplier: Supplier
    priority: int = 0
    reasons: list[str] = field(default_factory=list)

    @property
    def has_signal(self) -> bool:
        return self.priority > 0


def _performance(db: Session, supplier: Supplier, since: datetime) -> tuple[float, str | None]:
    recent = (
        db.query(PurchaseOrder.status)
        .filter(
            PurchaseOrder.supplier_id == supplier.id,
            PurchaseOrder.created_at >= since,
            PurchaseOrder.deleted_at.is_(None),
            PurchaseOrder.status.notin_(_UNANSWERED_STATUSES),
        )
        .order_by(PurchaseOrder.created_at.desc())
        .limit(PERFORMANCE_SAMPLE_SIZE)
        .all()
    )
    if not recent:
        return 0.0, None
    delivered = sum(1 for (status,) in recent if status == OrderStatus.DELIVERED.value)
    rate = delivered / len(recent)
    if rate >= 0.9:
        return PERFORMANCE_WEIGHT * rate, f"Excellent recent delivery record ({delivered}/{len(recent)} delivered)"
    if rate >= 0.6:
        return PERFORMANCE_WEIGHT * rate, f"Good recent delivery record ({delivered}/{len(recent)} delivered)"
    return PERFORMANCE_WEIGHT * rate, None


def _specialization(db: Session, supplier: Supplier, material_names: list[str]) -> tuple[float, str | None]:
    if not material_names:
        return 0.0, None
    lowered = [name.lower() for name in material_names]
    count = (
        db.query(func.count(PurchaseOrderItem.id))
        .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderItem.purchase_order_id)
        .filter(
            PurchaseOrder.supplier_id == supplier.id,
            PurchaseOrder.deleted_at.is_(None),
            PurchaseOrder.status.in_(_SUCCESSFUL_STATUSES),
            func.lower(PurchaseOrderItem.material_name).in_(lowered),
        )
        .scalar()
    ) or 0
    if count >= SPECIALIST_MIN_ORDERS:
        return SPECIALIZATION_WEIGHT, f"Specialist: supplied these materials {count} times"
    specialties = {s.lower() for s in (supplier.specialties or [])}
    if any(name in specialties or any(s in name for s in specialties) for name in lowered):
        return SPECIALIZATION_WEIGHT * 0.6, "Lists these materials among its specialties"
    if count > 0:
        return SPECIALIZATION_WEIGHT * 0.4, "Has supplied these materials before"
    return 0.0, None


def _proximity(supplier: Supplier, project_location: str | None) -> tuple[float, str | None]:
    if not supplier.location or not project_location:
        return 0.0, None
    a = supplier.location.strip().lower()
    b = project_location.strip().lower()
    if a == b or a in b or b in a:
        return PROXIMITY_WEIGHT, f"Located near the project ({supplier.location})"
    return 0.0, None


def _availability(supplier: Supplier) -> tuple[float, str | None]:
    status = (supplier.availability_status or "").lower()
    if status == "available":
        return AVAILABILITY_WEIGHT, "Currently available"
    if status == "limited":
        return AVAILABILITY_WEIGHT / 2, "Limited availability"
    return 0.0, None


def _communication(supplier: Supplier) -> tuple[float, str | None]:
    channels = sum(
        [
            bool(supplier.phone and supplier.sms_enabled),
            bool(supplier.email and supplier.email_enabled),
            bool(supplier.push_enabled),
        ]
    )
    if channels >= 2:
        return COMMUNICATION_WEIGHT, f"Reachable on {channels} channels"
    return 0.0, None


def score_supplier(
    db: Session,
    supplier: Supplier,
    *,
    material_names: list[str],
    project_location: str | None,
    now: datetime | None = None,
) -> SupplierScore:
    since = (now or utcnow()) - timedelta(days=PERFORMANCE_WINDOW_DAYS)
    score = SupplierScore(supplier=supplier)
    total = 0.0
    for points, reason in (
        _performance(db, supplier, since),
        _specialization(db, supplier, material_names),
        _proximity(supplier, project_location),
        _availability(supplier),
        _communication(supplier),
    ):
        total += points
        if reason:
            score.reasons.append(reason)
    score.priority = max(0, min(100, round(total)))
    return score


def rank_suppliers(
    db: Session,
    order: PurchaseOrder,
    suppliers: list[Supplier],
    *,
    material_names: list[str] | None = None,
    now: datetime | None = None,
) -> list[SupplierScore]:
    """Score every candidate and return them best first (ties by name)."""
    names = material_names if material_names is not None else [item.material_name for item in order.items]
    project_location = order.project.location if order.project is not None else None
    scores = [
        score_supplier(db, supplier, material_names=names, project_location=project_location, now=now)
        for supplier in suppliers
    ]
    scores.sort(key=lambda s: (-s.priority, s.supplier.name.lower()))
    return scores
