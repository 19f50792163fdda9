from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.models.models import Material, PurchaseOrder, PurchaseOrderItem


logger = logging.getLogger(__name__)


@dataclass
class MaterialCreationResult:
    created_materials: list[Material] = field(default_factory=list)
    material_ids: list[int] = field(default_factory=list)


class MaterialCreator(Protocol):
    def __call__(
        self,
        db: Session,
        order: PurchaseOrder,
        *,
        creator_id: int | None,
        actual_quantity_received: float | None = None,
        actual_unit_cost: float | None = None,
        material_quantities: dict[str, float] | None = None,
        material_unit_costs: dict[str, float] | None = None,
        notes: str | None = None,
        is_automatic: bool = False,
    ) -> MaterialCreationResult:
        ...


def deliverable_items(order: PurchaseOrder) -> list[PurchaseOrderItem]:
    """Accepted line items that were not handed over to another supplier."""
    return [item for item in order.items if item.response_status == "accepted" and not item.reassigned_order_ids]


def create_material_from_purchase_order(
    db: Session,
    order: PurchaseOrder,
    *,
    creator_id: int | None,
    actual_quantity_received: float | None = None,
    actual_unit_cost: float | None = None,
    material_quantities: dict[str, float] | None = None,
    material_unit_costs: dict[str, float] | None = None,
    notes: str | None = None,
    is_automatic: bool = False,
) -> MaterialCreationResult:
    """Create one material entry per deliverable line item.

    Safe to call more than once: when the order already links materials the
    existing entries are returned. Rows are flushed, not committed.
    """
    if order.linked_material_id is not None:
        existing = db.query(Material).filter(Material.purchase_order_id == order.id).order_by(Material.id).all()
        return MaterialCreationResult(created_materials=existing, material_ids=[m.id for m in existing])

    items = deliverable_items(order)
    if not items:
        raise ValueError(f"Purchase order {order.purchase_order_number} has no accepted materials to receive")

    quantities = material_quantities or {}
    unit_costs = material_unit_costs or {}
    now = utcnow()
    result = MaterialCreationResult()

    for item in items:
        if order.is_bulk_order:
            quantity = quantities.get(item.material_request_id)
            unit_cost = unit_costs.get(item.material_request_id)
        else:
            quantity = actual_quantity_received
            unit_cost = actual_unit_cost
        if quantity is None:
            quantity = item.actual_quantity_delivered if item.actual_quantity_delivered is not None else item.quantity
        if unit_cost is None:
            unit_cost = item.actual_unit_cost if item.actual_unit_cost is not None else item.unit_cost

        material = Material(
            project_id=order.project_id,
            purchase_order_id=order.id,
            purchase_order_item_id=item.id,
            material_request_id=item.material_request_id,
            name=item.material_name,
            unit=item.unit,
            quantity_received=quantity,
            unit_cost=unit_cost,
            total_cost=round(quantity * unit_cost, 2),
            supplier_id=order.supplier_id,
            supplier_name=order.supplier_name,
            status="received",
            is_automatic=is_automatic,
            notes=notes,
            created_by=creator_id,
            created_at=now,
        )
        db.add(material)
        db.flush()
        item.linked_material_id = material.id
        result.created_materials.append(material)
        result.material_ids.append(material.id)

    order.linked_material_id = result.material_ids[0]
    order.linked_material_ids = list(result.material_ids)
    logger.info(
        "Created %s material entries from purchase order %s",
        len(result.material_ids),
        order.purchase_order_number,
    )
    return result


