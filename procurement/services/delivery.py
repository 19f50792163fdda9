"""Delivery confirmation for accepted purchase orders.

Delivery evidence is committed before material entries are created so the
delivery note survives a failed material creation; the material step can then
be retried with ``create_material``.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.core.errors import MaterialCreationFailed, ValidationError
from procurement.core.workflow.states import FinancialStatus, OrderAction, OrderStatus, advance_financial_status, check_transition
from procurement.models.models import PurchaseOrder, User
from procurement.schemas.delivery import ConfirmDeliveryInput, CreateMaterialInput
from procurement.services import finance, sms
from procurement.services.material import MaterialCreationResult, MaterialCreator, create_material_from_purchase_order, deliverable_items
from procurement.services.notifications import user_ids_with_role
from procurement.services.permissions import ensure_order_access, require_permission
from procurement.services.purchase_order import (
    commit_transition,
    get_purchase_order,
    notify_users,
    order_snapshot,
    record_transition,
)


logger = logging.getLogger(__name__)

METHOD_OWNER_PM = "owner_pm_manual"
METHOD_SUPPLIER = "supplier_fulfill"


def _validate_delivery(order: PurchaseOrder, payload: ConfirmDeliveryInput) -> tuple[dict[str, float], dict[str, float]]:
    """Check the whole confirmation up front; returns per-material quantity and cost maps."""
    if not payload.delivery_note_file_url or not payload.delivery_note_file_url.strip():
        raise ValidationError("Delivery note is required to confirm delivery")
    if payload.actual_quantity_delivered is not None and payload.actual_quantity_delivered <= 0:
        raise ValidationError("Actual quantity delivered must be greater than 0")
    if payload.actual_unit_cost is not None and payload.actual_unit_cost < 0:
        raise ValidationError("Actual unit cost cannot be negative")

    if not order.is_bulk_order:
        if payload.material_quantities or payload.material_unit_costs:
            raise ValidationError("Per-material quantities are only accepted for bulk orders")
        return {}, {}

    if payload.actual_quantity_delivered is not None or payload.actual_unit_cost is not None:
        raise ValidationError("Report delivered quantities and costs of bulk orders per material")

    accepted = {item.material_request_id: item for item in deliverable_items(order)}
    if not accepted:
        raise ValidationError("This purchase order has no accepted materials to deliver")

    quantities: dict[str, float] = {}
    for entry in payload.material_quantities:
        item = accepted.get(entry.material_request_id)
        if item is None:
            raise ValidationError(f"Material {entry.material_request_id} is not an accepted material of this order")
        if entry.material_request_id in quantities:
            raise ValidationError(f"Quantity for {item.material_name} is listed more than once")
        if entry.quantity <= 0:
            raise ValidationError(f"Delivered quantity for {item.material_name} must be greater than 0")
        quantities[entry.material_request_id] = entry.quantity

    unit_costs: dict[str, float] = {}
    for entry in payload.material_unit_costs:
        item = accepted.get(entry.material_request_id)
        if item is None:
            raise ValidationError(f"Material {entry.material_request_id} is not an accepted material of this order")
        if entry.material_request_id in unit_costs:
            raise ValidationError(f"Unit cost for {item.material_name} is listed more than once")
        if entry.unit_cost < 0:
            raise ValidationError(f"Unit cost for {item.material_name} cannot be negative")
        unit_costs[entry.material_request_id] = entry.unit_cost
    return quantities, unit_costs


def _record_evidence(
    order: PurchaseOrder,
    payload: ConfirmDeliveryInput,
    actor: User,
    method: str,
    quantities: dict[str, float],
    unit_costs: dict[str, float],
) -> None:
    now = utcnow()
    order.delivery_note_file_url = payload.delivery_note_file_url.strip()
    order.actual_quantity_delivered = payload.actual_quantity_delivered
    order.actual_unit_cost = payload.actual_unit_cost
    order.delivery_notes = payload.notes
    order.delivery_confirmed_by = actor.id
    order.delivery_confirmed_at = now
    order.delivery_confirmation_method = method
    for item in deliverable_items(order):
        if order.is_bulk_order:
            item.actual_quantity_delivered = quantities.get(item.material_request_id)
            item.actual_unit_cost = unit_costs.get(item.material_request_id)
        else:
            item.actual_quantity_delivered = payload.actual_quantity_delivered
            item.actual_unit_cost = payload.actual_unit_cost
    order.updated_at = now


def _create_materials(
    db: Session,
    order: PurchaseOrder,
    actor: User,
    material_creator: MaterialCreator,
    *,
    notes: str | None,
) -> MaterialCreationResult:
    quantities = {
        item.material_request_id: item.actual_quantity_delivered
        for item in order.items
        if item.actual_quantity_delivered is not None
    }
    unit_costs = {
        item.material_request_id: item.actual_unit_cost
        for item in order.items
        if item.actual_unit_cost is not None
    }
    try:
        return material_creator(
            db,
            order,
            creator_id=actor.id,
            actual_quantity_received=order.actual_quantity_delivered,
            actual_unit_cost=order.actual_unit_cost,
            material_quantities=quantities or None,
            material_unit_costs=unit_costs or None,
            notes=notes,
            is_automatic=False,
        )
    except Exception as exc:
        db.rollback()
        logger.exception("Material creation failed for purchase order %s", order.purchase_order_number)
        raise MaterialCreationFailed(str(exc)) from exc


def _complete(order: PurchaseOrder, status: OrderStatus, result: MaterialCreationResult) -> None:
    now = utcnow()
    order.status = status.value
    order.financial_status = advance_financial_status(order.financial_status, FinancialStatus.FULFILLED)
    order.fulfilled_at = now
    order.updated_at = now
    finance.record_spend(order, round(sum(m.total_cost for m in result.created_materials), 2))


def _announce(db: Session, order: PurchaseOrder, actor: User, sms_sender: sms.SmsSender | None) -> None:
    if order.status == OrderStatus.READY_FOR_DELIVERY.value:
        title = f"{order.purchase_order_number} ready for delivery"
        message = f"{order.supplier_name} has fulfilled purchase order {order.purchase_order_number}; verify receipt on site"
    else:
        title = f"{order.purchase_order_number} delivered"
        message = f"Delivery of purchase order {order.purchase_order_number} has been confirmed"
    notify_users(
        db,
        order,
        [order.created_by, *user_ids_with_role(db, "clerk")],
        kind="purchase_order_delivery",
        title=title,
        message=message,
        created_by=actor.id,
    )
    sms.send_supplier_sms(sms_sender or sms.default_sms_sender(), order.supplier, sms.generate_delivery_confirmation_sms(order))


def _deliver(
    db: Session,
    order: PurchaseOrder,
    payload: ConfirmDeliveryInput,
    actor: User,
    *,
    action: OrderAction,
    method: str,
    result_status: OrderStatus,
    material_creator: MaterialCreator | None,
    sms_sender: sms.SmsSender | None,
) -> tuple[PurchaseOrder, MaterialCreationResult]:
    check_transition(order, action)
    quantities, unit_costs = _validate_delivery(order, payload)

    before = order_snapshot(order)
    _record_evidence(order, payload, actor, method, quantities, unit_costs)
    commit_transition(db, order, action)
    db.refresh(order)

    result = _create_materials(db, order, actor, material_creator or create_material_from_purchase_order, notes=payload.notes)
    _complete(order, result_status, result)
    commit_transition(db, order, action)
    db.refresh(order)
    logger.info(
        "Purchase order %s moved to %s via %s (%s materials)",
        order.purchase_order_number,
        order.status,
        method,
        len(result.material_ids),
    )

    record_transition(db, order, f"purchase_order_{action.value}", actor.id, before)
    _announce(db, order, actor, sms_sender)
    return order, result


def confirm_delivery(
    db: Session,
    order_id: int,
    payload: ConfirmDeliveryInput,
    actor: User,
    material_creator: MaterialCreator | None = None,
    sms_sender: sms.SmsSender | None = None,
) -> tuple[PurchaseOrder, MaterialCreationResult]:
    """Owner/PM confirmation of a delivery; the order ends ``delivered``."""
    require_permission(actor, "confirm_delivery")
    order = get_purchase_order(db, order_id)
    return _deliver(
        db,
        order,
        payload,
        actor,
        action=OrderAction.CONFIRM_DELIVERY,
        method=METHOD_OWNER_PM,
        result_status=OrderStatus.DELIVERED,
        material_creator=material_creator,
        sms_sender=sms_sender,
    )


def fulfill_order(
    db: Session,
    order_id: int,
    payload: ConfirmDeliveryInput,
    actor: User,
    material_creator: MaterialCreator | None = None,
    sms_sender: sms.SmsSender | None = None,
) -> tuple[PurchaseOrder, MaterialCreationResult]:
    """Supplier-side fulfilment; the order waits in ``ready_for_delivery`` for a clerk."""
    require_permission(actor, "fulfill_purchase_order")
    order = get_purchase_order(db, order_id)
    ensure_order_access(db, actor, order)
    return _deliver(
        db,
        order,
        payload,
        actor,
        action=OrderAction.FULFILL,
        method=METHOD_SUPPLIER,
        result_status=OrderStatus.READY_FOR_DELIVERY,
        material_creator=material_creator,
        sms_sender=sms_sender,
    )


def create_material(
    db: Session,
    order_id: int,
    payload: CreateMaterialInput,
    actor: User,
    material_creator: MaterialCreator | None = None,
    sms_sender: sms.SmsSender | None = None,
) -> tuple[PurchaseOrder, MaterialCreationResult]:
    """Create material entries from delivery evidence that is already on the order."""
    require_permission(actor, "create_material_from_order")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.CREATE_MATERIAL)
    if not order.delivery_note_file_url:
        raise ValidationError("Record a delivery note before creating materials from this purchase order")

    before = order_snapshot(order)
    result = _create_materials(db, order, actor, material_creator or create_material_from_purchase_order, notes=payload.notes)
    _complete(order, OrderStatus.READY_FOR_DELIVERY, result)
    commit_transition(db, order, OrderAction.CREATE_MATERIAL)
    db.refresh(order)
    logger.info("Created materials from purchase order %s", order.purchase_order_number)

    record_transition(db, order, "purchase_order_material_created", actor.id, before)
    _announce(db, order, actor, sms_sender)
    return order, result


def verify_receipt(db: Session, order_id: int, actor: User) -> PurchaseOrder:
    """Site clerk confirms that fulfilled goods arrived."""
    require_permission(actor, "verify_delivery")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.VERIFY_RECEIPT)

    now = utcnow()
    before = order_snapshot(order)
    order.status = OrderStatus.DELIVERED.value
    order.received_verified_by = actor.id
    order.received_verified_at = now
    order.updated_at = now
    commit_transition(db, order, OrderAction.VERIFY_RECEIPT)
    db.refresh(order)
    logger.info("Receipt of purchase order %s verified by user %s", order.purchase_order_number, actor.id)

    record_transition(db, order, "purchase_order_receipt_verified", actor.id, before)
    notify_users(
        db,
        order,
        [order.created_by],
        kind="purchase_order_delivery",
        title=f"{order.purchase_order_number} delivered",
        message=f"Receipt of purchase order {order.purchase_order_number} has been verified on site",
        created_by=actor.id,
    )
    return order
