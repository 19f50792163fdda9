"""Follow-up on rejected purchase orders.

A rejected order can be retried with the same supplier on adjusted terms
(at most ``MAX_RETRY_ATTEMPTS`` times, and only when the rejection reason is
retryable), or its materials can be sent to alternative suppliers. Sending
alternatives creates new orders; the original keeps its status.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date

from sqlalchemy import or_
from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.core.config import settings
from procurement.core.errors import InvalidStateTransition, ValidationError
from procurement.core.workflow.outcomes import ItemOutcome, unplaced_rejections
from procurement.core.workflow.states import MAX_RETRY_ATTEMPTS, OrderAction, OrderStatus, check_transition
from procurement.models.models import PurchaseOrder, PurchaseOrderItem, Supplier, User
from procurement.schemas.purchase_order import PurchaseOrderItemCreate
from procurement.schemas.reassignment import (
    AlternativeSuppliersRead,
    AlternativesInput,
    AutoReassignResult,
    CreatedAlternativeOrder,
    MaterialAssignment,
    RetryAdjustments,
    RetryInput,
    SupplierSplit,
    SupplierSuggestion,
)
from procurement.services import sms
from procurement.services.permissions import require_permission
from procurement.services.purchase_order import (
    active_items,
    build_purchase_order,
    commit_transition,
    get_active_supplier,
    get_purchase_order,
    issue_response_token,
    notify_users,
    order_snapshot,
    recalculate_order_totals,
    record_transition,
    send_order_to_supplier,
    validate_delivery_date,
    validate_quantity,
    validate_unit_cost,
)
from procurement.services.supplier_scoring import SupplierScore, rank_suppliers


logger = logging.getLogger(__name__)

SEARCH_MODES = ("simple", "hybrid", "smart")
MAX_SEARCH_LENGTH = 100
MAX_LIMIT = 100
_DEFAULT_LIMITS = {"simple": 50, "hybrid": 10, "smart": 10}
AUTO_REASSIGN_DEFAULT_LIMIT = 5
AUTO_REASSIGN_MAX_LIMIT = 10


# Same-supplier retry

def _require_open_rejections(order: PurchaseOrder, action: OrderAction) -> list[PurchaseOrderItem]:
    """Rejected line items still owned by the order; none left means it was fully reassigned."""
    items = unplaced_rejections(order.items)
    if not items:
        raise InvalidStateTransition(
            order.status,
            action.value,
            "All rejected materials of this purchase order have already been sent to alternative suppliers",
        )
    return items


def _validate_adjustments(adjustments: RetryAdjustments) -> None:
    validate_unit_cost(adjustments.unit_cost)
    validate_quantity(adjustments.quantity_ordered)
    validate_delivery_date(adjustments.delivery_date, future_only=True)


def _change(changes: dict, field: str, old, new) -> None:
    if new is None or new == old:
        return
    changes[field] = {
        "from": old.isoformat() if isinstance(old, date) else old,
        "to": new.isoformat() if isinstance(new, date) else new,
    }


def retry_with_same_supplier(
    db: Session,
    order_id: int,
    payload: RetryInput,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> PurchaseOrder:
    """Re-send a rejected order to the same supplier with at least one adjusted term."""
    require_permission(actor, "retry_purchase_order")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.RETRY)
    retry_items = _require_open_rejections(order, OrderAction.RETRY)
    if order.retry_count >= MAX_RETRY_ATTEMPTS:
        raise ValidationError(f"Maximum retry attempts ({MAX_RETRY_ATTEMPTS}) reached")
    if not order.is_retryable:
        raise ValidationError(
            f"This rejection cannot be resolved by retrying: {order.retry_recommendation or 'Manual review required'}"
        )

    adjustments = payload.adjustments
    _validate_adjustments(adjustments)

    changes: dict = {}
    item_changes: dict[str, dict] = {}
    _change(changes, "delivery_date", order.delivery_date, adjustments.delivery_date)
    _change(changes, "terms", order.terms, adjustments.terms)

    if order.is_bulk_order:
        if adjustments.unit_cost is not None or adjustments.quantity_ordered is not None:
            raise ValidationError("Adjust quantities and unit costs of bulk orders per material")
        by_request = {item.material_request_id: item for item in retry_items}
        for adjustment in payload.material_adjustments:
            item = by_request.get(adjustment.material_request_id)
            if item is None:
                raise ValidationError(f"Material {adjustment.material_request_id} is not a rejected material of this order")
            validate_quantity(adjustment.quantity)
            validate_unit_cost(adjustment.unit_cost)
            per_item: dict = {}
            _change(per_item, "quantity", item.quantity, adjustment.quantity)
            _change(per_item, "unit_cost", item.unit_cost, adjustment.unit_cost)
            if per_item:
                item_changes[item.material_request_id] = per_item
    else:
        if payload.material_adjustments:
            raise ValidationError("Material adjustments are only accepted for bulk orders")
        item = order.items[0]
        _change(changes, "quantity_ordered", item.quantity, adjustments.quantity_ordered)
        _change(changes, "unit_cost", item.unit_cost, adjustments.unit_cost)

    if not changes and not item_changes:
        raise ValidationError("At least one adjustment is required to retry with the same supplier")

    now = utcnow()
    before = order_snapshot(order)

    if not order.is_bulk_order:
        item = order.items[0]
        if adjustments.quantity_ordered is not None:
            item.quantity = adjustments.quantity_ordered
        if adjustments.unit_cost is not None:
            item.unit_cost = adjustments.unit_cost
    for adjustment in payload.material_adjustments:
        item = next(i for i in retry_items if i.material_request_id == adjustment.material_request_id)
        if adjustment.quantity is not None:
            item.quantity = adjustment.quantity
        if adjustment.unit_cost is not None:
            item.unit_cost = adjustment.unit_cost
    if adjustments.delivery_date is not None:
        order.delivery_date = adjustments.delivery_date
    if adjustments.terms is not None:
        order.terms = adjustments.terms

    for item in retry_items:
        item.response_status = ItemOutcome.PENDING.value
        item.response_notes = None
        item.responded_at = None
        item.rejection_reason = None
        item.rejection_subcategory = None
        item.is_retryable = None
        item.needs_reassignment = False
    recalculate_order_totals(order)

    history = list(order.retry_adjustments or [])
    history.append(
        {
            "attempt": order.retry_count + 1,
            "changes": changes,
            "material_changes": item_changes,
            "notes": payload.notes,
            "previous_rejection_reason": order.rejection_reason,
            "requested_by": actor.id,
            "requested_at": now.isoformat(),
        }
    )
    order.retry_adjustments = history
    order.retry_count += 1
    order.retry_requested_at = now
    order.retry_requested_by = actor.id
    if payload.notes:
        order.notes = payload.notes

    order.status = OrderStatus.ORDER_SENT.value
    order.supplier_response = None
    order.supplier_response_date = None
    order.supplier_notes = None
    order.supplier_modifications = None
    order.modification_approved = None
    order.rejection_reason = None
    order.rejection_subcategory = None
    order.rejection_metadata = None
    order.is_retryable = None
    order.retry_recommendation = None
    order.needs_reassignment = False
    issue_response_token(order, now)
    order.updated_at = now

    commit_transition(db, order, OrderAction.RETRY)
    db.refresh(order)
    logger.info(
        "Purchase order %s retried with supplier %s (attempt %s)",
        order.purchase_order_number,
        order.supplier_id,
        order.retry_count,
    )

    record_transition(db, order, "purchase_order_retried", actor.id, before)
    send_order_to_supplier(db, order, sms_sender, retry=True)
    return order


# Alternative suppliers

def _suggestion(supplier: Supplier, score: SupplierScore | None = None) -> SupplierSuggestion:
    return SupplierSuggestion(
        id=supplier.id,
        name=supplier.name,
        email=supplier.email,
        phone=supplier.phone,
        contact_person=supplier.contact_person,
        location=supplier.location,
        availability_status=supplier.availability_status,
        priority=score.priority if score is not None else 0,
        recommendation_reasons=list(score.reasons) if score is not None else [],
    )


def _candidate_suppliers(db: Session, order: PurchaseOrder, search: str | None) -> list[Supplier]:
    query = db.query(Supplier).filter(
        Supplier.status == "active",
        Supplier.deleted_at.is_(None),
        Supplier.id != order.supplier_id,
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Supplier.name.ilike(pattern),
                Supplier.email.ilike(pattern),
                Supplier.phone.ilike(pattern),
                Supplier.contact_person.ilike(pattern),
            )
        )
    return query.order_by(Supplier.name).all()


def find_alternative_suppliers(
    db: Session,
    order_id: int,
    actor: User,
    *,
    mode: str = "simple",
    search: str | None = None,
    limit: int | None = None,
) -> AlternativeSuppliersRead:
    """List suppliers that could take over a rejected order.

    ``simple`` lists active suppliers alphabetically; ``smart`` ranks them and
    falls back to the simple list when no supplier has any history; ``hybrid``
    returns the ranked suppliers with a signal plus the simple list.
    """
    require_permission(actor, "reassign_purchase_order")
    if mode not in SEARCH_MODES:
        raise ValidationError(f"Invalid mode '{mode}', must be one of: {list(SEARCH_MODES)}")
    if search is not None and len(search) > MAX_SEARCH_LENGTH:
        raise ValidationError(f"Search query must be at most {MAX_SEARCH_LENGTH} characters")
    if limit is None:
        limit = _DEFAULT_LIMITS[mode]
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {MAX_LIMIT}")

    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.SEND_ALTERNATIVES)
    to_place = _require_open_rejections(order, OrderAction.SEND_ALTERNATIVES)

    candidates = _candidate_suppliers(db, order, search)
    simple = [_suggestion(supplier) for supplier in candidates]
    if mode == "simple":
        return AlternativeSuppliersRead(purchase_order_id=order.id, mode=mode, suppliers=simple[:limit])

    material_names = [item.material_name for item in to_place]
    ranked = [score for score in rank_suppliers(db, order, candidates, material_names=material_names) if score.has_signal]

    if mode == "smart":
        if not ranked:
            return AlternativeSuppliersRead(
                purchase_order_id=order.id,
                mode=mode,
                suppliers=simple[:limit],
                used_fallback=True,
                message="Not enough history to rank suppliers; showing all active suppliers",
            )
        return AlternativeSuppliersRead(
            purchase_order_id=order.id,
            mode=mode,
            suppliers=[_suggestion(score.supplier, score) for score in ranked[:limit]],
        )

    return AlternativeSuppliersRead(
        purchase_order_id=order.id,
        mode=mode,
        suppliers=[_suggestion(score.supplier, score) for score in ranked[:limit]],
        fallback_suppliers=simple[:MAX_LIMIT],
        used_fallback=not ranked,
        message=None if ranked else "No ranked suggestions; use the full supplier list",
    )


@dataclass
class _Placement:
    item: PurchaseOrderItem
    quantity: float
    adjustments: RetryAdjustments


def _resolve_supplier(db: Session, order: PurchaseOrder, supplier_id: int, cache: dict[int, Supplier]) -> Supplier:
    if supplier_id == order.supplier_id:
        raise ValidationError("Alternative supplier must differ from the supplier who rejected the order")
    if supplier_id not in cache:
        cache[supplier_id] = get_active_supplier(db, supplier_id)
    return cache[supplier_id]


def _plan_single(db: Session, order: PurchaseOrder, payload: AlternativesInput, suppliers: dict[int, Supplier]) -> dict[int, list[_Placement]]:
    if payload.material_assignments:
        raise ValidationError("Material assignments are only accepted for bulk orders")
    if not payload.supplier_ids:
        raise ValidationError("Select at least one alternative supplier")
    if len(payload.supplier_ids) > settings.max_alternative_suppliers:
        raise ValidationError(f"At most {settings.max_alternative_suppliers} alternative suppliers can be selected")
    if len(set(payload.supplier_ids)) != len(payload.supplier_ids):
        raise ValidationError("Each alternative supplier can only be selected once")
    _validate_adjustments(payload.adjustments)

    item = order.items[0]
    if item.reassigned_order_ids:
        raise ValidationError("This purchase order has already been sent to alternative suppliers")
    quantity = payload.adjustments.quantity_ordered or item.quantity
    plan: dict[int, list[_Placement]] = {}
    for supplier_id in payload.supplier_ids:
        _resolve_supplier(db, order, supplier_id, suppliers)
        plan[supplier_id] = [_Placement(item=item, quantity=quantity, adjustments=payload.adjustments)]
    return plan


def _plan_bulk(db: Session, order: PurchaseOrder, payload: AlternativesInput, suppliers: dict[int, Supplier]) -> dict[int, list[_Placement]]:
    if payload.supplier_ids:
        raise ValidationError("Bulk orders are reassigned per material")
    if not payload.material_assignments:
        raise ValidationError("Assign at least one rejected material to an alternative supplier")

    rejected = {item.material_request_id: item for item in unplaced_rejections(order.items)}
    if not rejected:
        raise ValidationError("All rejected materials have already been sent to alternative suppliers")
    plan: dict[int, list[_Placement]] = defaultdict(list)
    seen: set[str] = set()
    for assignment in payload.material_assignments:
        item = rejected.get(assignment.material_request_id)
        if item is None:
            raise ValidationError(f"Material {assignment.material_request_id} is not a rejected material of this order")
        if assignment.material_request_id in seen:
            raise ValidationError(f"Material {assignment.material_request_id} is assigned more than once")
        seen.add(assignment.material_request_id)
        if not assignment.suppliers:
            raise ValidationError(f"Select at least one supplier for {item.material_name}")
        if len(assignment.suppliers) > settings.max_alternative_suppliers:
            raise ValidationError(
                f"At most {settings.max_alternative_suppliers} suppliers can be selected for {item.material_name}"
            )
        supplier_ids = [split.supplier_id for split in assignment.suppliers]
        if len(set(supplier_ids)) != len(supplier_ids):
            raise ValidationError(f"Each supplier can only be selected once for {item.material_name}")

        splitting = len(assignment.suppliers) > 1
        total = 0.0
        for split in assignment.suppliers:
            _resolve_supplier(db, order, split.supplier_id, suppliers)
            _validate_adjustments(split.adjustments)
            if split.quantity is None:
                if splitting:
                    raise ValidationError(f"Quantity is required for each supplier when splitting {item.material_name}")
                quantity = split.adjustments.quantity_ordered or item.quantity
            else:
                validate_quantity(split.quantity, f"Quantity for {item.material_name}")
                quantity = split.quantity
            total += quantity
            plan[split.supplier_id].append(_Placement(item=item, quantity=quantity, adjustments=split.adjustments))
        if total > item.quantity + 1e-9:
            raise ValidationError(
                f"Split quantities for {item.material_name} ({total:g}) exceed the ordered quantity ({item.quantity:g})"
            )
    return dict(plan)


def send_to_alternative_suppliers(
    db: Session,
    order_id: int,
    payload: AlternativesInput,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> list[PurchaseOrder]:
    """Create one new order per alternative supplier for the rejected materials."""
    require_permission(actor, "reassign_purchase_order")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.SEND_ALTERNATIVES)

    suppliers: dict[int, Supplier] = {}
    if order.is_bulk_order:
        plan = _plan_bulk(db, order, payload, suppliers)
    else:
        plan = _plan_single(db, order, payload, suppliers)

    now = utcnow()
    before = order_snapshot(order)
    created: list[PurchaseOrder] = []
    reassigned: dict[str, list[int]] = defaultdict(list)
    for supplier_id, placements in plan.items():
        dates = [p.adjustments.delivery_date for p in placements if p.adjustments.delivery_date is not None]
        terms = next((p.adjustments.terms for p in placements if p.adjustments.terms), None)
        items = [
            PurchaseOrderItemCreate(
                material_request_id=p.item.material_request_id,
                material_name=p.item.material_name,
                description=p.item.description,
                unit=p.item.unit,
                quantity=p.quantity,
                unit_cost=p.adjustments.unit_cost or p.item.unit_cost,
            )
            for p in placements
        ]
        new_order = build_purchase_order(
            db,
            project=order.project,
            supplier=suppliers[supplier_id],
            items=items,
            is_bulk=len(items) > 1,
            created_by=actor.id,
            now=now,
            delivery_date=max(dates) if dates else order.delivery_date,
            terms=terms or order.terms,
            notes=payload.notes or order.notes,
            original=order,
        )
        created.append(new_order)
        for p in placements:
            reassigned[p.item.material_request_id].append(new_order.id)

    order.alternatives_sent_at = now
    order.alternatives_sent_by = actor.id
    order.alternative_order_ids = list(order.alternative_order_ids or []) + [o.id for o in created]
    for item in order.items:
        if item.material_request_id in reassigned:
            item.reassigned_order_ids = list(item.reassigned_order_ids or []) + reassigned[item.material_request_id]
            item.needs_reassignment = False
    order.needs_reassignment = any(item.needs_reassignment for item in active_items(order))
    order.updated_at = now

    commit_transition(db, order, OrderAction.SEND_ALTERNATIVES)
    db.refresh(order)
    logger.info(
        "Sent %s to %s alternative suppliers: %s",
        order.purchase_order_number,
        len(created),
        [o.purchase_order_number for o in created],
    )

    record_transition(db, order, "purchase_order_alternatives_sent", actor.id, before)
    for new_order in created:
        db.refresh(new_order)
        record_transition(db, new_order, "purchase_order_created", actor.id, None)
        send_order_to_supplier(db, new_order, sms_sender)
    notify_users(
        db,
        order,
        [order.created_by],
        kind="purchase_order_reassigned",
        title=f"{order.purchase_order_number} sent to alternative suppliers",
        message=", ".join(o.purchase_order_number for o in created),
        created_by=actor.id,
    )
    return created


def created_order_summary(order: PurchaseOrder) -> CreatedAlternativeOrder:
    return CreatedAlternativeOrder(
        id=order.id,
        purchase_order_number=order.purchase_order_number,
        supplier_id=order.supplier_id,
        supplier_name=order.supplier_name,
        material_request_ids=[item.material_request_id for item in order.items],
        total_cost=order.total_cost,
        response_token_expires_at=order.response_token_expires_at,
    )


def auto_reassign(
    db: Session,
    order_id: int,
    actor: User,
    *,
    mode: str = "simple",
    limit: int | None = None,
    auto_create: bool = False,
    sms_sender: sms.SmsSender | None = None,
) -> AutoReassignResult:
    """Suggest alternative suppliers and optionally place the order with the best one.

    With ``auto_create`` every rejected material still owned by the order is
    sent, on its current terms, to the first suggested supplier.
    """
    if limit is None:
        limit = AUTO_REASSIGN_DEFAULT_LIMIT
    if limit < 1:
        raise ValidationError("Limit must be at least 1")
    limit = min(limit, AUTO_REASSIGN_MAX_LIMIT)

    found = find_alternative_suppliers(db, order_id, actor, mode=mode, limit=limit)
    order = get_purchase_order(db, order_id)
    suggestions = found.suppliers or found.fallback_suppliers[:limit]
    if not suggestions:
        return AutoReassignResult(
            purchase_order_id=order.id,
            purchase_order_number=order.purchase_order_number,
            mode=found.mode,
            suppliers=[],
            used_fallback=found.used_fallback,
            message="No alternative suppliers found. Create a new material request or widen the supplier list.",
        )

    plural = "s" if len(suggestions) != 1 else ""
    message = found.message or f"Found {len(suggestions)} alternative supplier{plural}"
    result = AutoReassignResult(
        purchase_order_id=order.id,
        purchase_order_number=order.purchase_order_number,
        mode=found.mode,
        suppliers=suggestions,
        used_fallback=found.used_fallback,
        message=message,
    )
    if not auto_create:
        return result

    top = suggestions[0]
    notes = (
        f"Auto-reassigned from rejected {order.purchase_order_number}. "
        f"Original rejection reason: {order.rejection_reason or 'Not specified'}"
    )
    if order.is_bulk_order:
        payload = AlternativesInput(
            material_assignments=[
                MaterialAssignment(
                    material_request_id=item.material_request_id,
                    suppliers=[SupplierSplit(supplier_id=top.id)],
                )
                for item in unplaced_rejections(order.items)
            ],
            notes=notes,
        )
    else:
        payload = AlternativesInput(supplier_ids=[top.id], notes=notes)

    created = send_to_alternative_suppliers(db, order.id, payload, actor, sms_sender)
    new_order = created[0]
    logger.info(
        "Auto-reassigned %s to %s as %s (mode=%s)",
        order.purchase_order_number,
        top.name,
        new_order.purchase_order_number,
        found.mode,
    )
    result.auto_created = True
    result.created_order = created_order_summary(new_order)
    result.message = f"{message}. Created {new_order.purchase_order_number} for {top.name}"
    return result
