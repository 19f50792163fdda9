"""Supplier responses to purchase orders.

Suppliers answer either through the single-use public response link or while
signed in. Either way the response goes through the status machine, is
validated before anything changes, and is committed as one transition.
Audit, notification and SMS side effects run afterwards and never undo it.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy import update
from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.core.config import settings
from procurement.core.errors import TokenAlreadyUsed, TokenExpired, TokenInvalid, ValidationError, WorkflowError
from procurement.core.workflow.outcomes import ItemOutcome, aggregate_outcomes
from procurement.core.workflow.rejection import RetryAssessment, assess_retryability, format_rejection_reason, is_valid_reason
from procurement.core.workflow.states import OrderAction, OrderStatus, check_transition
from procurement.models.models import PurchaseOrder, PurchaseOrderItem, Supplier, User
from procurement.schemas.supplier_response import (
    AcceptInput,
    ApproveModificationInput,
    BulkResponseInput,
    MaterialResponseInput,
    ModifyInput,
    RejectInput,
    RejectModificationInput,
    ResponseItemView,
    ResponsePageRead,
    TokenResponseRequest,
)
from procurement.services import finance, sms
from procurement.services.material import MaterialCreator, create_material_from_purchase_order
from procurement.services.permissions import ensure_order_access, require_permission
from procurement.services.purchase_order import (
    active_items,
    commit_financials,
    commit_transition,
    get_purchase_order,
    issue_response_token,
    notify_users,
    order_snapshot,
    recalculate_order_totals,
    record_transition,
    response_token_expired,
    validate_delivery_date,
    validate_quantity,
    validate_unit_cost,
)


logger = logging.getLogger(__name__)

VIA_LINK = "response_link"
VIA_PORTAL = "supplier_portal"

_RESPONSE_ACTIONS = {
    "accept": OrderAction.ACCEPT,
    "reject": OrderAction.REJECT,
    "modify": OrderAction.MODIFY,
}

_STATUS_MESSAGES = {
    OrderStatus.ORDER_ACCEPTED.value: "Purchase order accepted",
    OrderStatus.ORDER_REJECTED.value: "Purchase order rejected",
    OrderStatus.ORDER_MODIFIED.value: "Modifications submitted for review",
    OrderStatus.ORDER_PARTIALLY_RESPONDED.value: "Response recorded for each material",
    OrderStatus.ORDER_SENT.value: "Purchase order re-sent to supplier",
}


def status_message(order: PurchaseOrder) -> str:
    return _STATUS_MESSAGES.get(order.status, f"Purchase order is now {order.status}")


# Token handling

def _order_for_token(db: Session, token: str) -> PurchaseOrder:
    order = (
        db.query(PurchaseOrder)
        .filter(PurchaseOrder.response_token == token, PurchaseOrder.deleted_at.is_(None))
        .first()
    )
    if order is None:
        raise TokenInvalid()
    return order


def _check_token_usable(order: PurchaseOrder, now: datetime) -> None:
    if order.response_token_used_at is not None:
        raise TokenAlreadyUsed()
    if response_token_expired(order, now):
        raise TokenExpired()


def consume_response_token(db: Session, order: PurchaseOrder, token: str, now: datetime) -> None:
    """Mark the token used with a conditional UPDATE so only one submission can win."""
    result = db.execute(
        update(PurchaseOrder)
        .where(
            PurchaseOrder.id == order.id,
            PurchaseOrder.response_token == token,
            PurchaseOrder.response_token_used_at.is_(None),
        )
        .values(response_token_used_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TokenAlreadyUsed()
    order.response_token_used_at = now


def get_response_page(db: Session, token: str) -> ResponsePageRead:
    order = _order_for_token(db, token)
    _check_token_usable(order, utcnow())
    return ResponsePageRead(
        purchase_order_number=order.purchase_order_number,
        is_bulk_order=order.is_bulk_order,
        status=order.status,
        project_name=order.project.name,
        supplier_name=order.supplier_name,
        material_name=order.material_name,
        quantity_ordered=order.quantity_ordered,
        unit=order.unit,
        unit_cost=order.unit_cost,
        total_cost=order.total_cost,
        delivery_date=order.delivery_date,
        terms=order.terms,
        notes=order.notes,
        expires_at=order.response_token_expires_at,
        items=[
            ResponseItemView(
                material_request_id=item.material_request_id,
                material_name=item.material_name,
                unit=item.unit,
                quantity=item.quantity,
                unit_cost=item.unit_cost,
                total_cost=item.total_cost,
                response_status=item.response_status,
            )
            for item in active_items(order)
        ],
    )


# Field-level helpers

def _require_single(order: PurchaseOrder) -> PurchaseOrderItem:
    if order.is_bulk_order:
        raise ValidationError("Bulk orders must be answered with a response for each material")
    return order.items[0]


def _validate_rejection(notes: str | None, reason: str | None, subcategory: str | None) -> RetryAssessment:
    if not (notes or "").strip():
        raise ValidationError("Rejection notes are required")
    if subcategory and not reason:
        raise ValidationError("A rejection subcategory requires a rejection reason")
    if not is_valid_reason(reason, subcategory):
        raise ValidationError(f"Invalid rejection reason '{reason}' / '{subcategory}'")
    return assess_retryability(reason, subcategory)


def _proposed_changes(
    item: PurchaseOrderItem,
    current_delivery_date: date | None,
    *,
    quantity: float | None,
    unit_cost: float | None,
    delivery_date: date | None,
    notes: str | None = None,
    current_notes: str | None = None,
) -> dict:
    """Validate a proposal and return only the fields that differ from the current terms."""
    validate_quantity(quantity)
    validate_unit_cost(unit_cost)
    validate_delivery_date(delivery_date)

    changes: dict = {}
    if quantity is not None and quantity != item.quantity:
        changes["quantity_ordered"] = quantity
    if unit_cost is not None and unit_cost != item.unit_cost:
        changes["unit_cost"] = unit_cost
    if delivery_date is not None and delivery_date != current_delivery_date:
        changes["delivery_date"] = delivery_date.isoformat()
    if notes is not None and notes.strip() and notes != current_notes:
        changes["notes"] = notes
    if not changes:
        raise ValidationError(
            f"At least one proposed change must differ from the current terms for {item.material_name}"
        )
    changes["proposed_total_cost"] = round(
        changes.get("quantity_ordered", item.quantity) * changes.get("unit_cost", item.unit_cost), 2
    )
    return changes


def _mark_item(item: PurchaseOrderItem, outcome: ItemOutcome, now: datetime, notes: str | None = None) -> None:
    item.response_status = outcome.value
    item.response_notes = notes
    item.responded_at = now
    if outcome is not ItemOutcome.REJECTED:
        item.rejection_reason = None
        item.rejection_subcategory = None
        item.is_retryable = None
        item.needs_reassignment = False
    if outcome is not ItemOutcome.MODIFIED:
        item.modifications = None


def _reject_item(
    item: PurchaseOrderItem,
    assessment: RetryAssessment,
    reason: str | None,
    subcategory: str | None,
    notes: str | None,
    now: datetime,
) -> None:
    _mark_item(item, ItemOutcome.REJECTED, now, notes)
    item.rejection_reason = reason
    item.rejection_subcategory = subcategory
    item.is_retryable = assessment.is_retryable
    item.needs_reassignment = True


def _reset_item(item: PurchaseOrderItem) -> None:
    item.response_status = ItemOutcome.PENDING.value
    item.response_notes = None
    item.responded_at = None
    item.modifications = None
    item.rejection_reason = None
    item.rejection_subcategory = None
    item.is_retryable = None
    item.needs_reassignment = False


def _record_supplier_response(order: PurchaseOrder, response: str, notes: str | None, now: datetime) -> None:
    order.supplier_response = response
    order.supplier_response_date = now
    order.supplier_notes = notes


def _clear_rejection(order: PurchaseOrder) -> None:
    order.rejection_reason = None
    order.rejection_subcategory = None
    order.rejection_metadata = None
    order.is_retryable = None
    order.retry_recommendation = None
    order.needs_reassignment = False


def _set_order_rejection(
    order: PurchaseOrder,
    assessment: RetryAssessment,
    reason: str | None,
    subcategory: str | None,
    via: str,
    now: datetime,
    extra: dict | None = None,
) -> None:
    order.rejection_reason = reason
    order.rejection_subcategory = subcategory
    order.is_retryable = assessment.is_retryable
    order.retry_recommendation = assessment.recommendation
    order.needs_reassignment = True
    metadata = {
        "formatted_reason": format_rejection_reason(reason, subcategory),
        "retry_confidence": assessment.confidence,
        "response_method": via,
        "rejected_at": now.isoformat(),
    }
    if extra:
        metadata.update(extra)
    order.rejection_metadata = metadata


def _accepted_total(order: PurchaseOrder) -> float:
    return round(
        sum(item.total_cost for item in active_items(order) if item.response_status == ItemOutcome.ACCEPTED.value),
        2,
    )


def _open_modification_review(order: PurchaseOrder) -> None:
    order.modification_approved = None
    order.modification_approved_by = None
    order.modification_approved_at = None
    order.modification_approval_notes = None
    order.modification_rejection_reason = None


# Response application. Each function validates everything first and only
# then mutates the order.

def _apply_accept(order: PurchaseOrder, payload: AcceptInput, via: str, now: datetime) -> None:
    item = _require_single(order)
    if payload.unit_cost is not None:
        validate_unit_cost(payload.unit_cost)
    unit_cost = payload.unit_cost if payload.unit_cost is not None else item.unit_cost
    if not unit_cost or unit_cost <= 0:
        raise ValidationError("A unit cost greater than 0 is required to accept this order")
    finance.validate_capital_availability(order.project, round(item.quantity * unit_cost, 2))

    item.unit_cost = unit_cost
    _mark_item(item, ItemOutcome.ACCEPTED, now, payload.supplier_notes)
    recalculate_order_totals(order)
    order.status = OrderStatus.ORDER_ACCEPTED.value
    _record_supplier_response(order, "accept", payload.supplier_notes, now)
    order.supplier_modifications = None
    _clear_rejection(order)
    commit_financials(order, order.total_cost, now)


def _apply_reject(order: PurchaseOrder, payload: RejectInput, via: str, now: datetime) -> None:
    item = _require_single(order)
    assessment = _validate_rejection(payload.supplier_notes, payload.rejection_reason, payload.rejection_subcategory)

    _reject_item(item, assessment, payload.rejection_reason, payload.rejection_subcategory, payload.supplier_notes, now)
    order.status = OrderStatus.ORDER_REJECTED.value
    _record_supplier_response(order, "reject", payload.supplier_notes, now)
    order.supplier_modifications = None
    _set_order_rejection(order, assessment, payload.rejection_reason, payload.rejection_subcategory, via, now)


def _apply_modify(order: PurchaseOrder, payload: ModifyInput, via: str, now: datetime) -> None:
    item = _require_single(order)
    changes = _proposed_changes(
        item,
        order.delivery_date,
        quantity=payload.quantity_ordered,
        unit_cost=payload.unit_cost,
        delivery_date=payload.delivery_date,
        notes=payload.notes,
        current_notes=order.notes,
    )
    changes["proposed_at"] = now.isoformat()

    _mark_item(item, ItemOutcome.MODIFIED, now, payload.supplier_notes)
    item.modifications = changes
    order.status = OrderStatus.ORDER_MODIFIED.value
    _record_supplier_response(order, "modify", payload.supplier_notes, now)
    order.supplier_modifications = changes
    _open_modification_review(order)


def _apply_bulk(order: PurchaseOrder, payload: BulkResponseInput, via: str, now: datetime) -> None:
    if not order.is_bulk_order:
        raise ValidationError("Material responses are only accepted for bulk orders")
    if not payload.material_responses:
        raise ValidationError("Material responses are required for bulk orders")

    respondable = {
        item.material_request_id: item
        for item in active_items(order)
        if item.response_status in (ItemOutcome.PENDING.value, ItemOutcome.MODIFIED.value)
    }
    responses: dict[str, MaterialResponseInput] = {}
    for response in payload.material_responses:
        if response.material_request_id in responses:
            raise ValidationError(f"Duplicate response for material {response.material_request_id}")
        if response.material_request_id not in respondable:
            raise ValidationError(f"Material {response.material_request_id} is not awaiting a response on this order")
        responses[response.material_request_id] = response
    missing = sorted(set(respondable) - set(responses))
    if missing:
        raise ValidationError(f"Missing responses for materials: {', '.join(missing)}")

    # Validate every material and compute the outcome before touching anything.
    planned: list[tuple[PurchaseOrderItem, MaterialResponseInput, Any]] = []
    for material_request_id, response in responses.items():
        item = respondable[material_request_id]
        if response.action == "accept":
            if response.unit_cost is not None:
                validate_unit_cost(response.unit_cost, f"Unit cost for {item.material_name}")
            unit_cost = response.unit_cost if response.unit_cost is not None else item.unit_cost
            if not unit_cost or unit_cost <= 0:
                raise ValidationError(f"A unit cost greater than 0 is required to accept {item.material_name}")
            planned.append((item, response, unit_cost))
        elif response.action == "reject":
            notes = response.notes or payload.supplier_notes
            planned.append((item, response, _validate_rejection(notes, response.rejection_reason, response.rejection_subcategory)))
        else:
            changes = _proposed_changes(
                item,
                order.delivery_date,
                quantity=response.quantity,
                unit_cost=response.unit_cost,
                delivery_date=response.delivery_date,
            )
            planned.append((item, response, changes))

    outcomes = {
        item.material_request_id: item.response_status for item in active_items(order)
    }
    for item, response, _ in planned:
        outcomes[item.material_request_id] = {
            "accept": ItemOutcome.ACCEPTED.value,
            "reject": ItemOutcome.REJECTED.value,
            "modify": ItemOutcome.MODIFIED.value,
        }[response.action]
    new_status = aggregate_outcomes(outcomes.values())
    if new_status is None:
        raise ValidationError("Every material must receive a response")

    if new_status is OrderStatus.ORDER_ACCEPTED:
        accepted_total = sum(
            item.quantity * detail
            for item, response, detail in planned
            if response.action == "accept"
        ) + sum(
            item.total_cost
            for item in active_items(order)
            if item.response_status == ItemOutcome.ACCEPTED.value and item.material_request_id not in responses
        )
        finance.validate_capital_availability(order.project, round(accepted_total, 2))

    first_rejection: tuple[RetryAssessment, MaterialResponseInput] | None = None
    rejected_details = []
    modifications: dict[str, dict] = {}
    for item, response, detail in planned:
        notes = response.notes or payload.supplier_notes
        if response.action == "accept":
            item.unit_cost = detail
            _mark_item(item, ItemOutcome.ACCEPTED, now, response.notes)
        elif response.action == "reject":
            _reject_item(item, detail, response.rejection_reason, response.rejection_subcategory, notes, now)
            if first_rejection is None:
                first_rejection = (detail, response)
            rejected_details.append(
                {
                    "material_request_id": item.material_request_id,
                    "reason": response.rejection_reason,
                    "subcategory": response.rejection_subcategory,
                    "is_retryable": detail.is_retryable,
                }
            )
        else:
            detail = dict(detail, proposed_at=now.isoformat())
            _mark_item(item, ItemOutcome.MODIFIED, now, response.notes)
            item.modifications = detail
            modifications[item.material_request_id] = detail

    recalculate_order_totals(order)
    order.status = new_status.value
    _record_supplier_response(order, "bulk", payload.supplier_notes, now)

    if modifications:
        order.supplier_modifications = {"materials": modifications, "proposed_at": now.isoformat()}
        _open_modification_review(order)
    else:
        order.supplier_modifications = None

    if first_rejection is not None:
        assessment, response = first_rejection
        if not all(detail["is_retryable"] for detail in rejected_details):
            assessment = RetryAssessment(False, assessment.recommendation, assessment.confidence)
        _set_order_rejection(
            order,
            assessment,
            response.rejection_reason,
            response.rejection_subcategory,
            via,
            now,
            extra={"materials": rejected_details},
        )
    else:
        _clear_rejection(order)

    if new_status is OrderStatus.ORDER_ACCEPTED:
        commit_financials(order, _accepted_total(order), now)


# Orchestration

def _after_response(
    db: Session,
    order: PurchaseOrder,
    actor: User | None,
    material_creator: MaterialCreator | None,
) -> None:
    notify_users(
        db,
        order,
        [order.created_by],
        kind=f"purchase_order_{order.supplier_response or 'response'}",
        title=f"Supplier responded to {order.purchase_order_number}",
        message=f"{order.supplier_name}: {status_message(order)}",
        created_by=actor.id if actor is not None else None,
    )

    if order.status == OrderStatus.ORDER_ACCEPTED.value and settings.auto_create_material_on_accept:
        creator = material_creator or create_material_from_purchase_order
        try:
            creator(
                db,
                order,
                creator_id=None,
                notes="Created automatically when the supplier accepted the order",
                is_automatic=True,
            )
            db.commit()
        except Exception:
            logger.exception("Automatic material creation failed for %s", order.purchase_order_number)
            db.rollback()


def _process_response(
    db: Session,
    order: PurchaseOrder,
    action: OrderAction,
    apply: Callable[[PurchaseOrder, Any, str, datetime], None],
    payload: Any,
    *,
    actor: User | None,
    token: str | None,
    material_creator: MaterialCreator | None,
) -> PurchaseOrder:
    check_transition(order, action)
    now = utcnow()
    via = VIA_LINK if token is not None else VIA_PORTAL
    before = order_snapshot(order)
    try:
        if token is not None:
            consume_response_token(db, order, token, now)
        else:
            order.response_token_used_at = now
        apply(order, payload, via, now)
    except WorkflowError:
        db.rollback()
        raise
    order.updated_at = now
    commit_transition(db, order, action)
    db.refresh(order)
    logger.info(
        "Supplier response on %s via %s: status=%s total=%.2f",
        order.purchase_order_number,
        via,
        order.status,
        order.total_cost,
    )

    record_transition(db, order, f"purchase_order_{action.value}", actor.id if actor is not None else None, before)
    _after_response(db, order, actor, material_creator)
    return order


def respond_with_token(
    db: Session,
    token: str,
    payload: TokenResponseRequest,
    material_creator: MaterialCreator | None = None,
) -> PurchaseOrder:
    """Handle a submission from the public response page."""
    order = _order_for_token(db, token)
    _check_token_usable(order, utcnow())

    if order.is_bulk_order:
        bulk = BulkResponseInput(material_responses=payload.material_responses, supplier_notes=payload.supplier_notes)
        return _process_response(
            db,
            order,
            OrderAction.RESPOND_BULK,
            _apply_bulk,
            bulk,
            actor=None,
            token=token,
            material_creator=material_creator,
        )

    if payload.action is None:
        raise ValidationError("Action must be one of: accept, reject, modify")
    action = _RESPONSE_ACTIONS[payload.action]
    apply: Callable[[PurchaseOrder, Any, str, datetime], None]
    if action is OrderAction.ACCEPT:
        apply = _apply_accept
        action_input: Any = AcceptInput(unit_cost=payload.unit_cost, supplier_notes=payload.supplier_notes)
    elif action is OrderAction.REJECT:
        apply = _apply_reject
        action_input = RejectInput(
            supplier_notes=payload.supplier_notes,
            rejection_reason=payload.rejection_reason,
            rejection_subcategory=payload.rejection_subcategory,
        )
    else:
        apply = _apply_modify
        action_input = ModifyInput(
            quantity_ordered=payload.quantity_ordered,
            unit_cost=payload.unit_cost,
            delivery_date=payload.delivery_date,
            notes=payload.notes,
            supplier_notes=payload.supplier_notes,
        )
    return _process_response(
        db,
        order,
        action,
        apply,
        action_input,
        actor=None,
        token=token,
        material_creator=material_creator,
    )


def _supplier_order(db: Session, order_id: int, actor: User, permission: str) -> PurchaseOrder:
    require_permission(actor, permission)
    order = get_purchase_order(db, order_id)
    ensure_order_access(db, actor, order)
    return order


def accept_purchase_order(
    db: Session,
    order_id: int,
    payload: AcceptInput,
    actor: User,
    material_creator: MaterialCreator | None = None,
) -> PurchaseOrder:
    order = _supplier_order(db, order_id, actor, "accept_purchase_order")
    return _process_response(
        db,
        order,
        OrderAction.ACCEPT,
        _apply_accept,
        payload,
        actor=actor,
        token=None,
        material_creator=material_creator,
    )


def reject_purchase_order(db: Session, order_id: int, payload: RejectInput, actor: User) -> PurchaseOrder:
    order = _supplier_order(db, order_id, actor, "reject_purchase_order")
    return _process_response(
        db,
        order,
        OrderAction.REJECT,
        _apply_reject,
        payload,
        actor=actor,
        token=None,
        material_creator=None,
    )


def modify_purchase_order(db: Session, order_id: int, payload: ModifyInput, actor: User) -> PurchaseOrder:
    order = _supplier_order(db, order_id, actor, "modify_purchase_order")
    return _process_response(
        db,
        order,
        OrderAction.MODIFY,
        _apply_modify,
        payload,
        actor=actor,
        token=None,
        material_creator=None,
    )


def respond_to_bulk_order(
    db: Session,
    order_id: int,
    payload: BulkResponseInput,
    actor: User,
    material_creator: MaterialCreator | None = None,
) -> PurchaseOrder:
    order = _supplier_order(db, order_id, actor, "accept_purchase_order")
    return _process_response(
        db,
        order,
        OrderAction.RESPOND_BULK,
        _apply_bulk,
        payload,
        actor=actor,
        token=None,
        material_creator=material_creator,
    )


# Buyer review of supplier modifications

def _pending_modifications(order: PurchaseOrder) -> list[PurchaseOrderItem]:
    if order.modification_approved is not None:
        raise ValidationError("This modification has already been reviewed")
    items = [item for item in active_items(order) if item.response_status == ItemOutcome.MODIFIED.value]
    if not items:
        raise ValidationError("No supplier modifications are pending review")
    return items


def _notify_supplier_user(db: Session, order: PurchaseOrder, actor: User, kind: str, message: str) -> None:
    supplier = db.get(Supplier, order.supplier_id)
    if supplier is not None and supplier.user_id is not None:
        notify_users(
            db,
            order,
            [supplier.user_id],
            kind=kind,
            title=f"Purchase order {order.purchase_order_number}",
            message=message,
            created_by=actor.id,
        )


def _resend(order: PurchaseOrder, now: datetime) -> None:
    order.status = OrderStatus.ORDER_SENT.value
    order.supplier_response = None
    order.supplier_response_date = None
    order.supplier_notes = None
    issue_response_token(order, now)


def approve_modification(
    db: Session,
    order_id: int,
    payload: ApproveModificationInput,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> PurchaseOrder:
    """Apply the supplier's proposed terms.

    With ``auto_commit`` the revised order is accepted and committed at once;
    otherwise it goes back to the supplier for confirmation on a new link.
    """
    require_permission(actor, "approve_purchase_order_modification")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.APPROVE_MODIFICATION)
    items = _pending_modifications(order)

    proposed_dates = [item.modifications.get("delivery_date") for item in items if item.modifications]
    proposed_dates = [date.fromisoformat(value) for value in proposed_dates if value]

    new_status: OrderStatus | None = None
    if payload.auto_commit:
        outcomes = [
            ItemOutcome.ACCEPTED.value if item in items else item.response_status for item in active_items(order)
        ]
        new_status = aggregate_outcomes(outcomes)
        if new_status is OrderStatus.ORDER_ACCEPTED:
            total = sum(
                (item.modifications or {}).get("proposed_total_cost", item.total_cost)
                if item in items
                else item.total_cost
                for item in active_items(order)
            )
            finance.validate_capital_availability(order.project, round(total, 2))

    now = utcnow()
    before = order_snapshot(order)
    for item in items:
        mods = item.modifications or {}
        item.quantity = mods.get("quantity_ordered", item.quantity)
        item.unit_cost = mods.get("unit_cost", item.unit_cost)
        if payload.auto_commit:
            _mark_item(item, ItemOutcome.ACCEPTED, now, item.response_notes)
        else:
            _reset_item(item)
    if proposed_dates:
        order.delivery_date = max(proposed_dates)
    if not order.is_bulk_order and order.supplier_modifications and order.supplier_modifications.get("notes"):
        order.notes = order.supplier_modifications["notes"]
    recalculate_order_totals(order)

    order.supplier_modifications = None
    order.modification_approved = True
    order.modification_approved_by = actor.id
    order.modification_approved_at = now
    order.modification_approval_notes = payload.approval_notes
    if payload.auto_commit:
        order.status = new_status.value
        if new_status is OrderStatus.ORDER_ACCEPTED:
            commit_financials(order, _accepted_total(order), now)
    else:
        _resend(order, now)
    order.updated_at = now

    commit_transition(db, order, OrderAction.APPROVE_MODIFICATION)
    db.refresh(order)
    logger.info(
        "Modification on %s approved by user %s (auto_commit=%s)",
        order.purchase_order_number,
        actor.id,
        payload.auto_commit,
    )

    record_transition(db, order, "purchase_order_modification_approved", actor.id, before)
    link = None if payload.auto_commit else settings.response_link(order.response_token)
    sms.send_supplier_sms(
        sms_sender or sms.default_sms_sender(),
        order.supplier,
        sms.generate_modification_approved_sms(order, link),
    )
    _notify_supplier_user(db, order, actor, "purchase_order_modification_approved", status_message(order))
    return order


def reject_modification(
    db: Session,
    order_id: int,
    payload: RejectModificationInput,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> PurchaseOrder:
    """Decline the supplier's proposal: re-send on the original terms or close the order."""
    require_permission(actor, "approve_purchase_order_modification")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.REJECT_MODIFICATION)
    reason = (payload.rejection_reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to reject a modification")
    items = _pending_modifications(order)

    now = utcnow()
    before = order_snapshot(order)
    order.supplier_modifications = None
    order.modification_approved = False
    order.modification_approved_by = actor.id
    order.modification_approved_at = now
    order.modification_rejection_reason = reason

    if payload.close_order:
        assessment = assess_retryability("other")
        for item in items:
            _reject_item(item, assessment, "other", "custom_reason", reason, now)
        new_status = aggregate_outcomes(item.response_status for item in active_items(order))
        order.status = new_status.value
        _set_order_rejection(
            order,
            assessment,
            "other",
            "custom_reason",
            VIA_PORTAL,
            now,
            extra={"closed_by_buyer": True, "buyer_reason": reason},
        )
    else:
        for item in items:
            _reset_item(item)
        _resend(order, now)
    order.updated_at = now

    commit_transition(db, order, OrderAction.REJECT_MODIFICATION)
    db.refresh(order)
    logger.info("Modification on %s rejected by user %s", order.purchase_order_number, actor.id)

    record_transition(db, order, "purchase_order_modification_rejected", actor.id, before)
    link = None if payload.close_order else settings.response_link(order.response_token)
    sms.send_supplier_sms(
        sms_sender or sms.default_sms_sender(),
        order.supplier,
        sms.generate_modification_rejected_sms(order, reason, link),
    )
    _notify_supplier_user(db, order, actor, "purchase_order_modification_rejected", reason)
    return order


def commit_accepted_items(db: Session, order_id: int, actor: User) -> PurchaseOrder:
    """Accept a partially answered bulk order once every rejected material has been reassigned."""
    require_permission(actor, "approve_purchase_order_modification")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.COMMIT_ACCEPTED_ITEMS)

    statuses = {item.response_status for item in active_items(order)}
    if ItemOutcome.PENDING.value in statuses or ItemOutcome.MODIFIED.value in statuses:
        raise ValidationError("Resolve pending responses and modifications before committing")
    if ItemOutcome.REJECTED.value in statuses:
        raise ValidationError("Retry or reassign rejected materials before committing the accepted ones")
    if ItemOutcome.ACCEPTED.value not in statuses:
        raise ValidationError("This order has no accepted materials to commit")
    amount = _accepted_total(order)
    finance.validate_capital_availability(order.project, amount)

    now = utcnow()
    before = order_snapshot(order)
    order.status = OrderStatus.ORDER_ACCEPTED.value
    order.needs_reassignment = False
    commit_financials(order, amount, now)
    order.updated_at = now
    commit_transition(db, order, OrderAction.COMMIT_ACCEPTED_ITEMS)
    db.refresh(order)
    logger.info("Committed accepted materials of %s (%.2f)", order.purchase_order_number, amount)

    record_transition(db, order, "purchase_order_accepted_items_committed", actor.id, before)
    return order
