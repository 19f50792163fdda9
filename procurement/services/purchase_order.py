from __future__ import annotations

import logging
import secrets
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from procurement.core.clock import ensure_utc, today, utcnow
from procurement.core.config import settings
from procurement.core.errors import InvalidStateTransition, NotFound, ValidationError
from procurement.core.workflow.states import FinancialStatus, OrderAction, OrderStatus, advance_financial_status, check_transition
from procurement.models.models import Project, PurchaseOrder, PurchaseOrderItem, Supplier, User
from procurement.schemas.purchase_order import (
    BulkPurchaseOrderCreate,
    PurchaseOrderCreate,
    PurchaseOrderItemCreate,
    PurchaseOrderUpdate,
)
from procurement.services import finance, sms
from procurement.services.audit import create_audit_log
from procurement.services.notifications import NotificationMessage, create_notifications
from procurement.services.permissions import ensure_order_access, require_permission


logger = logging.getLogger(__name__)

_DELETABLE_STATUSES = {OrderStatus.ORDER_SENT.value, OrderStatus.ORDER_REJECTED.value, OrderStatus.CANCELLED.value}

_SNAPSHOT_FIELDS = (
    "status",
    "financial_status",
    "quantity_ordered",
    "unit_cost",
    "total_cost",
    "committed_amount",
    "delivery_date",
    "terms",
    "notes",
    "supplier_id",
    "supplier_response",
    "supplier_notes",
    "supplier_modifications",
    "modification_approved",
    "rejection_reason",
    "rejection_subcategory",
    "is_retryable",
    "retry_count",
    "needs_reassignment",
    "delivery_note_file_url",
    "actual_quantity_delivered",
    "actual_unit_cost",
    "delivery_confirmation_method",
    "linked_material_id",
    "deleted_at",
)


# Validation helpers shared by the workflow services.

def validate_quantity(value: float | None, label: str = "Quantity") -> None:
    if value is not None and value <= 0:
        raise ValidationError(f"{label} must be greater than 0")


def validate_unit_cost(value: float | None, label: str = "Unit cost") -> None:
    if value is not None and value <= 0:
        raise ValidationError(f"{label} must be greater than 0")


def validate_delivery_date(value: date | None, *, future_only: bool = False) -> None:
    if value is None:
        return
    current = today()
    if future_only and value <= current:
        raise ValidationError("Delivery date must be in the future")
    if value < current:
        raise ValidationError("Delivery date cannot be in the past")


# Order helpers

def get_purchase_order(db: Session, order_id: int, *, include_deleted: bool = False) -> PurchaseOrder:
    query = db.query(PurchaseOrder).filter(PurchaseOrder.id == order_id)
    if not include_deleted:
        query = query.filter(PurchaseOrder.deleted_at.is_(None))
    order = query.first()
    if order is None:
        raise NotFound("PurchaseOrder not found")
    return order


def get_order_for_user(db: Session, order_id: int, user: User) -> PurchaseOrder:
    require_permission(user, "view_purchase_orders")
    order = get_purchase_order(db, order_id)
    ensure_order_access(db, user, order)
    return order


def get_active_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None or supplier.deleted_at is not None:
        raise NotFound(f"Supplier {supplier_id} not found")
    if supplier.status != "active":
        raise ValidationError(f"Supplier '{supplier.name}' is not active")
    return supplier


def get_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFound(f"Project {project_id} not found")
    return project


def active_items(order: PurchaseOrder) -> list[PurchaseOrderItem]:
    """Line items still owned by this order (not handed over to an alternative supplier)."""
    return [item for item in order.items if not item.reassigned_order_ids]


def recalculate_order_totals(order: PurchaseOrder) -> None:
    """Recompute item and header totals from quantity and unit cost."""
    for item in order.items:
        item.total_cost = round(item.quantity * item.unit_cost, 2)
    if order.is_bulk_order:
        order.quantity_ordered = None
        order.unit_cost = None
        order.total_cost = round(sum(item.total_cost for item in order.items), 2)
        return
    item = order.items[0]
    order.material_request_id = item.material_request_id
    order.material_name = item.material_name
    order.unit = item.unit
    order.quantity_ordered = item.quantity
    order.unit_cost = item.unit_cost
    order.total_cost = item.total_cost


def generate_purchase_order_number(db: Session, now: datetime) -> str:
    prefix = f"PO-{now:%Y%m%d}-"
    sequence = db.query(PurchaseOrder).filter(PurchaseOrder.purchase_order_number.like(f"{prefix}%")).count() + 1
    while True:
        number = f"{prefix}{sequence:03d}"
        exists = db.query(PurchaseOrder.id).filter(PurchaseOrder.purchase_order_number == number).first()
        if exists is None:
            return number
        sequence += 1


def issue_response_token(order: PurchaseOrder, now: datetime) -> str:
    """Give the order a fresh single-use response link and mark it as (re)sent."""
    token = secrets.token_urlsafe(32)
    order.response_token = token
    order.response_token_expires_at = now + timedelta(days=settings.response_token_ttl_days)
    order.response_token_used_at = None
    order.sent_at = now
    order.reminder_count = 0
    order.last_reminder_sent_at = None
    return token


def response_token_expired(order: PurchaseOrder, now: datetime) -> bool:
    expires_at = ensure_utc(order.response_token_expires_at)
    return expires_at is None or expires_at <= now


def commit_financials(order: PurchaseOrder, amount: float, now: datetime) -> None:
    order.financial_status = advance_financial_status(order.financial_status, FinancialStatus.COMMITTED)
    order.committed_at = now
    finance.commit_order_amount(order, amount)


def commit_transition(db: Session, order: PurchaseOrder, action: OrderAction) -> None:
    """Commit a status change, turning a lost optimistic-lock race into InvalidStateTransition."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        current = db.get(PurchaseOrder, order.id)
        current_status = current.status if current is not None else "unknown"
        logger.warning(
            "Concurrent update on purchase order %s while applying %s",
            order.id,
            action.value,
        )
        raise InvalidStateTransition(
            current_status,
            action.value,
            f"Purchase order was updated by another request and is now '{current_status}'",
        ) from None


def _json_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def order_snapshot(order: PurchaseOrder) -> dict[str, Any]:
    data = {name: _json_value(getattr(order, name)) for name in _SNAPSHOT_FIELDS}
    data["items"] = [
        {
            "material_request_id": item.material_request_id,
            "quantity": item.quantity,
            "unit_cost": item.unit_cost,
            "total_cost": item.total_cost,
            "response_status": item.response_status,
        }
        for item in order.items
    ]
    return data


def record_transition(
    db: Session,
    order: PurchaseOrder,
    action: str,
    user_id: int | None,
    before: dict[str, Any] | None,
) -> None:
    create_audit_log(
        db,
        user_id=user_id,
        action=action,
        entity_type="PurchaseOrder",
        entity_id=order.id,
        project_id=order.project_id,
        before=before,
        after=order_snapshot(order),
    )


def notify_users(
    db: Session,
    order: PurchaseOrder,
    user_ids: Iterable[int | None],
    *,
    kind: str,
    title: str,
    message: str,
    created_by: int | None = None,
) -> None:
    create_notifications(
        db,
        [
            NotificationMessage(
                user_id=user_id,
                type=kind,
                title=title,
                message=message,
                related_id=order.id,
                project_id=order.project_id,
                created_by=created_by,
            )
            for user_id in user_ids
            if user_id is not None
        ],
    )


def send_order_to_supplier(db: Session, order: PurchaseOrder, sms_sender: sms.SmsSender | None, *, retry: bool = False) -> None:
    """SMS the response link to the supplier and notify its user account."""
    link = settings.response_link(order.response_token)
    supplier = db.get(Supplier, order.supplier_id)
    template = sms.generate_retry_sms if retry else sms.generate_purchase_order_sms
    sms.send_supplier_sms(sms_sender or sms.default_sms_sender(), supplier, template(order, link))
    if supplier is not None and supplier.user_id is not None:
        notify_users(
            db,
            order,
            [supplier.user_id],
            kind="purchase_order_revised" if retry else "purchase_order_received",
            title=f"Purchase order {order.purchase_order_number}",
            message=f"Purchase order {order.purchase_order_number} is awaiting your response",
            created_by=order.created_by,
        )


# Creation

def _validate_items(items: list[PurchaseOrderItemCreate]) -> None:
    if not items:
        raise ValidationError("At least one material is required")
    seen: set[str] = set()
    for item in items:
        if item.material_request_id in seen:
            raise ValidationError(f"Material request {item.material_request_id} is listed more than once")
        seen.add(item.material_request_id)
        if not item.material_name.strip():
            raise ValidationError("Material name is required")
        validate_quantity(item.quantity, f"Quantity for {item.material_name}")
        validate_unit_cost(item.unit_cost, f"Unit cost for {item.material_name}")


def build_purchase_order(
    db: Session,
    *,
    project: Project,
    supplier: Supplier,
    items: list[PurchaseOrderItemCreate],
    is_bulk: bool,
    created_by: int,
    now: datetime,
    delivery_date: date | None = None,
    terms: str | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
    original: PurchaseOrder | None = None,
) -> PurchaseOrder:
    """Add a new order in ``order_sent`` with a fresh response link; flushes, does not commit."""
    order = PurchaseOrder(
        purchase_order_number=generate_purchase_order_number(db, now),
        is_bulk_order=is_bulk,
        idempotency_key=idempotency_key,
        description=items[0].description if not is_bulk else None,
        delivery_date=delivery_date,
        terms=terms,
        notes=notes,
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        supplier_email=supplier.email,
        project_id=project.id,
        created_by=created_by,
        status=OrderStatus.ORDER_SENT.value,
        financial_status=FinancialStatus.NOT_COMMITTED.value,
        total_cost=0.0,
        committed_amount=0.0,
        retry_count=0,
        needs_reassignment=False,
        is_alternative_order=original is not None,
        reminder_count=0,
        created_at=now,
        updated_at=now,
    )
    if original is not None:
        order.original_order_id = original.id
        order.original_order_number = original.purchase_order_number
        order.original_rejection_reason = original.rejection_reason
    order.project = project
    order.supplier = supplier
    for position, item in enumerate(items):
        order.items.append(
            PurchaseOrderItem(
                position=position,
                material_request_id=item.material_request_id,
                material_name=item.material_name,
                description=item.description,
                unit=item.unit,
                quantity=item.quantity,
                unit_cost=item.unit_cost,
                total_cost=0.0,
                response_status="pending",
                needs_reassignment=False,
            )
        )
    recalculate_order_totals(order)
    issue_response_token(order, now)
    db.add(order)
    db.flush()
    return order


def _existing_for_key(db: Session, idempotency_key: str | None) -> PurchaseOrder | None:
    if not idempotency_key:
        return None
    return db.query(PurchaseOrder).filter(PurchaseOrder.idempotency_key == idempotency_key).first()


def _create(
    db: Session,
    actor: User,
    *,
    project_id: int,
    supplier_id: int,
    items: list[PurchaseOrderItemCreate],
    is_bulk: bool,
    delivery_date: date | None,
    terms: str | None,
    notes: str | None,
    idempotency_key: str | None,
    sms_sender: sms.SmsSender | None,
) -> PurchaseOrder:
    require_permission(actor, "create_purchase_order")
    existing = _existing_for_key(db, idempotency_key)
    if existing is not None:
        logger.info("Returning existing purchase order %s for idempotency key", existing.purchase_order_number)
        return existing

    project = get_project(db, project_id)
    supplier = get_active_supplier(db, supplier_id)
    _validate_items(items)
    validate_delivery_date(delivery_date)
    finance.validate_capital_availability(project, sum(item.quantity * item.unit_cost for item in items))

    order = build_purchase_order(
        db,
        project=project,
        supplier=supplier,
        items=items,
        is_bulk=is_bulk,
        created_by=actor.id,
        now=utcnow(),
        delivery_date=delivery_date,
        terms=terms,
        notes=notes,
        idempotency_key=idempotency_key,
    )
    db.commit()
    db.refresh(order)
    logger.info(
        "Created purchase order %s for supplier %s (total %.2f)",
        order.purchase_order_number,
        order.supplier_id,
        order.total_cost,
    )

    record_transition(db, order, "purchase_order_created", actor.id, None)
    send_order_to_supplier(db, order, sms_sender)
    return order


def create_purchase_order(
    db: Session,
    payload: PurchaseOrderCreate,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> PurchaseOrder:
    item = PurchaseOrderItemCreate(
        material_request_id=payload.material_request_id,
        material_name=payload.material_name,
        description=payload.description,
        unit=payload.unit,
        quantity=payload.quantity_ordered,
        unit_cost=payload.unit_cost,
    )
    return _create(
        db,
        actor,
        project_id=payload.project_id,
        supplier_id=payload.supplier_id,
        items=[item],
        is_bulk=False,
        delivery_date=payload.delivery_date,
        terms=payload.terms,
        notes=payload.notes,
        idempotency_key=payload.idempotency_key,
        sms_sender=sms_sender,
    )


def create_bulk_purchase_order(
    db: Session,
    payload: BulkPurchaseOrderCreate,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> PurchaseOrder:
    return _create(
        db,
        actor,
        project_id=payload.project_id,
        supplier_id=payload.supplier_id,
        items=payload.materials,
        is_bulk=True,
        delivery_date=payload.delivery_date,
        terms=payload.terms,
        notes=payload.notes,
        idempotency_key=payload.idempotency_key,
        sms_sender=sms_sender,
    )


# Listing

def list_purchase_orders(
    db: Session,
    user: User,
    *,
    status: str | None = None,
    project_id: int | None = None,
    supplier_id: int | None = None,
    needs_reassignment: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[PurchaseOrder]:
    require_permission(user, "view_purchase_orders")
    query = db.query(PurchaseOrder).filter(PurchaseOrder.deleted_at.is_(None))
    if user.role == "supplier":
        supplier_ids = [row[0] for row in db.query(Supplier.id).filter(Supplier.user_id == user.id).all()]
        query = query.filter(PurchaseOrder.supplier_id.in_(supplier_ids))
    if status is not None:
        query = query.filter(PurchaseOrder.status == status)
    if project_id is not None:
        query = query.filter(PurchaseOrder.project_id == project_id)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if needs_reassignment is not None:
        query = query.filter(PurchaseOrder.needs_reassignment.is_(needs_reassignment))
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).offset(offset).limit(limit).all()


# Management actions

def update_purchase_order(db: Session, order_id: int, payload: PurchaseOrderUpdate, actor: User) -> PurchaseOrder:
    """Edit commercial terms while the supplier has not committed to them."""
    require_permission(actor, "edit_purchase_order")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.EDIT)

    data = payload.model_dump(exclude_unset=True)
    if order.is_bulk_order and ({"quantity_ordered", "unit_cost"} & data.keys()):
        raise ValidationError("Quantities and unit costs of bulk orders are edited per material")
    validate_quantity(data.get("quantity_ordered"))
    validate_unit_cost(data.get("unit_cost"))
    if "delivery_date" in data:
        validate_delivery_date(data["delivery_date"], future_only=True)

    item = order.items[0]
    new_quantity = data.get("quantity_ordered") or (item.quantity if not order.is_bulk_order else None)
    new_unit_cost = data.get("unit_cost") or (item.unit_cost if not order.is_bulk_order else None)
    if not order.is_bulk_order:
        finance.validate_capital_availability(order.project, new_quantity * new_unit_cost)

    before = order_snapshot(order)
    changed = False
    if not order.is_bulk_order:
        if new_quantity != item.quantity:
            item.quantity = new_quantity
            changed = True
        if new_unit_cost != item.unit_cost:
            item.unit_cost = new_unit_cost
            changed = True
    for field in ("delivery_date", "terms", "notes"):
        if field in data and data[field] != getattr(order, field):
            setattr(order, field, data[field])
            changed = True

    if not changed:
        return order

    recalculate_order_totals(order)
    order.updated_at = utcnow()
    commit_transition(db, order, OrderAction.EDIT)
    db.refresh(order)
    record_transition(db, order, "purchase_order_edited", actor.id, before)
    return order


def _apply_cancellation(order: PurchaseOrder, actor: User, reason: str | None, now: datetime) -> None:
    check_transition(order, OrderAction.CANCEL)
    finance.release_commitment(order)
    order.status = OrderStatus.CANCELLED.value
    order.financial_status = advance_financial_status(order.financial_status, FinancialStatus.CANCELLED)
    order.cancelled_at = now
    order.cancelled_by = actor.id
    order.cancellation_reason = reason
    order.needs_reassignment = False
    order.updated_at = now


def cancel_purchase_order(
    db: Session,
    order_id: int,
    actor: User,
    reason: str | None = None,
    sms_sender: sms.SmsSender | None = None,
) -> PurchaseOrder:
    require_permission(actor, "cancel_purchase_order")
    order = get_purchase_order(db, order_id)
    before = order_snapshot(order)
    _apply_cancellation(order, actor, reason, utcnow())
    commit_transition(db, order, OrderAction.CANCEL)
    db.refresh(order)
    logger.info("Purchase order %s cancelled by user %s", order.purchase_order_number, actor.id)

    record_transition(db, order, "purchase_order_cancelled", actor.id, before)
    sms.send_supplier_sms(sms_sender or sms.default_sms_sender(), order.supplier, sms.generate_cancellation_sms(order))
    return order


def delete_purchase_order(
    db: Session,
    order_id: int,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> PurchaseOrder:
    """Soft delete; the row and its history are kept."""
    require_permission(actor, "delete_purchase_order")
    order = get_purchase_order(db, order_id)
    if order.status not in _DELETABLE_STATUSES:
        raise InvalidStateTransition(
            order.status,
            "delete",
            f"Only orders in {sorted(_DELETABLE_STATUSES)} can be deleted",
        )

    now = utcnow()
    before = order_snapshot(order)
    was_cancelled = order.status == OrderStatus.CANCELLED.value
    if not was_cancelled:
        _apply_cancellation(order, actor, "Purchase order deleted", now)
    order.deleted_at = now
    order.updated_at = now
    commit_transition(db, order, OrderAction.CANCEL)
    db.refresh(order)
    logger.info("Purchase order %s deleted by user %s", order.purchase_order_number, actor.id)

    record_transition(db, order, "purchase_order_deleted", actor.id, before)
    if not was_cancelled:
        sms.send_supplier_sms(sms_sender or sms.default_sms_sender(), order.supplier, sms.generate_cancellation_sms(order))
    return order


def resend_response_link(
    db: Session,
    order_id: int,
    actor: User,
    sms_sender: sms.SmsSender | None = None,
) -> tuple[PurchaseOrder, bool]:
    """Re-send the response link, issuing a new token when the current one has expired."""
    require_permission(actor, "edit_purchase_order")
    order = get_purchase_order(db, order_id)
    check_transition(order, OrderAction.RESEND_LINK)

    now = utcnow()
    reissued = order.response_token is None or response_token_expired(order, now)
    if reissued:
        issue_response_token(order, now)
        order.updated_at = now
        commit_transition(db, order, OrderAction.RESEND_LINK)
        db.refresh(order)

    send_order_to_supplier(db, order, sms_sender)
    return order, reissued
