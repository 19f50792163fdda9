"""Purchase-order status machine.

Single source of truth for which workflow action is legal in which status.
API handlers and services ask this module instead of comparing status
strings themselves.
"""
from __future__ import annotations

from enum import Enum
from typing import Iterable, Protocol

from procurement.core.errors import InvalidStateTransition


class OrderStatus(str, Enum):
    ORDER_SENT = "order_sent"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_REJECTED = "order_rejected"
    ORDER_MODIFIED = "order_modified"
    ORDER_PARTIALLY_RESPONDED = "order_partially_responded"
    READY_FOR_DELIVERY = "ready_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class FinancialStatus(str, Enum):
    NOT_COMMITTED = "not_committed"
    COMMITTED = "committed"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class OrderAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    MODIFY = "modify"
    RESPOND_BULK = "respond_bulk"
    APPROVE_MODIFICATION = "approve_modification"
    REJECT_MODIFICATION = "reject_modification"
    COMMIT_ACCEPTED_ITEMS = "commit_accepted_items"
    FULFILL = "fulfill"
    CONFIRM_DELIVERY = "confirm_delivery"
    CREATE_MATERIAL = "create_material"
    VERIFY_RECEIPT = "verify_receipt"
    RETRY = "retry"
    SEND_ALTERNATIVES = "send_alternatives"
    CANCEL = "cancel"
    EDIT = "edit"
    RESEND_LINK = "resend_link"


class Role(str, Enum):
    OWNER = "owner"
    PROJECT_MANAGER = "project_manager"
    SUPPLIER = "supplier"
    CLERK = "clerk"
    ACCOUNTANT = "accountant"


S = OrderStatus
A = OrderAction

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({S.DELIVERED, S.CANCELLED})

MAX_RETRY_ATTEMPTS = 3

_AWAITING_RESPONSE = frozenset({S.ORDER_SENT, S.ORDER_MODIFIED})
_UNDER_REVIEW = frozenset({S.ORDER_MODIFIED, S.ORDER_PARTIALLY_RESPONDED})
_DELIVERABLE = frozenset({S.ORDER_ACCEPTED, S.READY_FOR_DELIVERY})

# Statuses each action may start from.
TRANSITIONS: dict[OrderAction, frozenset[OrderStatus]] = {
    A.ACCEPT: _AWAITING_RESPONSE,
    A.REJECT: _AWAITING_RESPONSE,
    A.MODIFY: _AWAITING_RESPONSE,
    A.RESPOND_BULK: _AWAITING_RESPONSE,
    A.APPROVE_MODIFICATION: _UNDER_REVIEW,
    A.REJECT_MODIFICATION: _UNDER_REVIEW,
    A.COMMIT_ACCEPTED_ITEMS: frozenset({S.ORDER_PARTIALLY_RESPONDED}),
    A.FULFILL: frozenset({S.ORDER_ACCEPTED}),
    A.CONFIRM_DELIVERY: _DELIVERABLE,
    A.CREATE_MATERIAL: _DELIVERABLE,
    A.VERIFY_RECEIPT: frozenset({S.READY_FOR_DELIVERY}),
    A.RETRY: frozenset({S.ORDER_REJECTED}),
    A.SEND_ALTERNATIVES: frozenset({S.ORDER_REJECTED, S.ORDER_PARTIALLY_RESPONDED}),
    A.CANCEL: frozenset(set(OrderStatus) - TERMINAL_STATUSES),
    A.EDIT: _AWAITING_RESPONSE,
    A.RESEND_LINK: frozenset({S.ORDER_SENT}),
}

# Permission a caller needs for each action. Supplier responses arriving
# through a response token bypass this map.
ACTION_PERMISSIONS: dict[OrderAction, str] = {
    A.ACCEPT: "accept_purchase_order",
    A.REJECT: "reject_purchase_order",
    A.MODIFY: "modify_purchase_order",
    A.RESPOND_BULK: "accept_purchase_order",
    A.APPROVE_MODIFICATION: "approve_purchase_order_modification",
    A.REJECT_MODIFICATION: "approve_purchase_order_modification",
    A.COMMIT_ACCEPTED_ITEMS: "approve_purchase_order_modification",
    A.FULFILL: "fulfill_purchase_order",
    A.CONFIRM_DELIVERY: "confirm_delivery",
    A.CREATE_MATERIAL: "create_material_from_order",
    A.VERIFY_RECEIPT: "verify_delivery",
    A.RETRY: "retry_purchase_order",
    A.SEND_ALTERNATIVES: "reassign_purchase_order",
    A.CANCEL: "cancel_purchase_order",
    A.EDIT: "edit_purchase_order",
    A.RESEND_LINK: "edit_purchase_order",
}

_FINANCIAL_PROGRESSION: dict[FinancialStatus, frozenset[FinancialStatus]] = {
    FinancialStatus.NOT_COMMITTED: frozenset({FinancialStatus.COMMITTED, FinancialStatus.CANCELLED}),
    FinancialStatus.COMMITTED: frozenset({FinancialStatus.FULFILLED, FinancialStatus.CANCELLED}),
    FinancialStatus.FULFILLED: frozenset({FinancialStatus.CANCELLED}),
    FinancialStatus.CANCELLED: frozenset(),
}


class OrderState(Protocol):
    status: str
    linked_material_id: int | None


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def can_perform(order: OrderState, action: OrderAction) -> bool:
    """Return True when ``action`` is legal for the order right now."""
    try:
        current = OrderStatus(order.status)
    except ValueError:
        return False
    if current not in TRANSITIONS[action]:
        return False
    if action in (A.CONFIRM_DELIVERY, A.CREATE_MATERIAL) and order.linked_material_id is not None:
        return False
    if action is A.VERIFY_RECEIPT and order.linked_material_id is None:
        return False
    return True


def check_transition(order: OrderState, action: OrderAction) -> None:
    """Raise InvalidStateTransition unless ``action`` is legal for the order."""
    if can_perform(order, action):
        return
    if action in (A.CONFIRM_DELIVERY, A.CREATE_MATERIAL) and order.linked_material_id is not None:
        raise InvalidStateTransition(
            order.status,
            action.value,
            "Material has already been created from this purchase order",
        )
    if action is A.VERIFY_RECEIPT and order.linked_material_id is None:
        raise InvalidStateTransition(
            order.status,
            action.value,
            "No material entry has been created for this purchase order yet",
        )
    raise InvalidStateTransition(order.status, action.value)


def allowed_actions(order: OrderState, permissions: Iterable[str]) -> list[str]:
    """Actions the holder of ``permissions`` may perform on the order now."""
    granted = set(permissions)
    return [
        action.value
        for action in OrderAction
        if ACTION_PERMISSIONS[action] in granted and can_perform(order, action)
    ]


def advance_financial_status(current: str, target: FinancialStatus) -> str:
    """Validate a financial-status move; only forward moves or cancellation are legal."""
    current_status = FinancialStatus(current)
    if target == current_status:
        return target.value
    if target not in _FINANCIAL_PROGRESSION[current_status]:
        raise InvalidStateTransition(
            current_status.value,
            f"move_financial_status_to_{target.value}",
            f"Financial status cannot move from '{current_status.value}' to '{target.value}'",
        )
    return target.value
