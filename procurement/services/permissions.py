from __future__ import annotations

from sqlalchemy.orm import Session

from procurement.core.errors import PermissionDenied
from procurement.core.workflow.outcomes import unplaced_rejections
from procurement.core.workflow.states import MAX_RETRY_ATTEMPTS, OrderAction, Role, allowed_actions
from procurement.models.models import PurchaseOrder, Supplier, User


_MANAGEMENT_PERMISSIONS = frozenset(
    {
        "view_purchase_orders",
        "create_purchase_order",
        "edit_purchase_order",
        "cancel_purchase_order",
        "approve_purchase_order_modification",
        "retry_purchase_order",
        "reassign_purchase_order",
        "confirm_delivery",
        "create_material_from_order",
        "manage_suppliers",
    }
)

ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.OWNER: _MANAGEMENT_PERMISSIONS | {"delete_purchase_order"},
    Role.PROJECT_MANAGER: _MANAGEMENT_PERMISSIONS,
    Role.SUPPLIER: frozenset(
        {
            "view_purchase_orders",
            "accept_purchase_order",
            "reject_purchase_order",
            "modify_purchase_order",
            "fulfill_purchase_order",
            "upload_delivery_note",
        }
    ),
    Role.CLERK: frozenset({"view_purchase_orders", "verify_delivery"}),
    Role.ACCOUNTANT: frozenset({"view_purchase_orders"}),
}


def permissions_for(user: User) -> frozenset[str]:
    try:
        role = Role(user.role)
    except ValueError:
        return frozenset()
    return ROLE_PERMISSIONS[role]


def has_permission(user: User | None, permission: str) -> bool:
    if user is None or user.status != "active":
        return False
    return permission in permissions_for(user)


def require_permission(user: User | None, permission: str) -> None:
    if not has_permission(user, permission):
        raise PermissionDenied(f"You do not have permission to perform this action ({permission})")


def ensure_order_access(db: Session, user: User, order: PurchaseOrder) -> None:
    """Suppliers may only touch orders addressed to their own supplier record."""
    if user.role != Role.SUPPLIER.value:
        return
    supplier = db.get(Supplier, order.supplier_id)
    if supplier is None or supplier.user_id != user.id:
        raise PermissionDenied("This purchase order is not addressed to your supplier account")


def _blocked_actions(order: PurchaseOrder) -> set[str]:
    """Actions the status allows but the order's rejection state rules out."""
    blocked: set[str] = set()
    open_rejections = unplaced_rejections(order.items)
    if not open_rejections:
        blocked |= {OrderAction.RETRY.value, OrderAction.SEND_ALTERNATIVES.value}
    else:
        blocked.add(OrderAction.COMMIT_ACCEPTED_ITEMS.value)
    if not order.is_retryable or (order.retry_count or 0) >= MAX_RETRY_ATTEMPTS:
        blocked.add(OrderAction.RETRY.value)
    return blocked


def allowed_actions_for(user: User, order: PurchaseOrder) -> list[str]:
    """Actions ``user`` may take on ``order`` right now, including retry and reassignment limits."""
    if order.deleted_at is not None:
        return []
    blocked = _blocked_actions(order)
    return [action for action in allowed_actions(order, permissions_for(user)) if action not in blocked]
