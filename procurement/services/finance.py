from __future__ import annotations

import logging

from procurement.core.errors import InsufficientCapital
from procurement.models.models import Project, PurchaseOrder


logger = logging.getLogger(__name__)


def available_capital(project: Project) -> float | None:
    """Capital not yet committed or spent; None when the project has no budget."""
    if project.capital is None:
        return None
    return round(project.capital - (project.committed_cost or 0.0) - (project.spent_cost or 0.0), 2)


def validate_capital_availability(project: Project, amount: float, *, already_committed: float = 0.0) -> None:
    available = available_capital(project)
    if available is None:
        return
    required = round(amount - already_committed, 2)
    if required > available:
        raise InsufficientCapital(available=available, required=required)


def commit_order_amount(order: PurchaseOrder, amount: float) -> None:
    project = order.project
    project.committed_cost = round((project.committed_cost or 0.0) + amount - order.committed_amount, 2)
    order.committed_amount = round(amount, 2)
    logger.info(
        "Committed %.2f for purchase order %s on project %s",
        amount,
        order.purchase_order_number,
        project.id,
    )


def release_commitment(order: PurchaseOrder) -> float:
    released = order.committed_amount or 0.0
    if released:
        project = order.project
        project.committed_cost = max(0.0, round((project.committed_cost or 0.0) - released, 2))
        order.committed_amount = 0.0
    return released


def record_spend(order: PurchaseOrder, amount: float) -> None:
    """Move an order's commitment into actual spend."""
    release_commitment(order)
    project = order.project
    project.spent_cost = round((project.spent_cost or 0.0) + amount, 2)
