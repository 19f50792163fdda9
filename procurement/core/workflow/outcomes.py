from __future__ import annotations

from enum import Enum
from typing import Iterable

from procurement.core.workflow.states import OrderStatus


class ItemOutcome(str, Enum):
    """Response state of a single line item."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MODIFIED = "modified"


def aggregate_outcomes(outcomes: Iterable[str]) -> OrderStatus | None:
    """Derive the parent order status from its line-item outcomes.

    Uniform outcomes map to the matching single-order status; any mix is a
    partial response. Returns None while any item is still pending.
    """
    values = {ItemOutcome(outcome) for outcome in outcomes}
    if not values or ItemOutcome.PENDING in values:
        return None
    if values == {ItemOutcome.ACCEPTED}:
        return OrderStatus.ORDER_ACCEPTED
    if values == {ItemOutcome.REJECTED}:
        return OrderStatus.ORDER_REJECTED
    if values == {ItemOutcome.MODIFIED}:
        return OrderStatus.ORDER_MODIFIED
    return OrderStatus.ORDER_PARTIALLY_RESPONDED


def unplaced_rejections(items: Iterable) -> list:
    """Rejected line items not yet handed over to an alternative supplier."""
    return [
        item
        for item in items
        if item.response_status == ItemOutcome.REJECTED.value and not item.reassigned_order_ids
    ]
