from __future__ import annotations

from dataclasses import dataclass

import pytest

from procurement.core.errors import InvalidStateTransition
from procurement.core.workflow.outcomes import aggregate_outcomes
from procurement.core.workflow.rejection import assess_retryability, format_rejection_reason, is_valid_reason, taxonomy
from procurement.core.workflow.states import (
    TRANSITIONS,
    FinancialStatus,
    OrderAction,
    OrderStatus,
    Role,
    advance_financial_status,
    allowed_actions,
    can_perform,
    check_transition,
)
from procurement.services.permissions import ROLE_PERMISSIONS


@dataclass
class _Order:
    status: str
    linked_material_id: int | None = None


def test_every_action_outside_transition_table_is_rejected():
    """For each non-terminal status, actions not listed for it raise InvalidStateTransition."""
    for status in OrderStatus:
        for action in OrderAction:
            order = _Order(status=status.value)
            if status in TRANSITIONS[action]:
                continue
            with pytest.raises(InvalidStateTransition):
                check_transition(order, action)
            assert order.status == status.value


def test_terminal_statuses_allow_nothing():
    for status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
        assert [a for a in OrderAction if can_perform(_Order(status.value), a)] == []


def test_delivery_actions_blocked_once_material_linked():
    order = _Order(status=OrderStatus.ORDER_ACCEPTED.value, linked_material_id=7)
    with pytest.raises(InvalidStateTransition, match="already been created"):
        check_transition(order, OrderAction.CONFIRM_DELIVERY)
    assert not can_perform(order, OrderAction.CREATE_MATERIAL)
    # fulfil does not depend on the material link
    assert can_perform(order, OrderAction.FULFILL)


def test_verify_receipt_requires_material():
    order = _Order(status=OrderStatus.READY_FOR_DELIVERY.value)
    with pytest.raises(InvalidStateTransition, match="No material entry"):
        check_transition(order, OrderAction.VERIFY_RECEIPT)
    order.linked_material_id = 3
    check_transition(order, OrderAction.VERIFY_RECEIPT)


def test_invalid_transition_carries_status_and_action():
    with pytest.raises(InvalidStateTransition) as exc_info:
        check_transition(_Order(OrderStatus.ORDER_ACCEPTED.value), OrderAction.ACCEPT)
    err = exc_info.value
    assert err.current_status == "order_accepted"
    assert err.action == "accept"
    assert err.to_dict()["code"] == "invalid_state_transition"


def test_allowed_actions_per_role():
    sent = _Order(OrderStatus.ORDER_SENT.value)
    supplier_actions = allowed_actions(sent, ROLE_PERMISSIONS[Role.SUPPLIER])
    assert {"accept", "reject", "modify", "respond_bulk"} <= set(supplier_actions)
    assert "cancel" not in supplier_actions

    pm_actions = allowed_actions(sent, ROLE_PERMISSIONS[Role.PROJECT_MANAGER])
    assert set(pm_actions) == {"cancel", "edit", "resend_link"}

    rejected = _Order(OrderStatus.ORDER_REJECTED.value)
    assert set(allowed_actions(rejected, ROLE_PERMISSIONS[Role.PROJECT_MANAGER])) == {
        "retry",
        "send_alternatives",
        "cancel",
    }
    assert allowed_actions(rejected, ROLE_PERMISSIONS[Role.ACCOUNTANT]) == []


def test_financial_status_only_moves_forward():
    assert advance_financial_status("not_committed", FinancialStatus.COMMITTED) == "committed"
    assert advance_financial_status("committed", FinancialStatus.FULFILLED) == "fulfilled"
    assert advance_financial_status("fulfilled", FinancialStatus.CANCELLED) == "cancelled"
    with pytest.raises(InvalidStateTransition):
        advance_financial_status("fulfilled", FinancialStatus.COMMITTED)
    with pytest.raises(InvalidStateTransition):
        advance_financial_status("cancelled", FinancialStatus.COMMITTED)


def test_aggregate_outcomes():
    assert aggregate_outcomes(["rejected", "rejected", "rejected", "accepted", "accepted"]) is (
        OrderStatus.ORDER_PARTIALLY_RESPONDED
    )
    assert aggregate_outcomes(["accepted", "accepted"]) is OrderStatus.ORDER_ACCEPTED
    assert aggregate_outcomes(["rejected"]) is OrderStatus.ORDER_REJECTED
    assert aggregate_outcomes(["modified", "modified"]) is OrderStatus.ORDER_MODIFIED
    assert aggregate_outcomes(["modified", "accepted"]) is OrderStatus.ORDER_PARTIALLY_RESPONDED
    assert aggregate_outcomes(["accepted", "pending"]) is None
    assert aggregate_outcomes([]) is None


def test_rejection_taxonomy():
    assert is_valid_reason("price_too_high", "market_rates_higher")
    assert is_valid_reason(None)
    assert not is_valid_reason("price_too_high", "out_of_stock")
    assert not is_valid_reason("bogus")
    assert not is_valid_reason(None, "out_of_stock")

    assert assess_retryability("price_too_high").is_retryable
    assert not assess_retryability("unavailable").is_retryable
    assert not assess_retryability(None).is_retryable
    assert assess_retryability(None).recommendation == "Manual review required"

    assert format_rejection_reason("timeline", "logistics_delay") == "Timeline issues: Logistics delay"
    assert format_rejection_reason(None) == "Not specified"

    codes = [entry["code"] for entry in taxonomy()]
    assert codes[0] == "price_too_high"
    assert "other" in codes
