from __future__ import annotations

import pytest

from procurement.core.errors import (
    InsufficientCapital,
    InvalidStateTransition,
    PermissionDenied,
    TokenAlreadyUsed,
    TokenExpired,
    TokenInvalid,
    ValidationError,
)
from procurement.core.clock import utcnow
from procurement.models.models import AuditLog, Notification
from procurement.schemas.supplier_response import (
    AcceptInput,
    ApproveModificationInput,
    BulkResponseInput,
    MaterialResponseInput,
    ModifyInput,
    RejectInput,
    RejectModificationInput,
    TokenResponseRequest,
)
from procurement.services.supplier_response import (
    accept_purchase_order,
    approve_modification,
    commit_accepted_items,
    get_response_page,
    modify_purchase_order,
    reject_modification,
    reject_purchase_order,
    respond_to_bulk_order,
    respond_with_token,
)
from tests.test_utils import create_bulk_order, create_order, create_supplier, create_user, future_date, setup_parties


def test_accept_with_unit_cost_override_recomputes_total_and_commits(db_session):
    """10 x 100 = 1000; accepting at 90 gives 900, accepted and committed."""
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm, quantity=10, unit_cost=100)
    assert order.total_cost == 1000

    order = accept_purchase_order(db_session, order.id, AcceptInput(unit_cost=90), supplier_user)

    assert order.total_cost == 900
    assert order.unit_cost == 90
    assert order.status == "order_accepted"
    assert order.financial_status == "committed"
    assert order.committed_amount == 900
    assert project.committed_cost == 900
    assert order.items[0].response_status == "accepted"


def test_accept_blocked_by_insufficient_capital(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session, capital=500.0)
    order = create_order(db_session, project, supplier, pm, quantity=10, unit_cost=100)

    with pytest.raises(InsufficientCapital) as exc_info:
        accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)

    assert exc_info.value.available == 500
    assert exc_info.value.required == 1000
    db_session.refresh(order)
    assert order.status == "order_sent"
    assert order.financial_status == "not_committed"
    assert order.response_token_used_at is None
    assert project.committed_cost == 0


def test_accept_on_accepted_order_is_invalid_and_changes_nothing(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)

    with pytest.raises(InvalidStateTransition):
        accept_purchase_order(db_session, order.id, AcceptInput(unit_cost=50), supplier_user)

    db_session.refresh(order)
    assert order.status == "order_accepted"
    assert order.total_cost == 1000


def test_supplier_cannot_answer_another_suppliers_order(db_session):
    pm, _, project, supplier = setup_parties(db_session)
    stranger = create_user(db_session, "supplier", name="Other Supplier")
    order = create_order(db_session, project, supplier, pm)

    with pytest.raises(PermissionDenied):
        accept_purchase_order(db_session, order.id, AcceptInput(), stranger)
    with pytest.raises(PermissionDenied):
        accept_purchase_order(db_session, order.id, AcceptInput(), pm)


def test_reject_without_notes_is_a_validation_error(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)

    with pytest.raises(ValidationError, match="notes are required"):
        reject_purchase_order(
            db_session,
            order.id,
            RejectInput(supplier_notes="  ", rejection_reason="price_too_high"),
            supplier_user,
        )

    db_session.refresh(order)
    assert order.status == "order_sent"
    assert order.response_token_used_at is None
    assert order.rejection_reason is None


def test_reject_records_reason_and_retryability(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)

    order = reject_purchase_order(
        db_session,
        order.id,
        RejectInput(
            supplier_notes="Cement prices went up",
            rejection_reason="price_too_high",
            rejection_subcategory="material_costs_increased",
        ),
        supplier_user,
    )

    assert order.status == "order_rejected"
    assert order.financial_status == "not_committed"
    assert order.is_retryable is True
    assert order.needs_reassignment is True
    assert order.retry_recommendation == "Consider price negotiation or alternative specifications"
    assert order.rejection_metadata["formatted_reason"] == "Price too high: Material costs have increased"
    assert order.rejection_metadata["response_method"] == "supplier_portal"


def test_reject_with_unknown_reason_fails(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)

    with pytest.raises(ValidationError):
        reject_purchase_order(
            db_session,
            order.id,
            RejectInput(supplier_notes="no", rejection_reason="price_too_high", rejection_subcategory="out_of_stock"),
            supplier_user,
        )


def test_token_replay_is_rejected_and_first_outcome_kept(db_session):
    pm, _, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    token = order.response_token

    first = respond_with_token(db_session, token, TokenResponseRequest(action="accept", unit_cost=90))
    assert first.status == "order_accepted"

    with pytest.raises(TokenAlreadyUsed):
        respond_with_token(
            db_session,
            token,
            TokenResponseRequest(action="reject", supplier_notes="changed my mind", rejection_reason="other"),
        )

    db_session.refresh(order)
    assert order.status == "order_accepted"
    assert order.total_cost == 900
    assert order.rejection_reason is None
    with pytest.raises(TokenAlreadyUsed):
        get_response_page(db_session, token)


def test_failed_token_response_leaves_token_usable(db_session):
    pm, _, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    token = order.response_token

    with pytest.raises(ValidationError):
        respond_with_token(db_session, token, TokenResponseRequest(action="reject", supplier_notes=""))

    page = get_response_page(db_session, token)
    assert page.status == "order_sent"
    assert page.material_name == "Cement"

    order = respond_with_token(
        db_session,
        token,
        TokenResponseRequest(action="reject", supplier_notes="Out of stock", rejection_reason="unavailable"),
    )
    assert order.status == "order_rejected"
    assert order.is_retryable is False
    assert order.rejection_metadata["response_method"] == "response_link"


def test_unknown_and_expired_tokens(db_session):
    pm, _, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)

    with pytest.raises(TokenInvalid):
        respond_with_token(db_session, "nope", TokenResponseRequest(action="accept"))

    order.response_token_expires_at = utcnow().replace(year=2000)
    db_session.commit()
    with pytest.raises(TokenExpired):
        respond_with_token(db_session, order.response_token, TokenResponseRequest(action="accept"))


def test_modify_then_approve_with_auto_commit(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm, quantity=10, unit_cost=100)
    new_date = future_date(30)

    order = modify_purchase_order(
        db_session,
        order.id,
        ModifyInput(quantity_ordered=8, delivery_date=new_date, supplier_notes="Only 8 available"),
        supplier_user,
    )
    assert order.status == "order_modified"
    assert order.supplier_modifications["quantity_ordered"] == 8
    assert order.supplier_modifications["proposed_total_cost"] == 800
    # terms are untouched until the buyer approves
    assert order.total_cost == 1000

    order = approve_modification(db_session, order.id, ApproveModificationInput(auto_commit=True), pm)

    assert order.status == "order_accepted"
    assert order.financial_status == "committed"
    assert order.quantity_ordered == 8
    assert order.total_cost == 800
    assert order.delivery_date == new_date
    assert order.modification_approved is True
    assert project.committed_cost == 800

    with pytest.raises(InvalidStateTransition):
        approve_modification(db_session, order.id, ApproveModificationInput(auto_commit=True), pm)


def test_approve_without_auto_commit_resends_to_supplier(db_session, sms_sender):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm, quantity=10, unit_cost=100)
    old_token = order.response_token
    modify_purchase_order(db_session, order.id, ModifyInput(unit_cost=110), supplier_user)

    order = approve_modification(db_session, order.id, ApproveModificationInput(), pm, sms_sender)

    assert order.status == "order_sent"
    assert order.financial_status == "not_committed"
    assert order.total_cost == 1100
    assert order.response_token != old_token
    assert order.response_token_used_at is None
    assert order.items[0].response_status == "pending"
    assert "were approved" in sms_sender.messages[-1][1]


def test_modify_requires_a_change(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm, quantity=10, unit_cost=100)

    with pytest.raises(ValidationError, match="At least one proposed change"):
        modify_purchase_order(db_session, order.id, ModifyInput(quantity_ordered=10, unit_cost=100), supplier_user)
    with pytest.raises(ValidationError):
        modify_purchase_order(db_session, order.id, ModifyInput(quantity_ordered=0), supplier_user)


def test_reject_modification_requires_reason_and_can_close(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    modify_purchase_order(db_session, order.id, ModifyInput(unit_cost=150), supplier_user)

    with pytest.raises(ValidationError):
        reject_modification(db_session, order.id, RejectModificationInput(rejection_reason=" "), pm)

    order = reject_modification(
        db_session,
        order.id,
        RejectModificationInput(rejection_reason="Over budget", close_order=True),
        pm,
    )
    assert order.status == "order_rejected"
    assert order.rejection_reason == "other"
    assert order.rejection_subcategory == "custom_reason"
    assert order.modification_rejection_reason == "Over budget"
    assert order.unit_cost == 100


def test_bulk_three_rejected_two_accepted_is_partially_responded(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_bulk_order(db_session, project, supplier, pm, count=5)
    assert order.total_cost == 2500
    assert order.quantity_ordered is None

    responses = [
        MaterialResponseInput(
            material_request_id=f"MR-{i}",
            action="reject",
            notes="Not stocked",
            rejection_reason="unavailable",
            rejection_subcategory="out_of_stock",
        )
        for i in (1, 2, 3)
    ] + [MaterialResponseInput(material_request_id=f"MR-{i}", action="accept") for i in (4, 5)]

    order = respond_to_bulk_order(db_session, order.id, BulkResponseInput(material_responses=responses), supplier_user)

    assert order.status == "order_partially_responded"
    assert order.financial_status == "not_committed"
    assert order.needs_reassignment is True
    assert order.rejection_reason == "unavailable"
    assert order.is_retryable is False
    assert [i.response_status for i in order.items] == ["rejected"] * 3 + ["accepted"] * 2
    assert all(i.needs_reassignment for i in order.items[:3])


def test_bulk_response_must_cover_every_material(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_bulk_order(db_session, project, supplier, pm, count=3)

    with pytest.raises(ValidationError, match="Missing responses"):
        respond_to_bulk_order(
            db_session,
            order.id,
            BulkResponseInput(material_responses=[MaterialResponseInput(material_request_id="MR-1", action="accept")]),
            supplier_user,
        )
    db_session.refresh(order)
    assert order.status == "order_sent"
    assert all(i.response_status == "pending" for i in order.items)


def test_bulk_all_accepted_commits_sum(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_bulk_order(db_session, project, supplier, pm, count=2, quantity=10, unit_cost=50)

    order = respond_to_bulk_order(
        db_session,
        order.id,
        BulkResponseInput(
            material_responses=[
                MaterialResponseInput(material_request_id="MR-1", action="accept", unit_cost=40),
                MaterialResponseInput(material_request_id="MR-2", action="accept"),
            ]
        ),
        supplier_user,
    )
    assert order.status == "order_accepted"
    assert order.total_cost == 900
    assert order.committed_amount == 900


def test_commit_accepted_items_blocked_while_rejections_unresolved(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_bulk_order(db_session, project, supplier, pm, count=2)
    respond_to_bulk_order(
        db_session,
        order.id,
        BulkResponseInput(
            material_responses=[
                MaterialResponseInput(material_request_id="MR-1", action="accept"),
                MaterialResponseInput(
                    material_request_id="MR-2", action="reject", notes="too low", rejection_reason="price_too_high"
                ),
            ]
        ),
        supplier_user,
    )

    with pytest.raises(ValidationError, match="Retry or reassign"):
        commit_accepted_items(db_session, order.id, pm)


def test_transitions_are_audited_and_creator_notified(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)

    log = (
        db_session.query(AuditLog)
        .filter(AuditLog.entity_id == order.id, AuditLog.action == "purchase_order_accept")
        .one()
    )
    assert log.changes["before"]["status"] == "order_sent"
    assert log.changes["after"]["status"] == "order_accepted"
    assert log.user_id == supplier_user.id

    notification = db_session.query(Notification).filter(Notification.user_id == pm.id).one()
    assert notification.type == "purchase_order_accept"
    assert notification.related_id == order.id


def test_supplier_user_can_own_several_supplier_records(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    other = create_supplier(db_session, name="Other Co", user_id=supplier_user.id)
    order = create_order(db_session, project, other, pm)
    order = accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)
    assert order.status == "order_accepted"
