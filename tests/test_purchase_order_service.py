from __future__ import annotations

import pytest

from procurement.core.errors import InsufficientCapital, InvalidStateTransition, NotFound, PermissionDenied, ValidationError
from procurement.models.models import AuditLog, Notification, PurchaseOrder
from procurement.schemas.purchase_order import BulkPurchaseOrderCreate, PurchaseOrderCreate, PurchaseOrderUpdate
from procurement.schemas.supplier_response import AcceptInput
from procurement.services.permissions import allowed_actions_for
from procurement.services.purchase_order import (
    cancel_purchase_order,
    create_bulk_purchase_order,
    create_purchase_order,
    delete_purchase_order,
    get_purchase_order,
    list_purchase_orders,
    resend_response_link,
    update_purchase_order,
)
from procurement.services.supplier_response import accept_purchase_order
from tests.test_utils import create_order, create_supplier, create_user, future_date, item, setup_parties


def _payload(project, supplier, **overrides) -> PurchaseOrderCreate:
    data = dict(
        project_id=project.id,
        supplier_id=supplier.id,
        material_request_id="MR-100",
        material_name="Cement",
        unit="bags",
        quantity_ordered=10,
        unit_cost=100,
        delivery_date=future_date(),
    )
    data.update(overrides)
    return PurchaseOrderCreate(**data)


def test_create_purchase_order(db_session, sms_sender):
    pm, supplier_user, project, supplier = setup_parties(db_session)

    order = create_purchase_order(db_session, _payload(project, supplier), pm, sms_sender)

    assert order.status == "order_sent"
    assert order.financial_status == "not_committed"
    assert order.total_cost == 1000
    assert order.purchase_order_number.startswith("PO-")
    assert order.response_token
    assert order.response_token_expires_at is not None
    assert [i.material_request_id for i in order.items] == ["MR-100"]

    to, message = sms_sender.messages[0]
    assert to == "+254712345678"
    assert order.response_token in message
    assert "10 bags Cement" in message

    audit = db_session.query(AuditLog).filter(AuditLog.entity_id == order.id).one()
    assert audit.action == "purchase_order_created"
    notification = db_session.query(Notification).filter(Notification.user_id == supplier_user.id).one()
    assert notification.type == "purchase_order_received"


def test_create_is_idempotent(db_session):
    pm, _, project, supplier = setup_parties(db_session)
    payload = _payload(project, supplier, idempotency_key="req-42")

    first = create_purchase_order(db_session, payload, pm)
    second = create_purchase_order(db_session, payload, pm)

    assert first.id == second.id
    assert db_session.query(PurchaseOrder).count() == 1


def test_create_validation(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    inactive = create_supplier(db_session, name="Closed Shop", status="inactive")

    with pytest.raises(ValidationError, match="greater than 0"):
        create_purchase_order(db_session, _payload(project, supplier, quantity_ordered=0), pm)
    with pytest.raises(ValidationError, match="greater than 0"):
        create_purchase_order(db_session, _payload(project, supplier, unit_cost=-5), pm)
    with pytest.raises(ValidationError, match="cannot be in the past"):
        create_purchase_order(db_session, _payload(project, supplier, delivery_date=future_date(-3)), pm)
    with pytest.raises(ValidationError, match="not active"):
        create_purchase_order(db_session, _payload(project, inactive), pm)
    with pytest.raises(NotFound):
        create_purchase_order(db_session, _payload(project, supplier, project_id=999999), pm)
    with pytest.raises(InsufficientCapital):
        create_purchase_order(db_session, _payload(project, supplier, quantity_ordered=10_000, unit_cost=1_000), pm)
    with pytest.raises(PermissionDenied):
        create_purchase_order(db_session, _payload(project, supplier), supplier_user)

    assert db_session.query(PurchaseOrder).count() == 0


def test_create_bulk_purchase_order(db_session, sms_sender):
    pm, _, project, supplier = setup_parties(db_session)

    order = create_bulk_purchase_order(
        db_session,
        BulkPurchaseOrderCreate(
            project_id=project.id,
            supplier_id=supplier.id,
            materials=[item("MR-1", "Cement", 10, 50), item("MR-2", "Sand", 4, 25, unit="tonnes")],
            delivery_date=future_date(),
        ),
        pm,
        sms_sender,
    )

    assert order.is_bulk_order
    assert order.total_cost == 600
    assert order.quantity_ordered is None
    assert [i.total_cost for i in order.items] == [500, 100]
    assert "2 materials" in sms_sender.messages[0][1]

    with pytest.raises(ValidationError, match="more than once"):
        create_bulk_purchase_order(
            db_session,
            BulkPurchaseOrderCreate(
                project_id=project.id,
                supplier_id=supplier.id,
                materials=[item("MR-1", "Cement", 1, 1), item("MR-1", "Cement", 2, 1)],
            ),
            pm,
        )
    with pytest.raises(ValidationError, match="At least one material"):
        create_bulk_purchase_order(
            db_session, BulkPurchaseOrderCreate(project_id=project.id, supplier_id=supplier.id), pm
        )


def test_edit_recalculates_total(db_session):
    pm, _, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)

    order = update_purchase_order(db_session, order.id, PurchaseOrderUpdate(quantity_ordered=12, terms="Net 30"), pm)
    assert order.total_cost == 1200
    assert order.quantity_ordered == 12
    assert order.terms == "Net 30"

    with pytest.raises(ValidationError):
        update_purchase_order(db_session, order.id, PurchaseOrderUpdate(unit_cost=0), pm)
    with pytest.raises(ValidationError, match="in the future"):
        update_purchase_order(db_session, order.id, PurchaseOrderUpdate(delivery_date=future_date(-1)), pm)


def test_edit_not_allowed_after_acceptance(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)

    with pytest.raises(InvalidStateTransition):
        update_purchase_order(db_session, order.id, PurchaseOrderUpdate(unit_cost=80), pm)


def test_cancel_releases_commitment(db_session, sms_sender):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)
    db_session.refresh(project)
    assert project.committed_cost == 1000

    order = cancel_purchase_order(db_session, order.id, pm, reason="Design change", sms_sender=sms_sender)

    assert order.status == "cancelled"
    assert order.financial_status == "cancelled"
    assert order.cancellation_reason == "Design change"
    assert order.committed_amount == 0
    db_session.refresh(project)
    assert project.committed_cost == 0
    assert "Design change" in sms_sender.messages[-1][1]

    with pytest.raises(InvalidStateTransition):
        cancel_purchase_order(db_session, order.id, pm)


def test_soft_delete(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    owner = create_user(db_session, "owner", name="Olive Owner")
    order = create_order(db_session, project, supplier, pm)

    with pytest.raises(PermissionDenied):
        delete_purchase_order(db_session, order.id, pm)

    delete_purchase_order(db_session, order.id, owner)

    with pytest.raises(NotFound):
        get_purchase_order(db_session, order.id)
    deleted = get_purchase_order(db_session, order.id, include_deleted=True)
    assert deleted.status == "cancelled"
    assert deleted.deleted_at is not None
    assert list_purchase_orders(db_session, pm) == []


def test_delete_not_allowed_after_acceptance(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    owner = create_user(db_session, "owner", name="Olive Owner")
    order = create_order(db_session, project, supplier, pm)
    accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)

    with pytest.raises(InvalidStateTransition):
        delete_purchase_order(db_session, order.id, owner)


def test_list_filters_and_supplier_scope(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    other = create_supplier(db_session, name="Other Supplier")
    mine = create_order(db_session, project, supplier, pm)
    theirs = create_order(db_session, project, other, pm)
    accept_purchase_order(db_session, mine.id, AcceptInput(), supplier_user)

    assert {o.id for o in list_purchase_orders(db_session, pm)} == {mine.id, theirs.id}
    assert [o.id for o in list_purchase_orders(db_session, pm, status="order_sent")] == [theirs.id]
    assert [o.id for o in list_purchase_orders(db_session, pm, supplier_id=other.id)] == [theirs.id]
    assert [o.id for o in list_purchase_orders(db_session, supplier_user)] == [mine.id]


def test_resend_link_keeps_valid_token(db_session, sms_sender):
    pm, _, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    token = order.response_token

    order, reissued = resend_response_link(db_session, order.id, pm, sms_sender)
    assert reissued is False
    assert order.response_token == token
    assert token in sms_sender.messages[-1][1]


def test_resend_link_reissues_expired_token(db_session, sms_sender):
    pm, _, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    token = order.response_token
    order.response_token_expires_at = order.created_at
    db_session.commit()

    order, reissued = resend_response_link(db_session, order.id, pm, sms_sender)
    assert reissued is True
    assert order.response_token != token
    assert order.response_token in sms_sender.messages[-1][1]


def test_allowed_actions_for_roles(db_session):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    clerk = create_user(db_session, "clerk", name="Site Clerk")
    order = create_order(db_session, project, supplier, pm)

    assert "accept" in allowed_actions_for(supplier_user, order)
    assert "cancel" in allowed_actions_for(pm, order)
    assert allowed_actions_for(clerk, order) == []
