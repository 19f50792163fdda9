from __future__ import annotations

import pytest

from procurement.core.errors import InvalidStateTransition, MaterialCreationFailed, PermissionDenied, ValidationError
from procurement.models.models import Material, Notification
from procurement.schemas.delivery import ConfirmDeliveryInput, CreateMaterialInput, MaterialQuantity, MaterialUnitCost
from procurement.schemas.supplier_response import AcceptInput, BulkResponseInput, MaterialResponseInput
from procurement.services.delivery import confirm_delivery, create_material, fulfill_order, verify_receipt
from procurement.services.supplier_response import accept_purchase_order, respond_to_bulk_order
from tests.test_utils import create_bulk_order, create_order, create_user, setup_parties


NOTE_URL = "https://files.example/delivery-notes/dn-001.pdf"


def _accepted_order(db, **kwargs):
    pm, supplier_user, project, supplier = setup_parties(db)
    order = create_order(db, project, supplier, pm, **kwargs)
    order = accept_purchase_order(db, order.id, AcceptInput(), supplier_user)
    return pm, supplier_user, project, order


def _accepted_bulk_order(db):
    pm, supplier_user, project, supplier = setup_parties(db)
    order = create_bulk_order(db, project, supplier, pm, count=2, quantity=10, unit_cost=50)
    order = respond_to_bulk_order(
        db,
        order.id,
        BulkResponseInput(
            material_responses=[
                MaterialResponseInput(material_request_id=f"MR-{i}", action="accept") for i in (1, 2)
            ]
        ),
        supplier_user,
    )
    return pm, project, order


def _failing_creator(db, order, **kwargs):
    raise RuntimeError("inventory service unavailable")


def test_confirm_delivery_without_note_changes_nothing(db_session):
    pm, _, project, order = _accepted_order(db_session)

    for note in (None, "", "   "):
        with pytest.raises(ValidationError, match="Delivery note is required"):
            confirm_delivery(db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=note), pm)

    db_session.refresh(order)
    assert order.status == "order_accepted"
    assert order.delivery_note_file_url is None
    assert order.financial_status == "committed"
    assert db_session.query(Material).filter(Material.purchase_order_id == order.id).count() == 0


def test_confirm_delivery_creates_material_and_spends_commitment(db_session, sms_sender):
    pm, _, project, order = _accepted_order(db_session)
    assert project.committed_cost == 1000

    order, result = confirm_delivery(
        db_session,
        order.id,
        ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL, notes="All bags intact"),
        pm,
        sms_sender=sms_sender,
    )

    assert order.status == "delivered"
    assert order.financial_status == "fulfilled"
    assert order.delivery_confirmation_method == "owner_pm_manual"
    assert order.delivery_confirmed_by == pm.id
    assert order.fulfilled_at is not None
    assert len(result.material_ids) == 1
    assert order.linked_material_id == result.material_ids[0]

    material = db_session.get(Material, result.material_ids[0])
    assert material.quantity_received == 10
    assert material.total_cost == 1000
    assert material.is_automatic is False

    db_session.refresh(project)
    assert project.committed_cost == 0
    assert project.spent_cost == 1000
    assert order.committed_amount == 0
    assert "confirmed" in sms_sender.messages[-1][1]


def test_confirm_delivery_uses_actual_quantities(db_session):
    pm, _, project, order = _accepted_order(db_session)

    order, result = confirm_delivery(
        db_session,
        order.id,
        ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL, actual_quantity_delivered=8, actual_unit_cost=95),
        pm,
    )

    material = result.created_materials[0]
    assert (material.quantity_received, material.unit_cost, material.total_cost) == (8, 95, 760)
    assert order.items[0].actual_quantity_delivered == 8
    db_session.refresh(project)
    assert project.spent_cost == 760


def test_confirm_delivery_rejects_bad_actuals(db_session):
    pm, _, _, order = _accepted_order(db_session)

    with pytest.raises(ValidationError, match="greater than 0"):
        confirm_delivery(
            db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL, actual_quantity_delivered=0), pm
        )
    with pytest.raises(ValidationError, match="cannot be negative"):
        confirm_delivery(
            db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL, actual_unit_cost=-1), pm
        )
    with pytest.raises(ValidationError, match="only accepted for bulk"):
        confirm_delivery(
            db_session,
            order.id,
            ConfirmDeliveryInput(
                delivery_note_file_url=NOTE_URL,
                material_quantities=[MaterialQuantity(material_request_id="MR-1", quantity=5)],
            ),
            pm,
        )


def test_second_confirmation_is_rejected(db_session):
    pm, _, _, order = _accepted_order(db_session)
    confirm_delivery(db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL), pm)

    with pytest.raises(InvalidStateTransition):
        confirm_delivery(db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL), pm)
    assert db_session.query(Material).filter(Material.purchase_order_id == order.id).count() == 1


def test_confirm_delivery_requires_accepted_order(db_session):
    pm, _, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)

    with pytest.raises(InvalidStateTransition):
        confirm_delivery(db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL), pm)


def test_failed_material_creation_keeps_evidence(db_session):
    pm, _, project, order = _accepted_order(db_session)

    with pytest.raises(MaterialCreationFailed) as exc_info:
        confirm_delivery(
            db_session,
            order.id,
            ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL, actual_quantity_delivered=9),
            pm,
            material_creator=_failing_creator,
        )
    assert exc_info.value.to_dict()["code"] == "material_creation_failed"

    db_session.refresh(order)
    assert order.status == "order_accepted"
    assert order.delivery_note_file_url == NOTE_URL
    assert order.linked_material_id is None
    assert order.financial_status == "committed"

    order, result = create_material(db_session, order.id, CreateMaterialInput(), pm)
    assert order.status == "ready_for_delivery"
    assert order.financial_status == "fulfilled"
    assert result.created_materials[0].quantity_received == 9

    clerk = create_user(db_session, "clerk", name="Site Clerk")
    order = verify_receipt(db_session, order.id, clerk)
    assert order.status == "delivered"
    assert order.received_verified_by == clerk.id


def test_create_material_needs_delivery_note(db_session):
    pm, _, _, order = _accepted_order(db_session)

    with pytest.raises(ValidationError, match="delivery note"):
        create_material(db_session, order.id, CreateMaterialInput(), pm)


def test_supplier_fulfilment_then_clerk_verification(db_session):
    pm, supplier_user, project, order = _accepted_order(db_session)
    clerk = create_user(db_session, "clerk", name="Site Clerk")

    with pytest.raises(PermissionDenied):
        fulfill_order(db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL), pm)
    with pytest.raises(InvalidStateTransition, match="No material entry"):
        verify_receipt(db_session, order.id, clerk)

    order, result = fulfill_order(
        db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL), supplier_user
    )
    assert order.status == "ready_for_delivery"
    assert order.delivery_confirmation_method == "supplier_fulfill"
    assert len(result.material_ids) == 1

    notified = {n.user_id for n in db_session.query(Notification).filter(Notification.type == "purchase_order_delivery")}
    assert {pm.id, clerk.id} <= notified

    with pytest.raises(PermissionDenied):
        verify_receipt(db_session, order.id, pm)
    order = verify_receipt(db_session, order.id, clerk)
    assert order.status == "delivered"


def test_other_supplier_cannot_fulfil(db_session):
    _, _, _, order = _accepted_order(db_session)
    stranger = create_user(db_session, "supplier", name="Other Supplier")

    with pytest.raises(PermissionDenied):
        fulfill_order(db_session, order.id, ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL), stranger)


def test_bulk_delivery_validates_per_material(db_session):
    pm, project, order = _accepted_bulk_order(db_session)
    assert order.status == "order_accepted"

    bad_payloads = [
        ConfirmDeliveryInput(delivery_note_file_url=NOTE_URL, actual_quantity_delivered=5),
        ConfirmDeliveryInput(
            delivery_note_file_url=NOTE_URL,
            material_quantities=[MaterialQuantity(material_request_id="MR-9", quantity=5)],
        ),
        ConfirmDeliveryInput(
            delivery_note_file_url=NOTE_URL,
            material_quantities=[
                MaterialQuantity(material_request_id="MR-1", quantity=5),
                MaterialQuantity(material_request_id="MR-1", quantity=6),
            ],
        ),
        ConfirmDeliveryInput(
            delivery_note_file_url=NOTE_URL,
            material_unit_costs=[MaterialUnitCost(material_request_id="MR-2", unit_cost=-5)],
        ),
    ]
    for payload in bad_payloads:
        with pytest.raises(ValidationError):
            confirm_delivery(db_session, order.id, payload, pm)
    db_session.refresh(order)
    assert order.delivery_note_file_url is None

    order, result = confirm_delivery(
        db_session,
        order.id,
        ConfirmDeliveryInput(
            delivery_note_file_url=NOTE_URL,
            material_quantities=[MaterialQuantity(material_request_id="MR-1", quantity=9)],
        ),
        pm,
    )
    assert order.status == "delivered"
    assert [(m.material_request_id, m.total_cost) for m in result.created_materials] == [("MR-1", 450), ("MR-2", 500)]
    assert order.linked_material_ids == result.material_ids
    db_session.refresh(project)
    assert project.spent_cost == 950
    assert project.committed_cost == 0
