from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from procurement.core.errors import InvalidStateTransition
from procurement.models.models import PurchaseOrder
from procurement.schemas.supplier_response import AcceptInput
from procurement.services.purchase_order import cancel_purchase_order
from procurement.services.supplier_response import accept_purchase_order
from tests.test_utils import create_order, setup_parties


@pytest.fixture
def second_session(db_session):
    """A second Session on the same test connection, standing in for a concurrent request."""
    session = Session(
        bind=db_session.get_bind(),
        autoflush=False,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    try:
        yield session
    finally:
        session.close()


def test_cancel_loses_race_against_accept(db_session, second_session, sms_sender):
    pm, supplier_user, project, supplier = setup_parties(db_session)
    order = create_order(db_session, project, supplier, pm)
    db_session.commit()

    # the second request reads the order while it is still awaiting a response
    stale = second_session.get(PurchaseOrder, order.id)
    assert stale.status == "order_sent"
    stale_version = stale.version_id
    second_session.commit()

    accepted = accept_purchase_order(db_session, order.id, AcceptInput(), supplier_user)
    assert accepted.status == "order_accepted"
    assert accepted.version_id != stale_version

    with pytest.raises(InvalidStateTransition) as exc_info:
        cancel_purchase_order(second_session, order.id, pm, reason="Too slow", sms_sender=sms_sender)

    err = exc_info.value
    assert "updated by another request" in err.message
    assert err.details["current_status"] == "order_accepted"
    assert err.details["action"] == "cancel"

    db_session.expire_all()
    order = db_session.get(PurchaseOrder, order.id)
    assert order.status == "order_accepted"
    assert order.financial_status == "committed"
    assert order.cancelled_at is None
    assert not any("Too slow" in message for _, message in sms_sender.messages)
