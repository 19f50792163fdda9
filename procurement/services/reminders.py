from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from procurement.core.clock import ensure_utc, utcnow
from procurement.core.config import settings
from procurement.core.workflow.states import OrderStatus
from procurement.models.models import PurchaseOrder
from procurement.services import sms


logger = logging.getLogger(__name__)


def _is_due(order: PurchaseOrder, now: datetime) -> bool:
    if order.response_token is None or order.response_token_used_at is not None:
        return False
    expires_at = ensure_utc(order.response_token_expires_at)
    if expires_at is None or expires_at <= now:
        return False
    sent_at = ensure_utc(order.sent_at)
    if sent_at is None or sent_at > now - timedelta(hours=settings.reminder_after_hours):
        return False
    last = ensure_utc(order.last_reminder_sent_at)
    if last is not None and last > now - timedelta(hours=settings.reminder_throttle_hours):
        return False
    return True


def find_orders_due_for_reminder(db: Session, now: datetime | None = None) -> list[PurchaseOrder]:
    """Unanswered orders whose response link is still valid and that have not been reminded recently."""
    now = now or utcnow()
    candidates = (
        db.query(PurchaseOrder)
        .filter(
            PurchaseOrder.status == OrderStatus.ORDER_SENT.value,
            PurchaseOrder.deleted_at.is_(None),
            PurchaseOrder.response_token.isnot(None),
            PurchaseOrder.response_token_used_at.is_(None),
        )
        .order_by(PurchaseOrder.sent_at)
        .all()
    )
    return [order for order in candidates if _is_due(order, now)]


def send_pending_response_reminders(
    db: Session,
    sms_sender: sms.SmsSender | None = None,
    now: datetime | None = None,
) -> int:
    """SMS a reminder for every order due one; returns how many reminders went out."""
    now = now or utcnow()
    sender = sms_sender or sms.default_sms_sender()
    sent = 0
    for order in find_orders_due_for_reminder(db, now):
        link = settings.response_link(order.response_token)
        if not sms.send_supplier_sms(sender, order.supplier, sms.generate_reminder_sms(order, link)):
            continue
        # Column update only, so the version counter is not bumped by reminders.
        db.query(PurchaseOrder).filter(PurchaseOrder.id == order.id).update(
            {
                PurchaseOrder.reminder_count: PurchaseOrder.reminder_count + 1,
                PurchaseOrder.last_reminder_sent_at: now,
            },
            synchronize_session=False,
        )
        sent += 1
    db.commit()
    if sent:
        logger.info("Sent %s purchase order response reminders", sent)
    return sent
