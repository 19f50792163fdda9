from __future__ import annotations

import logging
import re
from datetime import date
from typing import Protocol

import requests

from procurement.core.config import settings
from procurement.models.models import PurchaseOrder, Supplier


logger = logging.getLogger(__name__)


class SmsSender(Protocol):
    def send(self, to: str, message: str) -> bool:
        ...


class HttpSmsSender:
    """Posts messages to an HTTP SMS gateway."""

    def __init__(self, api_url: str, api_key: str, sender_id: str, timeout: float = 10.0) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._sender_id = sender_id
        self._timeout = timeout

    def send(self, to: str, message: str) -> bool:
        r = requests.post(
            self._api_url,
            json={"to": to, "message": message, "sender_id": self._sender_id},
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self._timeout,
        )
        r.raise_for_status()
        return True


class LoggingSmsSender:
    """Used when no gateway is configured; messages only go to the log."""

    def send(self, to: str, message: str) -> bool:
        logger.info("SMS to %s: %s", to, message)
        return True


def default_sms_sender() -> SmsSender:
    if settings.sms_api_url:
        return HttpSmsSender(
            api_url=settings.sms_api_url,
            api_key=settings.sms_api_key,
            sender_id=settings.sms_sender_id,
            timeout=settings.sms_timeout_seconds,
        )
    return LoggingSmsSender()


def format_phone_number(phone: str | None) -> str | None:
    """Normalise to E.164, assuming the default country for local numbers."""
    if not phone:
        return None
    digits = re.sub(r"[^\d+]", "", phone)
    if not digits:
        return None
    if digits.startswith("+"):
        return digits
    if digits.startswith("00"):
        return "+" + digits[2:]
    if digits.startswith("0"):
        return settings.sms_default_country_code + digits[1:]
    return "+" + digits


def send_sms(sender: SmsSender, to: str | None, message: str) -> bool:
    """Best-effort send; never raises."""
    number = format_phone_number(to)
    if number is None:
        logger.info("Skipping SMS, no usable phone number")
        return False
    try:
        return bool(sender.send(number, message))
    except Exception:
        logger.exception("Failed to send SMS to %s", number)
        return False


def send_supplier_sms(sender: SmsSender, supplier: Supplier | None, message: str) -> bool:
    if supplier is None or not supplier.sms_enabled:
        return False
    return send_sms(sender, supplier.phone, message)


# Message templates

def _money(value: float | None) -> str:
    return f"{value or 0:,.2f}"


def _date(value: date | None) -> str:
    return value.isoformat() if value else "TBD"


def _describe(order: PurchaseOrder) -> str:
    if order.is_bulk_order:
        return f"{len(order.items)} materials"
    return f"{order.quantity_ordered:g} {order.unit or ''} {order.material_name}".replace("  ", " ")


def generate_purchase_order_sms(order: PurchaseOrder, link: str) -> str:
    return (
        f"New purchase order {order.purchase_order_number}: {_describe(order)}, "
        f"total {_money(order.total_cost)}, delivery {_date(order.delivery_date)}. "
        f"Respond here: {link}"
    )


def generate_reminder_sms(order: PurchaseOrder, link: str) -> str:
    return (
        f"Reminder: purchase order {order.purchase_order_number} is awaiting your response. "
        f"Respond here: {link}"
    )


def generate_retry_sms(order: PurchaseOrder, link: str) -> str:
    return (
        f"Purchase order {order.purchase_order_number} has been revised "
        f"(attempt {order.retry_count}): total {_money(order.total_cost)}, "
        f"delivery {_date(order.delivery_date)}. Respond here: {link}"
    )


def generate_modification_approved_sms(order: PurchaseOrder, link: str | None = None) -> str:
    message = f"Your proposed changes to purchase order {order.purchase_order_number} were approved."
    if link:
        message += f" Please confirm the revised order: {link}"
    return message


def generate_modification_rejected_sms(order: PurchaseOrder, reason: str, link: str | None = None) -> str:
    message = f"Your proposed changes to purchase order {order.purchase_order_number} were declined: {reason}."
    if link:
        message += f" Please respond to the original terms: {link}"
    return message


def generate_delivery_confirmation_sms(order: PurchaseOrder) -> str:
    return (
        f"Delivery for purchase order {order.purchase_order_number} has been confirmed. "
        f"Thank you, {order.supplier_name}."
    )


def generate_cancellation_sms(order: PurchaseOrder) -> str:
    message = f"Purchase order {order.purchase_order_number} has been cancelled."
    if order.cancellation_reason:
        message += f" Reason: {order.cancellation_reason}"
    return message
