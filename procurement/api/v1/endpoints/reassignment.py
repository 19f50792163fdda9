from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from procurement.api.deps import get_current_user, get_sms_sender
from procurement.core.db import get_db
from procurement.models.models import PurchaseOrder, User
from procurement.schemas.purchase_order import PurchaseOrderRead
from procurement.schemas.reassignment import (
    AlternativeSuppliersRead,
    AlternativesInput,
    AlternativesResult,
    AutoReassignInput,
    AutoReassignResult,
    RetryInput,
)
from procurement.services import reassignment as reassignment_service
from procurement.services.purchase_order import get_purchase_order
from procurement.services.sms import SmsSender


router = APIRouter()


@router.post("/{order_id}/retry", response_model=PurchaseOrderRead)
def retry_with_same_supplier(
    order_id: int,
    payload: RetryInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> PurchaseOrder:
    return reassignment_service.retry_with_same_supplier(db, order_id, payload, user, sms_sender)


@router.get("/{order_id}/alternative-suppliers", response_model=AlternativeSuppliersRead)
def find_alternative_suppliers(
    order_id: int,
    mode: str = "simple",
    search: str | None = None,
    limit: int | None = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AlternativeSuppliersRead:
    return reassignment_service.find_alternative_suppliers(
        db,
        order_id,
        user,
        mode=mode,
        search=search,
        limit=limit,
    )


@router.post("/{order_id}/send-to-alternatives", response_model=AlternativesResult)
def send_to_alternative_suppliers(
    order_id: int,
    payload: AlternativesInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> AlternativesResult:
    created = reassignment_service.send_to_alternative_suppliers(db, order_id, payload, user, sms_sender)
    original = get_purchase_order(db, order_id)
    return AlternativesResult(
        original_order_id=original.id,
        original_status=original.status,
        created_orders=[reassignment_service.created_order_summary(order) for order in created],
    )


@router.post("/{order_id}/auto-reassign", response_model=AutoReassignResult)
def auto_reassign(
    order_id: int,
    payload: AutoReassignInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> AutoReassignResult:
    return reassignment_service.auto_reassign(
        db,
        order_id,
        user,
        mode=payload.mode,
        limit=payload.limit,
        auto_create=payload.auto_create,
        sms_sender=sms_sender,
    )
