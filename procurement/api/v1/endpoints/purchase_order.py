from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from procurement.api.deps import get_current_user, get_sms_sender
from procurement.core.config import settings
from procurement.core.db import get_db
from procurement.models.models import PurchaseOrder, User
from procurement.schemas.purchase_order import (
    AllowedActionsRead,
    BulkPurchaseOrderCreate,
    PurchaseOrderCancel,
    PurchaseOrderCreate,
    PurchaseOrderRead,
    PurchaseOrderUpdate,
    ResponseLinkRead,
)
from procurement.schemas.supplier_response import ApproveModificationInput, RejectModificationInput
from procurement.services import purchase_order as po_service
from procurement.services import supplier_response as response_service
from procurement.services.permissions import allowed_actions_for
from procurement.services.sms import SmsSender


router = APIRouter()


@router.post("/", response_model=PurchaseOrderRead, status_code=status.HTTP_201_CREATED)
def create_purchase_order(
    payload: PurchaseOrderCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> PurchaseOrder:
    return po_service.create_purchase_order(db, payload, user, sms_sender)


@router.post("/bulk", response_model=PurchaseOrderRead, status_code=status.HTTP_201_CREATED)
def create_bulk_purchase_order(
    payload: BulkPurchaseOrderCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> PurchaseOrder:
    return po_service.create_bulk_purchase_order(db, payload, user, sms_sender)


@router.get("/", response_model=list[PurchaseOrderRead])
def list_purchase_orders(
    status_filter: str | None = Query(None, alias="status"),
    project_id: int | None = None,
    supplier_id: int | None = None,
    needs_reassignment: bool | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[PurchaseOrder]:
    return po_service.list_purchase_orders(
        db,
        user,
        status=status_filter,
        project_id=project_id,
        supplier_id=supplier_id,
        needs_reassignment=needs_reassignment,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=PurchaseOrderRead)
def get_purchase_order(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> PurchaseOrder:
    return po_service.get_order_for_user(db, order_id, user)


@router.patch("/{order_id}", response_model=PurchaseOrderRead)
def update_purchase_order(
    order_id: int,
    payload: PurchaseOrderUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> PurchaseOrder:
    return po_service.update_purchase_order(db, order_id, payload, user)


@router.post("/{order_id}/cancel", response_model=PurchaseOrderRead)
def cancel_purchase_order(
    order_id: int,
    payload: PurchaseOrderCancel,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> PurchaseOrder:
    return po_service.cancel_purchase_order(db, order_id, user, payload.reason, sms_sender)


@router.delete("/{order_id}", response_model=PurchaseOrderRead)
def delete_purchase_order(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> PurchaseOrder:
    return po_service.delete_purchase_order(db, order_id, user, sms_sender)


@router.get("/{order_id}/allowed-actions", response_model=AllowedActionsRead)
def get_allowed_actions(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AllowedActionsRead:
    order = po_service.get_order_for_user(db, order_id, user)
    return AllowedActionsRead(
        purchase_order_id=order.id,
        status=order.status,
        financial_status=order.financial_status,
        actions=allowed_actions_for(user, order),
    )


@router.post("/{order_id}/resend-link", response_model=ResponseLinkRead)
def resend_response_link(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> ResponseLinkRead:
    order, reissued = po_service.resend_response_link(db, order_id, user, sms_sender)
    return ResponseLinkRead(
        purchase_order_id=order.id,
        response_link=settings.response_link(order.response_token),
        expires_at=order.response_token_expires_at,
        token_reissued=reissued,
    )


@router.post("/{order_id}/approve-modification", response_model=PurchaseOrderRead)
def approve_modification(
    order_id: int,
    payload: ApproveModificationInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> PurchaseOrder:
    return response_service.approve_modification(db, order_id, payload, user, sms_sender)


@router.post("/{order_id}/reject-modification", response_model=PurchaseOrderRead)
def reject_modification(
    order_id: int,
    payload: RejectModificationInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> PurchaseOrder:
    return response_service.reject_modification(db, order_id, payload, user, sms_sender)


@router.post("/{order_id}/commit-accepted-items", response_model=PurchaseOrderRead)
def commit_accepted_items(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> PurchaseOrder:
    return response_service.commit_accepted_items(db, order_id, user)
