from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from procurement.api.deps import get_current_user, get_material_creator
from procurement.core.db import get_db
from procurement.core.workflow.rejection import taxonomy
from procurement.models.models import PurchaseOrder, User
from procurement.schemas.supplier_response import (
    AcceptInput,
    BulkResponseInput,
    ModifyInput,
    RejectInput,
    ResponsePageRead,
    ResponseResult,
    TokenResponseRequest,
)
from procurement.services import supplier_response as response_service
from procurement.services.material import MaterialCreator


# Public response-link endpoints, mounted under /supplier-response.
router = APIRouter()

# Signed-in supplier endpoints, mounted under /purchase-order.
portal_router = APIRouter()


def _result(order: PurchaseOrder) -> ResponseResult:
    return ResponseResult(
        purchase_order_id=order.id,
        purchase_order_number=order.purchase_order_number,
        status=order.status,
        financial_status=order.financial_status,
        total_cost=order.total_cost,
        message=response_service.status_message(order),
    )


@router.get("/rejection-reasons")
def list_rejection_reasons() -> list[dict]:
    return taxonomy()


@router.get("/{token}", response_model=ResponsePageRead)
def get_response_page(token: str, db: Session = Depends(get_db)) -> ResponsePageRead:
    return response_service.get_response_page(db, token)


@router.post("/{token}", response_model=ResponseResult)
def submit_response(
    token: str,
    payload: TokenResponseRequest,
    db: Session = Depends(get_db),
    material_creator: MaterialCreator = Depends(get_material_creator),
) -> ResponseResult:
    order = response_service.respond_with_token(db, token, payload, material_creator)
    return _result(order)


@portal_router.post("/{order_id}/accept", response_model=ResponseResult)
def accept_purchase_order(
    order_id: int,
    payload: AcceptInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    material_creator: MaterialCreator = Depends(get_material_creator),
) -> ResponseResult:
    return _result(response_service.accept_purchase_order(db, order_id, payload, user, material_creator))


@portal_router.post("/{order_id}/reject", response_model=ResponseResult)
def reject_purchase_order(
    order_id: int,
    payload: RejectInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ResponseResult:
    return _result(response_service.reject_purchase_order(db, order_id, payload, user))


@portal_router.post("/{order_id}/modify", response_model=ResponseResult)
def modify_purchase_order(
    order_id: int,
    payload: ModifyInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ResponseResult:
    return _result(response_service.modify_purchase_order(db, order_id, payload, user))


@portal_router.post("/{order_id}/respond-bulk", response_model=ResponseResult)
def respond_to_bulk_order(
    order_id: int,
    payload: BulkResponseInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    material_creator: MaterialCreator = Depends(get_material_creator),
) -> ResponseResult:
    return _result(response_service.respond_to_bulk_order(db, order_id, payload, user, material_creator))
