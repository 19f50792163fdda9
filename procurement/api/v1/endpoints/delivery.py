from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from procurement.api.deps import get_current_user, get_material_creator, get_sms_sender
from procurement.core.db import get_db
from procurement.models.models import PurchaseOrder, User
from procurement.schemas.delivery import ConfirmDeliveryInput, CreateMaterialInput, DeliveryResult, MaterialRead
from procurement.schemas.purchase_order import PurchaseOrderRead
from procurement.services import delivery as delivery_service
from procurement.services.material import MaterialCreationResult, MaterialCreator
from procurement.services.sms import SmsSender


router = APIRouter()


def _result(order: PurchaseOrder, result: MaterialCreationResult) -> DeliveryResult:
    return DeliveryResult(
        purchase_order_id=order.id,
        status=order.status,
        financial_status=order.financial_status,
        delivery_confirmation_method=order.delivery_confirmation_method,
        material_ids=list(result.material_ids),
        materials=[MaterialRead.model_validate(material) for material in result.created_materials],
    )


@router.post("/{order_id}/fulfill", response_model=DeliveryResult)
def fulfill_order(
    order_id: int,
    payload: ConfirmDeliveryInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    material_creator: MaterialCreator = Depends(get_material_creator),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> DeliveryResult:
    order, result = delivery_service.fulfill_order(db, order_id, payload, user, material_creator, sms_sender)
    return _result(order, result)


@router.post("/{order_id}/confirm-delivery", response_model=DeliveryResult)
def confirm_delivery(
    order_id: int,
    payload: ConfirmDeliveryInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    material_creator: MaterialCreator = Depends(get_material_creator),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> DeliveryResult:
    order, result = delivery_service.confirm_delivery(db, order_id, payload, user, material_creator, sms_sender)
    return _result(order, result)


@router.post("/{order_id}/create-material", response_model=DeliveryResult)
def create_material(
    order_id: int,
    payload: CreateMaterialInput,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    material_creator: MaterialCreator = Depends(get_material_creator),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> DeliveryResult:
    order, result = delivery_service.create_material(db, order_id, payload, user, material_creator, sms_sender)
    return _result(order, result)


@router.post("/{order_id}/verify-receipt", response_model=PurchaseOrderRead)
def verify_receipt(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> PurchaseOrder:
    return delivery_service.verify_receipt(db, order_id, user)
