from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from procurement.core.db import get_db
from procurement.models.models import User
from procurement.services.material import MaterialCreator, create_material_from_purchase_order
from procurement.services.sms import SmsSender, default_sms_sender


def get_current_user(
    x_user_id: int | None = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user from the ``X-User-Id`` header set by the gateway."""
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    user = db.get(User, x_user_id)
    if user is None or user.status != "active":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or inactive user")
    return user


def get_sms_sender() -> SmsSender:
    return default_sms_sender()


def get_material_creator() -> MaterialCreator:
    return create_material_from_purchase_order
