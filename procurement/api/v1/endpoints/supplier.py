from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from procurement.api.deps import get_current_user
from procurement.core.clock import utcnow
from procurement.core.db import get_db
from procurement.models.models import Supplier, User
from procurement.schemas.supplier import SupplierCreate, SupplierRead
from procurement.services.permissions import require_permission


router = APIRouter()


@router.get("/", response_model=list[SupplierRead])
def list_suppliers(
    status_filter: str | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    require_permission(user, "view_purchase_orders")
    query = db.query(Supplier).filter(Supplier.deleted_at.is_(None))
    if status_filter is not None:
        query = query.filter(Supplier.status == status_filter)
    return query.order_by(Supplier.name).all()


@router.get("/{id}", response_model=SupplierRead)
def get_supplier(id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    require_permission(user, "view_purchase_orders")
    item = db.query(Supplier).filter(Supplier.id == id, Supplier.deleted_at.is_(None)).first()
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier not found")
    return item


@router.post("/", response_model=SupplierRead, status_code=status.HTTP_201_CREATED)
def create_supplier(data: SupplierCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    require_permission(user, "manage_suppliers")
    if not data.name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Supplier name is required")
    if data.email:
        existing = db.query(Supplier).filter(Supplier.email == data.email, Supplier.deleted_at.is_(None)).first()
        if existing is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Supplier email already exists")

    now = utcnow()
    item = Supplier(**data.model_dump(), created_at=now, updated_at=now)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item
