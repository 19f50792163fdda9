from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy.orm import Session

from procurement.core.clock import utcnow
from procurement.models.models import Project, PurchaseOrder, Supplier, User
from procurement.schemas.purchase_order import PurchaseOrderItemCreate
from procurement.services.purchase_order import build_purchase_order


def future_date(days: int = 14) -> date:
    return date.today() + timedelta(days=days)


def create_user(session: Session, role: str = "project_manager", name: str | None = None, **kwargs) -> User:
    user = User(
        name=name or f"{role} user",
        email=kwargs.get("email"),
        phone=kwargs.get("phone"),
        role=role,
        status=kwargs.get("status", "active"),
        created_at=utcnow(),
    )
    session.add(user)
    session.flush()
    return user


def create_project(session: Session, name: str = "Riverside Apartments", **kwargs) -> Project:
    project = Project(
        name=name,
        location=kwargs.get("location", "Nairobi"),
        capital=kwargs.get("capital", 1_000_000.0),
        committed_cost=kwargs.get("committed_cost", 0.0),
        spent_cost=kwargs.get("spent_cost", 0.0),
        created_at=utcnow(),
    )
    session.add(project)
    session.flush()
    return project


def create_supplier(session: Session, name: str = "Acme Hardware", **kwargs) -> Supplier:
    now = utcnow()
    supplier = Supplier(
        name=name,
        email=kwargs.get("email"),
        phone=kwargs.get("phone", "0712345678"),
        contact_person=kwargs.get("contact_person"),
        status=kwargs.get("status", "active"),
        user_id=kwargs.get("user_id"),
        sms_enabled=kwargs.get("sms_enabled", True),
        email_enabled=kwargs.get("email_enabled", True),
        push_enabled=kwargs.get("push_enabled", False),
        specialties=kwargs.get("specialties"),
        location=kwargs.get("location"),
        availability_status=kwargs.get("availability_status"),
        created_at=now,
        updated_at=now,
    )
    session.add(supplier)
    session.flush()
    return supplier


def item(material_request_id: str, name: str, quantity: float, unit_cost: float, unit: str = "bags") -> PurchaseOrderItemCreate:
    return PurchaseOrderItemCreate(
        material_request_id=material_request_id,
        material_name=name,
        unit=unit,
        quantity=quantity,
        unit_cost=unit_cost,
    )


def create_order(
    session: Session,
    project: Project,
    supplier: Supplier,
    creator: User,
    *,
    quantity: float = 10,
    unit_cost: float = 100,
    material_name: str = "Cement",
    delivery_date: date | None = None,
) -> PurchaseOrder:
    """Single-material order in ``order_sent``."""
    order = build_purchase_order(
        session,
        project=project,
        supplier=supplier,
        items=[item("MR-1", material_name, quantity, unit_cost)],
        is_bulk=False,
        created_by=creator.id,
        now=utcnow(),
        delivery_date=delivery_date or future_date(),
    )
    session.commit()
    return order


def create_bulk_order(
    session: Session,
    project: Project,
    supplier: Supplier,
    creator: User,
    *,
    count: int = 5,
    quantity: float = 10,
    unit_cost: float = 50,
) -> PurchaseOrder:
    order = build_purchase_order(
        session,
        project=project,
        supplier=supplier,
        items=[item(f"MR-{i}", f"Material {i}", quantity, unit_cost) for i in range(1, count + 1)],
        is_bulk=True,
        created_by=creator.id,
        now=utcnow(),
        delivery_date=future_date(),
    )
    session.commit()
    return order


def setup_parties(session: Session, **project_kwargs):
    """Project manager, project and supplier (with a supplier user account)."""
    pm = create_user(session, "project_manager", name="Pat Manager")
    supplier_user = create_user(session, "supplier", name="Sam Supplier")
    project = create_project(session, **project_kwargs)
    supplier = create_supplier(session, user_id=supplier_user.id)
    return pm, supplier_user, project, supplier
