from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class User(Base):
    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Project(Base):
    __tablename__ = "project"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # NULL capital means no budget has been set and commitments are not blocked.
    capital: Mapped[float | None] = mapped_column(Float, nullable=True)
    committed_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    spent_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Supplier(Base):
    __tablename__ = "supplier"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    sms_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    push_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    specialties: Mapped[list | None] = mapped_column(JSON, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    availability_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PurchaseOrder(Base):
    __tablename__ = "purchase_order"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    is_bulk_order: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Commercial terms. For bulk orders quantity/unit/unit_cost stay NULL and
    # total_cost is the sum of the line items.
    material_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    material_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity_ordered: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    unit_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    committed_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Parties
    supplier_id: Mapped[int] = mapped_column(ForeignKey("supplier.id"), nullable=False)
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("project.id"), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("app_user.id"), nullable=False)

    # Workflow state
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    financial_status: Mapped[str] = mapped_column(String(50), nullable=False)

    # Supplier response
    supplier_response: Mapped[str | None] = mapped_column(String(50), nullable=True)
    supplier_response_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    supplier_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    supplier_modifications: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    modification_approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    modification_approved_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    modification_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    modification_approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    modification_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Rejection and retry
    rejection_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rejection_subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejection_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_retryable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    retry_recommendation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retry_adjustments: Mapped[list | None] = mapped_column(JSON, nullable=True)
    retry_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_requested_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    needs_reassignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Reassignment
    alternatives_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    alternatives_sent_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    alternative_order_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_alternative_order: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_order_id: Mapped[int | None] = mapped_column(ForeignKey("purchase_order.id"), nullable=True)
    original_order_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    original_rejection_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Delivery
    delivery_note_file_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    actual_quantity_delivered: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_unit_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    delivery_confirmed_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    delivery_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_confirmation_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    linked_material_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    linked_material_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    received_verified_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    received_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Response link
    response_token: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    response_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    response_token_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reminder_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    committed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fulfilled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        order_by="PurchaseOrderItem.position",
        cascade="all, delete-orphan",
    )
    supplier: Mapped[Supplier] = relationship("Supplier")
    project: Mapped[Project] = relationship("Project")

    __mapper_args__ = {"version_id_col": version_id}


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey("purchase_order.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    material_request_id: Mapped[str] = mapped_column(String(100), nullable=False)
    material_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit_cost: Mapped[float] = mapped_column(Float, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False)

    response_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    response_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rejection_subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_retryable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    modifications: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    needs_reassignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reassigned_order_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)

    actual_quantity_delivered: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_unit_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    linked_material_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    purchase_order: Mapped[PurchaseOrder] = relationship("PurchaseOrder", back_populates="items")

    __table_args__ = (
        UniqueConstraint(
            "purchase_order_id",
            "material_request_id",
            name="uq_po_item_po_material_request",
        ),
    )


class Material(Base):
    __tablename__ = "material"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("project.id"), nullable=False)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey("purchase_order.id"), nullable=False)
    purchase_order_item_id: Mapped[int | None] = mapped_column(ForeignKey("purchase_order_item.id"), nullable=True)
    material_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity_received: Mapped[float] = mapped_column(Float, nullable=False)
    unit_cost: Mapped[float] = mapped_column(Float, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False)
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("supplier.id"), nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="received")
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    project_id: Mapped[int | None] = mapped_column(ForeignKey("project.id"), nullable=True)
    changes: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Notification(Base):
    __tablename__ = "notification"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("app_user.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    related_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    project_id: Mapped[int | None] = mapped_column(ForeignKey("project.id"), nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
