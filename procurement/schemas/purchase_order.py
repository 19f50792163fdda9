from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class PurchaseOrderItemBase(BaseModel):
    material_request_id: str
    material_name: str
    description: str | None = None
    unit: str | None = None
    quantity: float
    unit_cost: float


class PurchaseOrderItemCreate(PurchaseOrderItemBase):
    pass


class PurchaseOrderItemRead(PurchaseOrderItemBase):
    id: int
    purchase_order_id: int
    total_cost: float
    response_status: str
    response_notes: str | None = None
    rejection_reason: str | None = None
    rejection_subcategory: str | None = None
    is_retryable: bool | None = None
    modifications: dict | None = None
    responded_at: datetime | None = None
    needs_reassignment: bool
    reassigned_order_ids: list[int] | None = None
    actual_quantity_delivered: float | None = None
    actual_unit_cost: float | None = None
    linked_material_id: int | None = None

    class Config:
        from_attributes = True


class PurchaseOrderCreate(BaseModel):
    """Single-material order created from an approved material request."""

    project_id: int
    supplier_id: int
    material_request_id: str
    material_name: str
    description: str | None = None
    quantity_ordered: float
    unit: str | None = None
    unit_cost: float
    delivery_date: date | None = None
    terms: str | None = None
    notes: str | None = None
    idempotency_key: str | None = None


class BulkPurchaseOrderCreate(BaseModel):
    project_id: int
    supplier_id: int
    materials: list[PurchaseOrderItemCreate] = Field(default_factory=list)
    delivery_date: date | None = None
    terms: str | None = None
    notes: str | None = None
    idempotency_key: str | None = None


class PurchaseOrderUpdate(BaseModel):
    quantity_ordered: float | None = None
    unit_cost: float | None = None
    delivery_date: date | None = None
    terms: str | None = None
    notes: str | None = None


class PurchaseOrderCancel(BaseModel):
    reason: str | None = None


class PurchaseOrderRead(BaseModel):
    id: int
    purchase_order_number: str
    is_bulk_order: bool
    material_request_id: str | None = None
    material_name: str | None = None
    description: str | None = None
    quantity_ordered: float | None = None
    unit: str | None = None
    unit_cost: float | None = None
    total_cost: float
    committed_amount: float
    delivery_date: date | None = None
    terms: str | None = None
    notes: str | None = None

    supplier_id: int
    supplier_name: str
    supplier_email: str | None = None
    project_id: int
    created_by: int

    status: str
    financial_status: str

    supplier_response: str | None = None
    supplier_response_date: datetime | None = None
    supplier_notes: str | None = None
    supplier_modifications: dict | None = None
    modification_approved: bool | None = None
    modification_approved_by: int | None = None
    modification_approved_at: datetime | None = None
    modification_approval_notes: str | None = None
    modification_rejection_reason: str | None = None

    rejection_reason: str | None = None
    rejection_subcategory: str | None = None
    rejection_metadata: dict | None = None
    is_retryable: bool | None = None
    retry_recommendation: str | None = None
    retry_count: int
    retry_adjustments: list[dict] | None = None
    needs_reassignment: bool

    alternatives_sent_at: datetime | None = None
    alternative_order_ids: list[int] | None = None
    is_alternative_order: bool
    original_order_id: int | None = None
    original_order_number: str | None = None
    original_rejection_reason: str | None = None

    delivery_note_file_url: str | None = None
    actual_quantity_delivered: float | None = None
    actual_unit_cost: float | None = None
    delivery_confirmed_by: int | None = None
    delivery_confirmed_at: datetime | None = None
    delivery_confirmation_method: str | None = None
    linked_material_id: int | None = None
    linked_material_ids: list[int] | None = None
    received_verified_by: int | None = None
    received_verified_at: datetime | None = None

    response_token_expires_at: datetime | None = None
    reminder_count: int
    last_reminder_sent_at: datetime | None = None

    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    created_at: datetime
    sent_at: datetime | None = None
    committed_at: datetime | None = None
    fulfilled_at: datetime | None = None
    updated_at: datetime
    deleted_at: datetime | None = None

    items: list[PurchaseOrderItemRead] = []

    class Config:
        from_attributes = True


class AllowedActionsRead(BaseModel):
    purchase_order_id: int
    status: str
    financial_status: str
    actions: list[str]


class ResponseLinkRead(BaseModel):
    purchase_order_id: int
    response_link: str
    expires_at: datetime
    token_reissued: bool
